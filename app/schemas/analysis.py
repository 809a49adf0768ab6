"""
Analysis job Pydantic schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from app.schemas.base import CamelModel


AnalysisTypeLiteral = Literal["comprehensive", "risk-assessment", "clause-extraction", "basic"]
PriorityLiteral = Literal["low", "normal", "high"]


class StartAnalysisRequest(CamelModel):
    """Body of POST /analysis/start."""
    
    contract_id: UUID
    analysis_type: AnalysisTypeLiteral
    priority: PriorityLiteral = "normal"


class AnalysisActionRequest(CamelModel):
    action: Literal["retry"]


class AnalysisJobRead(CamelModel):
    """Job detail as returned to clients. Results are set only for completed jobs."""
    
    id: UUID
    contract_id: UUID
    contract_name: Optional[str] = None
    analysis_type: str
    priority: str
    status: str
    progress: int
    retry_count: int
    max_retries: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    summary: Optional[str] = None
    confidence_score: Optional[float] = None
    processing_time_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    estimated_cost: Optional[float] = None
    custom_parameters: Optional[Dict[str, Any]] = None
    results: Optional[Dict[str, Any]] = None


class StartAnalysisResponse(CamelModel):
    success: bool = True
    analysis_id: UUID
    status: str
    message: str
    analysis: AnalysisJobRead


class TodayMetrics(CamelModel):
    completed: int = 0
    avg_processing_time_ms: float = 0.0
    tokens_used: int = 0
    estimated_cost: float = 0.0


class AnalysisListResponse(CamelModel):
    """Caller's recent analyses with per-status counts."""
    
    analyses: List[AnalysisJobRead]
    stats: Dict[str, int]
    today: TodayMetrics


class AnalysisMetadata(CamelModel):
    total_clauses: Optional[int] = None
    total_risks: Optional[int] = None
    total_recommendations: Optional[int] = None
    high_risk_count: Optional[int] = None
    critical_risk_count: Optional[int] = None


class AnalysisResultsResponse(CamelModel):
    analysis: AnalysisJobRead
    results: Dict[str, Any]
    metadata: AnalysisMetadata


class AnalysisActionResponse(CamelModel):
    success: bool = True
    message: str
    analysis: AnalysisJobRead


def job_to_read(job: Any, contract_name: Optional[str] = None) -> AnalysisJobRead:
    """Build the client view of a job. Results are withheld until the job completes."""
    read = AnalysisJobRead.model_validate(job)
    read.contract_name = contract_name
    if job.status != "COMPLETED":
        read.results = None
    return read
