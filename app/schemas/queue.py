"""
Queue control Pydantic schemas.
"""

from typing import List, Literal, Optional

from pydantic import Field

from app.schemas.analysis import AnalysisJobRead
from app.schemas.base import CamelModel


class QueueStats(CamelModel):
    """Aggregate counts for the analysis queue."""
    
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    total: int = 0
    avg_processing_time_ms: float = 0.0
    is_enabled: bool = True


class QueueStatusResponse(CamelModel):
    queue: QueueStats
    user_jobs: List[AnalysisJobRead]
    organization_active_jobs: List[AnalysisJobRead]


class QueueActionRequest(CamelModel):
    action: Literal["start", "stop", "cleanup"]
    max_age_days: Optional[int] = Field(default=None, ge=1)


class QueueActionResponse(CamelModel):
    success: bool = True
    message: str
    queue: QueueStats
    deleted_count: Optional[int] = None
