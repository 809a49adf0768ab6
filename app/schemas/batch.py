"""
Batch analysis Pydantic schemas.
"""

from typing import Dict, List
from uuid import UUID

from app.schemas.analysis import AnalysisJobRead, AnalysisTypeLiteral
from app.schemas.base import CamelModel


class BatchStartRequest(CamelModel):
    contract_ids: List[UUID]
    analysis_type: AnalysisTypeLiteral


class BatchJobStub(CamelModel):
    id: UUID
    contract_id: UUID
    status: str
    analysis_type: str


class BatchStartResponse(CamelModel):
    success: bool = True
    message: str
    batch_id: str
    batch_jobs: List[BatchJobStub]


class BatchStatusResponse(CamelModel):
    batch_jobs: List[AnalysisJobRead]
    stats: Dict[str, int]
