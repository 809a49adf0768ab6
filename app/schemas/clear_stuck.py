"""
Stuck-job recovery Pydantic schemas.
"""

from typing import List, Optional
from uuid import UUID

from app.schemas.analysis import AnalysisJobRead, AnalysisTypeLiteral
from app.schemas.base import CamelModel


class ClearStuckRequest(CamelModel):
    # Only admins may omit contract_id for a global sweep
    contract_id: Optional[UUID] = None
    analysis_type: Optional[AnalysisTypeLiteral] = None


class ClearStuckResponse(CamelModel):
    success: bool = True
    message: str
    cleared_count: int
    analysis_ids: List[UUID]


class StuckInspectionResponse(CamelModel):
    analyses: List[AnalysisJobRead]
    pending_count: int
    processing_count: int
