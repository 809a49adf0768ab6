"""
Clear-stuck router - inspect and recover analyses stuck in PENDING/PROCESSING.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user
from app.core.permissions import check_is_admin
from app.db.session import get_db
from app.errors import ValidationError
from app.models.analysis_result import AnalysisStatus
from app.models.user import User
from app.repositories.analysis_result_repository import AnalysisResultRepository
from app.routers.analysis import build_job_reads
from app.schemas.analysis import AnalysisTypeLiteral
from app.schemas.clear_stuck import ClearStuckRequest, ClearStuckResponse, StuckInspectionResponse
from app.services.stuck_job_sweeper import StuckJobSweeper

router = APIRouter(prefix="/analysis", tags=["Analysis Recovery"])


@router.post("/clear-stuck", response_model=ClearStuckResponse)
async def clear_stuck(
    data: ClearStuckRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Fail analyses stuck longer than the threshold.

    Members only touch jobs they can see for one contract; admins may omit
    contractId to sweep every stuck job.
    """
    is_admin = check_is_admin(current_user.role)
    if data.contract_id is None and not is_admin:
        raise ValidationError("Contract ID is required")

    sweeper = StuckJobSweeper(db)
    if is_admin and data.contract_id is None:
        result = await sweeper.sweep(analysis_type=data.analysis_type)
    else:
        result = await sweeper.sweep(
            contract_id=data.contract_id,
            analysis_type=data.analysis_type,
            user_id=current_user.id,
            organization_id=current_user.organization_id,
        )

    return ClearStuckResponse(
        message=f"Cleared {result.cleared_count} stuck analysis job(s)",
        cleared_count=result.cleared_count,
        analysis_ids=result.job_ids,
    )


@router.get("/clear-stuck", response_model=StuckInspectionResponse)
async def inspect_stuck(
    contract_id: UUID = Query(..., alias="contractId"),
    analysis_type: Optional[AnalysisTypeLiteral] = Query(None, alias="analysisType"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Analyses for a contract visible to the caller, with pending/processing counts."""
    jobs = await AnalysisResultRepository(db).list_visible(
        current_user.id,
        current_user.organization_id,
        limit=100,
        contract_id=contract_id,
        analysis_type=analysis_type,
    )
    return StuckInspectionResponse(
        analyses=await build_job_reads(db, jobs),
        pending_count=sum(1 for job in jobs if job.status == AnalysisStatus.PENDING.value),
        processing_count=sum(1 for job in jobs if job.status == AnalysisStatus.PROCESSING.value),
    )
