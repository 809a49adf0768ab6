"""
Batch router - start and monitor batch analyses.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.routers.analysis import build_job_reads
from app.schemas.batch import BatchJobStub, BatchStartRequest, BatchStartResponse, BatchStatusResponse
from app.services.batch_analysis import BatchAnalysisService

router = APIRouter(prefix="/analysis/batch", tags=["Batch Analysis"])


@router.post("/start", response_model=BatchStartResponse)
async def start_batch(
    data: BatchStartRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = BatchAnalysisService(db)
    result = await service.start_batch(
        data.contract_ids,
        data.analysis_type,
        current_user.id,
        organization_id=current_user.organization_id,
    )
    return BatchStartResponse(
        message=f"Batch analysis started for {len(result.jobs)} contract(s)",
        batch_id=result.batch_id,
        batch_jobs=[BatchJobStub.model_validate(job) for job in result.jobs],
    )


@router.get("/status", response_model=BatchStatusResponse)
async def get_batch_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's 20 most recent batch jobs and a count per status."""
    jobs, stats = await BatchAnalysisService(db).get_batch_status(current_user.id, limit=20)
    return BatchStatusResponse(
        batch_jobs=await build_job_reads(db, jobs),
        stats=stats,
    )
