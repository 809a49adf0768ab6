"""
Analysis router - API endpoints for starting and inspecting contract analyses.
"""

from datetime import datetime, time, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user
from app.db.session import get_db
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.analysis_result import AnalysisResult, AnalysisStatus
from app.models.user import User
from app.repositories.analysis_result_repository import visible_to
from app.repositories.contract_repository import ContractRepository
from app.schemas.analysis import (
    AnalysisActionRequest,
    AnalysisActionResponse,
    AnalysisJobRead,
    AnalysisListResponse,
    AnalysisMetadata,
    AnalysisResultsResponse,
    StartAnalysisRequest,
    StartAnalysisResponse,
    TodayMetrics,
    job_to_read,
)
from app.services.analysis_queue import AnalysisQueue
from app.utils.time import utc_now

router = APIRouter(prefix="/analysis", tags=["Analysis"])


async def build_job_reads(db: AsyncSession, jobs: Sequence[AnalysisResult]) -> List[AnalysisJobRead]:
    """Serialize jobs with their contract file names in one query."""
    names = await ContractRepository(db).get_file_names([job.contract_id for job in jobs])
    return [job_to_read(job, names.get(job.contract_id)) for job in jobs]


async def build_job_read(db: AsyncSession, job: AnalysisResult) -> AnalysisJobRead:
    return (await build_job_reads(db, [job]))[0]


@router.post("/start", response_model=StartAnalysisResponse)
async def start_analysis(
    data: StartAnalysisRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Queue an analysis for a contract.

    Returns 409 with the existing analysisId if one is already in progress.
    """
    contract = await ContractRepository(db).get_visible(
        data.contract_id, current_user.id, current_user.organization_id
    )
    if not contract:
        raise NotFoundError("Contract not found")

    queue = AnalysisQueue(db)
    result = await queue.add_job(
        contract_id=contract.id,
        analysis_type=data.analysis_type,
        user_id=current_user.id,
        organization_id=contract.organization_id,
        priority=data.priority,
    )
    if not result.created:
        raise ConflictError(
            "Analysis already in progress",
            {"analysisId": str(result.job_id), "status": result.status},
        )

    job = await queue.repo.get_by_id(result.job_id)
    return StartAnalysisResponse(
        analysis_id=result.job_id,
        status=result.status.lower(),
        message="Analysis started successfully",
        analysis=job_to_read(job, contract.file_name),
    )


@router.get("/status", response_model=AnalysisListResponse)
async def list_analysis_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
):
    """Caller's recent analyses, counts per status and today's processing metrics."""
    if status and status.upper() not in AnalysisStatus.__members__:
        raise ValidationError("Invalid status", {"allowed": list(AnalysisStatus.__members__)})

    queue = AnalysisQueue(db)
    jobs = await queue.get_user_jobs(
        current_user.id,
        current_user.organization_id,
        limit=limit,
        status=status.upper() if status else None,
    )
    stats = await queue.repo.count_by_status(visible_to(current_user.id, current_user.organization_id))

    start_of_day = datetime.combine(utc_now().date(), time.min, tzinfo=timezone.utc)
    completed_today = await queue.repo.completed_metrics_since(current_user.id, start_of_day)
    durations = [job.processing_time_ms for job in completed_today if job.processing_time_ms is not None]
    today = TodayMetrics(
        completed=len(completed_today),
        avg_processing_time_ms=(sum(durations) / len(durations)) if durations else 0.0,
        tokens_used=sum(job.tokens_used or 0 for job in completed_today),
        estimated_cost=float(sum(job.estimated_cost or 0 for job in completed_today)),
    )

    return AnalysisListResponse(
        analyses=await build_job_reads(db, jobs),
        stats=stats,
        today=today,
    )


@router.get("/{analysis_id}/status", response_model=AnalysisJobRead)
async def get_analysis_status(
    analysis_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Job detail. Results are only included once the analysis has completed."""
    job = await AnalysisQueue(db).get_job(analysis_id, current_user.id, current_user.organization_id)
    return await build_job_read(db, job)


@router.get("/{analysis_id}", response_model=AnalysisResultsResponse)
async def get_analysis(
    analysis_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Completed analysis results."""
    job = await AnalysisQueue(db).get_job(analysis_id, current_user.id, current_user.organization_id)
    if job.status != AnalysisStatus.COMPLETED.value:
        raise ValidationError("Analysis is not completed", {"status": job.status})

    return AnalysisResultsResponse(
        analysis=await build_job_read(db, job),
        results=job.results or {},
        metadata=AnalysisMetadata.model_validate(job),
    )


@router.delete("/{analysis_id}", response_model=AnalysisActionResponse)
async def cancel_analysis(
    analysis_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a pending analysis."""
    queue = AnalysisQueue(db)
    await queue.get_job(analysis_id, current_user.id, current_user.organization_id)
    job = await queue.cancel_job(analysis_id)
    return AnalysisActionResponse(
        message="Analysis cancelled",
        analysis=await build_job_read(db, job),
    )


@router.patch("/{analysis_id}", response_model=AnalysisActionResponse)
async def update_analysis(
    analysis_id: UUID,
    data: AnalysisActionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Retry a failed analysis."""
    queue = AnalysisQueue(db)
    await queue.get_job(analysis_id, current_user.id, current_user.organization_id)
    job = await queue.retry_job(analysis_id)
    return AnalysisActionResponse(
        message="Analysis queued for retry",
        analysis=await build_job_read(db, job),
    )
