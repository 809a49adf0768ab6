"""
Queue router - analysis queue status and admin controls.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user
from app.core.permissions import require_admin
from app.db.session import get_db
from app.models.user import User
from app.routers.analysis import build_job_reads
from app.schemas.queue import QueueActionRequest, QueueActionResponse, QueueStats, QueueStatusResponse
from app.services.analysis_queue import AnalysisQueue

router = APIRouter(prefix="/analysis/queue", tags=["Analysis Queue"])


@router.get("/status", response_model=QueueStatusResponse)
async def get_queue_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Queue aggregate, the caller's 10 most recent jobs and active organization jobs."""
    queue = AnalysisQueue(db)
    stats = await queue.get_queue_status()
    user_jobs = await queue.get_user_jobs(current_user.id, current_user.organization_id, limit=10)
    org_jobs = []
    if current_user.organization_id:
        org_jobs = await queue.repo.list_active_for_organization(current_user.organization_id, limit=5)

    return QueueStatusResponse(
        queue=QueueStats(**stats),
        user_jobs=await build_job_reads(db, user_jobs),
        organization_active_jobs=await build_job_reads(db, org_jobs),
    )


@router.post("/status", response_model=QueueActionResponse)
async def control_queue(
    data: QueueActionRequest,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    """Start or stop the queue, or purge old finished jobs. Admin only."""
    queue = AnalysisQueue(db)
    deleted_count = None

    if data.action == "start":
        await queue.start(current_user.id)
        message = "Analysis queue started"
    elif data.action == "stop":
        await queue.stop(current_user.id)
        message = "Analysis queue stopped"
    else:
        deleted_count = await queue.cleanup_old_jobs(data.max_age_days)
        message = f"Cleaned up {deleted_count} old analysis jobs"

    stats = await queue.get_queue_status()
    return QueueActionResponse(
        message=message,
        queue=QueueStats(**stats),
        deleted_count=deleted_count,
    )
