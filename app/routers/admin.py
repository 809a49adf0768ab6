"""
Admin router - job queue health for administrators.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import require_admin
from app.db.session import get_db
from app.models.user import User
from app.repositories.job_log_repository import JobLogRepository
from app.schemas.admin import JobLogRead, JobQueuesResponse
from app.schemas.queue import QueueStats
from app.services.analysis_queue import AnalysisQueue
from app.utils.time import utc_now

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/job-queues", response_model=JobQueuesResponse)
async def get_job_queues(
    _: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    """Queue stats, the 50 latest job log entries, failures and last-24h completions."""
    stats = await AnalysisQueue(db).get_queue_status()
    logs = JobLogRepository(db)
    recent = await logs.list_recent(limit=50)

    return JobQueuesResponse(
        queue=QueueStats(**stats),
        recent_logs=[JobLogRead.model_validate(log) for log in recent],
        failed_count=await logs.count("failed"),
        completed_last_24h=await logs.count("completed", since=utc_now() - timedelta(hours=24)),
    )
