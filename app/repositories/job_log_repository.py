"""
Job log repository - append-only queue audit trail.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.job_log import JobLog


class JobLogRepository:
    """Repository for JobLog database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        queue_name: str,
        job_id: str,
        job_type: str,
        status: str,
        attempts: int = 0,
        error: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> JobLog:
        log = JobLog(
            queue_name=queue_name,
            job_id=job_id,
            job_type=job_type,
            status=status,
            attempts=attempts,
            error=error,
            data=data,
            duration_ms=duration_ms,
        )
        self.db.add(log)
        await self.db.flush()
        return log

    async def list_recent(self, limit: int = 50) -> List[JobLog]:
        result = await self.db.execute(
            select(JobLog)
            .order_by(JobLog.created_at.desc(), JobLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count(self, status: str, since: Optional[datetime] = None) -> int:
        query = select(func.count(JobLog.id)).where(JobLog.status == status)
        if since is not None:
            query = query.where(JobLog.created_at >= since)
        result = await self.db.execute(query)
        return int(result.scalar_one())

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(JobLog)
            .where(JobLog.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
