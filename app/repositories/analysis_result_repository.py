"""
Analysis result repository - database operations for analysis jobs.

Every status transition is an UPDATE guarded by the expected current status,
so a row that moved on concurrently is left alone.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.analysis_result import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    AnalysisResult,
    AnalysisStatus,
    JobPriority,
)
from app.utils.time import utc_now


# Higher number is dequeued first
PRIORITY_RANK = case(
    (AnalysisResult.priority == JobPriority.HIGH.value, 2),
    (AnalysisResult.priority == JobPriority.NORMAL.value, 1),
    else_=0,
)


def visible_to(user_id: UUID, organization_id: Optional[UUID] = None):
    """Filter for jobs a caller may see: their own, plus their organization's."""
    if organization_id:
        return or_(
            AnalysisResult.user_id == user_id,
            AnalysisResult.organization_id == organization_id,
        )
    return AnalysisResult.user_id == user_id


class AnalysisResultRepository:
    """Repository for analysis job database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_by_id(self, job_id: UUID) -> Optional[AnalysisResult]:
        result = await self.db.execute(
            select(AnalysisResult).where(AnalysisResult.id == job_id)
        )
        return result.scalar_one_or_none()

    async def get_visible(
        self,
        job_id: UUID,
        user_id: UUID,
        organization_id: Optional[UUID] = None,
    ) -> Optional[AnalysisResult]:
        result = await self.db.execute(
            select(AnalysisResult).where(
                AnalysisResult.id == job_id,
                visible_to(user_id, organization_id),
            )
        )
        return result.scalar_one_or_none()

    async def find_active(self, contract_id: UUID, analysis_type: str) -> Optional[AnalysisResult]:
        """Return the non-terminal job for a (contract, analysis type) pair, if any."""
        result = await self.db.execute(
            select(AnalysisResult)
            .where(
                AnalysisResult.contract_id == contract_id,
                AnalysisResult.analysis_type == analysis_type,
                AnalysisResult.status.in_(ACTIVE_STATUSES),
            )
            .order_by(AnalysisResult.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_active_for_contracts(
        self,
        contract_ids: Sequence[UUID],
        analysis_type: str,
    ) -> List[AnalysisResult]:
        if not contract_ids:
            return []
        result = await self.db.execute(
            select(AnalysisResult).where(
                AnalysisResult.contract_id.in_(list(contract_ids)),
                AnalysisResult.analysis_type == analysis_type,
                AnalysisResult.status.in_(ACTIVE_STATUSES),
            )
        )
        return list(result.scalars().all())

    async def list_visible(
        self,
        user_id: UUID,
        organization_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
        status: Optional[str] = None,
        contract_id: Optional[UUID] = None,
        analysis_type: Optional[str] = None,
    ) -> List[AnalysisResult]:
        """List jobs visible to the caller, newest first with a stable tie-break."""
        query = select(AnalysisResult).where(visible_to(user_id, organization_id))
        if status:
            query = query.where(AnalysisResult.status == status)
        if contract_id:
            query = query.where(AnalysisResult.contract_id == contract_id)
        if analysis_type:
            query = query.where(AnalysisResult.analysis_type == analysis_type)
        result = await self.db.execute(
            query.order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_active_for_organization(self, organization_id: UUID, limit: int = 5) -> List[AnalysisResult]:
        result = await self.db.execute(
            select(AnalysisResult)
            .where(
                AnalysisResult.organization_id == organization_id,
                AnalysisResult.status.in_(ACTIVE_STATUSES),
            )
            .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_batch_jobs(self, user_id: UUID, limit: int = 20) -> List[AnalysisResult]:
        result = await self.db.execute(
            select(AnalysisResult)
            .where(
                AnalysisResult.user_id == user_id,
                AnalysisResult.custom_parameters["batchJob"].as_boolean().is_(True),
            )
            .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_status(self, *criteria) -> Dict[str, int]:
        """Histogram of job counts per status, optionally filtered."""
        query = select(AnalysisResult.status, func.count(AnalysisResult.id)).group_by(AnalysisResult.status)
        if criteria:
            query = query.where(*criteria)
        result = await self.db.execute(query)
        return {row[0]: int(row[1]) for row in result.all()}

    async def count_batch_jobs_by_status(self, user_id: UUID) -> Dict[str, int]:
        return await self.count_by_status(
            AnalysisResult.user_id == user_id,
            AnalysisResult.custom_parameters["batchJob"].as_boolean().is_(True),
        )

    async def average_processing_time_ms(self, *criteria) -> float:
        query = select(func.avg(AnalysisResult.processing_time_ms)).where(
            AnalysisResult.status == AnalysisStatus.COMPLETED.value,
            AnalysisResult.processing_time_ms.is_not(None),
        )
        if criteria:
            query = query.where(*criteria)
        result = await self.db.execute(query)
        value = result.scalar_one_or_none()
        return float(value) if value is not None else 0.0

    async def completed_metrics_since(self, user_id: UUID, since: datetime) -> List[AnalysisResult]:
        result = await self.db.execute(
            select(AnalysisResult).where(
                AnalysisResult.user_id == user_id,
                AnalysisResult.status == AnalysisStatus.COMPLETED.value,
                AnalysisResult.completed_at >= since,
            )
        )
        return list(result.scalars().all())

    async def count_live_leases(self, now: datetime) -> int:
        """Count PROCESSING jobs whose worker lease has not expired."""
        result = await self.db.execute(
            select(func.count(AnalysisResult.id)).where(
                AnalysisResult.status == AnalysisStatus.PROCESSING.value,
                or_(
                    AnalysisResult.lease_expires_at.is_(None),
                    AnalysisResult.lease_expires_at >= now,
                ),
            )
        )
        return int(result.scalar_one())

    async def find_stuck(
        self,
        cutoff: datetime,
        contract_id: Optional[UUID] = None,
        analysis_type: Optional[str] = None,
        user_id: Optional[UUID] = None,
        organization_id: Optional[UUID] = None,
    ) -> List[AnalysisResult]:
        """
        Jobs left PENDING/PROCESSING past the cutoff.

        A job counts as stuck when it never started, or started before
        the cutoff.
        """
        query = select(AnalysisResult).where(
            AnalysisResult.status.in_(ACTIVE_STATUSES),
            or_(
                AnalysisResult.started_at.is_(None),
                AnalysisResult.started_at < cutoff,
            ),
        )
        if contract_id:
            query = query.where(AnalysisResult.contract_id == contract_id)
        if analysis_type:
            query = query.where(AnalysisResult.analysis_type == analysis_type)
        if user_id:
            query = query.where(visible_to(user_id, organization_id))
        result = await self.db.execute(query.order_by(AnalysisResult.created_at.asc()))
        return list(result.scalars().all())

    # ========================================================================
    # Writes
    # ========================================================================

    async def create(self, **fields: Any) -> AnalysisResult:
        job = AnalysisResult(**fields)
        self.db.add(job)
        await self.db.flush()
        return job

    async def create_many(self, rows: Iterable[Dict[str, Any]]) -> List[AnalysisResult]:
        jobs = [AnalysisResult(**fields) for fields in rows]
        self.db.add_all(jobs)
        await self.db.flush()
        return jobs

    async def claim_next(self, worker_id: str, lease_seconds: int) -> Optional[AnalysisResult]:
        """
        Claim the next runnable job for a worker.

        Uses SELECT FOR UPDATE SKIP LOCKED so concurrent workers never claim
        the same row. Runnable means PENDING, retries left, and no live lease.
        Highest priority first, then oldest.
        """
        now = utc_now()
        result = await self.db.execute(
            select(AnalysisResult)
            .where(
                AnalysisResult.status == AnalysisStatus.PENDING.value,
                AnalysisResult.retry_count < AnalysisResult.max_retries,
                or_(
                    AnalysisResult.lease_expires_at.is_(None),
                    AnalysisResult.lease_expires_at < now,
                ),
            )
            .order_by(PRIORITY_RANK.desc(), AnalysisResult.created_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        job = result.scalar_one_or_none()
        if not job:
            return None

        job.status = AnalysisStatus.PROCESSING.value
        job.started_at = now
        job.progress = 10
        job.locked_by = worker_id
        job.lease_expires_at = now + timedelta(seconds=lease_seconds)
        await self.db.flush()
        return job

    async def recover_expired_leases(self, error_message: str, limit: int = 50) -> List[AnalysisResult]:
        """
        Release PROCESSING jobs whose worker lease ran out.

        The abandoned attempt counts as a failure: the job is requeued while
        retries remain, otherwise it is FAILED. Returns the recovered rows.
        """
        now = utc_now()
        result = await self.db.execute(
            select(AnalysisResult)
            .where(
                AnalysisResult.status == AnalysisStatus.PROCESSING.value,
                AnalysisResult.lease_expires_at < now,
            )
            .order_by(AnalysisResult.lease_expires_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        jobs = list(result.scalars().all())
        for job in jobs:
            job.retry_count = min(job.retry_count + 1, job.max_retries)
            job.error_message = error_message
            job.locked_by = None
            job.lease_expires_at = None
            if job.retry_count < job.max_retries:
                job.status = AnalysisStatus.PENDING.value
                job.progress = 0
            else:
                job.status = AnalysisStatus.FAILED.value
                job.completed_at = now
        await self.db.flush()
        return jobs

    async def update_progress(self, job_id: UUID, progress: int, lease_seconds: int) -> bool:
        """Record progress and extend the worker lease."""
        result = await self.db.execute(
            update(AnalysisResult)
            .where(
                AnalysisResult.id == job_id,
                AnalysisResult.status == AnalysisStatus.PROCESSING.value,
            )
            .values(
                progress=max(0, min(100, progress)),
                lease_expires_at=utc_now() + timedelta(seconds=lease_seconds),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def mark_completed(self, job_id: UUID, results: Dict[str, Any], **metrics: Any) -> bool:
        if results is None:
            raise ValueError("completed jobs require results")
        result = await self.db.execute(
            update(AnalysisResult)
            .where(
                AnalysisResult.id == job_id,
                AnalysisResult.status == AnalysisStatus.PROCESSING.value,
            )
            .values(
                status=AnalysisStatus.COMPLETED.value,
                results=results,
                completed_at=utc_now(),
                progress=100,
                error_message=None,
                lease_expires_at=None,
                locked_by=None,
                **metrics,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def mark_attempt_failed(
        self,
        job_id: UUID,
        retry_count: int,
        max_retries: int,
        error_message: str,
        retry_delay_seconds: Optional[int],
    ) -> Optional[str]:
        """
        Record a failed attempt.

        With retry_delay_seconds the job goes back to PENDING and stays
        invisible until the delay passes; without it the job is FAILED.
        Returns the new status, or None if the job was no longer PROCESSING.
        """
        if not error_message:
            raise ValueError("failed jobs require an error message")
        now = utc_now()
        new_retry_count = min(retry_count + 1, max_retries)
        if retry_delay_seconds is not None:
            values = {
                "status": AnalysisStatus.PENDING.value,
                "lease_expires_at": now + timedelta(seconds=retry_delay_seconds),
                "completed_at": None,
            }
        else:
            values = {
                "status": AnalysisStatus.FAILED.value,
                "lease_expires_at": None,
                "completed_at": now,
            }
        result = await self.db.execute(
            update(AnalysisResult)
            .where(
                AnalysisResult.id == job_id,
                AnalysisResult.status == AnalysisStatus.PROCESSING.value,
            )
            .values(
                retry_count=new_retry_count,
                error_message=error_message,
                locked_by=None,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        return values["status"] if result.rowcount > 0 else None

    async def force_fail(self, job_ids: Sequence[UUID], error_message: str) -> int:
        """Move still-active jobs to FAILED in one statement."""
        if not job_ids:
            return 0
        result = await self.db.execute(
            update(AnalysisResult)
            .where(
                AnalysisResult.id.in_(list(job_ids)),
                AnalysisResult.status.in_(ACTIVE_STATUSES),
            )
            .values(
                status=AnalysisStatus.FAILED.value,
                error_message=error_message,
                completed_at=utc_now(),
                lease_expires_at=None,
                locked_by=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def cancel(self, job_id: UUID) -> bool:
        result = await self.db.execute(
            update(AnalysisResult)
            .where(
                AnalysisResult.id == job_id,
                AnalysisResult.status == AnalysisStatus.PENDING.value,
            )
            .values(
                status=AnalysisStatus.CANCELLED.value,
                completed_at=utc_now(),
                lease_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def reset_for_retry(self, job_id: UUID) -> bool:
        result = await self.db.execute(
            update(AnalysisResult)
            .where(
                AnalysisResult.id == job_id,
                AnalysisResult.status == AnalysisStatus.FAILED.value,
            )
            .values(
                status=AnalysisStatus.PENDING.value,
                retry_count=0,
                error_message=None,
                started_at=None,
                completed_at=None,
                lease_expires_at=None,
                locked_by=None,
                progress=0,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_terminal_older_than(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(AnalysisResult)
            .where(
                AnalysisResult.status.in_(TERMINAL_STATUSES),
                AnalysisResult.created_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
