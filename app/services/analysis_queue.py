"""
Analysis queue service.

Database-backed queue for contract analysis jobs. Jobs are rows in
analysis_results; workers claim them with SELECT FOR UPDATE SKIP LOCKED
(see AnalysisResultRepository.claim_next). The start/stop flag lives in
queue_controls so every process sees the same state.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.analysis_result import (
    ANALYSIS_TYPES,
    PRIORITIES,
    AnalysisResult,
    AnalysisStatus,
    JobPriority,
)
from app.repositories.analysis_result_repository import AnalysisResultRepository
from app.repositories.queue_control_repository import QueueControlRepository
from app.utils.time import days_ago


logger = logging.getLogger(__name__)


@dataclass
class EnqueueResult:
    """Outcome of add_job. created=False means an active job already exists."""

    job_id: UUID
    created: bool
    status: str


def validate_analysis_type(analysis_type: str) -> None:
    if analysis_type not in ANALYSIS_TYPES:
        raise ValidationError(
            "Valid analysis type is required",
            {"allowed": list(ANALYSIS_TYPES)},
        )


class AnalysisQueue:
    """Facade over the analysis job store."""

    def __init__(self, db: AsyncSession, queue_name: Optional[str] = None):
        self.db = db
        self.queue_name = queue_name or settings.ANALYSIS_QUEUE_NAME
        self.repo = AnalysisResultRepository(db)
        self.controls = QueueControlRepository(db)

    async def add_job(
        self,
        contract_id: UUID,
        analysis_type: str,
        user_id: UUID,
        organization_id: Optional[UUID] = None,
        priority: str = JobPriority.NORMAL.value,
        custom_parameters: Optional[Dict[str, Any]] = None,
    ) -> EnqueueResult:
        """
        Enqueue an analysis for a contract.

        Returns created=False with the existing job id if the contract
        already has a PENDING or PROCESSING job of this type.
        """
        validate_analysis_type(analysis_type)
        if priority not in PRIORITIES:
            raise ValidationError("Invalid priority", {"allowed": list(PRIORITIES)})

        existing = await self.repo.find_active(contract_id, analysis_type)
        if existing:
            logger.info(f"Analysis already active for contract {contract_id} ({analysis_type}): {existing.id}")
            return EnqueueResult(job_id=existing.id, created=False, status=existing.status)

        try:
            async with self.db.begin_nested():
                job = await self.repo.create(
                    contract_id=contract_id,
                    user_id=user_id,
                    organization_id=organization_id,
                    analysis_type=analysis_type,
                    priority=priority,
                    status=AnalysisStatus.PENDING.value,
                    progress=0,
                    retry_count=0,
                    max_retries=settings.ANALYSIS_MAX_RETRIES,
                    custom_parameters=custom_parameters,
                )
        except IntegrityError:
            # Lost the race against a concurrent enqueue for the same pair
            existing = await self.repo.find_active(contract_id, analysis_type)
            if not existing:
                raise
            logger.info(f"Concurrent enqueue for contract {contract_id} ({analysis_type}) resolved to {existing.id}")
            return EnqueueResult(job_id=existing.id, created=False, status=existing.status)

        logger.info(f"Analysis job {job.id} enqueued for contract {contract_id}, type {analysis_type}, priority {priority}")
        return EnqueueResult(job_id=job.id, created=True, status=job.status)

    async def get_queue_status(self) -> Dict[str, Any]:
        """Aggregate job counts, average processing time and the enabled flag."""
        counts = await self.repo.count_by_status()
        status: Dict[str, Any] = {
            state.value.lower(): counts.get(state.value, 0) for state in AnalysisStatus
        }
        status["total"] = sum(counts.values())
        status["avg_processing_time_ms"] = await self.repo.average_processing_time_ms()
        status["is_enabled"] = await self.is_enabled()
        return status

    async def get_user_jobs(
        self,
        user_id: UUID,
        organization_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
        status: Optional[str] = None,
    ) -> List[AnalysisResult]:
        return await self.repo.list_visible(
            user_id,
            organization_id,
            limit=limit,
            offset=offset,
            status=status,
        )

    async def get_job(
        self,
        job_id: UUID,
        user_id: UUID,
        organization_id: Optional[UUID] = None,
    ) -> AnalysisResult:
        job = await self.repo.get_visible(job_id, user_id, organization_id)
        if not job:
            raise NotFoundError("Analysis not found")
        return job

    async def cleanup_old_jobs(self, max_age_days: Optional[int] = None) -> int:
        """Delete finished jobs older than max_age_days. Returns how many were removed."""
        days = max_age_days if max_age_days is not None else settings.JOB_RETENTION_DAYS
        deleted = await self.repo.delete_terminal_older_than(days_ago(days))
        logger.info(f"Cleaned up {deleted} analysis jobs older than {days} days")
        return deleted

    async def is_enabled(self) -> bool:
        return await self.controls.is_enabled(self.queue_name)

    async def start(self, user_id: Optional[UUID] = None) -> None:
        await self.controls.set_enabled(self.queue_name, True, user_id)
        logger.info(f"Queue {self.queue_name} started by {user_id or 'system'}")

    async def stop(self, user_id: Optional[UUID] = None) -> None:
        """Pause workers. Jobs already in the store are left as they are."""
        await self.controls.set_enabled(self.queue_name, False, user_id)
        logger.warning(f"Queue {self.queue_name} stopped by {user_id or 'system'}")

    async def cancel_job(self, job_id: UUID) -> AnalysisResult:
        """Cancel a PENDING job. Jobs a worker already picked up cannot be cancelled."""
        job = await self.repo.get_by_id(job_id)
        if not job:
            raise NotFoundError("Analysis not found")
        if job.status != AnalysisStatus.PENDING.value or not await self.repo.cancel(job_id):
            raise ConflictError(
                "Only pending analyses can be cancelled",
                {"analysisId": str(job_id), "status": job.status},
            )
        await self.db.refresh(job)
        logger.info(f"Analysis job {job_id} cancelled")
        return job

    async def retry_job(self, job_id: UUID) -> AnalysisResult:
        """Put a FAILED job back in the queue with a fresh retry budget."""
        job = await self.repo.get_by_id(job_id)
        if not job:
            raise NotFoundError("Analysis not found")
        if job.status != AnalysisStatus.FAILED.value:
            raise ConflictError(
                "Only failed analyses can be retried",
                {"analysisId": str(job_id), "status": job.status},
            )

        existing = await self.repo.find_active(job.contract_id, job.analysis_type)
        if existing:
            raise ConflictError(
                "Analysis already in progress",
                {"analysisId": str(existing.id)},
            )

        try:
            async with self.db.begin_nested():
                reset = await self.repo.reset_for_retry(job_id)
        except IntegrityError:
            existing = await self.repo.find_active(job.contract_id, job.analysis_type)
            raise ConflictError(
                "Analysis already in progress",
                {"analysisId": str(existing.id) if existing else None},
            )
        if not reset:
            raise ConflictError("Only failed analyses can be retried", {"analysisId": str(job_id)})

        await self.db.refresh(job)
        logger.info(f"Analysis job {job_id} re-queued for retry")
        return job
