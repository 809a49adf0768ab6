"""
Stuck job sweeper.

Force-fails analysis jobs left in PENDING or PROCESSING that never started
or started longer ago than the threshold.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.analysis_result import AnalysisResult, AnalysisStatus
from app.repositories.analysis_result_repository import AnalysisResultRepository
from app.repositories.job_log_repository import JobLogRepository
from app.utils.time import minutes_ago


logger = logging.getLogger(__name__)

STUCK_JOB_MESSAGE = "Analysis cancelled due to timeout or stuck status"


@dataclass
class SweepResult:
    cleared_count: int = 0
    job_ids: List[UUID] = field(default_factory=list)


class StuckJobSweeper:
    """Finds abandoned jobs and moves them to FAILED."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = AnalysisResultRepository(db)
        self.logs = JobLogRepository(db)

    async def find_stuck(
        self,
        contract_id: Optional[UUID] = None,
        analysis_type: Optional[str] = None,
        user_id: Optional[UUID] = None,
        organization_id: Optional[UUID] = None,
        threshold_minutes: Optional[int] = None,
    ) -> List[AnalysisResult]:
        minutes = threshold_minutes if threshold_minutes is not None else settings.STUCK_JOB_THRESHOLD_MINUTES
        return await self.repo.find_stuck(
            minutes_ago(minutes),
            contract_id=contract_id,
            analysis_type=analysis_type,
            user_id=user_id,
            organization_id=organization_id,
        )

    async def sweep(
        self,
        contract_id: Optional[UUID] = None,
        analysis_type: Optional[str] = None,
        user_id: Optional[UUID] = None,
        organization_id: Optional[UUID] = None,
        threshold_minutes: Optional[int] = None,
    ) -> SweepResult:
        """
        Fail every stuck job matching the filters.

        With user_id set, only jobs visible to that user are touched. Jobs a
        worker finished between the select and the update are skipped.
        """
        stuck = await self.find_stuck(
            contract_id=contract_id,
            analysis_type=analysis_type,
            user_id=user_id,
            organization_id=organization_id,
            threshold_minutes=threshold_minutes,
        )
        if not stuck:
            return SweepResult()

        candidate_ids = [job.id for job in stuck]
        cleared = await self.repo.force_fail(candidate_ids, STUCK_JOB_MESSAGE)

        result = await self.db.execute(
            select(AnalysisResult.id, AnalysisResult.analysis_type, AnalysisResult.retry_count).where(
                AnalysisResult.id.in_(candidate_ids),
                AnalysisResult.status == AnalysisStatus.FAILED.value,
                AnalysisResult.error_message == STUCK_JOB_MESSAGE,
            )
        )
        rows = result.all()
        for job_id, job_type, attempts in rows:
            await self.logs.append(
                queue_name=settings.ANALYSIS_QUEUE_NAME,
                job_id=str(job_id),
                job_type=job_type,
                status="failed",
                attempts=attempts,
                error=STUCK_JOB_MESSAGE,
                data={"reason": "stuck"},
            )

        logger.warning(f"Cleared {cleared} stuck analysis jobs (contract={contract_id}, type={analysis_type})")
        return SweepResult(cleared_count=cleared, job_ids=[row[0] for row in rows])
