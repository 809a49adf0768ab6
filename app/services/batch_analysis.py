"""
Batch analysis service.

Fans one request out into N analysis jobs that share batch metadata. The
whole batch is written inside one savepoint: either every job and the
activity row land, or none do.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.errors import ConflictError, ForbiddenError, ValidationError
from app.models.analysis_result import AnalysisResult, AnalysisStatus, JobPriority
from app.repositories.analysis_result_repository import AnalysisResultRepository
from app.repositories.contract_repository import ContractRepository
from app.repositories.user_activity_repository import UserActivityRepository
from app.services.analysis_queue import validate_analysis_type
from app.utils.time import utc_now_iso


logger = logging.getLogger(__name__)


@dataclass
class BatchStartResult:
    batch_id: str
    batch_started_at: str
    jobs: List[AnalysisResult]


class BatchAnalysisService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = AnalysisResultRepository(db)
        self.contracts = ContractRepository(db)
        self.activities = UserActivityRepository(db)

    def _validate(self, contract_ids: Sequence[UUID], analysis_type: str) -> None:
        if not contract_ids:
            raise ValidationError("Contract IDs are required")
        if len(set(contract_ids)) != len(contract_ids):
            raise ValidationError("Contract IDs must be unique")
        if len(contract_ids) > settings.BATCH_MAX_CONTRACTS:
            raise ValidationError(
                f"At most {settings.BATCH_MAX_CONTRACTS} contracts per batch",
                {"max": settings.BATCH_MAX_CONTRACTS},
            )
        validate_analysis_type(analysis_type)

    async def start_batch(
        self,
        contract_ids: Sequence[UUID],
        analysis_type: str,
        user_id: UUID,
        organization_id: Optional[UUID] = None,
    ) -> BatchStartResult:
        """
        Create one PENDING job per contract.

        Raises:
            ValidationError: empty, duplicated or oversized list, bad type
            ForbiddenError: any contract is missing, deleted or not owned
            ConflictError: any contract already has an active job of this type
        """
        contract_ids = list(contract_ids)
        self._validate(contract_ids, analysis_type)

        owned = await self.contracts.get_owned(contract_ids, user_id)
        if len(owned) != len(contract_ids):
            logger.warning(f"Batch rejected for user {user_id}: {len(contract_ids) - len(owned)} contracts not accessible")
            raise ForbiddenError("Some contracts not found or access denied")

        active = await self.repo.find_active_for_contracts(contract_ids, analysis_type)
        if active:
            raise ConflictError(
                "Analysis already in progress for some contracts",
                {"analysisIds": [str(job.id) for job in active]},
            )

        batch_id = str(uuid.uuid4())
        batch_started_at = utc_now_iso()
        custom_parameters = {
            "batchJob": True,
            "batchId": batch_id,
            "batchStartedAt": batch_started_at,
            "analysisType": analysis_type,
        }

        try:
            async with self.db.begin_nested():
                jobs = await self.repo.create_many(
                    {
                        "contract_id": contract_id,
                        "user_id": user_id,
                        "organization_id": organization_id,
                        "analysis_type": analysis_type,
                        "priority": JobPriority.NORMAL.value,
                        "status": AnalysisStatus.PENDING.value,
                        "progress": 0,
                        "retry_count": 0,
                        "max_retries": settings.ANALYSIS_MAX_RETRIES,
                        "custom_parameters": dict(custom_parameters),
                    }
                    for contract_id in contract_ids
                )
                await self.activities.record(
                    user_id=user_id,
                    activity_type="batch_analysis_started",
                    description=f"Started batch analysis for {len(contract_ids)} contracts",
                    metadata={
                        "batchId": batch_id,
                        "contractIds": [str(cid) for cid in contract_ids],
                        "analysisType": analysis_type,
                        "batchJobCount": len(contract_ids),
                    },
                )
        except IntegrityError:
            # A concurrent enqueue won the race for at least one contract
            active = await self.repo.find_active_for_contracts(contract_ids, analysis_type)
            raise ConflictError(
                "Analysis already in progress for some contracts",
                {"analysisIds": [str(job.id) for job in active]},
            )

        logger.info(f"Batch {batch_id} started by user {user_id}: {len(jobs)} {analysis_type} jobs")
        return BatchStartResult(batch_id=batch_id, batch_started_at=batch_started_at, jobs=jobs)

    async def get_batch_status(self, user_id: UUID, limit: int = 20) -> Tuple[List[AnalysisResult], Dict[str, int]]:
        """Recent batch jobs for the user plus a count per status."""
        jobs = await self.repo.list_batch_jobs(user_id, limit=limit)
        stats = await self.repo.count_batch_jobs_by_status(user_id)
        return jobs, stats
