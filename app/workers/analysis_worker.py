"""Analysis worker: claims queued analysis jobs and runs them through the AI provider.

Uses SELECT FOR UPDATE SKIP LOCKED via AnalysisResultRepository.claim_next so
only one worker claims a job at a time. A claimed job holds a lease; if the
worker dies the lease expires and the next poll of any worker requeues the
job, or fails it once its retries are used up.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import socket
import time
from decimal import Decimal
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import get_async_session_context
from app.models.analysis_result import AnalysisResult, AnalysisStatus
from app.repositories.analysis_result_repository import AnalysisResultRepository
from app.repositories.contract_repository import ContractRepository
from app.repositories.job_log_repository import JobLogRepository
from app.services.analysis_provider import (
    AnalysisProvider,
    AnalysisProviderError,
    AnalysisRequest,
    get_analysis_provider,
)
from app.services.analysis_queue import AnalysisQueue
from app.utils.time import utc_now

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

LEASE_EXPIRED_MESSAGE = "Worker lease expired before the analysis finished"


def retry_delay_seconds(attempt: int) -> int:
    """Exponential backoff: base, 2*base, 4*base, ... for attempt 1, 2, 3, ..."""
    return settings.RETRY_BASE_DELAY_SECONDS * (2 ** max(attempt - 1, 0))


async def _process_job(
    session: AsyncSession,
    job: AnalysisResult,
    worker_id: str,
    provider: AnalysisProvider,
) -> Optional[str]:
    """Run one claimed job to a terminal state or back to PENDING. Returns the new status."""
    repo = AnalysisResultRepository(session)
    logs = JobLogRepository(session)

    # Plain values survive the rollback on the failure path
    job_id = job.id
    job_type = job.analysis_type
    retry_count = job.retry_count
    max_retries = job.max_retries
    contract_id = job.contract_id
    lease = settings.JOB_LEASE_SECONDS
    started = time.monotonic()

    try:
        contract = await ContractRepository(session).get_by_id(contract_id)
        if not contract or contract.deleted_at is not None:
            raise AnalysisProviderError("worker", "Contract not found")
        if not (contract.extracted_text or "").strip():
            raise AnalysisProviderError("worker", "Contract text not available")

        await repo.update_progress(job_id, 30, lease)
        await session.commit()

        result = await provider.analyze(
            AnalysisRequest(
                contract_id=str(contract_id),
                analysis_type=job_type,
                contract_text=contract.extracted_text,
                file_name=contract.file_name,
                contract_metadata=contract.contract_metadata or {},
            )
        )

        await repo.update_progress(job_id, 80, lease)
        await session.commit()

        duration_ms = int((time.monotonic() - started) * 1000)
        completed = await repo.mark_completed(
            job_id,
            result.results,
            summary=result.summary,
            confidence_score=result.confidence_score,
            total_clauses=result.total_clauses,
            total_risks=result.total_risks,
            total_recommendations=result.total_recommendations,
            high_risk_count=result.high_risk_count,
            critical_risk_count=result.critical_risk_count,
            processing_time_ms=duration_ms,
            tokens_used=result.tokens_used,
            estimated_cost=Decimal(str(result.estimated_cost)),
        )
        if not completed:
            logger.warning("Worker %s finished job %s but it was no longer processing", worker_id, job_id)
            await session.commit()
            return None

        await logs.append(
            queue_name=settings.ANALYSIS_QUEUE_NAME,
            job_id=str(job_id),
            job_type=job_type,
            status="completed",
            attempts=retry_count + 1,
            duration_ms=duration_ms,
            data={"contractId": str(contract_id), "provider": result.provider, "tokensUsed": result.tokens_used},
        )
        await session.commit()
        logger.info("Worker %s completed job %s in %sms", worker_id, job_id, duration_ms)
        return AnalysisStatus.COMPLETED.value

    except Exception as exc:  # noqa: BLE001
        await session.rollback()
        if isinstance(exc, AnalysisProviderError):
            logger.warning("Job %s failed: %s", job_id, exc)
        else:
            logger.exception("Job %s raised an unexpected error", job_id)

        message = str(exc) or exc.__class__.__name__
        attempt = retry_count + 1
        delay = retry_delay_seconds(attempt) if attempt < max_retries else None
        new_status = await repo.mark_attempt_failed(job_id, retry_count, max_retries, message, delay)

        if new_status == AnalysisStatus.FAILED.value:
            await logs.append(
                queue_name=settings.ANALYSIS_QUEUE_NAME,
                job_id=str(job_id),
                job_type=job_type,
                status="failed",
                attempts=attempt,
                error=message,
                duration_ms=int((time.monotonic() - started) * 1000),
                data={"contractId": str(contract_id)},
            )
            logger.warning("Job %s failed permanently after %s attempts", job_id, attempt)
        elif new_status == AnalysisStatus.PENDING.value:
            logger.info("Job %s scheduled for retry %s/%s in %ss", job_id, attempt, max_retries, delay)
        await session.commit()
        return new_status


class AnalysisJobRunner:
    """Poll and execute analysis jobs."""

    def __init__(
        self,
        worker_id: Optional[str] = None,
        poll_interval: Optional[float] = None,
        provider: Optional[AnalysisProvider] = None,
        session_factory: Optional[SessionFactory] = None,
        max_concurrent_jobs: Optional[int] = None,
    ) -> None:
        self.worker_id = worker_id or f"analysis-{socket.gethostname()}-{os.getpid()}"
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL_SECONDS
        self.provider = provider or get_analysis_provider()
        self.session_factory = session_factory or get_async_session_context
        self.max_concurrent_jobs = max_concurrent_jobs or settings.WORKER_MAX_CONCURRENT_JOBS
        self._stop_event = asyncio.Event()
        self._last_cleanup: Optional[float] = None

    def request_stop(self) -> None:
        self._stop_event.set()

    async def _maybe_cleanup(self, queue: AnalysisQueue) -> None:
        interval = settings.CLEANUP_INTERVAL_HOURS * 3600
        now = time.monotonic()
        if self._last_cleanup is not None and now - self._last_cleanup < interval:
            return
        self._last_cleanup = now
        await queue.cleanup_old_jobs(settings.JOB_RETENTION_DAYS)
        await queue.db.commit()

    async def _recover_expired_leases(self, queue: AnalysisQueue) -> None:
        recovered = await queue.repo.recover_expired_leases(LEASE_EXPIRED_MESSAGE)
        if not recovered:
            return
        logs = JobLogRepository(queue.db)
        for job in recovered:
            if job.status == AnalysisStatus.FAILED.value:
                await logs.append(
                    queue_name=settings.ANALYSIS_QUEUE_NAME,
                    job_id=str(job.id),
                    job_type=job.analysis_type,
                    status="failed",
                    attempts=job.retry_count,
                    error=LEASE_EXPIRED_MESSAGE,
                    data={"contractId": str(job.contract_id), "reason": "lease_expired"},
                )
                logger.warning("Job %s failed after its lease expired on attempt %s", job.id, job.retry_count)
            else:
                logger.info("Job %s requeued after its lease expired (retry %s/%s)", job.id, job.retry_count, job.max_retries)
        await queue.db.commit()

    async def run_once(self) -> bool:
        """Claim and execute a single job if the queue is enabled and one is available."""
        async with self.session_factory() as session:
            queue = AnalysisQueue(session)
            if not await queue.is_enabled():
                logger.debug("Queue %s is stopped; worker %s idle", queue.queue_name, self.worker_id)
                return False

            await self._maybe_cleanup(queue)
            await self._recover_expired_leases(queue)

            if await queue.repo.count_live_leases(utc_now()) >= self.max_concurrent_jobs:
                return False

            job = await queue.repo.claim_next(self.worker_id, settings.JOB_LEASE_SECONDS)
            if not job:
                await session.commit()
                return False
            await session.commit()

            logger.info("Worker %s claimed job %s (attempt %s/%s)", self.worker_id, job.id, job.retry_count + 1, job.max_retries)
            await _process_job(session, job, self.worker_id, self.provider)
            return True

    async def run_forever(self) -> None:
        """Poll indefinitely until stopped, respecting poll_interval when idle."""
        while not self._stop_event.is_set():
            try:
                processed = await self.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("Worker %s poll failed", self.worker_id)
                processed = False
            if processed:
                continue

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue


async def run_worker(loop: bool, sleep_seconds: float) -> int:
    runner = AnalysisJobRunner(poll_interval=sleep_seconds)
    if not loop:
        processed = await runner.run_once()
        print(f"processed={processed}")
        return 0
    await runner.run_forever()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Contract analysis worker")
    parser.add_argument("--once", action="store_true", help="Process a single job and exit")
    parser.add_argument("--loop", action="store_true", help="Run continuously")
    parser.add_argument("--sleep", type=float, default=settings.WORKER_POLL_INTERVAL_SECONDS, help="Sleep seconds between polls when looping")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    loop_mode = args.loop or not args.once
    return asyncio.run(run_worker(loop=loop_mode, sleep_seconds=args.sleep))


if __name__ == "__main__":
    raise SystemExit(main())
