from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import AnalysisResult
from app.services.analysis_queue import AnalysisQueue
from app.utils.time import utc_now
from tests.conftest import make_contract, make_job, make_organization, make_user


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_creates_single_pending_row(db):
    user = await make_user(db)
    contract = await make_contract(db, user)

    queue = AnalysisQueue(db)
    result = await queue.add_job(contract.id, "comprehensive", user.id)
    await db.commit()

    assert result.created is True
    assert result.status == "PENDING"

    rows = (await db.execute(select(AnalysisResult).where(AnalysisResult.contract_id == contract.id))).scalars().all()
    assert len(rows) == 1
    job = rows[0]
    assert job.id == result.job_id
    assert job.status == "PENDING"
    assert job.retry_count == 0
    assert job.progress == 0
    assert job.max_retries == settings.ANALYSIS_MAX_RETRIES
    assert job.priority == "normal"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_twice_returns_existing_job(db):
    user = await make_user(db)
    contract = await make_contract(db, user)
    queue = AnalysisQueue(db)

    first = await queue.add_job(contract.id, "risk-assessment", user.id)
    second = await queue.add_job(contract.id, "risk-assessment", user.id)

    assert second.created is False
    assert second.job_id == first.job_id

    count = (await db.execute(select(func.count(AnalysisResult.id)))).scalar_one()
    assert count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_conflicts_with_processing_job(db):
    user = await make_user(db)
    contract = await make_contract(db, user)
    running = await make_job(db, contract, status="PROCESSING", started_at=utc_now())

    result = await AnalysisQueue(db).add_job(contract.id, "comprehensive", user.id)

    assert result.created is False
    assert result.job_id == running.id
    assert result.status == "PROCESSING"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_losing_insert_race_returns_existing_job(db, monkeypatch):
    user = await make_user(db)
    contract = await make_contract(db, user)
    # Committed by a concurrent request after our pre-check looked
    winner = await make_job(db, contract, analysis_type="basic")

    queue = AnalysisQueue(db)
    real_find_active = queue.repo.find_active
    lookups = []

    async def find_active_before_commit(contract_id, analysis_type):
        lookups.append(contract_id)
        if len(lookups) == 1:
            return None
        return await real_find_active(contract_id, analysis_type)

    monkeypatch.setattr(queue.repo, "find_active", find_active_before_commit)

    result = await queue.add_job(contract.id, "basic", user.id)

    assert result.created is False
    assert result.job_id == winner.id
    assert len(lookups) == 2
    count = (await db.execute(select(func.count(AnalysisResult.id)))).scalar_one()
    assert count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_allowed_after_previous_job_finished(db):
    user = await make_user(db)
    contract = await make_contract(db, user)
    await make_job(db, contract, status="COMPLETED")
    await make_job(db, contract, status="FAILED")

    result = await AnalysisQueue(db).add_job(contract.id, "comprehensive", user.id)

    assert result.created is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_different_analysis_types_do_not_conflict(db):
    user = await make_user(db)
    contract = await make_contract(db, user)
    queue = AnalysisQueue(db)

    first = await queue.add_job(contract.id, "basic", user.id)
    second = await queue.add_job(contract.id, "clause-extraction", user.id)

    assert first.created and second.created
    assert first.job_id != second.job_id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_rejects_unknown_type_and_priority(db):
    user = await make_user(db)
    contract = await make_contract(db, user)
    queue = AnalysisQueue(db)

    with pytest.raises(ValidationError):
        await queue.add_job(contract.id, "poetry", user.id)
    with pytest.raises(ValidationError):
        await queue.add_job(contract.id, "basic", user.id, priority="urgent")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_queue_status_counts_and_flag(db):
    user = await make_user(db)
    for status in ("PENDING", "PENDING", "PROCESSING", "COMPLETED", "FAILED", "CANCELLED"):
        contract = await make_contract(db, user)
        extra = {"processing_time_ms": 1200} if status == "COMPLETED" else {}
        await make_job(db, contract, status=status, **extra)

    queue = AnalysisQueue(db)
    status = await queue.get_queue_status()

    assert status["pending"] == 2
    assert status["processing"] == 1
    assert status["completed"] == 1
    assert status["failed"] == 1
    assert status["cancelled"] == 1
    assert status["total"] == 6
    assert status["avg_processing_time_ms"] == 1200
    assert status["is_enabled"] is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stop_and_start_persist_flag_without_touching_jobs(db):
    admin = await make_user(db, role="admin")
    contract = await make_contract(db, admin)
    job = await make_job(db, contract)
    queue = AnalysisQueue(db)

    await queue.stop(admin.id)
    await db.commit()
    assert await AnalysisQueue(db).is_enabled() is False

    await db.refresh(job)
    assert job.status == "PENDING"

    await queue.start(admin.id)
    assert await queue.is_enabled() is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cleanup_old_jobs_removes_only_old_terminal_jobs(db):
    user = await make_user(db)
    old = utc_now() - timedelta(days=40)
    recent = utc_now() - timedelta(days=5)

    old_completed = await make_job(db, await make_contract(db, user), status="COMPLETED", created_at=old)
    old_failed = await make_job(db, await make_contract(db, user), status="FAILED", created_at=old)
    old_pending = await make_job(db, await make_contract(db, user), status="PENDING", created_at=old)
    recent_completed = await make_job(db, await make_contract(db, user), status="COMPLETED", created_at=recent)
    await db.commit()

    queue = AnalysisQueue(db)
    assert await queue.cleanup_old_jobs(30) == 2
    await db.commit()
    assert await queue.cleanup_old_jobs(30) == 0

    remaining = set((await db.execute(select(AnalysisResult.id))).scalars().all())
    assert old_completed.id not in remaining
    assert old_failed.id not in remaining
    assert old_pending.id in remaining
    assert recent_completed.id in remaining


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_user_jobs_pages_are_disjoint_and_ordered(db):
    user = await make_user(db)
    now = utc_now()
    created = []
    for i in range(25):
        contract = await make_contract(db, user, file_name=f"c{i}.pdf")
        job = await make_job(db, contract, created_at=now - timedelta(minutes=i))
        created.append(job.id)
    await db.commit()

    queue = AnalysisQueue(db)
    pages = [await queue.get_user_jobs(user.id, limit=10, offset=offset) for offset in (0, 10, 20)]

    assert [len(p) for p in pages] == [10, 10, 5]
    ids = [job.id for page in pages for job in page]
    assert len(set(ids)) == 25
    # created[] is newest first, so the concatenated pages match it exactly
    assert ids == created


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_user_jobs_includes_organization_jobs(db):
    org = await make_organization(db)
    alice = await make_user(db, organization_id=org.id)
    bob = await make_user(db, organization_id=org.id)
    outsider = await make_user(db)

    shared = await make_job(db, await make_contract(db, bob, organization_id=org.id))
    await make_job(db, await make_contract(db, outsider))

    jobs = await AnalysisQueue(db).get_user_jobs(alice.id, org.id)

    assert [job.id for job in jobs] == [shared.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_job_hides_other_users_jobs(db):
    owner = await make_user(db)
    other = await make_user(db)
    job = await make_job(db, await make_contract(db, owner))

    queue = AnalysisQueue(db)
    assert (await queue.get_job(job.id, owner.id)).id == job.id
    with pytest.raises(NotFoundError):
        await queue.get_job(job.id, other.id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_job_only_for_pending(db):
    user = await make_user(db)
    pending = await make_job(db, await make_contract(db, user))
    processing = await make_job(db, await make_contract(db, user), status="PROCESSING", started_at=utc_now())
    queue = AnalysisQueue(db)

    cancelled = await queue.cancel_job(pending.id)
    assert cancelled.status == "CANCELLED"
    assert cancelled.completed_at is not None

    with pytest.raises(ConflictError):
        await queue.cancel_job(processing.id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_job_resets_failed_job(db):
    user = await make_user(db)
    contract = await make_contract(db, user)
    failed = await make_job(db, contract, status="FAILED", retry_count=3, completed_at=utc_now())
    queue = AnalysisQueue(db)

    job = await queue.retry_job(failed.id)

    assert job.status == "PENDING"
    assert job.retry_count == 0
    assert job.error_message is None
    assert job.completed_at is None
    assert job.progress == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_job_conflicts_with_active_job(db):
    user = await make_user(db)
    contract = await make_contract(db, user)
    failed = await make_job(db, contract, status="FAILED")
    active = await make_job(db, contract, status="PENDING")

    with pytest.raises(ConflictError) as exc_info:
        await AnalysisQueue(db).retry_job(failed.id)

    assert exc_info.value.details["analysisId"] == str(active.id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_job_rejects_non_failed(db):
    user = await make_user(db)
    job = await make_job(db, await make_contract(db, user), status="COMPLETED")

    with pytest.raises(ConflictError):
        await AnalysisQueue(db).retry_job(job.id)
