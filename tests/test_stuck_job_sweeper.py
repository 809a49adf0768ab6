from datetime import timedelta

import pytest
from sqlalchemy import select

from app.models import AnalysisResult, JobLog
from app.services.stuck_job_sweeper import STUCK_JOB_MESSAGE, StuckJobSweeper
from app.utils.time import utc_now
from tests.conftest import make_contract, make_job, make_user


async def _reload(session_maker, job_id):
    async with session_maker() as session:
        return await session.get(AnalysisResult, job_id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweep_fails_processing_job_past_threshold(db, session_maker):
    user = await make_user(db)
    now = utc_now()
    stale = await make_job(
        db, await make_contract(db, user),
        status="PROCESSING", started_at=now - timedelta(minutes=15), progress=30,
    )
    fresh = await make_job(
        db, await make_contract(db, user),
        status="PROCESSING", started_at=now - timedelta(minutes=2), progress=30,
    )
    await db.commit()

    result = await StuckJobSweeper(db).sweep(threshold_minutes=10)
    await db.commit()

    assert result.cleared_count == 1
    assert result.job_ids == [stale.id]

    stale_row = await _reload(session_maker, stale.id)
    assert stale_row.status == "FAILED"
    assert stale_row.error_message == STUCK_JOB_MESSAGE
    assert stale_row.completed_at is not None

    fresh_row = await _reload(session_maker, fresh.id)
    assert fresh_row.status == "PROCESSING"
    assert fresh_row.error_message is None
    assert fresh_row.completed_at is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweep_fails_never_started_jobs_regardless_of_age(db, session_maker):
    user = await make_user(db)
    now = utc_now()
    contract = await make_contract(db, user)
    queued = await make_job(db, contract, created_at=now - timedelta(minutes=1))
    running = await make_job(
        db, await make_contract(db, user),
        status="PROCESSING", started_at=now - timedelta(minutes=1),
    )
    await db.commit()

    result = await StuckJobSweeper(db).sweep(contract_id=contract.id, user_id=user.id)
    await db.commit()

    assert result.cleared_count == 1
    assert result.job_ids == [queued.id]
    row = await _reload(session_maker, queued.id)
    assert row.status == "FAILED"
    assert row.error_message == STUCK_JOB_MESSAGE

    unscoped = await StuckJobSweeper(db).sweep()
    assert unscoped.cleared_count == 0
    assert (await _reload(session_maker, running.id)).status == "PROCESSING"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweep_leaves_terminal_jobs_alone(db):
    user = await make_user(db)
    old = utc_now() - timedelta(hours=2)
    await make_job(db, await make_contract(db, user), status="COMPLETED", started_at=old, created_at=old)
    await make_job(db, await make_contract(db, user), status="CANCELLED", created_at=old)
    await db.commit()

    result = await StuckJobSweeper(db).sweep()

    assert result.cleared_count == 0
    assert result.job_ids == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweep_scoped_to_contract_and_caller(db, session_maker):
    owner = await make_user(db)
    other = await make_user(db)
    old = utc_now() - timedelta(minutes=20)
    contract = await make_contract(db, owner)
    mine = await make_job(db, contract, status="PROCESSING", started_at=old)
    elsewhere = await make_job(db, await make_contract(db, owner), status="PROCESSING", started_at=old)
    foreign = await make_job(db, await make_contract(db, other), status="PROCESSING", started_at=old)
    await db.commit()

    # Another user cannot clear the owner's job
    denied = await StuckJobSweeper(db).sweep(contract_id=contract.id, user_id=other.id)
    assert denied.cleared_count == 0

    result = await StuckJobSweeper(db).sweep(contract_id=contract.id, user_id=owner.id)
    await db.commit()

    assert result.job_ids == [mine.id]
    assert (await _reload(session_maker, elsewhere.id)).status == "PROCESSING"
    assert (await _reload(session_maker, foreign.id)).status == "PROCESSING"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweep_writes_job_log_per_cleared_job(db):
    user = await make_user(db)
    old = utc_now() - timedelta(minutes=20)
    job = await make_job(db, await make_contract(db, user), status="PROCESSING", started_at=old)
    await db.commit()

    await StuckJobSweeper(db).sweep()
    await db.commit()

    logs = (await db.execute(select(JobLog))).scalars().all()
    assert len(logs) == 1
    assert logs[0].job_id == str(job.id)
    assert logs[0].status == "failed"
    assert logs[0].error == STUCK_JOB_MESSAGE
