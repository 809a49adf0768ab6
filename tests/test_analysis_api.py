from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from app.models import AnalysisResult
from app.utils.time import utc_now
from tests.conftest import auth_headers, make_contract, make_job, make_organization, make_user


async def _seed_member(session_maker, **contract_kwargs):
    async with session_maker() as db:
        user = await make_user(db)
        contract = await make_contract(db, user, **contract_kwargs)
        await db.commit()
    return user, contract


@pytest.mark.unit
@pytest.mark.asyncio
async def test_requests_without_session_are_unauthorized(client):
    resp = await client.get("/analysis/queue/status")

    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(client):
    resp = await client.get("/analysis/status", headers={"Authorization": "Bearer forged"})

    assert resp.status_code == 401


@pytest.mark.unit
@pytest.mark.asyncio
async def test_session_cookie_is_accepted(client, session_maker):
    user, _ = await _seed_member(session_maker)
    token = auth_headers(user)["Authorization"].split(" ", 1)[1]
    client.cookies.set("session", token)

    resp = await client.get("/analysis/status")

    assert resp.status_code == 200


@pytest.mark.unit
@pytest.mark.asyncio
async def test_inactive_user_is_forbidden(client, session_maker):
    async with session_maker() as db:
        user = await make_user(db, is_active=False)
        await db.commit()

    resp = await client.get("/analysis/status", headers=auth_headers(user))

    assert resp.status_code == 403


@pytest.mark.unit
@pytest.mark.asyncio
async def test_start_analysis_then_duplicate_returns_409_with_existing_id(client, session_maker):
    user, contract = await _seed_member(session_maker)
    body = {"contractId": str(contract.id), "analysisType": "comprehensive"}

    first = await client.post("/analysis/start", json=body, headers=auth_headers(user))
    assert first.status_code == 200
    data = first.json()
    assert data["success"] is True
    assert data["status"] == "pending"
    assert data["analysis"]["contractName"] == "msa.pdf"
    assert data["analysis"]["retryCount"] == 0

    second = await client.post("/analysis/start", json=body, headers=auth_headers(user))
    assert second.status_code == 409
    payload = second.json()
    assert payload["analysisId"] == data["analysisId"]
    assert payload["error"] == "Analysis already in progress"

    async with session_maker() as db:
        count = (await db.execute(select(func.count(AnalysisResult.id)))).scalar_one()
    assert count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_start_analysis_validation_and_visibility(client, session_maker):
    user, contract = await _seed_member(session_maker)
    stranger, _ = await _seed_member(session_maker)

    bad_type = await client.post(
        "/analysis/start",
        json={"contractId": str(contract.id), "analysisType": "poetry"},
        headers=auth_headers(user),
    )
    assert bad_type.status_code == 400
    assert bad_type.json()["code"] == "validation_error"

    missing = await client.post(
        "/analysis/start",
        json={"contractId": str(uuid4()), "analysisType": "basic"},
        headers=auth_headers(user),
    )
    assert missing.status_code == 404

    foreign = await client.post(
        "/analysis/start",
        json={"contractId": str(contract.id), "analysisType": "basic"},
        headers=auth_headers(stranger),
    )
    assert foreign.status_code == 404


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_analysis_type_is_rejected(client, session_maker):
    user, contract = await _seed_member(session_maker)

    single = await client.post(
        "/analysis/start",
        json={"contractId": str(contract.id)},
        headers=auth_headers(user),
    )
    assert single.status_code == 400
    assert single.json()["code"] == "validation_error"
    assert any("analysisType" in issue["loc"] for issue in single.json()["issues"])

    batch = await client.post(
        "/analysis/batch/start",
        json={"contractIds": [str(contract.id)]},
        headers=auth_headers(user),
    )
    assert batch.status_code == 400
    assert batch.json()["code"] == "validation_error"

    async with session_maker() as db:
        count = (await db.execute(select(func.count(AnalysisResult.id)))).scalar_one()
    assert count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_analysis_status_hides_results_until_completed(client, session_maker):
    async with session_maker() as db:
        user = await make_user(db)
        contract = await make_contract(db, user)
        pending = await make_job(db, contract, analysis_type="basic")
        done = await make_job(db, contract, status="COMPLETED", results={"summary": "done"}, total_risks=4)
        await db.commit()

    pending_resp = await client.get(f"/analysis/{pending.id}/status", headers=auth_headers(user))
    assert pending_resp.status_code == 200
    assert pending_resp.json()["status"] == "PENDING"
    assert pending_resp.json()["results"] is None

    done_resp = await client.get(f"/analysis/{done.id}/status", headers=auth_headers(user))
    assert done_resp.json()["results"] == {"summary": "done"}

    results = await client.get(f"/analysis/{done.id}", headers=auth_headers(user))
    assert results.status_code == 200
    assert results.json()["metadata"]["totalRisks"] == 4

    not_ready = await client.get(f"/analysis/{pending.id}", headers=auth_headers(user))
    assert not_ready.status_code == 400


@pytest.mark.unit
@pytest.mark.asyncio
async def test_analysis_status_is_404_for_other_users(client, session_maker):
    async with session_maker() as db:
        owner = await make_user(db)
        other = await make_user(db)
        job = await make_job(db, await make_contract(db, owner))
        await db.commit()

    resp = await client.get(f"/analysis/{job.id}/status", headers=auth_headers(other))

    assert resp.status_code == 404


@pytest.mark.unit
@pytest.mark.asyncio
async def test_organization_members_share_analyses(client, session_maker):
    async with session_maker() as db:
        org = await make_organization(db)
        owner = await make_user(db, organization_id=org.id)
        teammate = await make_user(db, organization_id=org.id)
        job = await make_job(db, await make_contract(db, owner, organization_id=org.id))
        await db.commit()

    resp = await client.get(f"/analysis/{job.id}/status", headers=auth_headers(teammate))
    assert resp.status_code == 200

    queue = await client.get("/analysis/queue/status", headers=auth_headers(teammate))
    assert [j["id"] for j in queue.json()["organizationActiveJobs"]] == [str(job.id)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_analysis_status_with_stats(client, session_maker):
    async with session_maker() as db:
        user = await make_user(db)
        await make_job(db, await make_contract(db, user))
        await make_job(
            db, await make_contract(db, user),
            status="COMPLETED", completed_at=utc_now(), processing_time_ms=500, tokens_used=100,
        )
        await db.commit()

    resp = await client.get("/analysis/status", headers=auth_headers(user))
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["analyses"]) == 2
    assert data["stats"] == {"PENDING": 1, "COMPLETED": 1}
    assert data["today"]["completed"] == 1
    assert data["today"]["tokensUsed"] == 100

    filtered = await client.get("/analysis/status?status=completed", headers=auth_headers(user))
    assert [a["status"] for a in filtered.json()["analyses"]] == ["COMPLETED"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_and_retry_endpoints(client, session_maker):
    async with session_maker() as db:
        user = await make_user(db)
        pending = await make_job(db, await make_contract(db, user))
        failed = await make_job(db, await make_contract(db, user), status="FAILED", retry_count=3)
        await db.commit()

    cancel = await client.delete(f"/analysis/{pending.id}", headers=auth_headers(user))
    assert cancel.status_code == 200
    assert cancel.json()["analysis"]["status"] == "CANCELLED"

    cancel_again = await client.delete(f"/analysis/{pending.id}", headers=auth_headers(user))
    assert cancel_again.status_code == 409

    retry = await client.patch(f"/analysis/{failed.id}", json={"action": "retry"}, headers=auth_headers(user))
    assert retry.status_code == 200
    assert retry.json()["analysis"]["status"] == "PENDING"
    assert retry.json()["analysis"]["retryCount"] == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_queue_status_and_admin_controls(client, session_maker):
    async with session_maker() as db:
        member = await make_user(db)
        admin = await make_user(db, role="admin")
        await make_job(db, await make_contract(db, member))
        await db.commit()

    status = await client.get("/analysis/queue/status", headers=auth_headers(member))
    assert status.status_code == 200
    data = status.json()
    assert data["queue"]["pending"] == 1
    assert data["queue"]["isEnabled"] is True
    assert len(data["userJobs"]) == 1

    forbidden = await client.post("/analysis/queue/status", json={"action": "stop"}, headers=auth_headers(member))
    assert forbidden.status_code == 403

    stopped = await client.post("/analysis/queue/status", json={"action": "stop"}, headers=auth_headers(admin))
    assert stopped.status_code == 200
    assert stopped.json()["queue"]["isEnabled"] is False

    started = await client.post("/analysis/queue/status", json={"action": "start"}, headers=auth_headers(admin))
    assert started.json()["queue"]["isEnabled"] is True

    cleanup = await client.post("/analysis/queue/status", json={"action": "cleanup"}, headers=auth_headers(admin))
    assert cleanup.status_code == 200
    assert cleanup.json()["deletedCount"] == 0

    bad = await client.post("/analysis/queue/status", json={"action": "explode"}, headers=auth_headers(admin))
    assert bad.status_code == 400


@pytest.mark.unit
@pytest.mark.asyncio
async def test_batch_endpoints(client, session_maker):
    async with session_maker() as db:
        user = await make_user(db)
        stranger = await make_user(db)
        mine = [await make_contract(db, user) for _ in range(2)]
        theirs = await make_contract(db, stranger)
        await db.commit()

    denied = await client.post(
        "/analysis/batch/start",
        json={"contractIds": [str(mine[0].id), str(theirs.id)], "analysisType": "basic"},
        headers=auth_headers(user),
    )
    assert denied.status_code == 403

    ok = await client.post(
        "/analysis/batch/start",
        json={"contractIds": [str(c.id) for c in mine], "analysisType": "basic"},
        headers=auth_headers(user),
    )
    assert ok.status_code == 200
    assert len(ok.json()["batchJobs"]) == 2
    assert {j["status"] for j in ok.json()["batchJobs"]} == {"PENDING"}

    status = await client.get("/analysis/batch/status", headers=auth_headers(user))
    assert status.status_code == 200
    assert len(status.json()["batchJobs"]) == 2
    assert status.json()["stats"] == {"PENDING": 2}

    empty = await client.post(
        "/analysis/batch/start",
        json={"contractIds": [], "analysisType": "basic"},
        headers=auth_headers(user),
    )
    assert empty.status_code == 400


@pytest.mark.unit
@pytest.mark.asyncio
async def test_clear_stuck_endpoints(client, session_maker):
    old = utc_now() - timedelta(minutes=30)
    async with session_maker() as db:
        user = await make_user(db)
        admin = await make_user(db, role="admin")
        contract = await make_contract(db, user)
        stuck = await make_job(db, contract, status="PROCESSING", started_at=old)
        other_stuck = await make_job(db, await make_contract(db, user), status="PROCESSING", started_at=old)
        await db.commit()

    inspect = await client.get(f"/analysis/clear-stuck?contractId={contract.id}", headers=auth_headers(user))
    assert inspect.status_code == 200
    assert inspect.json()["processingCount"] == 1

    missing_contract = await client.post("/analysis/clear-stuck", json={}, headers=auth_headers(user))
    assert missing_contract.status_code == 400

    cleared = await client.post(
        "/analysis/clear-stuck",
        json={"contractId": str(contract.id)},
        headers=auth_headers(user),
    )
    assert cleared.status_code == 200
    assert cleared.json()["clearedCount"] == 1
    assert cleared.json()["analysisIds"] == [str(stuck.id)]

    global_sweep = await client.post("/analysis/clear-stuck", json={}, headers=auth_headers(admin))
    assert global_sweep.json()["analysisIds"] == [str(other_stuck.id)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_admin_job_queues(client, session_maker, session_factory):
    from app.workers.analysis_worker import AnalysisJobRunner
    from app.services.analysis_provider import MockAnalysisProvider

    async with session_maker() as db:
        member = await make_user(db)
        admin = await make_user(db, role="admin")
        await make_job(db, await make_contract(db, member))
        await db.commit()

    runner = AnalysisJobRunner(provider=MockAnalysisProvider(), session_factory=session_factory)
    assert await runner.run_once() is True

    forbidden = await client.get("/admin/job-queues", headers=auth_headers(member))
    assert forbidden.status_code == 403

    resp = await client.get("/admin/job-queues", headers=auth_headers(admin))
    assert resp.status_code == 200
    data = resp.json()
    assert data["queue"]["completed"] == 1
    assert data["completedLast24h"] == 1
    assert data["failedCount"] == 0
    assert data["recentLogs"][0]["status"] == "completed"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_reports_database(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["api_ok"] is True
    assert data["db_ok"] is True
    assert data["queue_enabled"] is True
