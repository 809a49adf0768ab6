"""
Pytest configuration and shared fixtures.

Unit tests run against a throwaway SQLite database built from the ORM
metadata. Tests marked `db` expect a real PostgreSQL DATABASE_URL.
"""

import os

# Settings are read at import time; give the app a database URL before importing it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-1234")

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from uuid import UUID

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.security import session_manager
from app.db.base import Base
from app.db.session import get_db
from app.models import AnalysisResult, Contract, Organization, User
from app.utils.time import utc_now


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests, no external deps")
    config.addinivalue_line("markers", "db: requires database")


def pytest_collection_modifyitems(config, items):
    run_db = os.environ.get("RUN_DB_TESTS") == "1"

    skip_db = pytest.mark.skip(reason="db tests skipped by default; set RUN_DB_TESTS=1 to enable")

    for item in items:
        if "db" in item.keywords and not run_db:
            item.add_marker(skip_db)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def session_factory(session_maker):
    """Worker-style session context: commit on success, rollback on error."""

    @asynccontextmanager
    async def factory():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return factory


@pytest_asyncio.fixture
async def client(session_maker):
    from app.main import app

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


async def make_organization(db: AsyncSession, name: str = "Acme Legal") -> Organization:
    org = Organization(name=name)
    db.add(org)
    await db.flush()
    return org


async def make_user(
    db: AsyncSession,
    email: Optional[str] = None,
    role: str = "member",
    organization_id: Optional[UUID] = None,
    is_active: bool = True,
) -> User:
    user = User(
        email=email or f"user-{utc_now().timestamp()}-{os.urandom(3).hex()}@example.com",
        name="Test User",
        role=role,
        organization_id=organization_id,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def make_contract(
    db: AsyncSession,
    user: User,
    file_name: str = "msa.pdf",
    extracted_text: Optional[str] = "This Master Services Agreement is entered into by Acme and Globex.",
    organization_id: Optional[UUID] = None,
) -> Contract:
    contract = Contract(
        user_id=user.id,
        organization_id=organization_id,
        file_name=file_name,
        file_size=1024,
        contract_metadata={"contractType": "MSA", "parties": ["Acme", "Globex"]},
        extracted_text=extracted_text,
    )
    db.add(contract)
    await db.flush()
    return contract


async def make_job(
    db: AsyncSession,
    contract: Contract,
    status: str = "PENDING",
    analysis_type: str = "comprehensive",
    created_at: Optional[datetime] = None,
    **fields,
) -> AnalysisResult:
    values = {
        "contract_id": contract.id,
        "user_id": contract.user_id,
        "organization_id": contract.organization_id,
        "analysis_type": analysis_type,
        "status": status,
        "priority": "normal",
        "progress": 0,
        "retry_count": 0,
        "max_retries": 3,
    }
    if status == "FAILED":
        values["error_message"] = "boom"
    if status == "COMPLETED":
        values["results"] = {"summary": "ok"}
        values["progress"] = 100
    if created_at is not None:
        values["created_at"] = created_at
    values.update(fields)
    job = AnalysisResult(**values)
    db.add(job)
    await db.flush()
    return job


def auth_headers(user: User) -> dict:
    token = session_manager.create_session_token(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token}"}
