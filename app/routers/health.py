"""Health check router."""

import logging
from pathlib import Path
from typing import Optional

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import get_db
from app.repositories.queue_control_repository import QueueControlRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def _load_alembic_head() -> Optional[str]:
    project_root = Path(__file__).resolve().parents[2]
    cfg_path = project_root / "alembic.ini"
    script_location = project_root / "alembic"
    if not cfg_path.exists() or not script_location.exists():
        return None

    config = Config(str(cfg_path))
    config.set_main_option("script_location", str(script_location))
    return ScriptDirectory.from_config(config).get_current_head()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """API, database, migration and queue-flag checks. Never requires auth."""

    db_ok = False
    alembic_current: Optional[str] = None
    queue_enabled: Optional[bool] = None

    try:
        await db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as exc:
        logger.warning("Health check database query failed: %s", exc)

    if db_ok:
        try:
            async with db.begin_nested():
                version_result = await db.execute(text("SELECT version_num FROM alembic_version"))
                alembic_current = version_result.scalar_one_or_none()
        except SQLAlchemyError:
            alembic_current = None
        try:
            queue_enabled = await QueueControlRepository(db).is_enabled(settings.ANALYSIS_QUEUE_NAME)
        except SQLAlchemyError:
            queue_enabled = None

    alembic_head = _load_alembic_head()
    alembic_head_ok = bool(alembic_current and alembic_head and alembic_current == alembic_head)

    return {
        "api_ok": True,
        "db_ok": db_ok,
        "alembic_head_ok": alembic_head_ok,
        "alembic_current": alembic_current,
        "alembic_head": alembic_head,
        "queue_enabled": queue_enabled,
    }
