"""
Queue control repository - persisted start/stop flag per queue.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.queue_control import QueueControl
from app.utils.time import utc_now


class QueueControlRepository:
    """Repository for QueueControl database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, name: str) -> Optional[QueueControl]:
        result = await self.db.execute(
            select(QueueControl).where(QueueControl.name == name)
        )
        return result.scalar_one_or_none()

    async def is_enabled(self, name: str) -> bool:
        """A queue without a control row is enabled."""
        control = await self.get(name)
        return True if control is None else bool(control.is_enabled)

    async def set_enabled(self, name: str, enabled: bool, user_id: Optional[UUID] = None) -> QueueControl:
        control = await self.get(name)
        if control is None:
            control = QueueControl(name=name)
            self.db.add(control)
        control.is_enabled = enabled
        control.updated_by_user_id = user_id
        control.updated_at = utc_now()
        await self.db.flush()
        return control
