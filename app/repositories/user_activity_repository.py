"""
User activity repository.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user_activity import UserActivity


class UserActivityRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        user_id: UUID,
        activity_type: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UserActivity:
        activity = UserActivity(
            user_id=user_id,
            activity_type=activity_type,
            description=description,
            activity_metadata=metadata,
        )
        self.db.add(activity)
        await self.db.flush()
        return activity
