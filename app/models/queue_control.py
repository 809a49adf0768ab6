"""
Queue control model.

Persisted start/stop switch for a named queue. Every worker reads it before
polling, so pausing works across processes and hosts.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.utils.time import utc_now


class QueueControl(Base):
    __tablename__ = "queue_controls"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)

    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    updated_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )
