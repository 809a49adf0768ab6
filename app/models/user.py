"""
User model for authorization.

Users sign in through the external identity provider; this table only holds
what the queue needs: identity, organization membership and role.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base_model import TimestampedModel


class User(TimestampedModel):
    """
    User table - represents authenticated users in the system.
    
    The role decides access to queue-control and admin endpoints.
    """
    
    __tablename__ = "users"
    
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    
    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="member",
    )
    
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    
    __table_args__ = (
        Index("ix_users_email_unique", "email", unique=True),
    )
