"""
Organization model.

Organizations group users; analyses created by a member are visible to the
whole organization.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base_model import TimestampedModel


class Organization(TimestampedModel):
    """An organization (team account) that users can belong to."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
