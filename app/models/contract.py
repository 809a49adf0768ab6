"""
Contract model.

Uploaded contract documents. File bytes live in the external blob store and
text is filled in by the external extraction service; analysis only reads
the metadata and extracted text.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base_model import JSONType, TimestampedModel


class Contract(TimestampedModel):
    """A contract document owned by a user (optionally shared with an organization)."""

    __tablename__ = "contracts"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # pageCount, contractType, jurisdiction, contractValue, parties
    contract_metadata: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
