"""
Analysis job model.

One row per requested contract analysis. The row is both the queue entry
(status, priority, retries, worker lease) and the place the results land.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base_model import JSONType, TimestampedModel


class AnalysisStatus(str, Enum):
    """Job lifecycle status."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class AnalysisType(str, Enum):
    COMPREHENSIVE = "comprehensive"
    RISK_ASSESSMENT = "risk-assessment"
    CLAUSE_EXTRACTION = "clause-extraction"
    BASIC = "basic"


class JobPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


ACTIVE_STATUSES = (AnalysisStatus.PENDING.value, AnalysisStatus.PROCESSING.value)
TERMINAL_STATUSES = (
    AnalysisStatus.COMPLETED.value,
    AnalysisStatus.FAILED.value,
    AnalysisStatus.CANCELLED.value,
)
ANALYSIS_TYPES = tuple(t.value for t in AnalysisType)
PRIORITIES = tuple(p.value for p in JobPriority)

_ACTIVE_WHERE = "status IN ('PENDING','PROCESSING')"


class AnalysisResult(TimestampedModel):
    """
    Durable queue entry and result record for one contract analysis.
    """

    __tablename__ = "analysis_results"

    contract_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

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

    analysis_type: Mapped[str] = mapped_column(String(50), nullable=False)

    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobPriority.NORMAL.value,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AnalysisStatus.PENDING.value,
        index=True,
    )  # PENDING|PROCESSING|COMPLETED|FAILED|CANCELLED

    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Worker lease; a PENDING job is invisible to workers until it expires
    lease_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    locked_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    results: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    total_clauses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_risks: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_recommendations: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    high_risk_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    critical_risk_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tokens_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 6), nullable=True)

    # Free-form metadata; batch jobs carry batchJob/batchId/batchStartedAt
    custom_parameters: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        Index("ix_analysis_results_status_lease", "status", "lease_expires_at"),
        Index("ix_analysis_results_user_created", "user_id", "created_at"),
        Index("ix_analysis_results_org_created", "organization_id", "created_at"),
        Index(
            "uq_analysis_results_active",
            "contract_id",
            "analysis_type",
            unique=True,
            postgresql_where=text(_ACTIVE_WHERE),
            sqlite_where=text(_ACTIVE_WHERE),
        ),
        CheckConstraint("retry_count >= 0 AND retry_count <= max_retries", name="retry_bounds"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="progress_range"),
        CheckConstraint("status <> 'COMPLETED' OR results IS NOT NULL", name="completed_has_results"),
        CheckConstraint("status <> 'FAILED' OR error_message IS NOT NULL", name="failed_has_error"),
    )
