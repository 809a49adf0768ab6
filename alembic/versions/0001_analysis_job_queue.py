"""Analysis job queue schema

Revision ID: 0001_analysis_job_queue
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_analysis_job_queue"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_organizations"),
    )
    op.create_index("ix_organizations_created_at", "organizations", ["created_at"])

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=50), nullable=False, server_default=sa.text("'member'")),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.ForeignKeyConstraint(
            ["organization_id"], ["organizations.id"],
            name="fk_users_organization_id_organizations", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_users_email_unique", "users", ["email"], unique=True)
    op.create_index("ix_users_organization_id", "users", ["organization_id"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "contracts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("contract_metadata", postgresql.JSONB(), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_contracts"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_contracts_user_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["organization_id"], ["organizations.id"],
            name="fk_contracts_organization_id_organizations", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_contracts_user_id", "contracts", ["user_id"])
    op.create_index("ix_contracts_organization_id", "contracts", ["organization_id"])
    op.create_index("ix_contracts_created_at", "contracts", ["created_at"])

    op.create_table(
        "analysis_results",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("analysis_type", sa.String(length=50), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default=sa.text("'normal'")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(length=200), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("results", postgresql.JSONB(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("total_clauses", sa.Integer(), nullable=True),
        sa.Column("total_risks", sa.Integer(), nullable=True),
        sa.Column("total_recommendations", sa.Integer(), nullable=True),
        sa.Column("high_risk_count", sa.Integer(), nullable=True),
        sa.Column("critical_risk_count", sa.Integer(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("tokens_used", sa.Integer(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(12, 6), nullable=True),
        sa.Column("custom_parameters", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_analysis_results"),
        sa.ForeignKeyConstraint(
            ["contract_id"], ["contracts.id"],
            name="fk_analysis_results_contract_id_contracts", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_analysis_results_user_id_users", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["organization_id"], ["organizations.id"],
            name="fk_analysis_results_organization_id_organizations", ondelete="SET NULL",
        ),
        sa.CheckConstraint(
            "retry_count >= 0 AND retry_count <= max_retries",
            name="ck_analysis_results_retry_bounds",
        ),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_analysis_results_progress_range"),
        sa.CheckConstraint(
            "status <> 'COMPLETED' OR results IS NOT NULL",
            name="ck_analysis_results_completed_has_results",
        ),
        sa.CheckConstraint(
            "status <> 'FAILED' OR error_message IS NOT NULL",
            name="ck_analysis_results_failed_has_error",
        ),
    )
    op.create_index("ix_analysis_results_contract_id", "analysis_results", ["contract_id"])
    op.create_index("ix_analysis_results_user_id", "analysis_results", ["user_id"])
    op.create_index("ix_analysis_results_organization_id", "analysis_results", ["organization_id"])
    op.create_index("ix_analysis_results_status", "analysis_results", ["status"])
    op.create_index("ix_analysis_results_created_at", "analysis_results", ["created_at"])
    op.create_index("ix_analysis_results_status_lease", "analysis_results", ["status", "lease_expires_at"])
    op.create_index("ix_analysis_results_user_created", "analysis_results", ["user_id", "created_at"])
    op.create_index("ix_analysis_results_org_created", "analysis_results", ["organization_id", "created_at"])
    op.create_index(
        "uq_analysis_results_active",
        "analysis_results",
        ["contract_id", "analysis_type"],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING','PROCESSING')"),
    )

    op.create_table(
        "job_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("queue_name", sa.String(length=100), nullable=False),
        sa.Column("job_id", sa.String(length=100), nullable=False),
        sa.Column("job_type", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_job_logs"),
    )
    op.create_index("ix_job_logs_job_id", "job_logs", ["job_id"])
    op.create_index("ix_job_logs_created_at", "job_logs", ["created_at"])
    op.create_index("ix_job_logs_status_created", "job_logs", ["status", "created_at"])

    op.create_table(
        "user_activities",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("activity_type", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_user_activities"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_user_activities_user_id_users", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_user_activities_user_id", "user_activities", ["user_id"])
    op.create_index("ix_user_activities_created_at", "user_activities", ["created_at"])

    op.create_table(
        "queue_controls",
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("updated_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("name", name="pk_queue_controls"),
        sa.ForeignKeyConstraint(
            ["updated_by_user_id"], ["users.id"],
            name="fk_queue_controls_updated_by_user_id_users", ondelete="SET NULL",
        ),
    )


def downgrade() -> None:
    op.drop_table("queue_controls")
    op.drop_index("ix_user_activities_created_at", table_name="user_activities")
    op.drop_index("ix_user_activities_user_id", table_name="user_activities")
    op.drop_table("user_activities")
    op.drop_index("ix_job_logs_status_created", table_name="job_logs")
    op.drop_index("ix_job_logs_created_at", table_name="job_logs")
    op.drop_index("ix_job_logs_job_id", table_name="job_logs")
    op.drop_table("job_logs")
    op.drop_index("uq_analysis_results_active", table_name="analysis_results")
    op.drop_index("ix_analysis_results_org_created", table_name="analysis_results")
    op.drop_index("ix_analysis_results_user_created", table_name="analysis_results")
    op.drop_index("ix_analysis_results_status_lease", table_name="analysis_results")
    op.drop_index("ix_analysis_results_created_at", table_name="analysis_results")
    op.drop_index("ix_analysis_results_status", table_name="analysis_results")
    op.drop_index("ix_analysis_results_organization_id", table_name="analysis_results")
    op.drop_index("ix_analysis_results_user_id", table_name="analysis_results")
    op.drop_index("ix_analysis_results_contract_id", table_name="analysis_results")
    op.drop_table("analysis_results")
    op.drop_index("ix_contracts_created_at", table_name="contracts")
    op.drop_index("ix_contracts_organization_id", table_name="contracts")
    op.drop_index("ix_contracts_user_id", table_name="contracts")
    op.drop_table("contracts")
    op.drop_index("ix_users_created_at", table_name="users")
    op.drop_index("ix_users_organization_id", table_name="users")
    op.drop_index("ix_users_email_unique", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_organizations_created_at", table_name="organizations")
    op.drop_table("organizations")
