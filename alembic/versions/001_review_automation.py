"""Initial schema - review automation configs, request statuses, event log.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Per-company settings
    op.create_table(
        "review_automation_configs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", sa.Integer, nullable=False, unique=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("settings", postgresql.JSONB, nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # One row per service event in the sequence
    op.create_table(
        "review_request_statuses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "review_request_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("review_automation_configs.id"), nullable=False,
        ),
        sa.Column("company_id", sa.Integer, nullable=False),
        sa.Column("check_in_id", sa.Integer),
        sa.Column("technician_id", sa.Integer, nullable=False),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_email", sa.String(255)),
        sa.Column("customer_phone", sa.String(20)),
        sa.Column("service_type", sa.String(100)),
        sa.Column("location", sa.String(200)),
        sa.Column("technician_name", sa.String(100)),
        sa.Column("service_completed_at", sa.DateTime(timezone=True)),
        sa.Column("review_token", sa.String(64), nullable=False, unique=True),
        sa.Column("initial_request_sent", sa.Boolean, server_default="false", nullable=False),
        sa.Column("initial_request_sent_at", sa.DateTime(timezone=True)),
        sa.Column("first_follow_up_sent", sa.Boolean, server_default="false", nullable=False),
        sa.Column("first_follow_up_sent_at", sa.DateTime(timezone=True)),
        sa.Column("second_follow_up_sent", sa.Boolean, server_default="false", nullable=False),
        sa.Column("second_follow_up_sent_at", sa.DateTime(timezone=True)),
        sa.Column("final_follow_up_sent", sa.Boolean, server_default="false", nullable=False),
        sa.Column("final_follow_up_sent_at", sa.DateTime(timezone=True)),
        sa.Column("link_clicked", sa.Boolean, server_default="false", nullable=False),
        sa.Column("link_clicked_at", sa.DateTime(timezone=True)),
        sa.Column("review_submitted", sa.Boolean, server_default="false", nullable=False),
        sa.Column("review_submitted_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("unsubscribed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("send_attempts", sa.Integer, server_default="0", nullable=False),
        sa.Column("last_error", sa.Text),
        sa.Column("version", sa.Integer, server_default="1", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_review_status_company_status", "review_request_statuses", ["company_id", "status"],
    )
    op.create_index("ix_review_status_check_in", "review_request_statuses", ["check_in_id"])

    # Audit trail
    op.create_table(
        "review_event_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_status_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("review_request_statuses.id"),
        ),
        sa.Column("company_id", sa.Integer),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), server_default="success"),
        sa.Column("stage", sa.String(30)),
        sa.Column("channel", sa.String(10)),
        sa.Column("message", sa.Text),
        sa.Column("error_message", sa.Text),
        sa.Column("data", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_review_events_status_id", "review_event_logs", ["request_status_id"])
    op.create_index("ix_review_events_company_id", "review_event_logs", ["company_id"])
    op.create_index("ix_review_events_action", "review_event_logs", ["action"])


def downgrade() -> None:
    op.drop_table("review_event_logs")
    op.drop_table("review_request_statuses")
    op.drop_table("review_automation_configs")
