"""Create signals, contact_points, signal_notifications and contact_point_notifications tables.

Revision ID: 001_signal_engine
Revises:
Create Date: 2026-10-17
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "001_signal_engine"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create signals table
    op.create_table(
        "signals",
        sa.Column("id", sa.VARCHAR(36), primary_key=True),
        sa.Column("name", sa.VARCHAR(255), nullable=False),
        sa.Column("status", sa.VARCHAR(20), nullable=False, server_default="DRAFT"),
        sa.Column("signal_type", sa.VARCHAR(20), nullable=False),
        sa.Column("notification_policy_type", sa.VARCHAR(20), nullable=False),
        sa.Column("selection_policy_type", sa.VARCHAR(30), nullable=False),
        sa.Column("query", JSONB, nullable=False),
        sa.Column("schedule", JSONB, nullable=False, server_default="{}"),
        sa.Column("contact_point_ids", JSONB, nullable=False, server_default="[]"),
        sa.Column("watermark", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_fired_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_evaluated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint(
            "status IN ('DRAFT', 'ACTIVE', 'STOPPED', 'ARCHIVED')",
            name="ck_signals_status",
        ),
        sa.CheckConstraint(
            "signal_type IN ('ARTICLES', 'ARTICLES_VOLUME')",
            name="ck_signals_signal_type",
        ),
    )
    op.create_index("ix_signals_status", "signals", ["status"])

    # Create contact_points table
    op.create_table(
        "contact_points",
        sa.Column("id", sa.VARCHAR(36), primary_key=True),
        sa.Column("name", sa.VARCHAR(255), nullable=False),
        sa.Column("channel", sa.VARCHAR(20), nullable=False),
        sa.Column("destination", sa.VARCHAR(1024), nullable=False),
        sa.Column("enabled", sa.BOOLEAN, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )

    # Create signal_notifications table
    op.create_table(
        "signal_notifications",
        sa.Column("id", sa.VARCHAR(36), primary_key=True),
        sa.Column(
            "signal_id",
            sa.VARCHAR(36),
            sa.ForeignKey("signals.id"),
            nullable=False,
        ),
        sa.Column("signal_name", sa.VARCHAR(255), nullable=False),
        sa.Column("signal_status", sa.VARCHAR(20), nullable=False),
        sa.Column("issued_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("article_ids", JSONB, nullable=False, server_default="[]"),
        sa.Column("digest", sa.TEXT, nullable=True),
        sa.Column("summary_unavailable", sa.BOOLEAN, nullable=False, server_default=sa.false()),
        sa.Column("current_processed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_processed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("lease_owner", sa.VARCHAR(100), nullable=True),
    )
    op.create_index("ix_signal_notifications_signal_id", "signal_notifications", ["signal_id"])
    op.create_index(
        "ix_signal_notifications_current_processed_at",
        "signal_notifications",
        ["current_processed_at"],
    )
    op.create_index(
        "idx_signal_notifications_issued",
        "signal_notifications",
        [sa.text("issued_at DESC")],
    )

    # Create contact_point_notifications table
    op.create_table(
        "contact_point_notifications",
        sa.Column("id", sa.VARCHAR(36), primary_key=True),
        sa.Column(
            "notification_id",
            sa.VARCHAR(36),
            sa.ForeignKey("signal_notifications.id"),
            nullable=False,
        ),
        sa.Column("contact_point_id", sa.VARCHAR(36), nullable=False),
        sa.Column("channel", sa.VARCHAR(20), nullable=False),
        sa.Column("destination", sa.VARCHAR(1024), nullable=False),
        sa.Column("status", sa.VARCHAR(20), nullable=False, server_default="PENDING"),
        sa.Column("retryable", sa.BOOLEAN, nullable=False, server_default=sa.true()),
        sa.Column("attempts", sa.INTEGER, nullable=False, server_default="0"),
        sa.Column("response_code", sa.INTEGER, nullable=True),
        sa.Column("error_message", sa.TEXT, nullable=True),
        sa.Column("delivered_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.UniqueConstraint(
            "notification_id",
            "contact_point_id",
            name="uq_cp_notifications_notification_cp",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'DELIVERED', 'FAILED')",
            name="ck_cp_notifications_status",
        ),
        sa.CheckConstraint(
            "attempts >= 0",
            name="ck_cp_notifications_attempts_non_negative",
        ),
    )
    op.create_index(
        "ix_contact_point_notifications_notification_id",
        "contact_point_notifications",
        ["notification_id"],
    )


def downgrade() -> None:
    # Drop child tables first
    op.drop_index(
        "ix_contact_point_notifications_notification_id",
        table_name="contact_point_notifications",
    )
    op.drop_table("contact_point_notifications")

    op.drop_index("idx_signal_notifications_issued", table_name="signal_notifications")
    op.drop_index(
        "ix_signal_notifications_current_processed_at", table_name="signal_notifications"
    )
    op.drop_index("ix_signal_notifications_signal_id", table_name="signal_notifications")
    op.drop_table("signal_notifications")

    op.drop_table("contact_points")

    op.drop_index("ix_signals_status", table_name="signals")
    op.drop_table("signals")
