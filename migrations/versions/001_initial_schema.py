"""Initial schema: user_settings, sleep_episodes, daily_summaries

Revision ID: 001
Revises: None
Create Date: 2026-10-12
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # Ensure pgcrypto is available for gen_random_uuid()
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # --- user_settings (singleton profile row) ---
    op.create_table(
        "user_settings",
        sa.Column("id", sa.String(32), primary_key=True, server_default="singleton"),
        sa.Column("goal_minutes", sa.Integer, nullable=False, server_default="480"),
        sa.Column("day_boundary_hour", sa.Integer, nullable=False, server_default="4"),
        sa.Column("comparison_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "notification_prefs",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("last_sync_cursor", sa.Text, nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("goal_minutes > 0 AND goal_minutes <= 1440", name="chk_goal_minutes"),
        sa.CheckConstraint(
            "day_boundary_hour >= 0 AND day_boundary_hour <= 23", name="chk_day_boundary_hour"
        ),
    )

    # --- sleep_episodes (source of truth) ---
    op.create_table(
        "sleep_episodes",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("external_id", sa.Text, nullable=False),
        sa.Column("segment_index", sa.Integer, nullable=False, server_default="0"),
        sa.Column("start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_id", sa.String(255), nullable=False),
        sa.Column("anchored_day_id", sa.String(32), nullable=False),
        sa.Column("anchored_date", sa.Date, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("external_id", "segment_index", name="uq_sleep_episodes_segment"),
        sa.CheckConstraint('"end" > start', name="chk_sleep_episodes_end_after_start"),
    )
    op.create_index("idx_sleep_episodes_day_id", "sleep_episodes", ["anchored_day_id"])
    op.create_index("idx_sleep_episodes_anchored_date", "sleep_episodes", ["anchored_date"])
    op.create_index("idx_sleep_episodes_start", "sleep_episodes", ["start"])

    # --- daily_summaries (derived cache) ---
    op.create_table(
        "daily_summaries",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("day_id", sa.String(32), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("has_data", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("actual_minutes", sa.Integer, nullable=False),
        sa.Column("delta_minutes", sa.Integer, nullable=False),
        sa.Column("cumulative_debt_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("data_quality", sa.String(16), nullable=False, server_default="complete"),
        sa.Column("source_count", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("day_id", name="uq_daily_summaries_day_id"),
        sa.CheckConstraint("actual_minutes >= 0", name="chk_actual_minutes"),
        sa.CheckConstraint("cumulative_debt_minutes >= 0", name="chk_cumulative_debt_minutes"),
        sa.CheckConstraint("data_quality IN ('complete', 'partial')", name="chk_data_quality"),
    )
    op.create_index("idx_daily_summaries_date", "daily_summaries", [sa.text("date DESC")])

    # updated_at trigger
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    for table in ("user_settings", "daily_summaries"):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW
                EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    for table in ("daily_summaries", "user_settings"):
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table}")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")
    op.drop_table("daily_summaries")
    op.drop_table("sleep_episodes")
    op.drop_table("user_settings")
