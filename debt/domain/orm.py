"""SQLAlchemy ORM models for the three sleep-debt tables.

Tables:
- user_settings: singleton configuration row
- sleep_episodes: stored asleep segments (source of truth)
- daily_summaries: derived per-day cache, one row per day_id
"""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

SETTINGS_ROW_ID = "singleton"


class Base(DeclarativeBase):
    pass


class UserSettingsModel(Base):
    __tablename__ = "user_settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=SETTINGS_ROW_ID)
    goal_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=480)
    day_boundary_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    comparison_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notification_prefs: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    last_sync_cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint("goal_minutes > 0 AND goal_minutes <= 1440", name="chk_goal_minutes"),
        CheckConstraint(
            "day_boundary_hour >= 0 AND day_boundary_hour <= 23", name="chk_day_boundary_hour"
        ),
    )


class SleepEpisodeModel(Base):
    __tablename__ = "sleep_episodes"

    # Identity
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    external_id: Mapped[str] = mapped_column(Text, nullable=False)
    segment_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Interval
    start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Day anchoring (day id plus its date part for range queries)
    anchored_day_id: Mapped[str] = mapped_column(String(32), nullable=False)
    anchored_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )

    __table_args__ = (
        UniqueConstraint("external_id", "segment_index", name="uq_sleep_episodes_segment"),
        CheckConstraint('"end" > start', name="chk_sleep_episodes_end_after_start"),
        Index("idx_sleep_episodes_day_id", "anchored_day_id"),
        Index("idx_sleep_episodes_anchored_date", "anchored_date"),
        Index("idx_sleep_episodes_start", "start"),
    )


class DailySummaryModel(Base):
    __tablename__ = "daily_summaries"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    day_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    # String annotation: the attribute name shadows datetime.date inside the class body
    date: Mapped["date"] = mapped_column(Date, nullable=False)
    has_data: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    actual_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    delta_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    cumulative_debt_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data_quality: Mapped[str] = mapped_column(String(16), nullable=False, default="complete")
    source_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint("actual_minutes >= 0", name="chk_actual_minutes"),
        CheckConstraint("cumulative_debt_minutes >= 0", name="chk_cumulative_debt_minutes"),
        CheckConstraint(
            "data_quality IN ('complete', 'partial')", name="chk_data_quality"
        ),
        Index("idx_daily_summaries_date", date.desc()),
    )
