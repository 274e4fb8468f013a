"""Canonical sleep-debt domain models.

Design principles:
- SleepEpisode is the source of truth for raw facts
- DailySummary is a derived cache, always reconstructible from episodes + settings
- A day with no episodes has no DailySummary: absence of a row IS "no data"
- UserSettings is an immutable input per pipeline invocation
"""

from datetime import date, datetime
from enum import StrEnum
from uuid import UUID, uuid4

from pydantic import AwareDatetime, BaseModel, Field

DEFAULT_GOAL_MINUTES = 480
DEFAULT_DAY_BOUNDARY_HOUR = 4
# Headroom above the goal that a single day may count toward a surplus
ACTUAL_MINUTES_CAP_OVER_GOAL = 240


class SleepCategory(StrEnum):
    IN_BED = "in_bed"
    AWAKE = "awake"
    ASLEEP_UNSPECIFIED = "asleep_unspecified"
    ASLEEP_CORE = "asleep_core"
    ASLEEP_DEEP = "asleep_deep"
    ASLEEP_REM = "asleep_rem"

    @property
    def is_asleep(self) -> bool:
        return self.value.startswith("asleep")


class DataQuality(StrEnum):
    COMPLETE = "complete"
    PARTIAL = "partial"


class NotificationPrefs(BaseModel):
    """Stored preferences only; nothing in this service schedules notifications."""

    daily_summary_enabled: bool = True
    daily_preferred_hour: int | None = Field(8, ge=0, le=23)
    daily_preferred_minute: int | None = Field(0, ge=0, le=59)
    threshold_alerts_enabled: bool = False
    thresholds_minutes: list[int] = Field(default_factory=lambda: [120, 300, 480])


class UserSettings(BaseModel):
    """The single local profile's configuration row."""

    goal_minutes: int = Field(DEFAULT_GOAL_MINUTES, ge=1, le=1440)
    day_boundary_hour: int = Field(DEFAULT_DAY_BOUNDARY_HOUR, ge=0, le=23)
    comparison_enabled: bool = True
    notification_prefs: NotificationPrefs = Field(default_factory=NotificationPrefs)
    last_sync_cursor: str | None = None
    last_sync_at: datetime | None = None

    @property
    def actual_minutes_cap(self) -> int:
        return self.goal_minutes + ACTUAL_MINUTES_CAP_OVER_GOAL


class RawInterval(BaseModel):
    """One sleep-analysis sample as delivered by the interval source."""

    external_id: str = Field(..., min_length=1)
    start: datetime
    end: datetime
    source_id: str
    category: SleepCategory = SleepCategory.ASLEEP_UNSPECIFIED


class ChangeSet(BaseModel):
    """Result of one cursor-based fetch from the interval source."""

    added: list[RawInterval] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    new_cursor: str | None = None
    # True when the source answered without a cursor: `added` is the full history
    full_snapshot: bool = False


class SleepEpisode(BaseModel):
    """A stored asleep segment. One raw interval may yield several segments."""

    id: UUID = Field(default_factory=uuid4)
    external_id: str
    segment_index: int = Field(0, ge=0)
    start: AwareDatetime
    end: AwareDatetime
    source_id: str
    anchored_day_id: str

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()

    def same_interval(self, other: "SleepEpisode") -> bool:
        """True when both describe the same segment, regardless of day anchoring."""
        return (
            self.external_id == other.external_id
            and self.segment_index == other.segment_index
            and self.start == other.start
            and self.end == other.end
            and self.source_id == other.source_id
        )


class DailySummary(BaseModel):
    """Per sleep-day aggregate. The cumulative field is written only by the chain rebuilder."""

    day_id: str
    date: date
    has_data: bool = True
    actual_minutes: int = Field(..., ge=0)
    delta_minutes: int
    cumulative_debt_minutes: int = Field(0, ge=0)
    data_quality: DataQuality = DataQuality.COMPLETE
    source_count: int = Field(0, ge=0)


class ChartPoint(BaseModel):
    date: date
    value: int


class TodaySummary(BaseModel):
    day_id: str
    date: date
    has_data: bool
    actual_minutes: int | None
    goal_minutes: int
    delta_minutes: int | None
    cumulative_debt_minutes: int | None
    label: str


class HistoryEntry(BaseModel):
    day_id: str
    date: date
    actual_minutes: int
    delta_minutes: int
    cumulative_debt_minutes: int
    source_count: int
    slept_label: str
    delta_label: str
