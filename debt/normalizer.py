"""Interval normalizer: raw asleep intervals → day-anchored segments.

A "sleep day" is a 24h bucket that rolls over at ``boundary_hour`` local time
instead of midnight. Day D covers (D boundary_hour:00, D+1 boundary_hour:00],
so an interval ending exactly at the boundary belongs to the day that is
closing. Day ids look like ``2024-03-14@anchor4``.

Everything in this module is pure and deterministic.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import structlog

from debt.domain.models import RawInterval, SleepEpisode
from debt.domain.validation import validate_interval
from shared.metrics import dropped_intervals_total

logger = structlog.get_logger()

_DAY_ID_SEPARATOR = "@anchor"


@dataclass(frozen=True)
class AnchoredSegment:
    """One piece of a raw interval that lies within a single sleep day."""

    day_id: str
    start: datetime
    end: datetime
    source_id: str
    external_id: str
    segment_index: int

    def to_episode(self) -> SleepEpisode:
        return SleepEpisode(
            external_id=self.external_id,
            segment_index=self.segment_index,
            start=self.start,
            end=self.end,
            source_id=self.source_id,
            anchored_day_id=self.day_id,
        )


# --- Day id codec ---


def format_day_id(day: date, boundary_hour: int) -> str:
    return f"{day.isoformat()}{_DAY_ID_SEPARATOR}{boundary_hour}"


def parse_day_id(day_id: str) -> tuple[date, int]:
    """Split a day id into (date, boundary_hour). Raises ValueError when malformed."""
    day_part, sep, hour_part = day_id.partition(_DAY_ID_SEPARATOR)
    if not sep or not hour_part.isdigit():
        raise ValueError(f"Malformed day id: {day_id!r}")
    hour = int(hour_part)
    if not 0 <= hour <= 23:
        raise ValueError(f"Malformed day id: {day_id!r}")
    return date.fromisoformat(day_part), hour


def day_id_date(day_id: str) -> date:
    return parse_day_id(day_id)[0]


# --- Boundary helpers ---


def _boundary_on(day: date, boundary_hour: int, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(hour=boundary_hour), tzinfo=tz)


def sleep_day_for(instant: datetime, boundary_hour: int, tz: ZoneInfo) -> date:
    """Calendar date of the sleep day an instant closes into.

    After that calendar day's boundary → that day; at or before it → the previous day.
    """
    local = instant.astimezone(tz)
    boundary = _boundary_on(local.date(), boundary_hour, tz)
    if local.astimezone(UTC) > boundary.astimezone(UTC):
        return local.date()
    return local.date() - timedelta(days=1)


def next_boundary(instant: datetime, boundary_hour: int, tz: ZoneInfo) -> datetime:
    """First local ``boundary_hour:00:00`` strictly after ``instant``."""
    local = instant.astimezone(tz)
    candidate = _boundary_on(local.date(), boundary_hour, tz)
    # Compare as instants: a boundary inside a DST gap must still move forward
    while candidate.astimezone(UTC) <= instant.astimezone(UTC):
        candidate = _boundary_on(candidate.date() + timedelta(days=1), boundary_hour, tz)
    return candidate


def day_id_for(instant: datetime, boundary_hour: int, tz: ZoneInfo) -> str:
    return format_day_id(sleep_day_for(instant, boundary_hour, tz), boundary_hour)


# --- Filtering ---


def filter_asleep(intervals: list[RawInterval]) -> list[RawInterval]:
    """Keep asleep_* samples and drop malformed ones with a warning."""
    accepted: list[RawInterval] = []
    for interval in intervals:
        if not interval.category.is_asleep:
            continue
        violations = validate_interval(interval)
        if violations:
            for v in violations:
                dropped_intervals_total.labels(reason=v.reason).inc()
            logger.warning(
                "interval_dropped",
                external_id=interval.external_id,
                source_id=interval.source_id,
                reasons=[v.reason for v in violations],
            )
            continue
        accepted.append(interval)
    return accepted


# --- Splitting ---


def split_interval(
    interval: RawInterval, boundary_hour: int, tz: ZoneInfo
) -> list[AnchoredSegment]:
    """Split one valid interval at every day boundary it crosses."""
    segments: list[AnchoredSegment] = []
    cursor = interval.start
    index = 0
    while cursor < interval.end:
        segment_end = min(interval.end, next_boundary(cursor, boundary_hour, tz))
        segments.append(
            AnchoredSegment(
                day_id=day_id_for(segment_end, boundary_hour, tz),
                start=cursor,
                end=segment_end,
                source_id=interval.source_id,
                external_id=interval.external_id,
                segment_index=index,
            )
        )
        cursor = segment_end
        index += 1
    return segments


def normalize_intervals(
    intervals: list[RawInterval], boundary_hour: int, tz: ZoneInfo
) -> list[AnchoredSegment]:
    """Filter, validate and split raw intervals into day-anchored segments.

    Output is ordered by segment start, then external id and segment index.
    """
    segments: list[AnchoredSegment] = []
    for interval in filter_asleep(intervals):
        segments.extend(split_interval(interval, boundary_hour, tz))
    segments.sort(key=lambda s: (s.start, s.external_id, s.segment_index))
    return segments
