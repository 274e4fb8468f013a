"""Read-side helpers over persisted DailySummary rows.

All functions are side-effect free. Rolling figures sum ``delta_minutes`` (not
the cumulative chain) so they reflect debt accrued strictly within the window.
"""

from datetime import date, timedelta

from debt.domain.models import (
    ChartPoint,
    DailySummary,
    HistoryEntry,
    TodaySummary,
    UserSettings,
)
from debt.normalizer import format_day_id


def window_start(as_of: date, window_days: int) -> date:
    return as_of - timedelta(days=window_days - 1)


def format_minutes(total_minutes: int) -> str:
    return f"{total_minutes // 60}h {total_minutes % 60}m"


def format_delta(delta_minutes: int) -> str:
    sign = "+" if delta_minutes >= 0 else "-"
    return f"{sign}{format_minutes(abs(delta_minutes))}"


def rolling_debt(summaries: list[DailySummary], window_days: int, as_of: date) -> int:
    """Sum of deltas over days with data in [as_of - window_days + 1, as_of], clamped >= 0."""
    start = window_start(as_of, window_days)
    total = sum(
        s.delta_minutes for s in summaries if s.has_data and start <= s.date <= as_of
    )
    return max(0, total)


def chart_series(summaries: list[DailySummary], window_days: int, as_of: date) -> list[ChartPoint]:
    """One point per day of the last ``window_days`` days: the rolling debt ending that day.

    Needs summaries back to ``as_of - 2 * window_days + 2`` to fill the first point.
    """
    deltas: dict[date, int] = {s.date: s.delta_minutes for s in summaries if s.has_data}
    points: list[ChartPoint] = []
    first = window_start(as_of, window_days)
    running = sum(
        deltas.get(window_start(first, window_days) + timedelta(days=i), 0)
        for i in range(window_days)
    )
    day = first
    while day <= as_of:
        points.append(ChartPoint(date=day, value=max(0, running)))
        # Slide the window one day forward
        running += deltas.get(day + timedelta(days=1), 0)
        running -= deltas.get(window_start(day, window_days), 0)
        day += timedelta(days=1)
    return points


def today_summary(
    summary: DailySummary | None, settings: UserSettings, today: date
) -> TodaySummary:
    """Today's actual vs goal, or an explicit no-data marker."""
    goal_label = f"{settings.goal_minutes // 60}h"
    if settings.goal_minutes % 60:
        goal_label += f" {settings.goal_minutes % 60}m"

    if summary is None or not summary.has_data:
        return TodaySummary(
            day_id=format_day_id(today, settings.day_boundary_hour),
            date=today,
            has_data=False,
            actual_minutes=None,
            goal_minutes=settings.goal_minutes,
            delta_minutes=None,
            cumulative_debt_minutes=None,
            label="Today: No Data",
        )

    return TodaySummary(
        day_id=summary.day_id,
        date=summary.date,
        has_data=True,
        actual_minutes=summary.actual_minutes,
        goal_minutes=settings.goal_minutes,
        delta_minutes=summary.delta_minutes,
        cumulative_debt_minutes=summary.cumulative_debt_minutes,
        label=f"Today: {format_minutes(summary.actual_minutes)} / {goal_label}",
    )


def daily_history(summaries: list[DailySummary]) -> list[HistoryEntry]:
    """Stored days newest first, with display labels."""
    return [
        HistoryEntry(
            day_id=s.day_id,
            date=s.date,
            actual_minutes=s.actual_minutes,
            delta_minutes=s.delta_minutes,
            cumulative_debt_minutes=s.cumulative_debt_minutes,
            source_count=s.source_count,
            slept_label=f"Slept: {format_minutes(s.actual_minutes)}",
            delta_label=format_delta(s.delta_minutes),
        )
        for s in sorted(summaries, key=lambda s: s.date, reverse=True)
    ]
