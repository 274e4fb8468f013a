"""Day aggregator: one sleep day's episodes to a DailySummary.

Pure and single-day: the chain rebuilder feeds it each day of its window and
stages the resulting upserts or deletions. The cumulative debt field is
carried over from the existing row; only the rebuilder overwrites it.
"""

from debt.domain.models import DailySummary, DataQuality, SleepEpisode, UserSettings
from debt.normalizer import day_id_date


def summarize_day(
    day_id: str,
    episodes: list[SleepEpisode],
    settings: UserSettings,
    existing: DailySummary | None = None,
) -> DailySummary | None:
    """Compute a day's summary, or None when the day has no episodes."""
    if not episodes:
        return None

    total_seconds = sum(e.duration_seconds for e in episodes)
    actual_minutes = min(int(total_seconds // 60), settings.actual_minutes_cap)

    return DailySummary(
        day_id=day_id,
        date=day_id_date(day_id),
        has_data=True,
        actual_minutes=actual_minutes,
        delta_minutes=settings.goal_minutes - actual_minutes,
        cumulative_debt_minutes=existing.cumulative_debt_minutes if existing else 0,
        data_quality=DataQuality.COMPLETE,
        source_count=len({e.source_id for e in episodes}),
    )

