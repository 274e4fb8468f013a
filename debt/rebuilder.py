"""Debt chain rebuilder: recompute cumulative debt over the affected date window.

cumulative(day) = max(0, cumulative(previous day with data) + delta(day))

Gap days (no episodes) have no summary and leave the running total
unchanged. The seed is the nearest stored summary strictly before the window,
found by searching backward, so arbitrarily long gap runs stay correct.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta

import structlog

from debt.aggregator import summarize_day
from debt.domain.models import DailySummary, SleepEpisode, UserSettings
from debt.normalizer import day_id_date, format_day_id
from debt.store import SleepStore
from shared.metrics import rebuild_duration_seconds

logger = structlog.get_logger()

DEFAULT_LOOKBACK_DAYS = 32


@dataclass
class ChainRebuild:
    """Summaries to upsert and day ids to delete, to be persisted together."""

    window_start: date
    window_end: date
    seed_debt: int = 0
    upserts: list[DailySummary] = field(default_factory=list)
    deletions: list[str] = field(default_factory=list)

    @property
    def final_debt(self) -> int:
        return self.upserts[-1].cumulative_debt_minutes if self.upserts else self.seed_debt


def _date_range(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def compute_chain(
    window_start: date,
    window_end: date,
    episodes_by_day: dict[str, list[SleepEpisode]],
    existing: dict[str, DailySummary],
    seed_debt: int,
    settings: UserSettings,
) -> ChainRebuild:
    """Walk the window in date order, aggregating each day and threading the running debt.

    ``existing`` holds the stored summaries dated within the window; any of
    them not produced by the walk (day lost its data, or its anchor hour is
    stale) is scheduled for deletion.
    """
    plan = ChainRebuild(window_start=window_start, window_end=window_end, seed_debt=seed_debt)
    previous_debt = seed_debt
    produced: set[str] = set()

    for day in _date_range(window_start, window_end):
        day_id = format_day_id(day, settings.day_boundary_hour)
        summary = summarize_day(
            day_id, episodes_by_day.get(day_id, []), settings, existing.get(day_id)
        )
        if summary is None:
            continue
        summary.cumulative_debt_minutes = max(0, previous_debt + summary.delta_minutes)
        previous_debt = summary.cumulative_debt_minutes
        plan.upserts.append(summary)
        produced.add(day_id)

    plan.deletions = sorted(day_id for day_id in existing if day_id not in produced)
    return plan


async def rebuild_debt_chain(
    store: SleepStore,
    dirty_day_ids: set[str],
    settings: UserSettings,
    today: date,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> ChainRebuild | None:
    """Recompute every summary from the earliest dirty day (minus lookback) through today.

    Stages all writes on the store at the end of the walk; the caller commits.
    """
    if not dirty_day_ids:
        return None

    started = time.monotonic()
    dirty_dates = sorted(day_id_date(day_id) for day_id in dirty_day_ids)
    window_start = dirty_dates[0] - timedelta(days=lookback_days)
    window_end = max(today, dirty_dates[-1])

    seed = await store.get_last_summary_before(window_start)
    seed_debt = seed.cumulative_debt_minutes if seed else 0

    episodes_by_day: dict[str, list[SleepEpisode]] = defaultdict(list)
    for episode in await store.get_episodes_in_date_range(window_start, window_end):
        episodes_by_day[episode.anchored_day_id].append(episode)
    existing = {s.day_id: s for s in await store.get_summaries(window_start, window_end)}

    plan = compute_chain(window_start, window_end, episodes_by_day, existing, seed_debt, settings)

    if plan.deletions:
        await store.delete_summaries(plan.deletions)
    if plan.upserts:
        await store.upsert_summaries(plan.upserts)

    rebuild_duration_seconds.observe(time.monotonic() - started)
    logger.info(
        "debt_chain_rebuilt",
        window_start=window_start.isoformat(),
        window_end=window_end.isoformat(),
        seed_day_id=seed.day_id if seed else None,
        dirty_days=len(dirty_day_ids),
        upserted=len(plan.upserts),
        deleted=len(plan.deletions),
        final_debt_minutes=plan.final_debt,
    )
    return plan
