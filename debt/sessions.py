"""Session grouper: merge episodes into sleep sessions and re-anchor their day.

A session is a run of episodes where each one starts less than
``gap_seconds`` after the previous one ended (the threshold is exclusive).
The session end is the latest end among its episodes (overlapping sources
may report a shorter final sample). The whole session belongs to the sleep
day the session ends in, which moves short early-morning continuations onto
the day the night concludes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import structlog

from debt.domain.models import SleepEpisode
from debt.normalizer import day_id_for
from debt.store import SleepStore
from shared.metrics import episode_writes_total

logger = structlog.get_logger()

DEFAULT_GAP_SECONDS = 3600


@dataclass
class GroupingResult:
    dirty_day_ids: set[str] = field(default_factory=set)
    reanchored: list[SleepEpisode] = field(default_factory=list)
    session_count: int = 0


def group_into_sessions(
    episodes: list[SleepEpisode], gap_seconds: int = DEFAULT_GAP_SECONDS
) -> list[list[SleepEpisode]]:
    """Greedy scan over episodes sorted by start (input order is irrelevant)."""
    if not episodes:
        return []

    ordered = sorted(episodes, key=lambda e: (e.start, e.external_id, e.segment_index))
    gap = timedelta(seconds=gap_seconds)

    sessions: list[list[SleepEpisode]] = []
    current = [ordered[0]]
    current_end = ordered[0].end
    for episode in ordered[1:]:
        if episode.start - current_end < gap:
            current.append(episode)
            current_end = max(current_end, episode.end)
        else:
            sessions.append(current)
            current = [episode]
            current_end = episode.end
    sessions.append(current)
    return sessions


def reanchor_sessions(
    episodes: list[SleepEpisode],
    boundary_hour: int,
    tz: ZoneInfo,
    gap_seconds: int = DEFAULT_GAP_SECONDS,
) -> GroupingResult:
    """Assign every episode the day id of its session end instant.

    Mutates episodes in place; both the old and the new day id of every
    changed episode are reported dirty.
    """
    result = GroupingResult()
    for session in group_into_sessions(episodes, gap_seconds):
        result.session_count += 1
        session_end = max(e.end for e in session)
        session_day_id = day_id_for(session_end, boundary_hour, tz)
        for episode in session:
            if episode.anchored_day_id == session_day_id:
                continue
            if episode.anchored_day_id:
                result.dirty_day_ids.add(episode.anchored_day_id)
            result.dirty_day_ids.add(session_day_id)
            episode.anchored_day_id = session_day_id
            result.reanchored.append(episode)
    return result


async def load_session_span(
    store: SleepStore, span_start: datetime, span_end: datetime, gap_seconds: int
) -> list[SleepEpisode]:
    """Fetch the episodes around a span, widening it until no session is cut at an edge."""
    gap = timedelta(seconds=gap_seconds)
    lo, hi = span_start - gap, span_end + gap
    while True:
        episodes = await store.get_episodes_overlapping(lo, hi)
        if not episodes:
            return []
        first_start = min(e.start for e in episodes)
        last_end = max(e.end for e in episodes)
        if first_start - gap >= lo and last_end + gap <= hi:
            return episodes
        lo = min(lo, first_start - gap)
        hi = max(hi, last_end + gap)


async def regroup_span(
    store: SleepStore,
    span_start: datetime,
    span_end: datetime,
    boundary_hour: int,
    tz: ZoneInfo,
    gap_seconds: int = DEFAULT_GAP_SECONDS,
) -> GroupingResult:
    """Re-anchor every session touching [span_start, span_end] and persist the changes."""
    episodes = await load_session_span(store, span_start, span_end, gap_seconds)
    result = reanchor_sessions(episodes, boundary_hour, tz, gap_seconds)
    if result.reanchored:
        await store.reanchor_episodes(result.reanchored)
        episode_writes_total.labels(operation="reanchored").inc(len(result.reanchored))
    logger.info(
        "sessions_regrouped",
        episodes=len(episodes),
        sessions=result.session_count,
        reanchored=len(result.reanchored),
    )
    return result


async def regroup_all(
    store: SleepStore,
    boundary_hour: int,
    tz: ZoneInfo,
    gap_seconds: int = DEFAULT_GAP_SECONDS,
) -> GroupingResult:
    """Re-anchor the entire episode history (used when the day boundary changes)."""
    bounds = await store.get_episode_time_bounds()
    if bounds is None:
        return GroupingResult()
    return await regroup_span(store, bounds[0], bounds[1], boundary_hour, tz, gap_seconds)
