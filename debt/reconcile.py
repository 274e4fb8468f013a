"""Episode store mutator: reconcile a fetched ChangeSet against stored episodes.

Keyed by external_id. Idempotent under duplicate delivery:
- A record whose segments match the stored ones is a no-op (nothing dirty)
- A changed record replaces all of its stored segments
- Deletions remove every segment of an external id (splits yield several)

Deletions are applied before additions, so an edit delivered as
delete + add of the same external id ends up stored once.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

import structlog

from debt.domain.models import ChangeSet, RawInterval, SleepEpisode, UserSettings
from debt.normalizer import normalize_intervals
from debt.store import SleepStore
from shared.metrics import episode_writes_total

logger = structlog.get_logger()


@dataclass
class ReconcileResult:
    dirty_day_ids: set[str] = field(default_factory=set)
    inserted: int = 0
    deleted: int = 0
    unchanged: int = 0
    # Earliest start / latest end of every inserted or removed segment
    span_start: datetime | None = None
    span_end: datetime | None = None

    @property
    def has_changes(self) -> bool:
        return self.span_start is not None

    def touch(self, episode: SleepEpisode) -> None:
        self.dirty_day_ids.add(episode.anchored_day_id)
        if self.span_start is None or episode.start < self.span_start:
            self.span_start = episode.start
        if self.span_end is None or episode.end > self.span_end:
            self.span_end = episode.end


def _latest_by_external_id(intervals: list[RawInterval]) -> list[RawInterval]:
    """Collapse duplicate deliveries within one batch; the last one wins."""
    latest: dict[str, RawInterval] = {}
    for interval in intervals:
        latest[interval.external_id] = interval
    return list(latest.values())


def _segments_match(stored: list[SleepEpisode], incoming: list[SleepEpisode]) -> bool:
    if len(stored) != len(incoming):
        return False
    by_index = {e.segment_index: e for e in stored}
    return all(
        e.segment_index in by_index and by_index[e.segment_index].same_interval(e)
        for e in incoming
    )


async def apply_changes(
    store: SleepStore,
    changes: ChangeSet,
    settings: UserSettings,
    tz: ZoneInfo,
) -> ReconcileResult:
    """Apply deletions then additions; return the dirty day ids and touched time span.

    An added record that yields no segments (not asleep, or dropped as
    malformed) withdraws whatever was stored under its external id.
    Does not commit: the caller owns the transaction.
    """
    result = ReconcileResult()

    added = _latest_by_external_id(changes.added)
    incoming: dict[str, list[SleepEpisode]] = defaultdict(list)
    for segment in normalize_intervals(added, settings.day_boundary_hour, tz):
        incoming[segment.external_id].append(segment.to_episode())

    live_ids = set(incoming)
    withdrawn = {i.external_id for i in added} - live_ids
    deleted_ids = set(changes.deleted) | withdrawn
    if changes.full_snapshot:
        # A snapshot lists every live record; anything stored but absent is gone
        deleted_ids |= await store.get_all_external_ids() - live_ids

    if deleted_ids:
        doomed = await store.get_episodes_by_external_ids(deleted_ids)
        for episode in doomed:
            result.touch(episode)
        result.deleted += await store.delete_episodes_by_external_ids(deleted_ids)

    stored: dict[str, list[SleepEpisode]] = defaultdict(list)
    if incoming:
        for episode in await store.get_episodes_by_external_ids(incoming.keys()):
            stored[episode.external_id].append(episode)

    to_insert: list[SleepEpisode] = []
    replaced_ids: list[str] = []
    for external_id, new_episodes in incoming.items():
        old_episodes = stored.get(external_id, [])
        if old_episodes and _segments_match(old_episodes, new_episodes):
            result.unchanged += 1
            continue
        if old_episodes:
            replaced_ids.append(external_id)
            for episode in old_episodes:
                result.touch(episode)
        for episode in new_episodes:
            result.touch(episode)
        to_insert.extend(new_episodes)

    if replaced_ids:
        result.deleted += await store.delete_episodes_by_external_ids(replaced_ids)
    if to_insert:
        await store.upsert_episodes(to_insert)
        result.inserted = len(to_insert)

    episode_writes_total.labels(operation="inserted").inc(result.inserted)
    episode_writes_total.labels(operation="deleted").inc(result.deleted)
    logger.info(
        "changes_reconciled",
        added_records=len(added),
        withdrawn_records=len(withdrawn),
        deleted_records=len(deleted_ids),
        inserted=result.inserted,
        deleted=result.deleted,
        unchanged=result.unchanged,
        dirty_days=len(result.dirty_day_ids),
    )
    return result
