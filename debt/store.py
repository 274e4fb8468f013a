"""Store protocol for sleep-debt persistence.

The pipeline depends only on this protocol, never on a concrete storage engine.
Writes are staged until commit(); a scope that exits without commit() leaves
the store unchanged.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Protocol, runtime_checkable

from debt.domain.models import DailySummary, SleepEpisode, UserSettings


@runtime_checkable
class SleepStore(Protocol):
    """Unique-key upsert, range query by date and delete-by-predicate over three tables."""

    # Settings
    async def get_settings(self) -> UserSettings: ...

    async def save_settings(self, settings: UserSettings) -> None: ...

    # Episodes
    async def get_episodes_by_external_ids(self, external_ids: Iterable[str]) -> list[SleepEpisode]: ...

    async def get_all_external_ids(self) -> set[str]: ...

    async def upsert_episodes(self, episodes: list[SleepEpisode]) -> None: ...

    async def delete_episodes_by_external_ids(self, external_ids: Iterable[str]) -> int: ...

    async def get_episodes_overlapping(self, start: datetime, end: datetime) -> list[SleepEpisode]:
        """Episodes with episode.start < end and episode.end > start, ordered by start."""
        ...

    async def get_episode_time_bounds(self) -> tuple[datetime, datetime] | None: ...

    async def reanchor_episodes(self, episodes: list[SleepEpisode]) -> None: ...

    async def get_episodes_for_day(self, day_id: str) -> list[SleepEpisode]: ...

    async def get_episodes_in_date_range(self, start: date, end: date) -> list[SleepEpisode]:
        """Episodes whose anchored date lies in [start, end]."""
        ...

    async def get_episode_day_ids(self) -> set[str]: ...

    # Summaries
    async def get_summary(self, day_id: str) -> DailySummary | None: ...

    async def get_summaries(self, start: date, end: date) -> list[DailySummary]:
        """Summaries dated within [start, end], ordered by date."""
        ...

    async def get_last_summary_before(self, day: date) -> DailySummary | None: ...

    async def get_summary_day_ids(self) -> set[str]: ...

    async def upsert_summaries(self, summaries: list[DailySummary]) -> None: ...

    async def delete_summaries(self, day_ids: Iterable[str]) -> int: ...

    # Transaction
    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
