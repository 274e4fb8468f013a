"""Postgres implementation of the SleepStore protocol.

Encapsulates the three-table upserts, date-range queries and predicate
deletes. Nothing is committed until commit(); the service owns the transaction.
"""

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from debt.domain.models import DailySummary, SleepEpisode, UserSettings
from debt.domain.orm import (
    SETTINGS_ROW_ID,
    DailySummaryModel,
    SleepEpisodeModel,
    UserSettingsModel,
)
from debt.normalizer import day_id_date
from shared.database import async_session_factory, session_scope


def _episode_row(episode: SleepEpisode) -> dict:
    return {
        "id": episode.id,
        "external_id": episode.external_id,
        "segment_index": episode.segment_index,
        "start": episode.start,
        "end": episode.end,
        "source_id": episode.source_id,
        "anchored_day_id": episode.anchored_day_id,
        "anchored_date": day_id_date(episode.anchored_day_id),
    }


def _summary_row(summary: DailySummary) -> dict:
    row = summary.model_dump()
    row["id"] = uuid4()
    row["data_quality"] = summary.data_quality.value
    return row


class SleepDebtRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Settings ---

    async def get_settings(self) -> UserSettings:
        """Return the stored profile, or defaults when none has been saved yet."""
        row = await self.session.get(UserSettingsModel, SETTINGS_ROW_ID, populate_existing=True)
        if row is None:
            return UserSettings()
        return UserSettings.model_validate(row, from_attributes=True)

    async def save_settings(self, settings: UserSettings) -> None:
        values = settings.model_dump(mode="json")
        values["last_sync_at"] = settings.last_sync_at
        stmt = pg_insert(UserSettingsModel).values(id=SETTINGS_ROW_ID, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={**{k: stmt.excluded[k] for k in values}, "updated_at": func.now()},
        )
        await self.session.execute(stmt)

    # --- Episodes ---

    async def get_episodes_by_external_ids(
        self, external_ids: Iterable[str]
    ) -> list[SleepEpisode]:
        ids = list(external_ids)
        if not ids:
            return []
        query = (
            select(SleepEpisodeModel)
            .where(SleepEpisodeModel.external_id.in_(ids))
            .order_by(SleepEpisodeModel.external_id, SleepEpisodeModel.segment_index)
        )
        return await self._episodes(query)

    async def get_all_external_ids(self) -> set[str]:
        result = await self.session.execute(select(SleepEpisodeModel.external_id).distinct())
        return set(result.scalars().all())

    async def upsert_episodes(self, episodes: list[SleepEpisode]) -> None:
        if not episodes:
            return
        stmt = pg_insert(SleepEpisodeModel).values([_episode_row(e) for e in episodes])
        stmt = stmt.on_conflict_do_update(
            constraint="uq_sleep_episodes_segment",
            set_={
                "start": stmt.excluded.start,
                "end": stmt.excluded.end,
                "source_id": stmt.excluded.source_id,
                "anchored_day_id": stmt.excluded.anchored_day_id,
                "anchored_date": stmt.excluded.anchored_date,
            },
        )
        await self.session.execute(stmt)

    async def delete_episodes_by_external_ids(self, external_ids: Iterable[str]) -> int:
        ids = list(external_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            delete(SleepEpisodeModel).where(SleepEpisodeModel.external_id.in_(ids))
        )
        return result.rowcount

    async def get_episodes_overlapping(self, start: datetime, end: datetime) -> list[SleepEpisode]:
        query = (
            select(SleepEpisodeModel)
            .where(SleepEpisodeModel.start < end, SleepEpisodeModel.end > start)
            .order_by(SleepEpisodeModel.start, SleepEpisodeModel.external_id)
        )
        return await self._episodes(query)

    async def get_episode_time_bounds(self) -> tuple[datetime, datetime] | None:
        result = await self.session.execute(
            select(func.min(SleepEpisodeModel.start), func.max(SleepEpisodeModel.end))
        )
        lo, hi = result.one()
        if lo is None:
            return None
        return lo, hi

    async def reanchor_episodes(self, episodes: list[SleepEpisode]) -> None:
        """Rewrite the day anchoring of existing episodes (bulk UPDATE by primary key)."""
        if not episodes:
            return
        await self.session.execute(
            update(SleepEpisodeModel),
            [
                {
                    "id": e.id,
                    "anchored_day_id": e.anchored_day_id,
                    "anchored_date": day_id_date(e.anchored_day_id),
                }
                for e in episodes
            ],
        )

    async def get_episodes_for_day(self, day_id: str) -> list[SleepEpisode]:
        query = (
            select(SleepEpisodeModel)
            .where(SleepEpisodeModel.anchored_day_id == day_id)
            .order_by(SleepEpisodeModel.start)
        )
        return await self._episodes(query)

    async def get_episodes_in_date_range(self, start: date, end: date) -> list[SleepEpisode]:
        query = (
            select(SleepEpisodeModel)
            .where(SleepEpisodeModel.anchored_date >= start, SleepEpisodeModel.anchored_date <= end)
            .order_by(SleepEpisodeModel.start)
        )
        return await self._episodes(query)

    async def get_episode_day_ids(self) -> set[str]:
        result = await self.session.execute(select(SleepEpisodeModel.anchored_day_id).distinct())
        return set(result.scalars().all())

    async def _episodes(self, query) -> list[SleepEpisode]:
        return [SleepEpisode.model_validate(r, from_attributes=True) for r in await self._rows(query)]

    async def _rows(self, query) -> list:
        # Core upserts and bulk updates bypass the identity map; always reload row state
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    # --- Summaries ---

    async def get_summary(self, day_id: str) -> DailySummary | None:
        rows = await self._rows(select(DailySummaryModel).where(DailySummaryModel.day_id == day_id))
        return DailySummary.model_validate(rows[0], from_attributes=True) if rows else None

    async def get_summaries(self, start: date, end: date) -> list[DailySummary]:
        query = (
            select(DailySummaryModel)
            .where(DailySummaryModel.date >= start, DailySummaryModel.date <= end)
            .order_by(DailySummaryModel.date)
        )
        return [DailySummary.model_validate(r, from_attributes=True) for r in await self._rows(query)]

    async def get_last_summary_before(self, day: date) -> DailySummary | None:
        query = (
            select(DailySummaryModel)
            .where(DailySummaryModel.date < day)
            .order_by(DailySummaryModel.date.desc())
            .limit(1)
        )
        rows = await self._rows(query)
        return DailySummary.model_validate(rows[0], from_attributes=True) if rows else None

    async def get_summary_day_ids(self) -> set[str]:
        result = await self.session.execute(select(DailySummaryModel.day_id))
        return set(result.scalars().all())

    async def upsert_summaries(self, summaries: list[DailySummary]) -> None:
        if not summaries:
            return
        stmt = pg_insert(DailySummaryModel).values([_summary_row(s) for s in summaries])
        stmt = stmt.on_conflict_do_update(
            index_elements=["day_id"],
            set_={
                "date": stmt.excluded.date,
                "has_data": stmt.excluded.has_data,
                "actual_minutes": stmt.excluded.actual_minutes,
                "delta_minutes": stmt.excluded.delta_minutes,
                "cumulative_debt_minutes": stmt.excluded.cumulative_debt_minutes,
                "data_quality": stmt.excluded.data_quality,
                "source_count": stmt.excluded.source_count,
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)

    async def delete_summaries(self, day_ids: Iterable[str]) -> int:
        ids = list(day_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            delete(DailySummaryModel).where(DailySummaryModel.day_id.in_(ids))
        )
        return result.rowcount

    # --- Transaction ---

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


@asynccontextmanager
async def repository_scope(
    factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> AsyncIterator[SleepDebtRepository]:
    """One transactional repository; uncommitted work is discarded on exit."""
    async with session_scope(factory) as session:
        yield SleepDebtRepository(session)
