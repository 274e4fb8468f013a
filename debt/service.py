"""Sleep-debt service: single-writer orchestration of the refresh pipeline.

Refresh flow:
1. Read settings and the stored sync cursor
2. Fetch changes from the interval source (invalid cursor → full refetch)
3. Reconcile episodes against the change set, collecting dirty day ids
4. Re-group sessions over the touched span, adding re-anchored day ids
5. Rebuild the debt chain from the earliest dirty day
6. Save the new cursor and commit everything in one transaction

Writes serialize behind one asyncio.Lock; reads open their own store scope.
"""

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

import structlog
from pydantic import BaseModel

from debt.domain.models import (
    ChangeSet,
    ChartPoint,
    HistoryEntry,
    NotificationPrefs,
    TodaySummary,
    UserSettings,
)
from debt.normalizer import format_day_id, sleep_day_for
from debt.queries import chart_series, daily_history, rolling_debt, today_summary, window_start
from debt.rebuilder import rebuild_debt_chain
from debt.reconcile import apply_changes
from debt.repository import repository_scope
from debt.sessions import regroup_all, regroup_span
from debt.sources.factory import get_source
from debt.sources.protocol import IntervalSource
from debt.store import SleepStore
from shared.config import settings as config
from shared.exceptions import InvalidCursorError, InvalidSettingError, InvalidWindowError
from shared.metrics import dirty_days_total, refresh_runs_total

logger = structlog.get_logger()

StoreFactory = Callable[[], AbstractAsyncContextManager[SleepStore]]


class SyncStatus(BaseModel):
    """Outcome of the most recent refresh attempt (process-local)."""

    ok: bool | None = None
    last_attempt_at: datetime | None = None
    last_sync_at: datetime | None = None
    last_error: str | None = None
    last_dirty_days: int = 0


@dataclass
class RefreshResult:
    dirty_day_ids: list[str] = field(default_factory=list)
    inserted: int = 0
    deleted: int = 0
    unchanged: int = 0
    full_snapshot: bool = False
    cursor_reset: bool = False


@dataclass
class SettingsUpdate:
    settings: UserSettings
    dirty_day_ids: list[str] = field(default_factory=list)


class SleepDebtService:
    def __init__(
        self,
        source: IntervalSource,
        store_factory: StoreFactory = repository_scope,
        time_zone: ZoneInfo | None = None,
        lookback_days: int | None = None,
        gap_seconds: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._source = source
        self._store_factory = store_factory
        self._tz = time_zone or config.zone
        self._lookback_days = config.rebuild_lookback_days if lookback_days is None else lookback_days
        self._gap_seconds = config.session_gap_seconds if gap_seconds is None else gap_seconds
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()
        self._status = SyncStatus()

    def _today(self, settings: UserSettings) -> date:
        return sleep_day_for(self._clock(), settings.day_boundary_hour, self._tz)

    # --- Writes ---

    async def refresh(self) -> RefreshResult:
        """Pull changes from the source and bring every derived summary up to date."""
        async with self._lock:
            self._status.last_attempt_at = self._clock()
            try:
                result = await self._refresh()
            except Exception as exc:
                self._status.ok = False
                self._status.last_error = str(exc)
                refresh_runs_total.labels(trigger="sync", status="failed").inc()
                logger.error("refresh_failed", error=type(exc).__name__, detail=str(exc))
                raise

            self._status.ok = True
            self._status.last_error = None
            self._status.last_sync_at = self._status.last_attempt_at
            self._status.last_dirty_days = len(result.dirty_day_ids)
            refresh_runs_total.labels(trigger="sync", status="ok").inc()
            dirty_days_total.inc(len(result.dirty_day_ids))
            logger.info(
                "refresh_completed",
                dirty_days=len(result.dirty_day_ids),
                inserted=result.inserted,
                deleted=result.deleted,
                unchanged=result.unchanged,
                full_snapshot=result.full_snapshot,
                cursor_reset=result.cursor_reset,
            )
            return result

    async def _refresh(self) -> RefreshResult:
        async with self._store_factory() as store:
            settings = await store.get_settings()
            changes, cursor_reset = await self._fetch(settings.last_sync_cursor)

            reconciled = await apply_changes(store, changes, settings, self._tz)
            dirty = set(reconciled.dirty_day_ids)
            if reconciled.has_changes:
                grouping = await regroup_span(
                    store,
                    reconciled.span_start,
                    reconciled.span_end,
                    settings.day_boundary_hour,
                    self._tz,
                    self._gap_seconds,
                )
                dirty |= grouping.dirty_day_ids

            await rebuild_debt_chain(
                store, dirty, settings, self._today(settings), self._lookback_days
            )

            if changes.new_cursor is not None:
                settings.last_sync_cursor = changes.new_cursor
            settings.last_sync_at = self._status.last_attempt_at
            await store.save_settings(settings)
            await store.commit()

        return RefreshResult(
            dirty_day_ids=sorted(dirty),
            inserted=reconciled.inserted,
            deleted=reconciled.deleted,
            unchanged=reconciled.unchanged,
            full_snapshot=changes.full_snapshot,
            cursor_reset=cursor_reset,
        )

    async def _fetch(self, cursor: str | None) -> tuple[ChangeSet, bool]:
        try:
            return await self._source.fetch_changes(cursor), False
        except InvalidCursorError as exc:
            logger.warning("sync_cursor_invalid", reason=exc.reason)
            changes = await self._source.fetch_changes(None)
            changes.full_snapshot = True
            return changes, True

    async def update_goal(self, goal_minutes: int) -> SettingsUpdate:
        """Change the nightly goal and recompute every summary."""
        if not 1 <= goal_minutes <= 1440:
            raise InvalidSettingError("goal_minutes", goal_minutes, "must be between 1 and 1440")

        async with self._lock, self._store_factory() as store:
            settings = await store.get_settings()
            if settings.goal_minutes == goal_minutes:
                return SettingsUpdate(settings=settings)

            settings.goal_minutes = goal_minutes
            await store.save_settings(settings)
            dirty = await store.get_episode_day_ids() | await store.get_summary_day_ids()
            await rebuild_debt_chain(
                store, dirty, settings, self._today(settings), self._lookback_days
            )
            await store.commit()

        refresh_runs_total.labels(trigger="goal", status="ok").inc()
        logger.info("goal_updated", goal_minutes=goal_minutes, dirty_days=len(dirty))
        return SettingsUpdate(settings=settings, dirty_day_ids=sorted(dirty))

    async def update_day_boundary(self, boundary_hour: int) -> SettingsUpdate:
        """Move the day boundary, re-anchor the whole history and rebuild every summary."""
        if not 0 <= boundary_hour <= 23:
            raise InvalidSettingError("day_boundary_hour", boundary_hour, "must be between 0 and 23")

        async with self._lock, self._store_factory() as store:
            settings = await store.get_settings()
            if settings.day_boundary_hour == boundary_hour:
                return SettingsUpdate(settings=settings)

            settings.day_boundary_hour = boundary_hour
            await store.save_settings(settings)
            grouping = await regroup_all(store, boundary_hour, self._tz, self._gap_seconds)
            # Every old anchor id is dirty so stale-suffix summaries fall inside the window
            dirty = grouping.dirty_day_ids | await store.get_summary_day_ids()
            await rebuild_debt_chain(
                store, dirty, settings, self._today(settings), self._lookback_days
            )
            await store.commit()

        refresh_runs_total.labels(trigger="boundary", status="ok").inc()
        logger.info(
            "day_boundary_updated",
            day_boundary_hour=boundary_hour,
            reanchored=len(grouping.reanchored),
            dirty_days=len(dirty),
        )
        return SettingsUpdate(settings=settings, dirty_day_ids=sorted(dirty))

    async def update_preferences(
        self,
        notification_prefs: NotificationPrefs | None = None,
        comparison_enabled: bool | None = None,
    ) -> UserSettings:
        """Store display/notification preferences; no summary depends on them."""
        async with self._lock, self._store_factory() as store:
            settings = await store.get_settings()
            if notification_prefs is not None:
                settings.notification_prefs = notification_prefs
            if comparison_enabled is not None:
                settings.comparison_enabled = comparison_enabled
            await store.save_settings(settings)
            await store.commit()
        logger.info("preferences_updated")
        return settings

    # --- Reads ---

    def _check_window(self, window_days: int | None) -> int:
        days = config.default_window_days if window_days is None else window_days
        if not 1 <= days <= config.max_window_days:
            raise InvalidWindowError(days, config.max_window_days)
        return days

    async def get_settings(self) -> UserSettings:
        async with self._store_factory() as store:
            return await store.get_settings()

    async def rolling_debt(self, window_days: int | None = None) -> tuple[int, date, int]:
        """Return (debt_minutes, as_of, window_days)."""
        days = self._check_window(window_days)
        async with self._store_factory() as store:
            settings = await store.get_settings()
            today = self._today(settings)
            summaries = await store.get_summaries(window_start(today, days), today)
        return rolling_debt(summaries, days, today), today, days

    async def chart_series(self, window_days: int | None = None) -> list[ChartPoint]:
        days = self._check_window(window_days)
        async with self._store_factory() as store:
            settings = await store.get_settings()
            today = self._today(settings)
            # The first point's window reaches back another window_days - 1 days
            first = window_start(today, days) - timedelta(days=days - 1)
            summaries = await store.get_summaries(first, today)
        return chart_series(summaries, days, today)

    async def today_summary(self) -> TodaySummary:
        async with self._store_factory() as store:
            settings = await store.get_settings()
            today = self._today(settings)
            summary = await store.get_summary(format_day_id(today, settings.day_boundary_hour))
        return today_summary(summary, settings, today)

    async def daily_history(self, window_days: int | None = None) -> list[HistoryEntry]:
        days = self._check_window(window_days)
        async with self._store_factory() as store:
            settings = await store.get_settings()
            today = self._today(settings)
            summaries = await store.get_summaries(window_start(today, days), today)
        return daily_history(summaries)

    async def sync_status(self) -> SyncStatus:
        """Last attempt outcome; falls back to the persisted sync time after a restart."""
        status = self._status.model_copy()
        if status.last_sync_at is None:
            settings = await self.get_settings()
            status.last_sync_at = settings.last_sync_at
        return status


@lru_cache
def get_service() -> SleepDebtService:
    """Process-wide service instance (one writer lock per process)."""
    return SleepDebtService(source=get_source())
