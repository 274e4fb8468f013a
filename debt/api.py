"""FastAPI router for the sleep-debt service.

Endpoints:
- POST  /api/v1/refresh
- GET   /api/v1/settings
- PUT   /api/v1/settings/goal
- PUT   /api/v1/settings/day-boundary
- PATCH /api/v1/settings/preferences
- GET   /api/v1/debt/rolling
- GET   /api/v1/debt/chart
- GET   /api/v1/summary/today
- GET   /api/v1/summaries
- GET   /api/v1/sync/status
"""

import time
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from debt.domain.models import NotificationPrefs
from debt.queries import format_minutes
from debt.service import SleepDebtService, get_service
from shared.config import settings
from shared.metrics import api_requests_total, api_response_duration_seconds
from shared.middleware import request_id_var

router = APIRouter(prefix="/api/v1")


# --- Request models ---


class GoalUpdate(BaseModel):
    goal_minutes: int


class DayBoundaryUpdate(BaseModel):
    day_boundary_hour: int


class PreferencesUpdate(BaseModel):
    notification_prefs: NotificationPrefs | None = None
    comparison_enabled: bool | None = None


# --- Response helpers ---


def _meta() -> dict[str, Any]:
    return {
        "request_id": request_id_var.get(""),
        "timestamp": datetime.now(UTC).isoformat(),
        "api_version": settings.api_version,
    }


def _record(endpoint: str, method: str, start_time: float, status_code: int = 200) -> None:
    api_requests_total.labels(endpoint=endpoint, method=method, status_code=str(status_code)).inc()
    api_response_duration_seconds.labels(endpoint=endpoint).observe(time.monotonic() - start_time)


# --- Endpoints ---


@router.post("/refresh")
async def refresh(service: SleepDebtService = Depends(get_service)):
    """Pull new intervals from the source and rebuild affected summaries.

    Returns the day ids whose summaries were recomputed. A failed fetch or
    store write leaves every summary as it was (503 problem response).
    """
    start_time = time.monotonic()
    result = await service.refresh()
    _record("refresh", "POST", start_time)
    return {
        "data": {
            "dirty_day_ids": result.dirty_day_ids,
            "inserted": result.inserted,
            "deleted": result.deleted,
            "unchanged": result.unchanged,
            "full_snapshot": result.full_snapshot,
            "cursor_reset": result.cursor_reset,
        },
        "meta": _meta(),
    }


@router.get("/settings")
async def get_settings(service: SleepDebtService = Depends(get_service)):
    start_time = time.monotonic()
    user_settings = await service.get_settings()
    _record("settings", "GET", start_time)
    return {"data": user_settings.model_dump(mode="json"), "meta": _meta()}


@router.put("/settings/goal")
async def update_goal(body: GoalUpdate, service: SleepDebtService = Depends(get_service)):
    """Change the nightly goal (1..1440 minutes). Recomputes the whole history."""
    start_time = time.monotonic()
    update = await service.update_goal(body.goal_minutes)
    _record("settings_goal", "PUT", start_time)
    return {
        "data": {
            "settings": update.settings.model_dump(mode="json"),
            "dirty_day_ids": update.dirty_day_ids,
        },
        "meta": _meta(),
    }


@router.put("/settings/day-boundary")
async def update_day_boundary(
    body: DayBoundaryUpdate, service: SleepDebtService = Depends(get_service)
):
    """Move the day boundary hour (0..23). Re-anchors every episode."""
    start_time = time.monotonic()
    update = await service.update_day_boundary(body.day_boundary_hour)
    _record("settings_day_boundary", "PUT", start_time)
    return {
        "data": {
            "settings": update.settings.model_dump(mode="json"),
            "dirty_day_ids": update.dirty_day_ids,
        },
        "meta": _meta(),
    }


@router.patch("/settings/preferences")
async def update_preferences(
    body: PreferencesUpdate, service: SleepDebtService = Depends(get_service)
):
    start_time = time.monotonic()
    user_settings = await service.update_preferences(
        notification_prefs=body.notification_prefs,
        comparison_enabled=body.comparison_enabled,
    )
    _record("settings_preferences", "PATCH", start_time)
    return {"data": user_settings.model_dump(mode="json"), "meta": _meta()}


@router.get("/debt/rolling")
async def get_rolling_debt(
    service: SleepDebtService = Depends(get_service),
    window_days: int | None = Query(None),
):
    """Debt accrued over the last ``window_days`` sleep days, clamped at zero."""
    start_time = time.monotonic()
    debt_minutes, as_of, days = await service.rolling_debt(window_days)
    _record("debt_rolling", "GET", start_time)
    return {
        "data": {
            "window_days": days,
            "as_of": as_of.isoformat(),
            "debt_minutes": debt_minutes,
            "label": format_minutes(debt_minutes),
        },
        "meta": _meta(),
    }


@router.get("/debt/chart")
async def get_chart(
    service: SleepDebtService = Depends(get_service),
    window_days: int | None = Query(None),
):
    start_time = time.monotonic()
    points = await service.chart_series(window_days)
    _record("debt_chart", "GET", start_time)
    return {"data": [p.model_dump(mode="json") for p in points], "meta": _meta()}


@router.get("/summary/today")
async def get_today(service: SleepDebtService = Depends(get_service)):
    start_time = time.monotonic()
    summary = await service.today_summary()
    _record("summary_today", "GET", start_time)
    return {"data": summary.model_dump(mode="json"), "meta": _meta()}


@router.get("/summaries")
async def get_summaries(
    service: SleepDebtService = Depends(get_service),
    window_days: int | None = Query(None),
):
    """Stored daily summaries of the window, newest first."""
    start_time = time.monotonic()
    history = await service.daily_history(window_days)
    _record("summaries", "GET", start_time)
    return {"data": [h.model_dump(mode="json") for h in history], "meta": _meta()}


@router.get("/sync/status")
async def get_sync_status(service: SleepDebtService = Depends(get_service)):
    start_time = time.monotonic()
    status = await service.sync_status()
    _record("sync_status", "GET", start_time)
    return {"data": status.model_dump(mode="json"), "meta": _meta()}
