"""Live interval source: pulls changes from the health-data bridge over HTTP.

GET {base_url}/v1/sleep/changes?cursor=<token>

A 410 Gone or an ``{"error": "invalid_cursor"}`` body means the cursor was
rejected. Transient failures are retried by fetch_with_retry; anything still
failing surfaces as SourceUnavailableError.
"""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from debt.domain.models import ChangeSet, RawInterval
from debt.sources.http_client import TransientHTTPError, fetch_with_retry
from shared.config import settings
from shared.exceptions import InvalidCursorError, SourceUnavailableError
from shared.metrics import dropped_intervals_total, source_fetch_duration_seconds

logger = structlog.get_logger()


class HttpIntervalSource:
    """Live-mode source."""

    mode = "live"

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.source_base_url).rstrip("/")
        self._access_token = access_token if access_token is not None else settings.source_access_token
        self._timeout = timeout or settings.source_timeout_seconds
        self._transport = transport

    async def fetch_changes(self, cursor: str | None) -> ChangeSet:
        url = f"{self._base_url}/v1/sleep/changes"
        headers = {"Authorization": f"Bearer {self._access_token}"}
        params = {"cursor": cursor} if cursor else {}

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                with source_fetch_duration_seconds.labels(mode=self.mode).time():
                    resp = await fetch_with_retry(client, "GET", url, headers=headers, params=params)
            except TransientHTTPError as exc:
                raise SourceUnavailableError(str(exc)) from exc
            except httpx.HTTPError as exc:
                raise SourceUnavailableError(type(exc).__name__) from exc

        body = _json_or_empty(resp)
        if resp.status_code == 410 or body.get("error") == "invalid_cursor":
            raise InvalidCursorError(cursor, body.get("detail", f"rejected with HTTP {resp.status_code}"))
        if resp.is_error:
            raise SourceUnavailableError(f"HTTP {resp.status_code}")

        return _parse_changes(body, full_snapshot=cursor is None)


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _parse_changes(body: dict[str, Any], full_snapshot: bool) -> ChangeSet:
    """Build a ChangeSet, skipping items that do not parse as intervals.

    A skipped item that still names an external id withdraws that record, so
    an earlier valid version does not linger in the store.
    """
    added: list[RawInterval] = []
    deleted = [str(d) for d in body.get("deleted", [])]
    for item in body.get("added", []):
        try:
            added.append(RawInterval.model_validate(item))
        except ValidationError as exc:
            external_id = item.get("external_id") if isinstance(item, dict) else None
            dropped_intervals_total.labels(reason="invalid_payload").inc()
            logger.warning(
                "interval_dropped",
                external_id=external_id,
                reasons=sorted({err["type"] for err in exc.errors()}),
            )
            if isinstance(external_id, str) and external_id:
                added = [i for i in added if i.external_id != external_id]
                deleted.append(external_id)
    return ChangeSet(
        added=added,
        deleted=deleted,
        new_cursor=body.get("next_cursor"),
        full_snapshot=full_snapshot,
    )
