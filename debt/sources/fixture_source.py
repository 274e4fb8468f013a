"""Fixture interval source: serves a revisioned change log from a JSON file.

File layout::

    {"records": [
        {"rev": 1, "external_id": "a", "start": "...", "end": "...",
         "source_id": "watch", "category": "asleep_core"},
        {"rev": 2, "external_id": "a", "deleted": true}
    ]}

The cursor is ``{"rev": n}``: the highest revision already delivered. With no
cursor, the latest live version of every record is returned as a full snapshot.
"""

import json
from pathlib import Path
from typing import Any

from debt.domain.models import ChangeSet, RawInterval
from debt.sources.cursor import decode_cursor, encode_cursor
from shared.exceptions import InvalidCursorError, SourceUnavailableError
from shared.metrics import source_fetch_duration_seconds


class FixtureIntervalSource:
    """Fixture-mode source: reads records from a file path or an in-memory list."""

    mode = "fixture"

    def __init__(self, path: str | Path | None = None, records: list[dict] | None = None):
        self._path = Path(path) if path is not None else None
        self._records = records

    def _load(self) -> list[dict[str, Any]]:
        if self._records is not None:
            return self._records
        if self._path is None:
            return []
        try:
            body = json.loads(self._path.read_text())
        except (OSError, ValueError) as exc:
            raise SourceUnavailableError(f"{self._path}: {exc}") from exc
        return body["records"] if isinstance(body, dict) else body

    def append(self, record: dict[str, Any]) -> None:
        """Append a record to an in-memory log (assigns the next revision)."""
        if self._records is None:
            self._records = []
        record.setdefault("rev", max((r["rev"] for r in self._records), default=0) + 1)
        self._records.append(record)

    async def fetch_changes(self, cursor: str | None) -> ChangeSet:
        with source_fetch_duration_seconds.labels(mode=self.mode).time():
            records = sorted(self._load(), key=lambda r: r["rev"])
            head = records[-1]["rev"] if records else 0

            if cursor is None:
                return self._snapshot(records, head)

            since = decode_cursor(cursor).get("rev")
            if not isinstance(since, int) or since < 0 or since > head:
                raise InvalidCursorError(cursor, f"revision {since!r} outside [0, {head}]")

            changes = ChangeSet(new_cursor=encode_cursor({"rev": head}))
            for record in records:
                if record["rev"] <= since:
                    continue
                if record.get("deleted"):
                    changes.deleted.append(record["external_id"])
                else:
                    changes.added.append(_to_interval(record))
            return changes

    def _snapshot(self, records: list[dict[str, Any]], head: int) -> ChangeSet:
        latest: dict[str, dict[str, Any]] = {}
        for record in records:
            latest[record["external_id"]] = record
        return ChangeSet(
            added=[_to_interval(r) for r in latest.values() if not r.get("deleted")],
            new_cursor=encode_cursor({"rev": head}),
            full_snapshot=True,
        )


def _to_interval(record: dict[str, Any]) -> RawInterval:
    fields = {k: v for k, v in record.items() if k not in ("rev", "deleted")}
    return RawInterval.model_validate(fields)
