"""Interval source protocol.

Both the fixture and the live source implement this interface.
The pipeline depends only on the protocol, never on a concrete source.
"""

from typing import Protocol, runtime_checkable

from debt.domain.models import ChangeSet


@runtime_checkable
class IntervalSource(Protocol):
    """Cursor-based change feed of raw sleep intervals."""

    mode: str

    async def fetch_changes(self, cursor: str | None) -> ChangeSet:
        """Fetch everything that changed since ``cursor``.

        Args:
            cursor: Opaque token from a previous ChangeSet, or None for the full history.

        Returns:
            The added/edited intervals, deleted external ids and the next cursor.
            With ``cursor=None`` the result is a full snapshot.

        Raises:
            InvalidCursorError: The cursor is undecodable or rejected by the source.
            SourceUnavailableError: The source could not be reached.
        """
        ...
