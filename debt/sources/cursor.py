"""Opaque sync cursor codec: URL-safe base64 over a small JSON object."""

import base64
import binascii
import json
from typing import Any

from shared.exceptions import InvalidCursorError


def encode_cursor(payload: dict[str, Any]) -> str:
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode()


def decode_cursor(cursor: str) -> dict[str, Any]:
    try:
        decoded = json.loads(base64.urlsafe_b64decode(cursor.encode()))
    except (binascii.Error, ValueError, UnicodeDecodeError) as exc:
        raise InvalidCursorError(cursor, "not a valid cursor token") from exc
    if not isinstance(decoded, dict):
        raise InvalidCursorError(cursor, "cursor payload is not an object")
    return decoded
