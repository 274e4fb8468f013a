"""Validation rules for raw sleep intervals.

Malformed intervals are never propagated as errors: the normalizer drops them
with a warning. Returns a list of IntervalViolation; empty list means valid.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from debt.domain.models import RawInterval


@dataclass
class IntervalViolation:
    field: str
    rule: str
    reason: str
    value: Any


def validate_interval(interval: RawInterval) -> list[IntervalViolation]:
    """Validate one raw interval before it is split into day segments."""
    errors: list[IntervalViolation] = []

    # Rule 1: Timezone on timestamps
    for ts_field in ("start", "end"):
        ts: datetime = getattr(interval, ts_field)
        if ts.tzinfo is None or ts.utcoffset() is None:
            errors.append(IntervalViolation(ts_field, "timezone", "missing_timezone", str(ts)))

    # Rule 2: end strictly after start (skipped if a timestamp is naive)
    if not errors and interval.end <= interval.start:
        errors.append(
            IntervalViolation(
                "end",
                "ordering",
                "non_positive_duration",
                {"start": str(interval.start), "end": str(interval.end)},
            )
        )

    # Rule 3: Source provenance present
    if not interval.source_id:
        errors.append(IntervalViolation("source_id", "required", "missing_source", None))

    return errors
