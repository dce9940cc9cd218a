"""Datetime helpers."""

from __future__ import annotations

import pendulum

EPOCH = 0.0


def utc_now_iso() -> str:
    return pendulum.now("UTC").to_iso8601_string()


def timestamp_of(value: str | None) -> float:
    """Seconds since the epoch for an ISO string; unparsable values sort first."""
    if not value:
        return EPOCH
    try:
        return pendulum.parse(str(value)).timestamp()
    except (ValueError, TypeError, AttributeError):
        return EPOCH
