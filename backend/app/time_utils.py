"""Timestamp normalisation for API payloads."""

from __future__ import annotations

from datetime import datetime, timezone


def coerce_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values and convert aware ones.

    SQLite returns naive datetimes for ``func.now()`` defaults; they are
    already UTC.
    """

    if value is None:
        return None
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_utc(value: datetime | None) -> str | None:
    """ISO-8601 string for JSON columns and push payloads."""
    normalized = coerce_utc(value)
    return normalized.isoformat() if normalized is not None else None
