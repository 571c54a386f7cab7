from __future__ import annotations
from datetime import datetime, timezone as dt_tz


def utcnow() -> datetime:
    return datetime.now(dt_tz.utc)


def as_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are taken to already be UTC: some drivers (sqlite) hand back
    naive datetimes for `DateTime(timezone=True)` columns.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_tz.utc)
    return dt.astimezone(dt_tz.utc)


def window_contains(starts_at: datetime, ends_at: datetime, now: datetime) -> bool:
    """Half-open `[starts_at, ends_at)` membership."""
    return as_utc(starts_at) <= as_utc(now) < as_utc(ends_at)


def get_now() -> datetime:
    """Request clock as a dependency so callers can pin it."""
    return utcnow()
