"""Time helpers shared by services and the activity log."""

from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def day_key(dt: datetime) -> str:
    """'2026-03-14' style bucket key."""
    return dt.strftime("%Y-%m-%d")


def week_key(dt: datetime) -> str:
    """ISO week bucket key e.g. '2026-W11'. Uses %G-W%V (ISO year + ISO week)."""
    return dt.strftime("%G-W%V")


def month_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m")


def days_until(due: datetime | None, now: datetime | None = None) -> int | None:
    """Whole days from now until ``due`` (negative when past). None without a due date."""
    if due is None:
        return None
    now = now or utcnow()
    delta = as_utc(due) - now  # type: ignore[operator]
    return math.ceil(delta.total_seconds() / 86400)
