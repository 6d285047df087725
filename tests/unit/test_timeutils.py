"""Unit tests for period keys and due-date helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from harambee.timeutils import as_utc, day_key, days_until, month_key, week_key


def test_period_keys() -> None:
    ts = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)
    assert day_key(ts) == "2026-03-14"
    assert week_key(ts) == "2026-W11"
    assert month_key(ts) == "2026-03"


def test_iso_week_uses_iso_year() -> None:
    # 1 January 2027 is a Friday, so it belongs to the last ISO week of 2026.
    assert week_key(datetime(2027, 1, 1, tzinfo=timezone.utc)) == "2026-W53"


def test_as_utc_attaches_timezone() -> None:
    naive = datetime(2026, 3, 14, 9, 30)
    assert as_utc(naive).tzinfo is timezone.utc
    assert as_utc(None) is None


def test_days_until_rounds_up() -> None:
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    assert days_until(now + timedelta(hours=30), now) == 2
    assert days_until(now - timedelta(days=3), now) == -3
    assert days_until(None, now) is None
