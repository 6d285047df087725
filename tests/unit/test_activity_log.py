"""Unit tests for activity rows and change diffs."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from harambee.activity.service import build_activity, diff_changes


def test_diff_reports_only_changed_fields() -> None:
    before = {"title": "Old", "progress": 10, "tags": ["a"]}
    after = {"title": "New", "progress": 10, "tags": ["a", "b"]}
    assert diff_changes(before, after) == [
        {"field": "title", "oldValue": "Old", "newValue": "New", "fieldType": "string"},
        {"field": "tags", "oldValue": ["a"], "newValue": ["a", "b"], "fieldType": "array"},
    ]


def test_diff_serializes_dates() -> None:
    due = datetime(2026, 4, 1, tzinfo=timezone.utc)
    (change,) = diff_changes({"due_date": None}, {"due_date": due})
    assert change["newValue"] == "2026-04-01T00:00:00+00:00"
    assert change["fieldType"] == "date"


def test_build_fills_period_keys() -> None:
    ts = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)
    row = build_activity(
        category="create",
        verb="created",
        object_="goal",
        actor_id=1,
        entity_type="goal",
        entity_id=5,
        entity_name="Win the league",
        club_id=2,
        timestamp=ts,
    )
    assert (row.day, row.week, row.month) == ("2026-03-14", "2026-W11", "2026-03")
    assert row.visibility == "club"
    assert row.source == "api"


def test_build_rejects_unknown_category() -> None:
    with pytest.raises(ValueError):
        build_activity(category="explode", verb="x", object_="goal", actor_id=1, entity_type="goal", entity_id=1)
