"""Unit tests for dependency gating of enhanced tasks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from harambee.db.models import EnhancedTask, EnhancedTaskDependency
from harambee.planning.task_service import dependency_satisfied

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def _dep(type_: str, lag: int = 0) -> EnhancedTaskDependency:
    return EnhancedTaskDependency(type=type_, lag_days=lag)


def _task(status: str, completed_at: datetime | None = None, start: datetime | None = None) -> EnhancedTask:
    return EnhancedTask(title="prereq", status=status, completed_at=completed_at, start_date=start)


class TestFinishToStart:
    def test_waits_for_completion(self) -> None:
        assert not dependency_satisfied(_dep("finish-to-start"), _task("in-progress"), NOW)
        assert dependency_satisfied(_dep("finish-to-start"), _task("completed", NOW - timedelta(hours=1)), NOW)

    def test_lag_delays_start(self) -> None:
        done = _task("completed", NOW - timedelta(days=1))
        assert not dependency_satisfied(_dep("finish-to-start", lag=2), done, NOW)
        assert dependency_satisfied(_dep("finish-to-start", lag=1), done, NOW)


class TestStartToStart:
    def test_waits_for_prerequisite_to_start(self) -> None:
        assert not dependency_satisfied(_dep("start-to-start"), _task("todo"), NOW)
        assert dependency_satisfied(_dep("start-to-start"), _task("in-progress"), NOW)

    def test_lag_counts_from_start_date(self) -> None:
        started = _task("in-progress", start=NOW - timedelta(days=1))
        assert not dependency_satisfied(_dep("start-to-start", lag=3), started, NOW)


@pytest.mark.parametrize("type_", ["finish-to-finish", "start-to-finish"])
def test_finish_constraints_never_block_start(type_: str) -> None:
    assert dependency_satisfied(_dep(type_), _task("todo"), NOW)


def test_missing_prerequisite_does_not_block() -> None:
    assert dependency_satisfied(_dep("finish-to-start"), None, NOW)
