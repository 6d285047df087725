"""Unit tests for key-result, objective and goal progress math."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from harambee.db.models import Goal, KeyResult, Objective
from harambee.planning import goal_service, objective_service
from harambee.planning.goal_service import GoalCounts

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def _kr(current: float, target: float = 10.0, due: datetime | None = None) -> KeyResult:
    return KeyResult(title="kr", current_value=current, target_value=target, due_date=due)


class TestKeyResults:
    def test_ratio_is_capped(self) -> None:
        assert objective_service.key_result_ratio(_kr(15)) == 100.0
        assert objective_service.key_result_ratio(_kr(2.5)) == 25.0

    def test_zero_target(self) -> None:
        assert objective_service.key_result_ratio(_kr(3, target=0)) == 0.0

    def test_status_ladder(self) -> None:
        far = NOW + timedelta(days=30)
        assert objective_service.key_result_status(_kr(10, due=far), NOW) == "completed"
        assert objective_service.key_result_status(_kr(4, due=far), NOW) == "in-progress"
        assert objective_service.key_result_status(_kr(0, due=far), NOW) == "not-started"

    def test_at_risk_close_to_due(self) -> None:
        soon = NOW + timedelta(days=2)
        assert objective_service.key_result_status(_kr(5, due=soon), NOW) == "at-risk"
        assert objective_service.key_result_status(_kr(0, due=soon), NOW) == "at-risk"
        assert objective_service.key_result_status(_kr(8.5, due=soon), NOW) == "in-progress"

    def test_average_of_capped_ratios(self) -> None:
        assert objective_service.key_results_progress([_kr(20), _kr(0)]) == 50
        assert objective_service.key_results_progress([_kr(1, target=3), _kr(3)]) == 32
        assert objective_service.key_results_progress([]) == 0


class TestObjectiveProgress:
    def test_key_results_take_precedence(self) -> None:
        objective = Objective(title="o", progress=10, key_results=[_kr(10), _kr(5)])
        assert objective_service.calculated_progress(objective, (4, 4)) == 75

    def test_falls_back_to_tasks_then_stored(self) -> None:
        objective = Objective(title="o", progress=10)
        assert objective_service.calculated_progress(objective, (4, 1)) == 25
        assert objective_service.calculated_progress(objective) == 10

    def test_full_key_results_complete_objective(self) -> None:
        objective = Objective(title="o", status="not_started", progress=0, key_results=[_kr(10)])
        objective_service._apply_objective_progress(objective)
        assert objective.progress == 100
        assert objective.status == "completed"
        assert objective.completed_at is not None

    def test_partial_key_results_start_objective(self) -> None:
        objective = Objective(title="o", status="not_started", progress=0, key_results=[_kr(1)])
        objective_service._apply_objective_progress(objective)
        assert objective.status == "in_progress"


class TestGoalProgress:
    def test_objectives_first(self) -> None:
        goal = Goal(title="g", progress=5)
        counts = GoalCounts(objectives=3, completed_objectives=1, tasks=2, completed_tasks=2)
        assert goal_service.calculated_progress(goal, counts) == 33

    def test_tasks_when_no_objectives(self) -> None:
        goal = Goal(title="g", progress=5)
        assert goal_service.calculated_progress(goal, GoalCounts(tasks=4, completed_tasks=3)) == 75

    def test_stored_progress_fallback(self) -> None:
        assert goal_service.calculated_progress(Goal(title="g", progress=40), GoalCounts()) == 40

    def test_overdue_ignores_completed(self) -> None:
        past = NOW - timedelta(days=1)
        assert goal_service.is_overdue(Goal(title="g", status="active", due_date=past), NOW)
        assert not goal_service.is_overdue(Goal(title="g", status="completed", due_date=past), NOW)

    def test_days_remaining_zero_when_completed(self) -> None:
        assert goal_service.days_remaining(Goal(title="g", status="completed", due_date=NOW)) == 0
