"""Progress/status coupling shared by ``Task`` and ``EnhancedTask``.

Every write path (create, update, progress update, checklist toggle) ends
with ``apply_progress_rules`` so status and progress cannot disagree:

- progress is clamped to 0..100
- progress 100 forces status ``completed`` and stamps the completion time
- progress > 0 moves an unstarted task (pending/todo) to ``in-progress``
- checklist completion can raise progress, never lower it

``completed`` status alone does not force progress to 100.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from harambee.db.models import EnhancedTask, Task
from harambee.timeutils import utcnow

COMPLETED = "completed"
IN_PROGRESS = "in-progress"


@dataclass(frozen=True)
class _Rules:
    unstarted: str
    completed_field: str
    empty_checklist: int


_TASK_RULES = _Rules(unstarted="pending", completed_field="completed_date", empty_checklist=0)
_ENHANCED_RULES = _Rules(unstarted="todo", completed_field="completed_at", empty_checklist=100)


def _rules_for(task: Task | EnhancedTask) -> _Rules:
    return _ENHANCED_RULES if isinstance(task, EnhancedTask) else _TASK_RULES


def percent(part: int, whole: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if whole <= 0:
        return 0
    return math.floor(part * 100 / whole + 0.5)


def checklist_progress(task: Task | EnhancedTask) -> int:
    """Share of completed checklist items. Empty lists give 0 for tasks and 100 for enhanced tasks."""
    items = task.checklist_items
    if not items:
        return _rules_for(task).empty_checklist
    return percent(sum(1 for item in items if item.completed), len(items))


def apply_progress_rules(task: Task | EnhancedTask, now: datetime | None = None) -> None:
    rules = _rules_for(task)

    progress = max(0, min(100, int(task.progress or 0)))
    if task.checklist_items:
        progress = max(progress, checklist_progress(task))
    task.progress = progress

    if progress == 100:
        task.status = COMPLETED
    elif progress > 0 and task.status == rules.unstarted:
        task.status = IN_PROGRESS

    if task.status == COMPLETED and getattr(task, rules.completed_field) is None:
        setattr(task, rules.completed_field, now or utcnow())
    elif task.status != COMPLETED:
        setattr(task, rules.completed_field, None)
