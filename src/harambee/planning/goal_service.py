"""Goal planning (SMART / OKR).

Goal progress shown to clients is computed on read: the share of completed
objectives when the goal has objectives, else the share of completed linked
tasks, else the stored ``progress``. Stored progress is only written by an
explicit progress update.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.activity.service import diff_changes, log_activity
from harambee.clubs.policy import ANY_MEMBER, enforce_club_role, find_membership, is_manager
from harambee.clubs.service import get_club_or_404
from harambee.db.models import Club, EnhancedTask, Goal, KeyResult, Objective, User
from harambee.errors import AuthorizationError, NotFoundError, ValidationError
from harambee.tasks.progress import percent
from harambee.timeutils import as_utc, days_until, utcnow

logger = structlog.get_logger()

FORMATS = {"SMART", "OKR"}
PRIORITIES = {"low", "medium", "high", "critical"}
STATUSES = {"draft", "active", "on-hold", "completed", "cancelled"}
SMART_KEYS = ("specific", "measurable", "achievable", "relevant", "timeBound")
EDITABLE_FIELDS = ("title", "description", "format", "category", "priority", "status", "smart_criteria", "tags",
                   "estimated_hours", "start_date", "due_date", "owner_id")


@dataclass(frozen=True)
class GoalCounts:
    objectives: int = 0
    completed_objectives: int = 0
    tasks: int = 0
    completed_tasks: int = 0


def calculated_progress(goal: Goal, counts: GoalCounts) -> int:
    if counts.objectives:
        return percent(counts.completed_objectives, counts.objectives)
    if counts.tasks:
        return percent(counts.completed_tasks, counts.tasks)
    return goal.progress or 0


def is_overdue(goal: Goal, now: datetime | None = None) -> bool:
    due = as_utc(goal.due_date)
    return due is not None and due < (now or utcnow()) and goal.status != "completed"


def days_remaining(goal: Goal) -> int | None:
    if goal.status == "completed":
        return 0
    return days_until(goal.due_date)


def _choice(value: Any, allowed: set[str], field: str) -> None:
    if value is not None and value not in allowed:
        raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(sorted(allowed))}")


def _clean_smart(criteria: dict[str, Any] | None) -> dict[str, str]:
    return {key: str(criteria[key]) for key in SMART_KEYS if criteria and criteria.get(key)}


def _check_dates(start: datetime | None, due: datetime | None) -> None:
    if start is not None and due is not None and as_utc(due) < as_utc(start):
        raise ValidationError("Due date must be after start date")


# ---------------------------------------------------------------------------
# Lookup and access
# ---------------------------------------------------------------------------


async def get_goal_or_404(db: AsyncSession, goal_id: int) -> Goal:
    goal = await db.get(Goal, goal_id)
    if goal is None:
        raise NotFoundError("Goal not found", code="goal_not_found")
    return goal


async def goal_for_reader(db: AsyncSession, goal_id: int, user: User) -> tuple[Goal, Club]:
    goal = await get_goal_or_404(db, goal_id)
    club = await get_club_or_404(db, goal.club_id)
    enforce_club_role(club, user, ANY_MEMBER)
    return goal, club


def can_edit_goal(goal: Goal, club: Club, user: User) -> bool:
    return user.id in (goal.owner_id, goal.created_by) or is_manager(club, user)


async def goal_for_editor(db: AsyncSession, goal_id: int, user: User) -> tuple[Goal, Club]:
    goal, club = await goal_for_reader(db, goal_id, user)
    if not can_edit_goal(goal, club, user):
        raise AuthorizationError("Only the goal owner or a club admin can change this goal", code="insufficient_role")
    return goal, club


async def goal_counts(db: AsyncSession, goal_ids: list[int]) -> dict[int, GoalCounts]:
    """Objective and linked-task totals per goal, two grouped queries."""
    if not goal_ids:
        return {}
    objectives = await db.execute(
        select(
            Objective.goal_id,
            func.count(Objective.id),
            func.sum(case((Objective.status == "completed", 1), else_=0)),
        )
        .where(Objective.goal_id.in_(goal_ids))
        .group_by(Objective.goal_id)
    )
    tasks = await db.execute(
        select(
            EnhancedTask.goal_id,
            func.count(EnhancedTask.id),
            func.sum(case((EnhancedTask.status == "completed", 1), else_=0)),
        )
        .where(EnhancedTask.goal_id.in_(goal_ids))
        .group_by(EnhancedTask.goal_id)
    )
    obj_rows = {gid: (total, int(done or 0)) for gid, total, done in objectives.all()}
    task_rows = {gid: (total, int(done or 0)) for gid, total, done in tasks.all()}
    return {
        gid: GoalCounts(
            objectives=obj_rows.get(gid, (0, 0))[0],
            completed_objectives=obj_rows.get(gid, (0, 0))[1],
            tasks=task_rows.get(gid, (0, 0))[0],
            completed_tasks=task_rows.get(gid, (0, 0))[1],
        )
        for gid in goal_ids
    }


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def list_goals(
    db: AsyncSession,
    club_id: int,
    user: User,
    status: str | None = None,
    priority: str | None = None,
    category: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> tuple[list[Goal], int]:
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)
    conditions = [Goal.club_id == club.id]
    if status:
        conditions.append(Goal.status == status)
    if priority:
        conditions.append(Goal.priority == priority)
    if category:
        conditions.append(Goal.category == category)

    total = (await db.execute(select(func.count()).select_from(Goal).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Goal)
        .where(*conditions)
        .order_by(Goal.created_at.desc(), Goal.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def create_goal(db: AsyncSession, club_id: int, user: User, data: dict[str, Any]) -> Goal:
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required")
    _choice(data.get("format"), FORMATS, "format")
    _choice(data.get("priority"), PRIORITIES, "priority")
    _choice(data.get("status"), STATUSES, "status")
    _check_dates(data.get("start_date"), data.get("due_date"))
    owner_id = data.get("owner_id") or user.id
    if owner_id != user.id and find_membership(club, owner_id) is None:
        raise ValidationError("Goal owner must be a club member")

    goal = Goal(
        club_id=club.id,
        title=title,
        description=data.get("description"),
        format=data.get("format") or "SMART",
        category=data.get("category"),
        priority=data.get("priority") or "medium",
        status=data.get("status") or "draft",
        progress=0,
        smart_criteria=_clean_smart(data.get("smart_criteria")),
        tags=list(data.get("tags") or []),
        estimated_hours=data.get("estimated_hours"),
        start_date=data.get("start_date"),
        due_date=data.get("due_date"),
        owner_id=owner_id,
        created_by=user.id,
    )
    db.add(goal)
    await db.flush()

    await log_activity(
        db,
        category="create",
        verb="created",
        object_="goal",
        actor_id=user.id,
        entity_type="goal",
        entity_id=goal.id,
        entity_name=goal.title,
        description=f'Created goal "{goal.title}"',
        club_id=club.id,
        goal_id=goal.id,
    )
    logger.info("goal_created", goal_id=goal.id, club_id=club.id, user_id=user.id)
    return goal


def _snapshot(goal: Goal, fields: list[str]) -> dict[str, Any]:
    return {field: getattr(goal, field) for field in fields}


async def update_goal(db: AsyncSession, goal_id: int, user: User, changes: dict[str, Any]) -> Goal:
    goal, club = await goal_for_editor(db, goal_id, user)

    _choice(changes.get("format"), FORMATS, "format")
    _choice(changes.get("priority"), PRIORITIES, "priority")
    _choice(changes.get("status"), STATUSES, "status")
    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise ValidationError("Title is required")
    if "smart_criteria" in changes:
        changes["smart_criteria"] = _clean_smart(changes["smart_criteria"])
    if changes.get("owner_id") is not None and find_membership(club, changes["owner_id"]) is None:
        raise ValidationError("Goal owner must be a club member")
    _check_dates(changes.get("start_date", goal.start_date), changes.get("due_date", goal.due_date))

    fields = [f for f in EDITABLE_FIELDS if f in changes]
    before = _snapshot(goal, fields)
    for field in fields:
        setattr(goal, field, changes[field])
    if goal.status == "completed" and goal.completed_at is None:
        goal.completed_at = utcnow()
    elif goal.status != "completed":
        goal.completed_at = None
    await db.flush()

    await log_activity(
        db,
        category="update",
        verb="updated",
        object_="goal",
        actor_id=user.id,
        entity_type="goal",
        entity_id=goal.id,
        entity_name=goal.title,
        description=f'Updated goal "{goal.title}"',
        club_id=goal.club_id,
        goal_id=goal.id,
        changes=diff_changes(before, _snapshot(goal, fields)),
    )
    return goal


async def delete_goal(db: AsyncSession, goal_id: int, user: User) -> None:
    """Delete a goal with its objectives; linked tasks stay and lose the link."""
    goal, _ = await goal_for_editor(db, goal_id, user)
    await log_activity(
        db,
        category="delete",
        verb="deleted",
        object_="goal",
        actor_id=user.id,
        entity_type="goal",
        entity_id=goal.id,
        entity_name=goal.title,
        description=f'Deleted goal "{goal.title}"',
        club_id=goal.club_id,
        goal_id=goal.id,
    )
    objective_ids = select(Objective.id).where(Objective.goal_id == goal.id)
    await db.execute(
        update(EnhancedTask)
        .where(EnhancedTask.goal_id == goal.id)
        .values(goal_id=None, objective_id=None)
        .execution_options(synchronize_session="fetch")
    )
    await db.execute(delete(KeyResult).where(KeyResult.objective_id.in_(objective_ids)))
    await db.execute(delete(Objective).where(Objective.goal_id == goal.id))
    await db.delete(goal)
    await db.flush()
    logger.info("goal_deleted", goal_id=goal_id, user_id=user.id)


async def update_goal_progress(
    db: AsyncSession, goal_id: int, user: User, progress: int, notes: str | None = None
) -> Goal:
    """Store a manual progress value; 100 completes the goal."""
    if not 0 <= progress <= 100:
        raise ValidationError("Progress must be between 0 and 100")
    goal, _ = await goal_for_editor(db, goal_id, user)

    old_progress = goal.progress
    goal.progress = progress
    if progress == 100 and goal.status != "completed":
        goal.status = "completed"
        goal.completed_at = utcnow()
    await db.flush()

    await log_activity(
        db,
        category="update",
        verb="updated progress for",
        object_="goal",
        actor_id=user.id,
        entity_type="goal",
        entity_id=goal.id,
        entity_name=goal.title,
        description=f'Updated progress from {old_progress}% to {progress}% for goal "{goal.title}"',
        club_id=goal.club_id,
        goal_id=goal.id,
        changes=diff_changes({"progress": old_progress}, {"progress": progress}),
        metadata={"oldProgress": old_progress, "newProgress": progress, "notes": notes},
    )
    return goal


# ---------------------------------------------------------------------------
# Analytics and duplication
# ---------------------------------------------------------------------------


async def goal_analytics(db: AsyncSession, goal_id: int, user: User) -> dict[str, Any]:
    goal, _ = await goal_for_reader(db, goal_id, user)
    objectives = list(
        (await db.execute(select(Objective).where(Objective.goal_id == goal.id).order_by(Objective.id))).scalars()
    )
    tasks = list(
        (await db.execute(select(EnhancedTask).where(EnhancedTask.goal_id == goal.id).order_by(EnhancedTask.id)))
        .scalars()
    )
    counts = GoalCounts(
        objectives=len(objectives),
        completed_objectives=sum(1 for o in objectives if o.status == "completed"),
        tasks=len(tasks),
        completed_tasks=sum(1 for t in tasks if t.status == "completed"),
    )
    now = utcnow()
    contributors = {a.user_id for t in tasks for a in t.assignees}

    return {
        "overview": {
            "totalObjectives": counts.objectives,
            "completedObjectives": counts.completed_objectives,
            "totalTasks": counts.tasks,
            "completedTasks": counts.completed_tasks,
            "overdueTasks": sum(
                1 for t in tasks if t.due_date and as_utc(t.due_date) < now and t.status != "completed"
            ),
            "progress": calculated_progress(goal, counts),
            "daysRemaining": days_remaining(goal),
            "isOverdue": is_overdue(goal, now),
        },
        "timeline": {
            "startDate": goal.start_date,
            "dueDate": goal.due_date,
            "completedAt": goal.completed_at,
            "estimatedHours": goal.estimated_hours,
            "actualHours": sum(t.actual_hours or 0.0 for t in tasks),
        },
        "team": {"owner": goal.owner_id, "activeContributors": len(contributors)},
        "progress": {
            "byObjective": [
                {"id": o.id, "title": o.title, "progress": o.progress, "status": o.status} for o in objectives
            ],
            "byTask": [
                {"id": t.id, "title": t.title, "progress": t.progress, "status": t.status, "priority": t.priority}
                for t in tasks
            ],
        },
    }


async def duplicate_goal(
    db: AsyncSession,
    goal_id: int,
    user: User,
    title: str | None = None,
    include_objectives: bool = True,
    include_tasks: bool = False,
) -> Goal:
    """Copy a goal as a fresh draft owned by the caller, optionally with objectives and tasks."""
    source, club = await goal_for_reader(db, goal_id, user)

    copy = Goal(
        club_id=club.id,
        title=(title or "").strip() or f"{source.title} (Copy)",
        description=source.description,
        format=source.format,
        category=source.category,
        priority=source.priority,
        status="draft",
        progress=0,
        smart_criteria=dict(source.smart_criteria or {}),
        tags=list(source.tags or []),
        estimated_hours=source.estimated_hours,
        start_date=source.start_date,
        due_date=source.due_date,
        owner_id=user.id,
        created_by=user.id,
    )
    db.add(copy)
    await db.flush()

    if include_objectives:
        result = await db.execute(select(Objective).where(Objective.goal_id == source.id).order_by(Objective.id))
        for objective in result.scalars():
            db.add(
                Objective(
                    goal_id=copy.id,
                    title=objective.title,
                    description=objective.description,
                    success_criteria=objective.success_criteria,
                    metric_type=objective.metric_type,
                    status="not_started",
                    progress=0,
                    start_date=objective.start_date,
                    due_date=objective.due_date,
                    created_by=user.id,
                    key_results=[
                        KeyResult(
                            title=kr.title,
                            description=kr.description,
                            target_value=kr.target_value,
                            current_value=0.0,
                            unit=kr.unit,
                            status="not-started",
                            due_date=kr.due_date,
                            owner_id=user.id,
                        )
                        for kr in objective.key_results
                    ],
                )
            )

    if include_tasks:
        result = await db.execute(select(EnhancedTask).where(EnhancedTask.goal_id == source.id).order_by(EnhancedTask.id))
        for task in result.scalars():
            db.add(
                EnhancedTask(
                    club_id=club.id,
                    goal_id=copy.id,
                    title=task.title,
                    description=task.description,
                    status="todo",
                    priority=task.priority,
                    progress=0,
                    start_date=task.start_date,
                    due_date=task.due_date,
                    estimated_hours=task.estimated_hours,
                    actual_hours=0.0,
                    labels=list(task.labels or []),
                    owner_id=user.id,
                    created_by=user.id,
                    assignees=[],
                    dependencies=[],
                    checklist_items=[],
                    comments=[],
                    time_entries=[],
                )
            )
    await db.flush()

    await log_activity(
        db,
        category="create",
        verb="duplicated",
        object_="goal",
        actor_id=user.id,
        entity_type="goal",
        entity_id=copy.id,
        entity_name=copy.title,
        description=f'Duplicated goal "{source.title}" as "{copy.title}"',
        club_id=club.id,
        goal_id=copy.id,
        metadata={"sourceGoalId": source.id},
    )
    return copy
