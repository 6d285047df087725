"""Enhanced club tasks: the work items under goals and objectives.

Reads need club membership. Updates need the task owner, an assignee or a
club owner/admin; deletes need the owner or a club owner/admin.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.activity.service import diff_changes, log_activity
from harambee.clubs.policy import ANY_MEMBER, enforce_club_role, find_membership, is_manager
from harambee.clubs.service import get_club_or_404
from harambee.db.models import (
    Club,
    EnhancedChecklistItem,
    EnhancedTask,
    EnhancedTaskAssignee,
    EnhancedTaskComment,
    EnhancedTaskDependency,
    Goal,
    Objective,
    TimeEntry,
    User,
)
from harambee.errors import AuthorizationError, NotFoundError, ValidationError
from harambee.tasks.progress import apply_progress_rules, checklist_progress, percent
from harambee.timeutils import as_utc, days_until, utcnow

logger = structlog.get_logger()

STATUSES = {"todo", "in-progress", "review", "completed", "cancelled", "blocked"}
PRIORITIES = {"low", "medium", "high", "critical"}
DEPENDENCY_TYPES = {"finish-to-start", "start-to-start", "finish-to-finish", "start-to-finish"}
BULK_ACTIONS = {"update_status", "assign", "delete", "move"}
MAX_COMMENT_LENGTH = 2000
UPDATABLE_FIELDS = ("title", "description", "status", "priority", "progress", "start_date", "due_date",
                    "estimated_hours", "labels", "recurrence", "owner_id", "goal_id", "objective_id")


def _check_choice(value: str | None, allowed: set[str], field: str) -> None:
    if value is not None and value not in allowed:
        raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(sorted(allowed))}")


def _member_ids(club: Club, user_ids: list[int] | None) -> list[int]:
    kept: list[int] = []
    for uid in user_ids or []:
        if uid not in kept and find_membership(club, uid) is not None:
            kept.append(uid)
    return kept


def assignee_ids(task: EnhancedTask) -> list[int]:
    return [a.user_id for a in task.assignees]


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


def is_overdue(task: EnhancedTask, now: datetime | None = None) -> bool:
    due = as_utc(task.due_date)
    return due is not None and due < (now or utcnow()) and task.status != "completed"


def days_remaining(task: EnhancedTask) -> int | None:
    if task.status == "completed":
        return None
    return days_until(task.due_date)


def total_minutes(task: EnhancedTask) -> int:
    return sum(entry.duration_minutes or 0 for entry in task.time_entries)


def dependency_satisfied(dep: EnhancedTaskDependency, prerequisite: EnhancedTask | None, now: datetime) -> bool:
    """Whether one dependency allows the dependent task to start now.

    finish-to-start waits for the prerequisite to complete, start-to-start for it
    to leave ``todo``; both honour ``lag_days``. The *-to-finish types constrain
    completion only and never block a start.
    """
    if prerequisite is None or dep.type in ("finish-to-finish", "start-to-finish"):
        return True
    lag = timedelta(days=dep.lag_days or 0)
    if dep.type == "finish-to-start":
        done_at = as_utc(prerequisite.completed_at)
        return prerequisite.status == "completed" and (done_at is None or done_at + lag <= now)
    if prerequisite.status == "todo":
        return False
    started = as_utc(prerequisite.start_date)
    return started is None or started + lag <= now


async def can_start(db: AsyncSession, task: EnhancedTask, now: datetime | None = None) -> bool:
    if not task.dependencies:
        return True
    now = now or utcnow()
    ids = [dep.depends_on_id for dep in task.dependencies]
    result = await db.execute(select(EnhancedTask).where(EnhancedTask.id.in_(ids)))
    prerequisites = {t.id: t for t in result.scalars()}
    return all(dependency_satisfied(dep, prerequisites.get(dep.depends_on_id), now) for dep in task.dependencies)


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


async def get_task_or_404(db: AsyncSession, task_id: int) -> EnhancedTask:
    task = await db.get(EnhancedTask, task_id)
    if task is None:
        raise NotFoundError("Task not found", code="task_not_found")
    return task


async def task_for_reader(db: AsyncSession, task_id: int, user: User) -> tuple[EnhancedTask, Club]:
    task = await get_task_or_404(db, task_id)
    club = await get_club_or_404(db, task.club_id)
    enforce_club_role(club, user, ANY_MEMBER)
    return task, club


def can_update(task: EnhancedTask, club: Club, user: User) -> bool:
    return user.id == task.owner_id or user.id in assignee_ids(task) or is_manager(club, user)


def can_delete(task: EnhancedTask, club: Club, user: User) -> bool:
    return user.id == task.owner_id or is_manager(club, user)


async def task_for_updater(db: AsyncSession, task_id: int, user: User) -> tuple[EnhancedTask, Club]:
    task, club = await task_for_reader(db, task_id, user)
    if not can_update(task, club, user):
        raise AuthorizationError("Permission denied", code="insufficient_role")
    return task, club


async def _check_links(db: AsyncSession, club: Club, data: dict[str, Any]) -> None:
    """Goal, objective and parent references must stay inside the club."""
    goal_id = data.get("goal_id")
    if goal_id is not None:
        goal = await db.get(Goal, goal_id)
        if goal is None or goal.club_id != club.id:
            raise ValidationError("Goal not found in this club")
    objective_id = data.get("objective_id")
    if objective_id is not None:
        objective = await db.get(Objective, objective_id)
        goal = await db.get(Goal, objective.goal_id) if objective is not None else None
        if goal is None or goal.club_id != club.id:
            raise ValidationError("Objective not found in this club")
    parent_id = data.get("parent_id")
    if parent_id is not None:
        parent = await db.get(EnhancedTask, parent_id)
        if parent is None or parent.club_id != club.id:
            raise ValidationError("Parent task not found in this club")


async def _dependencies(
    db: AsyncSession, club: Club, items: list[dict[str, Any]], task_id: int | None = None
) -> list[EnhancedTaskDependency]:
    deps: list[EnhancedTaskDependency] = []
    seen: set[int] = set()
    for item in items:
        target = item.get("task_id")
        type_ = item.get("type") or "finish-to-start"
        _check_choice(type_, DEPENDENCY_TYPES, "dependency type")
        if target is None or target in seen:
            continue
        if target == task_id:
            raise ValidationError("A task cannot depend on itself")
        prerequisite = await db.get(EnhancedTask, target)
        if prerequisite is None or prerequisite.club_id != club.id:
            raise ValidationError("Dependency task not found in this club")
        seen.add(target)
        deps.append(EnhancedTaskDependency(depends_on_id=target, type=type_, lag_days=int(item.get("lag_days") or 0)))
    return deps


async def _log(db: AsyncSession, task: EnhancedTask, user: User, category: str, verb: str, description: str,
               **extra: Any) -> None:
    await log_activity(
        db,
        category=category,
        verb=verb,
        object_="task",
        actor_id=user.id,
        entity_type="task",
        entity_id=task.id,
        entity_name=task.title,
        description=description,
        club_id=task.club_id,
        goal_id=task.goal_id,
        objective_id=task.objective_id,
        task_id=task.id,
        **extra,
    )


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def list_tasks(
    db: AsyncSession,
    club_id: int,
    user: User,
    filters: dict[str, Any] | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[EnhancedTask], int]:
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)

    filters = filters or {}
    conditions = [EnhancedTask.club_id == club.id]
    for field in ("status", "priority", "owner_id", "goal_id", "objective_id", "parent_id"):
        if filters.get(field) is not None:
            conditions.append(getattr(EnhancedTask, field) == filters[field])
    if filters.get("assigned_to") is not None:
        conditions.append(
            EnhancedTask.id.in_(
                select(EnhancedTaskAssignee.task_id).where(EnhancedTaskAssignee.user_id == filters["assigned_to"])
            )
        )

    total = (await db.execute(select(func.count()).select_from(EnhancedTask).where(*conditions))).scalar_one()
    result = await db.execute(
        select(EnhancedTask)
        .where(*conditions)
        .order_by(EnhancedTask.created_at.desc(), EnhancedTask.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def create_task(db: AsyncSession, club_id: int, user: User, data: dict[str, Any]) -> EnhancedTask:
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required")
    _check_choice(data.get("status"), STATUSES, "status")
    _check_choice(data.get("priority"), PRIORITIES, "priority")
    if data.get("progress") is not None and not 0 <= data["progress"] <= 100:
        raise ValidationError("Progress must be between 0 and 100")
    await _check_links(db, club, data)
    owner_id = data.get("owner_id") or user.id
    if find_membership(club, owner_id) is None:
        raise ValidationError("Task owner must be a club member")

    task = EnhancedTask(
        club_id=club.id,
        goal_id=data.get("goal_id"),
        objective_id=data.get("objective_id"),
        parent_id=data.get("parent_id"),
        title=title,
        description=data.get("description"),
        status=data.get("status") or "todo",
        priority=data.get("priority") or "medium",
        progress=data.get("progress") or 0,
        start_date=data.get("start_date"),
        due_date=data.get("due_date"),
        estimated_hours=data.get("estimated_hours"),
        actual_hours=0.0,
        labels=list(data.get("labels") or []),
        recurrence=data.get("recurrence"),
        owner_id=owner_id,
        created_by=user.id,
        assignees=[EnhancedTaskAssignee(user_id=uid) for uid in _member_ids(club, data.get("assigned_to"))],
        dependencies=await _dependencies(db, club, data.get("dependencies") or []),
        checklist_items=[
            EnhancedChecklistItem(title=text.strip(), position=position)
            for position, text in enumerate(t for t in data.get("checklist") or [] if t and t.strip())
        ],
        comments=[],
        time_entries=[],
    )
    apply_progress_rules(task)
    db.add(task)
    await db.flush()

    await _log(db, task, user, "create", "created", f'Created task "{task.title}" in {club.name}')
    logger.info("enhanced_task_created", task_id=task.id, club_id=club.id, user_id=user.id)
    return task


async def update_task(db: AsyncSession, task_id: int, user: User, changes: dict[str, Any]) -> EnhancedTask:
    task, club = await task_for_updater(db, task_id, user)

    _check_choice(changes.get("status"), STATUSES, "status")
    _check_choice(changes.get("priority"), PRIORITIES, "priority")
    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise ValidationError("Title is required")
    if changes.get("progress") is not None and not 0 <= changes["progress"] <= 100:
        raise ValidationError("Progress must be between 0 and 100")
    if changes.get("owner_id") is not None and find_membership(club, changes["owner_id"]) is None:
        raise ValidationError("Task owner must be a club member")
    await _check_links(db, club, changes)

    fields = [f for f in UPDATABLE_FIELDS if f in changes]
    before = {f: getattr(task, f) for f in fields}
    for field in fields:
        setattr(task, field, changes[field])
    if "assigned_to" in changes:
        task.assignees = [EnhancedTaskAssignee(user_id=uid) for uid in _member_ids(club, changes["assigned_to"])]
    if "dependencies" in changes:
        task.dependencies = await _dependencies(db, club, changes["dependencies"] or [], task_id=task.id)

    apply_progress_rules(task)
    await db.flush()

    diff = diff_changes(before, {f: getattr(task, f) for f in fields})
    completed_now = before.get("status") != "completed" and task.status == "completed"
    await _log(
        db,
        task,
        user,
        "complete" if completed_now else "update",
        "completed" if completed_now else "updated",
        f'{"Completed" if completed_now else "Updated"} task "{task.title}"',
        changes=diff,
    )
    return task


async def delete_task(db: AsyncSession, task_id: int, user: User) -> None:
    """Delete a task and its subtasks; other tasks drop their dependency on it."""
    task, club = await task_for_reader(db, task_id, user)
    if not can_delete(task, club, user):
        raise AuthorizationError("Permission denied", code="insufficient_role")

    doomed = [task.id]
    result = await db.execute(select(EnhancedTask).where(EnhancedTask.parent_id == task.id))
    subtasks = list(result.scalars().all())
    doomed.extend(s.id for s in subtasks)
    await db.execute(
        delete(EnhancedTaskDependency)
        .where(EnhancedTaskDependency.depends_on_id.in_(doomed))
        .execution_options(synchronize_session="fetch")
    )
    await _log(db, task, user, "delete", "deleted", f'Deleted task "{task.title}"')
    for subtask in subtasks:
        await db.delete(subtask)
    await db.delete(task)
    await db.flush()
    logger.info("enhanced_task_deleted", task_id=task_id, subtasks=len(subtasks), user_id=user.id)


# ---------------------------------------------------------------------------
# Comments, time, checklist
# ---------------------------------------------------------------------------


async def add_comment(
    db: AsyncSession, task_id: int, user: User, content: str, mentions: list[int] | None = None
) -> EnhancedTaskComment:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment content is required")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters")
    task, club = await task_for_reader(db, task_id, user)

    comment = EnhancedTaskComment(content=content, author_id=user.id, mentions=_member_ids(club, mentions))
    task.comments.append(comment)
    await db.flush()
    await _log(
        db, task, user, "comment", "commented on", f'Added comment to task "{task.title}"',
        metadata={"mentions": comment.mentions},
    )
    return comment


async def log_time(
    db: AsyncSession,
    task_id: int,
    user: User,
    minutes: int | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    description: str | None = None,
) -> TimeEntry:
    """Record a time entry from a minute count or a start/end pair; ``actual_hours`` follows the total."""
    task, club = await task_for_updater(db, task_id, user)

    if minutes is None:
        if start_time is None or end_time is None:
            raise ValidationError("Provide minutes or both start and end time")
        start, end = as_utc(start_time), as_utc(end_time)
        if end <= start:
            raise ValidationError("End time must be after start time")
        minutes = math.floor((end - start).total_seconds() / 60 + 0.5)
    if minutes <= 0:
        raise ValidationError("Duration must be greater than 0")
    if start_time is None:
        start_time = utcnow() - timedelta(minutes=minutes)
        end_time = end_time or utcnow()

    entry = TimeEntry(
        user_id=user.id, start_time=start_time, end_time=end_time, duration_minutes=minutes, description=description
    )
    task.time_entries.append(entry)
    task.actual_hours = total_minutes(task) / 60
    await db.flush()
    await _log(
        db, task, user, "update", "logged time for", f'Logged {minutes} minutes for task "{task.title}"',
        metadata={"minutes": minutes, "description": description},
    )
    return entry


async def add_checklist_item(
    db: AsyncSession,
    task_id: int,
    user: User,
    title: str,
    assigned_to: int | None = None,
    due_date: datetime | None = None,
) -> EnhancedTask:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Checklist item title is required")
    task, club = await task_for_updater(db, task_id, user)
    if assigned_to is not None and find_membership(club, assigned_to) is None:
        raise ValidationError("Checklist assignee must be a club member")
    position = max((item.position for item in task.checklist_items), default=-1) + 1
    task.checklist_items.append(
        EnhancedChecklistItem(title=title, position=position, assigned_to=assigned_to, due_date=due_date)
    )
    await db.flush()
    return task


async def toggle_checklist_item(db: AsyncSession, task_id: int, item_id: int, user: User) -> EnhancedTask:
    task, _ = await task_for_updater(db, task_id, user)
    item = next((i for i in task.checklist_items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Checklist item not found", code="checklist_item_not_found")

    item.completed = not item.completed
    item.completed_at = utcnow() if item.completed else None
    apply_progress_rules(task)
    await db.flush()
    verb = "completed" if item.completed else "uncompleted"
    await _log(
        db, task, user, "update", f"{verb} checklist item on",
        f'{verb.capitalize()} checklist item "{item.title}" in task "{task.title}"',
    )
    return task


# ---------------------------------------------------------------------------
# Analytics and bulk actions
# ---------------------------------------------------------------------------


async def task_analytics(db: AsyncSession, task_id: int, user: User) -> dict[str, Any]:
    task, _ = await task_for_reader(db, task_id, user)
    result = await db.execute(select(EnhancedTask.status).where(EnhancedTask.parent_id == task.id))
    subtask_statuses = list(result.scalars().all())
    done_subtasks = sum(1 for s in subtask_statuses if s == "completed")
    done_items = sum(1 for i in task.checklist_items if i.completed)

    actual_hours = total_minutes(task) / 60
    by_user: dict[str, float] = {}
    for entry in task.time_entries:
        key = str(entry.user_id)
        by_user[key] = by_user.get(key, 0.0) + (entry.duration_minutes or 0) / 60

    return {
        "overview": {
            "status": task.status,
            "progress": task.progress,
            "priority": task.priority,
            "isOverdue": is_overdue(task),
            "daysRemaining": days_remaining(task),
            "canStart": await can_start(db, task),
        },
        "time": {
            "estimatedHours": task.estimated_hours,
            "actualHours": actual_hours,
            "variance": actual_hours - task.estimated_hours if task.estimated_hours else 0,
            "timeByUser": by_user,
        },
        "completion": {
            "subtasks": {
                "total": len(subtask_statuses),
                "completed": done_subtasks,
                "percentage": percent(done_subtasks, len(subtask_statuses)),
            },
            "checklist": {
                "total": len(task.checklist_items),
                "completed": done_items,
                "percentage": checklist_progress(task) if task.checklist_items else 0,
            },
        },
        "engagement": {"totalComments": len(task.comments), "lastActivity": task.updated_at},
    }


async def bulk_action(
    db: AsyncSession, club_id: int, user: User, action: str, task_ids: list[int], data: dict[str, Any] | None = None
) -> dict[str, int]:
    """Apply one action to several club tasks. Returns ``{"affected", "total"}``."""
    if action not in BULK_ACTIONS:
        raise ValidationError("Invalid bulk action", code="invalid_action")
    if not task_ids:
        raise ValidationError("Task IDs array is required")
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)
    data = data or {}

    result = await db.execute(
        select(EnhancedTask).where(EnhancedTask.id.in_(task_ids), EnhancedTask.club_id == club.id)
    )
    tasks = list(result.scalars().all())

    if action == "update_status":
        _check_choice(data.get("status"), STATUSES, "status")
        if not data.get("status"):
            raise ValidationError("Status is required")
        for task in tasks:
            task.status = data["status"]
            apply_progress_rules(task)
    elif action == "assign":
        new_ids = _member_ids(club, data.get("assigned_to"))
        for task in tasks:
            current = assignee_ids(task)
            task.assignees.extend(EnhancedTaskAssignee(user_id=uid) for uid in new_ids if uid not in current)
    elif action == "delete":
        if not all(can_delete(task, club, user) for task in tasks):
            raise AuthorizationError("Permission denied for some tasks", code="insufficient_role")
        ids = [task.id for task in tasks]
        if ids:
            await db.execute(
                delete(EnhancedTaskDependency)
                .where(EnhancedTaskDependency.depends_on_id.in_(ids))
                .execution_options(synchronize_session="fetch")
            )
            await db.execute(
                update(EnhancedTask)
                .where(EnhancedTask.parent_id.in_(ids))
                .values(parent_id=None)
                .execution_options(synchronize_session="fetch")
            )
        for task in tasks:
            await db.delete(task)
    else:
        await _check_links(db, club, {"goal_id": data.get("goal_id"), "objective_id": data.get("objective_id")})
        for task in tasks:
            task.goal_id = data.get("goal_id")
            task.objective_id = data.get("objective_id")
    await db.flush()

    await log_activity(
        db,
        category="update",
        verb="performed bulk",
        object_="tasks",
        actor_id=user.id,
        entity_type="club",
        entity_id=club.id,
        entity_name=f"{len(task_ids)} tasks",
        description=f"Performed bulk {action} on {len(task_ids)} tasks",
        club_id=club.id,
        metadata={"action": action, "taskIds": list(task_ids), "data": data},
    )
    logger.info("enhanced_task_bulk_action", club_id=club.id, action=action, affected=len(tasks))
    return {"affected": len(tasks), "total": len(task_ids)}
