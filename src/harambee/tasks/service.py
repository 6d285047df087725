"""Personal and club task logic.

Access:
- personal task: creator or system admin, for reading and writing
- club task: any club member reads; club owner/admin writes
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.clubs.policy import ANY_MEMBER, MANAGERS, enforce_club_role, find_membership
from harambee.clubs.service import get_club, get_club_or_404
from harambee.db.models import Club, Task, TaskAssignee, TaskChecklistItem, TaskComment, TaskTimeLog, User
from harambee.errors import AuthorizationError, NotFoundError, ValidationError
from harambee.tasks.progress import apply_progress_rules
from harambee.timeutils import as_utc, utcnow

logger = structlog.get_logger()

TASK_TYPES = {"personal", "club"}
STATUSES = {"pending", "in-progress", "completed", "archived"}
PRIORITIES = {"low", "medium", "high"}
UPDATABLE_FIELDS = ("title", "description", "status", "priority", "progress", "due_date", "start_date",
                    "estimated_hours", "tags")


def _check_choice(value: str | None, allowed: set[str], field: str) -> None:
    if value is not None and value not in allowed:
        raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(sorted(allowed))}")


def _club_assignees(club: Club, user_ids: list[int] | None) -> list[int]:
    """Keep only ids that belong to club members, preserving order without duplicates."""
    kept: list[int] = []
    for uid in user_ids or []:
        if uid not in kept and find_membership(club, uid) is not None:
            kept.append(uid)
    return kept


async def get_task_or_404(db: AsyncSession, task_id: int) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found", code="task_not_found")
    return task


async def _task_club(db: AsyncSession, task: Task) -> Club:
    club = await get_club(db, task.club_id) if task.club_id is not None else None
    if club is None:
        raise NotFoundError("Club not found", code="club_not_found")
    return club


async def ensure_can_read(db: AsyncSession, task: Task, user: User) -> None:
    if task.type == "personal":
        if task.created_by != user.id and user.role != "admin":
            raise AuthorizationError("Access denied")
        return
    enforce_club_role(await _task_club(db, task), user, ANY_MEMBER)


async def ensure_can_write(db: AsyncSession, task: Task, user: User) -> Club | None:
    """Returns the task's club for club tasks."""
    if task.type == "personal":
        if task.created_by != user.id and user.role != "admin":
            raise AuthorizationError("Access denied")
        return None
    club = await _task_club(db, task)
    enforce_club_role(club, user, MANAGERS)
    return club


async def get_task(db: AsyncSession, task_id: int, user: User) -> Task:
    task = await get_task_or_404(db, task_id)
    await ensure_can_read(db, task, user)
    return task


async def list_user_tasks(
    db: AsyncSession,
    user: User,
    page: int = 1,
    per_page: int = 10,
    type_: str | None = None,
    status: str | None = None,
    priority: str | None = None,
) -> tuple[list[Task], int]:
    """Tasks the user created or is assigned to, newest first."""
    assigned = select(TaskAssignee.task_id).where(TaskAssignee.user_id == user.id)
    conditions = [or_(Task.created_by == user.id, Task.id.in_(assigned))]
    if type_:
        conditions.append(Task.type == type_)
    if status:
        conditions.append(Task.status == status)
    if priority:
        conditions.append(Task.priority == priority)

    total = (await db.execute(select(func.count()).select_from(Task).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Task)
        .where(*conditions)
        .order_by(Task.created_at.desc(), Task.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def list_club_tasks(db: AsyncSession, club_id: int, user: User, status: str | None = None) -> list[Task]:
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)
    query = select(Task).where(Task.club_id == club.id)
    if status:
        query = query.where(Task.status == status)
    result = await db.execute(query.order_by(Task.created_at.desc(), Task.id.desc()))
    return list(result.scalars().all())


async def create_task(db: AsyncSession, user: User, data: dict[str, Any]) -> Task:
    """Create a personal task, or a club task when ``type == 'club'``."""
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required")
    type_ = data.get("type") or "personal"
    _check_choice(type_, TASK_TYPES, "type")
    _check_choice(data.get("priority"), PRIORITIES, "priority")
    _check_choice(data.get("status"), STATUSES, "status")

    task = Task(
        type=type_,
        title=title,
        description=(data.get("description") or "").strip() or None,
        status=data.get("status") or "pending",
        priority=data.get("priority") or "medium",
        progress=data.get("progress") or 0,
        due_date=data.get("due_date"),
        start_date=data.get("start_date"),
        estimated_hours=data.get("estimated_hours"),
        actual_hours=0.0,
        tags=list(data.get("tags") or []),
        created_by=user.id,
        assignees=[],
        checklist_items=[],
        comments=[],
        time_logs=[],
    )

    if type_ == "club":
        club_id = data.get("club_id")
        if club_id is None:
            raise ValidationError("Club is required for club tasks")
        club = await get_club(db, club_id)
        if club is None or club.status != "approved":
            raise NotFoundError("Club not found or not approved", code="club_not_found")
        enforce_club_role(club, user, MANAGERS)
        task.club_id = club.id
        task.assignees = [TaskAssignee(user_id=uid) for uid in _club_assignees(club, data.get("assigned_to"))]

    for position, text in enumerate(data.get("checklist") or []):
        if text and text.strip():
            task.checklist_items.append(TaskChecklistItem(text=text.strip(), position=position))

    apply_progress_rules(task)
    db.add(task)
    await db.flush()
    logger.info("task_created", task_id=task.id, type=type_, club_id=task.club_id, user_id=user.id)
    return task


async def update_task(db: AsyncSession, task_id: int, user: User, changes: dict[str, Any]) -> Task:
    task = await get_task_or_404(db, task_id)
    club = await ensure_can_write(db, task, user)

    _check_choice(changes.get("status"), STATUSES, "status")
    _check_choice(changes.get("priority"), PRIORITIES, "priority")
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationError("Title is required")
        changes["title"] = title

    for field in UPDATABLE_FIELDS:
        if field in changes and (changes[field] is not None or field in ("description", "due_date", "start_date")):
            setattr(task, field, changes[field])
    if "assigned_to" in changes and club is not None:
        task.assignees = [TaskAssignee(user_id=uid) for uid in _club_assignees(club, changes["assigned_to"])]

    apply_progress_rules(task)
    await db.flush()
    return task


async def delete_task(db: AsyncSession, task_id: int, user: User) -> None:
    task = await get_task_or_404(db, task_id)
    await ensure_can_write(db, task, user)
    await db.delete(task)
    await db.flush()
    logger.info("task_deleted", task_id=task_id, user_id=user.id)


async def set_progress(db: AsyncSession, task_id: int, user: User, progress: int) -> Task:
    if not 0 <= progress <= 100:
        raise ValidationError("Progress must be between 0 and 100")
    task = await get_task_or_404(db, task_id)
    await ensure_can_write(db, task, user)
    task.progress = progress
    apply_progress_rules(task)
    await db.flush()
    return task


# ---------------------------------------------------------------------------
# Comments, time log, checklist (any reader may contribute)
# ---------------------------------------------------------------------------


async def add_comment(db: AsyncSession, task_id: int, user: User, text: str) -> TaskComment:
    task = await get_task(db, task_id, user)
    text = (text or "").strip()
    if not text:
        raise ValidationError("Comment text is required")
    comment = TaskComment(text=text, author_id=user.id)
    task.comments.append(comment)
    await db.flush()
    return comment


async def log_time(
    db: AsyncSession, task_id: int, user: User, hours: float, description: str | None = None
) -> Task:
    """Record hours worked; ``actual_hours`` accumulates."""
    if hours is None or hours <= 0:
        raise ValidationError("Hours must be greater than 0")
    task = await get_task(db, task_id, user)
    task.time_logs.append(TaskTimeLog(user_id=user.id, hours=hours, description=description, logged_at=utcnow()))
    task.actual_hours = (task.actual_hours or 0.0) + hours
    await db.flush()
    return task


async def add_checklist_item(db: AsyncSession, task_id: int, user: User, text: str) -> Task:
    task = await get_task(db, task_id, user)
    text = (text or "").strip()
    if not text:
        raise ValidationError("Checklist item text is required")
    position = max((item.position for item in task.checklist_items), default=-1) + 1
    task.checklist_items.append(TaskChecklistItem(text=text, position=position))
    await db.flush()
    return task


async def toggle_checklist_item(db: AsyncSession, task_id: int, item_id: int, user: User) -> Task:
    """Flip one item; task progress follows the checklist upwards."""
    task = await get_task(db, task_id, user)
    item = next((i for i in task.checklist_items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Checklist item not found", code="checklist_item_not_found")

    item.completed = not item.completed
    item.completed_at = utcnow() if item.completed else None
    item.completed_by = user.id if item.completed else None
    apply_progress_rules(task)
    await db.flush()
    return task


# ---------------------------------------------------------------------------
# Derived fields
# ---------------------------------------------------------------------------


def is_overdue(task: Task, now: datetime | None = None) -> bool:
    due = as_utc(task.due_date)
    return due is not None and (now or utcnow()) > due and task.status != "completed"


def total_time_logged(task: Task) -> float:
    return sum(log.hours for log in task.time_logs)
