"""Objectives and their key results.

Key-result math lives in plain functions so it can be tested without a
database. Updating any key result persists the recomputed objective
progress; reads still report ``calculated_progress``.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.activity.service import diff_changes, log_activity
from harambee.clubs.policy import find_membership
from harambee.db.models import Club, EnhancedTask, KeyResult, Objective, User
from harambee.errors import NotFoundError, ValidationError
from harambee.planning.goal_service import goal_for_editor, goal_for_reader
from harambee.tasks.progress import percent
from harambee.timeutils import days_until, utcnow

logger = structlog.get_logger()

STATUSES = {"not_started", "in_progress", "completed"}
KEY_RESULT_STATUSES = {"not-started", "in-progress", "completed", "at-risk"}
AT_RISK_DAYS = 3
AT_RISK_BELOW = 80


def key_result_ratio(kr: KeyResult) -> float:
    """Completion of one key result as a percentage, capped at 100."""
    if not kr.target_value:
        return 0.0
    return min((kr.current_value or 0.0) / kr.target_value * 100, 100.0)


def key_result_status(kr: KeyResult, now: datetime | None = None) -> str:
    ratio = key_result_ratio(kr)
    if ratio >= 100:
        return "completed"
    remaining = days_until(kr.due_date, now)
    if remaining is not None and remaining <= AT_RISK_DAYS and ratio < AT_RISK_BELOW:
        return "at-risk"
    if ratio > 0:
        return "in-progress"
    return "not-started"


def key_results_progress(key_results: list[KeyResult]) -> int:
    """Rounded average of capped key-result ratios; 0 without key results."""
    if not key_results:
        return 0
    average = sum(key_result_ratio(kr) for kr in key_results) / len(key_results)
    return math.floor(average + 0.5)


def calculated_progress(objective: Objective, task_counts: tuple[int, int] = (0, 0)) -> int:
    if objective.key_results:
        return key_results_progress(objective.key_results)
    total, done = task_counts
    if total:
        return percent(done, total)
    return objective.progress or 0


def _apply_objective_progress(objective: Objective) -> None:
    objective.progress = key_results_progress(objective.key_results)
    if objective.progress == 100:
        objective.status = "completed"
        if objective.completed_at is None:
            objective.completed_at = utcnow()
    elif objective.progress > 0 and objective.status == "not_started":
        objective.status = "in_progress"


async def task_counts(db: AsyncSession, objective_ids: list[int]) -> dict[int, tuple[int, int]]:
    if not objective_ids:
        return {}
    result = await db.execute(
        select(
            EnhancedTask.objective_id,
            func.count(EnhancedTask.id),
            func.sum(case((EnhancedTask.status == "completed", 1), else_=0)),
        )
        .where(EnhancedTask.objective_id.in_(objective_ids))
        .group_by(EnhancedTask.objective_id)
    )
    return {oid: (total, int(done or 0)) for oid, total, done in result.all()}


# ---------------------------------------------------------------------------
# Objectives
# ---------------------------------------------------------------------------


async def get_objective_or_404(db: AsyncSession, objective_id: int) -> Objective:
    objective = await db.get(Objective, objective_id)
    if objective is None:
        raise NotFoundError("Objective not found", code="objective_not_found")
    return objective


async def objective_for_reader(db: AsyncSession, objective_id: int, user: User) -> tuple[Objective, Club]:
    objective = await get_objective_or_404(db, objective_id)
    _, club = await goal_for_reader(db, objective.goal_id, user)
    return objective, club


async def objective_for_editor(db: AsyncSession, objective_id: int, user: User) -> tuple[Objective, Club]:
    objective = await get_objective_or_404(db, objective_id)
    _, club = await goal_for_editor(db, objective.goal_id, user)
    return objective, club


async def list_objectives(db: AsyncSession, goal_id: int, user: User) -> list[Objective]:
    goal, _ = await goal_for_reader(db, goal_id, user)
    result = await db.execute(select(Objective).where(Objective.goal_id == goal.id).order_by(Objective.id))
    return list(result.scalars().all())


def _new_key_result(data: dict[str, Any], club: Club, user: User) -> KeyResult:
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Key result title is required")
    target = data.get("target_value")
    if target is None or target <= 0:
        raise ValidationError("Key result target must be greater than 0")
    owner_id = data.get("owner_id") or user.id
    if owner_id != user.id and find_membership(club, owner_id) is None:
        raise ValidationError("Key result owner must be a club member")
    kr = KeyResult(
        title=title,
        description=data.get("description"),
        target_value=float(target),
        current_value=float(data.get("current_value") or 0.0),
        unit=data.get("unit"),
        due_date=data.get("due_date"),
        owner_id=owner_id,
    )
    kr.status = key_result_status(kr)
    return kr


async def create_objective(db: AsyncSession, goal_id: int, user: User, data: dict[str, Any]) -> Objective:
    goal, club = await goal_for_editor(db, goal_id, user)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required")

    objective = Objective(
        goal_id=goal.id,
        title=title,
        description=data.get("description"),
        success_criteria=data.get("success_criteria"),
        metric_type=data.get("metric_type"),
        status="not_started",
        progress=0,
        start_date=data.get("start_date"),
        due_date=data.get("due_date"),
        created_by=user.id,
        key_results=[_new_key_result(kr, club, user) for kr in data.get("key_results") or []],
    )
    if objective.key_results:
        _apply_objective_progress(objective)
    db.add(objective)
    await db.flush()

    await log_activity(
        db,
        category="create",
        verb="created",
        object_="objective",
        actor_id=user.id,
        entity_type="objective",
        entity_id=objective.id,
        entity_name=objective.title,
        description=f'Created objective "{objective.title}"',
        club_id=club.id,
        goal_id=goal.id,
        objective_id=objective.id,
    )
    logger.info("objective_created", objective_id=objective.id, goal_id=goal.id, user_id=user.id)
    return objective


async def update_objective(db: AsyncSession, objective_id: int, user: User, changes: dict[str, Any]) -> Objective:
    objective, club = await objective_for_editor(db, objective_id, user)
    if changes.get("status") is not None and changes["status"] not in STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(STATUSES))}")
    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise ValidationError("Title is required")
    if changes.get("progress") is not None and not 0 <= changes["progress"] <= 100:
        raise ValidationError("Progress must be between 0 and 100")

    fields = [
        f
        for f in ("title", "description", "success_criteria", "metric_type", "status", "progress", "start_date", "due_date")
        if f in changes
    ]
    before = {f: getattr(objective, f) for f in fields}
    for field in fields:
        setattr(objective, field, changes[field])
    if objective.progress == 100:
        objective.status = "completed"
    if objective.status == "completed" and objective.completed_at is None:
        objective.completed_at = utcnow()
    elif objective.status != "completed":
        objective.completed_at = None
    await db.flush()

    await log_activity(
        db,
        category="complete" if objective.status == "completed" and before.get("status") != "completed" else "update",
        verb="updated",
        object_="objective",
        actor_id=user.id,
        entity_type="objective",
        entity_id=objective.id,
        entity_name=objective.title,
        description=f'Updated objective "{objective.title}"',
        club_id=club.id,
        goal_id=objective.goal_id,
        objective_id=objective.id,
        changes=diff_changes(before, {f: getattr(objective, f) for f in fields}),
    )
    return objective


async def delete_objective(db: AsyncSession, objective_id: int, user: User) -> None:
    objective, club = await objective_for_editor(db, objective_id, user)
    await db.execute(
        update(EnhancedTask)
        .where(EnhancedTask.objective_id == objective.id)
        .values(objective_id=None)
        .execution_options(synchronize_session="fetch")
    )
    await log_activity(
        db,
        category="delete",
        verb="deleted",
        object_="objective",
        actor_id=user.id,
        entity_type="objective",
        entity_id=objective.id,
        entity_name=objective.title,
        description=f'Deleted objective "{objective.title}"',
        club_id=club.id,
        goal_id=objective.goal_id,
        objective_id=objective.id,
    )
    await db.delete(objective)
    await db.flush()


# ---------------------------------------------------------------------------
# Key results
# ---------------------------------------------------------------------------


def _find_key_result(objective: Objective, kr_id: int) -> KeyResult:
    for kr in objective.key_results:
        if kr.id == kr_id:
            return kr
    raise NotFoundError("Key result not found", code="key_result_not_found")


async def _log_key_result(
    db: AsyncSession, objective: Objective, club: Club, user: User, verb: str, kr: KeyResult, **extra: Any
) -> None:
    await log_activity(
        db,
        category="update",
        verb=verb,
        object_="key result",
        actor_id=user.id,
        entity_type="objective",
        entity_id=objective.id,
        entity_name=objective.title,
        description=f'{verb.capitalize()} key result "{kr.title}" on objective "{objective.title}"',
        club_id=club.id,
        goal_id=objective.goal_id,
        objective_id=objective.id,
        **extra,
    )


async def add_key_result(db: AsyncSession, objective_id: int, user: User, data: dict[str, Any]) -> Objective:
    objective, club = await objective_for_editor(db, objective_id, user)
    kr = _new_key_result(data, club, user)
    objective.key_results.append(kr)
    _apply_objective_progress(objective)
    await db.flush()
    await _log_key_result(db, objective, club, user, "added", kr)
    return objective


async def update_key_result(
    db: AsyncSession, objective_id: int, kr_id: int, user: User, changes: dict[str, Any]
) -> Objective:
    objective, club = await objective_for_editor(db, objective_id, user)
    kr = _find_key_result(objective, kr_id)
    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise ValidationError("Key result title is required")
    if "target_value" in changes and (changes["target_value"] is None or changes["target_value"] <= 0):
        raise ValidationError("Key result target must be greater than 0")
    if changes.get("owner_id") is not None and find_membership(club, changes["owner_id"]) is None:
        raise ValidationError("Key result owner must be a club member")

    fields = [f for f in ("title", "description", "target_value", "current_value", "unit", "due_date", "owner_id")
              if f in changes]
    before = {f: getattr(kr, f) for f in fields}
    for field in fields:
        setattr(kr, field, changes[field])
    kr.status = key_result_status(kr)
    _apply_objective_progress(objective)
    await db.flush()
    await _log_key_result(
        db, objective, club, user, "updated", kr, changes=diff_changes(before, {f: getattr(kr, f) for f in fields})
    )
    return objective


async def update_key_result_progress(
    db: AsyncSession, objective_id: int, kr_id: int, user: User, current_value: float
) -> Objective:
    if current_value < 0:
        raise ValidationError("Current value cannot be negative")
    objective, club = await objective_for_editor(db, objective_id, user)
    kr = _find_key_result(objective, kr_id)
    old_value = kr.current_value
    old_progress = objective.progress
    kr.current_value = float(current_value)
    kr.status = key_result_status(kr)
    _apply_objective_progress(objective)
    await db.flush()
    await _log_key_result(
        db,
        objective,
        club,
        user,
        "updated progress for",
        kr,
        changes=diff_changes({"currentValue": old_value}, {"currentValue": kr.current_value}),
        metadata={"oldProgress": old_progress, "newProgress": objective.progress},
    )
    logger.info(
        "key_result_progress_updated", objective_id=objective.id, key_result_id=kr.id, progress=objective.progress
    )
    return objective


async def delete_key_result(db: AsyncSession, objective_id: int, kr_id: int, user: User) -> Objective:
    objective, club = await objective_for_editor(db, objective_id, user)
    kr = _find_key_result(objective, kr_id)
    objective.key_results.remove(kr)
    if objective.key_results:
        _apply_objective_progress(objective)
    await db.flush()
    await _log_key_result(db, objective, club, user, "removed", kr)
    return objective
