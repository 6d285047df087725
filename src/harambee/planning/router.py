"""Planning endpoints: /api/planning/* (goals, objectives, key results, enhanced tasks, activity)."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.activity.service import get_activity_analytics, get_activity_feed
from harambee.auth.dependencies import get_current_user
from harambee.clubs.policy import ANY_MEMBER, enforce_club_role
from harambee.clubs.service import get_club_or_404
from harambee.config import get_settings
from harambee.database import get_session
from harambee.db.models import ActivityLog, EnhancedTask, Goal, Objective, User
from harambee.planning import goal_service, objective_service, task_service
from harambee.planning.schemas import (
    ActivityChange,
    ActivityResponse,
    BulkTaskRequest,
    BulkTaskResponse,
    ChecklistRequest,
    CreateEnhancedTaskRequest,
    CreateGoalRequest,
    CreateObjectiveRequest,
    DependencyResponse,
    DuplicateGoalRequest,
    EnhancedChecklistResponse,
    EnhancedCommentResponse,
    EnhancedTaskResponse,
    GoalProgressRequest,
    GoalResponse,
    KeyResultProgressRequest,
    KeyResultRequest,
    KeyResultResponse,
    ObjectiveResponse,
    TaskCommentRequest,
    TimeEntryRequest,
    TimeEntryResponse,
    UpdateEnhancedTaskRequest,
    UpdateGoalRequest,
    UpdateKeyResultRequest,
    UpdateObjectiveRequest,
)
from harambee.schemas import Envelope, Message, Page, paginate, resolve_limit
from harambee.tasks.progress import checklist_progress

router = APIRouter(prefix="/api/planning", tags=["Planning"])


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------


def build_goal_response(goal: Goal, counts: goal_service.GoalCounts) -> GoalResponse:
    return GoalResponse(
        id=goal.id,
        club_id=goal.club_id,
        title=goal.title,
        description=goal.description,
        format=goal.format,
        category=goal.category,
        priority=goal.priority,
        status=goal.status,
        progress=goal.progress,
        calculated_progress=goal_service.calculated_progress(goal, counts),
        smart_criteria=dict(goal.smart_criteria or {}),
        tags=list(goal.tags or []),
        estimated_hours=goal.estimated_hours,
        start_date=goal.start_date,
        due_date=goal.due_date,
        completed_at=goal.completed_at,
        owner_id=goal.owner_id,
        created_by=goal.created_by,
        objective_count=counts.objectives,
        task_count=counts.tasks,
        is_overdue=goal_service.is_overdue(goal),
        days_remaining=goal_service.days_remaining(goal),
        created_at=goal.created_at,
        updated_at=goal.updated_at,
    )


async def _goal_payload(db: AsyncSession, goal: Goal) -> GoalResponse:
    counts = await goal_service.goal_counts(db, [goal.id])
    return build_goal_response(goal, counts[goal.id])


def build_objective_response(objective: Objective, task_counts: tuple[int, int] = (0, 0)) -> ObjectiveResponse:
    return ObjectiveResponse(
        id=objective.id,
        goal_id=objective.goal_id,
        title=objective.title,
        description=objective.description,
        success_criteria=objective.success_criteria,
        metric_type=objective.metric_type,
        status=objective.status,
        progress=objective.progress,
        calculated_progress=objective_service.calculated_progress(objective, task_counts),
        key_results=[
            KeyResultResponse(
                id=kr.id,
                title=kr.title,
                description=kr.description,
                target_value=kr.target_value,
                current_value=kr.current_value,
                unit=kr.unit,
                status=kr.status,
                progress=round(objective_service.key_result_ratio(kr)),
                due_date=kr.due_date,
                owner_id=kr.owner_id,
            )
            for kr in objective.key_results
        ],
        start_date=objective.start_date,
        due_date=objective.due_date,
        completed_at=objective.completed_at,
        created_by=objective.created_by,
        created_at=objective.created_at,
        updated_at=objective.updated_at,
    )


async def _objective_payload(db: AsyncSession, objective: Objective) -> ObjectiveResponse:
    counts = await objective_service.task_counts(db, [objective.id])
    return build_objective_response(objective, counts.get(objective.id, (0, 0)))


async def build_task_response(db: AsyncSession, task: EnhancedTask) -> EnhancedTaskResponse:
    return EnhancedTaskResponse(
        id=task.id,
        club_id=task.club_id,
        goal_id=task.goal_id,
        objective_id=task.objective_id,
        parent_id=task.parent_id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        progress=task.progress,
        start_date=task.start_date,
        due_date=task.due_date,
        completed_at=task.completed_at,
        estimated_hours=task.estimated_hours,
        actual_hours=task.actual_hours,
        labels=list(task.labels or []),
        recurrence=task.recurrence,
        owner_id=task.owner_id,
        created_by=task.created_by,
        assigned_to=task_service.assignee_ids(task),
        dependencies=[
            DependencyResponse(task_id=d.depends_on_id, type=d.type, lag_days=d.lag_days) for d in task.dependencies
        ],
        checklist=[EnhancedChecklistResponse.model_validate(i) for i in task.checklist_items],
        comments=[EnhancedCommentResponse.model_validate(c) for c in task.comments],
        time_entries=[TimeEntryResponse.model_validate(e) for e in task.time_entries],
        checklist_progress=checklist_progress(task),
        total_time_spent=task_service.total_minutes(task),
        is_overdue=task_service.is_overdue(task),
        days_remaining=task_service.days_remaining(task),
        can_start=await task_service.can_start(db, task),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def build_activity_response(entry: ActivityLog) -> ActivityResponse:
    return ActivityResponse(
        id=entry.id,
        category=entry.action_category,
        verb=entry.action_verb,
        object=entry.action_object,
        actor_id=entry.actor_id,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        entity_name=entry.entity_name,
        description=entry.description,
        club_id=entry.club_id,
        goal_id=entry.goal_id,
        objective_id=entry.objective_id,
        task_id=entry.task_id,
        changes=[
            ActivityChange(
                field=c.get("field", ""),
                old_value=c.get("oldValue"),
                new_value=c.get("newValue"),
                field_type=c.get("fieldType"),
            )
            for c in entry.changes or []
        ],
        metadata=dict(entry.activity_metadata or {}),
        visibility=entry.visibility,
        source=entry.source,
        timestamp=entry.timestamp,
    )


def _goal_fields(body: CreateGoalRequest | UpdateGoalRequest, exclude_unset: bool = False) -> dict:
    fields = body.model_dump(exclude_unset=exclude_unset, exclude={"smart_criteria"})
    if body.smart_criteria is not None:
        fields["smart_criteria"] = body.smart_criteria.model_dump(by_alias=True, exclude_none=True)
    return fields


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


@router.get("/clubs/{club_id}/goals", response_model=Envelope[Page[GoalResponse]])
async def list_goals(
    club_id: int,
    status: str | None = Query(None),
    priority: str | None = Query(None),
    category: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit)
    goals, total = await goal_service.list_goals(db, club_id, user, status, priority, category, page, limit)
    counts = await goal_service.goal_counts(db, [g.id for g in goals])
    items = [build_goal_response(g, counts[g.id]) for g in goals]
    return {"data": paginate(items, total, page, limit)}


@router.post("/clubs/{club_id}/goals", response_model=Envelope[GoalResponse], status_code=201)
async def create_goal(
    club_id: int,
    body: CreateGoalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    goal = await goal_service.create_goal(db, club_id, user, _goal_fields(body))
    await db.commit()
    return {"data": build_goal_response(goal, goal_service.GoalCounts())}


@router.get("/goals/{goal_id}", response_model=Envelope[GoalResponse])
async def get_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    goal, _ = await goal_service.goal_for_reader(db, goal_id, user)
    return {"data": await _goal_payload(db, goal)}


@router.put("/goals/{goal_id}", response_model=Envelope[GoalResponse])
async def update_goal(
    goal_id: int,
    body: UpdateGoalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    goal = await goal_service.update_goal(db, goal_id, user, _goal_fields(body, exclude_unset=True))
    await db.commit()
    return {"data": await _goal_payload(db, goal)}


@router.delete("/goals/{goal_id}", response_model=Envelope[Message])
async def delete_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await goal_service.delete_goal(db, goal_id, user)
    await db.commit()
    return {"data": Message(message="Goal deleted successfully")}


@router.post("/goals/{goal_id}/progress", response_model=Envelope[GoalResponse])
async def update_goal_progress(
    goal_id: int,
    body: GoalProgressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    goal = await goal_service.update_goal_progress(db, goal_id, user, body.progress, body.notes)
    await db.commit()
    return {"data": await _goal_payload(db, goal)}


@router.get("/goals/{goal_id}/analytics", response_model=Envelope[dict])
async def goal_analytics(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"data": await goal_service.goal_analytics(db, goal_id, user)}


@router.post("/goals/{goal_id}/duplicate", response_model=Envelope[GoalResponse], status_code=201)
async def duplicate_goal(
    goal_id: int,
    body: DuplicateGoalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    goal = await goal_service.duplicate_goal(
        db, goal_id, user, body.title, body.include_objectives, body.include_tasks
    )
    await db.commit()
    return {"data": await _goal_payload(db, goal)}


# ---------------------------------------------------------------------------
# Objectives and key results
# ---------------------------------------------------------------------------


@router.get("/goals/{goal_id}/objectives", response_model=Envelope[list[ObjectiveResponse]])
async def list_objectives(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objectives = await objective_service.list_objectives(db, goal_id, user)
    counts = await objective_service.task_counts(db, [o.id for o in objectives])
    return {"data": [build_objective_response(o, counts.get(o.id, (0, 0))) for o in objectives]}


@router.post("/goals/{goal_id}/objectives", response_model=Envelope[ObjectiveResponse], status_code=201)
async def create_objective(
    goal_id: int,
    body: CreateObjectiveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objective = await objective_service.create_objective(db, goal_id, user, body.model_dump())
    await db.commit()
    return {"data": build_objective_response(objective)}


@router.get("/objectives/{objective_id}", response_model=Envelope[ObjectiveResponse])
async def get_objective(
    objective_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objective, _ = await objective_service.objective_for_reader(db, objective_id, user)
    return {"data": await _objective_payload(db, objective)}


@router.put("/objectives/{objective_id}", response_model=Envelope[ObjectiveResponse])
async def update_objective(
    objective_id: int,
    body: UpdateObjectiveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objective = await objective_service.update_objective(
        db, objective_id, user, body.model_dump(exclude_unset=True)
    )
    await db.commit()
    return {"data": await _objective_payload(db, objective)}


@router.delete("/objectives/{objective_id}", response_model=Envelope[Message])
async def delete_objective(
    objective_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await objective_service.delete_objective(db, objective_id, user)
    await db.commit()
    return {"data": Message(message="Objective deleted successfully")}


@router.post("/objectives/{objective_id}/key-results", response_model=Envelope[ObjectiveResponse], status_code=201)
async def add_key_result(
    objective_id: int,
    body: KeyResultRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objective = await objective_service.add_key_result(db, objective_id, user, body.model_dump())
    await db.commit()
    return {"data": await _objective_payload(db, objective)}


@router.put("/objectives/{objective_id}/key-results/{kr_id}", response_model=Envelope[ObjectiveResponse])
async def update_key_result(
    objective_id: int,
    kr_id: int,
    body: UpdateKeyResultRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objective = await objective_service.update_key_result(
        db, objective_id, kr_id, user, body.model_dump(exclude_unset=True)
    )
    await db.commit()
    return {"data": await _objective_payload(db, objective)}


@router.post("/objectives/{objective_id}/key-results/{kr_id}/progress", response_model=Envelope[ObjectiveResponse])
async def update_key_result_progress(
    objective_id: int,
    kr_id: int,
    body: KeyResultProgressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objective = await objective_service.update_key_result_progress(db, objective_id, kr_id, user, body.current_value)
    await db.commit()
    return {"data": await _objective_payload(db, objective)}


@router.delete("/objectives/{objective_id}/key-results/{kr_id}", response_model=Envelope[ObjectiveResponse])
async def delete_key_result(
    objective_id: int,
    kr_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    objective = await objective_service.delete_key_result(db, objective_id, kr_id, user)
    await db.commit()
    return {"data": await _objective_payload(db, objective)}


# ---------------------------------------------------------------------------
# Enhanced tasks
# ---------------------------------------------------------------------------


@router.get("/clubs/{club_id}/tasks", response_model=Envelope[Page[EnhancedTaskResponse]])
async def list_tasks(
    club_id: int,
    status: str | None = Query(None),
    priority: str | None = Query(None),
    owner: int | None = Query(None),
    assigned_to: int | None = Query(None, alias="assignedTo"),
    goal: int | None = Query(None),
    objective: int | None = Query(None),
    parent: int | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit, default=50)
    filters = {
        "status": status,
        "priority": priority,
        "owner_id": owner,
        "assigned_to": assigned_to,
        "goal_id": goal,
        "objective_id": objective,
        "parent_id": parent,
    }
    tasks, total = await task_service.list_tasks(db, club_id, user, filters, page, limit)
    items = [await build_task_response(db, t) for t in tasks]
    return {"data": paginate(items, total, page, limit)}


@router.post("/clubs/{club_id}/tasks", response_model=Envelope[EnhancedTaskResponse], status_code=201)
async def create_task(
    club_id: int,
    body: CreateEnhancedTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await task_service.create_task(db, club_id, user, body.model_dump())
    await db.commit()
    return {"data": await build_task_response(db, task)}


@router.post("/clubs/{club_id}/tasks/bulk", response_model=Envelope[BulkTaskResponse])
async def bulk_tasks(
    club_id: int,
    body: BulkTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    result = await task_service.bulk_action(db, club_id, user, body.action, body.task_ids, _bulk_data(body.data))
    await db.commit()
    return {"data": BulkTaskResponse(action=body.action, **result)}


def _bulk_data(data: dict) -> dict:
    """Accept the camelCase keys clients send for bulk payloads."""
    renamed = {"assignedTo": "assigned_to", "goalId": "goal_id", "objectiveId": "objective_id"}
    return {renamed.get(key, key): value for key, value in data.items()}


@router.get("/tasks/{task_id}", response_model=Envelope[EnhancedTaskResponse])
async def get_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task, _ = await task_service.task_for_reader(db, task_id, user)
    return {"data": await build_task_response(db, task)}


@router.put("/tasks/{task_id}", response_model=Envelope[EnhancedTaskResponse])
async def update_task(
    task_id: int,
    body: UpdateEnhancedTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await task_service.update_task(db, task_id, user, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": await build_task_response(db, task)}


@router.delete("/tasks/{task_id}", response_model=Envelope[Message])
async def delete_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await task_service.delete_task(db, task_id, user)
    await db.commit()
    return {"data": Message(message="Task deleted successfully")}


@router.post("/tasks/{task_id}/comments", response_model=Envelope[EnhancedCommentResponse], status_code=201)
async def add_task_comment(
    task_id: int,
    body: TaskCommentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    comment = await task_service.add_comment(db, task_id, user, body.content, body.mentions)
    await db.commit()
    return {"data": EnhancedCommentResponse.model_validate(comment)}


@router.post("/tasks/{task_id}/time", response_model=Envelope[TimeEntryResponse], status_code=201)
async def log_task_time(
    task_id: int,
    body: TimeEntryRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    entry = await task_service.log_time(
        db, task_id, user, body.minutes, body.start_time, body.end_time, body.description
    )
    await db.commit()
    return {"data": TimeEntryResponse.model_validate(entry)}


@router.post("/tasks/{task_id}/checklist", response_model=Envelope[EnhancedTaskResponse], status_code=201)
async def add_checklist_item(
    task_id: int,
    body: ChecklistRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await task_service.add_checklist_item(db, task_id, user, body.title, body.assigned_to, body.due_date)
    await db.commit()
    return {"data": await build_task_response(db, task)}


@router.post("/tasks/{task_id}/checklist/{item_id}/toggle", response_model=Envelope[EnhancedTaskResponse])
async def toggle_checklist_item(
    task_id: int,
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await task_service.toggle_checklist_item(db, task_id, item_id, user)
    await db.commit()
    return {"data": await build_task_response(db, task)}


@router.get("/tasks/{task_id}/analytics", response_model=Envelope[dict])
async def task_analytics(
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"data": await task_service.task_analytics(db, task_id, user)}


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


@router.get("/clubs/{club_id}/activity", response_model=Envelope[list[ActivityResponse]])
async def club_activity(
    club_id: int,
    actor: int | None = Query(None),
    entity_type: str | None = Query(None, alias="entityType"),
    start: datetime | None = Query(None, alias="startDate"),
    end: datetime | None = Query(None, alias="endDate"),
    limit: int | None = Query(None, ge=1),
    skip: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit, default=20, ceiling=get_settings().activity_feed_limit)
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)
    entries = await get_activity_feed(
        db, club_id=club.id, actor_id=actor, entity_type=entity_type, start=start, end=end, limit=limit, skip=skip
    )
    return {"data": [build_activity_response(e) for e in entries]}


@router.get("/clubs/{club_id}/activity/analytics", response_model=Envelope[list[dict]])
async def club_activity_analytics(
    club_id: int,
    period: str = Query("week"),
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    enforce_club_role(club, user, ANY_MEMBER)
    return {"data": await get_activity_analytics(db, club.id, period, days)}
