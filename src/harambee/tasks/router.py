"""Task endpoints: /api/tasks/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.auth.dependencies import get_current_user
from harambee.database import get_session
from harambee.db.models import Task, User
from harambee.schemas import Envelope, Message, Page, paginate, resolve_limit
from harambee.tasks import service
from harambee.tasks.progress import checklist_progress
from harambee.tasks.schemas import (
    ChecklistItemRequest,
    ChecklistItemResponse,
    CommentRequest,
    CreateTaskRequest,
    ProgressRequest,
    TaskCommentResponse,
    TaskResponse,
    TimeLogRequest,
    TimeLogResponse,
    UpdateTaskRequest,
)
from harambee.timeutils import days_until

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])


def build_task_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        type=task.type,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        progress=task.progress,
        club_id=task.club_id,
        created_by=task.created_by,
        assigned_to=[a.user_id for a in task.assignees],
        due_date=task.due_date,
        start_date=task.start_date,
        completed_date=task.completed_date,
        estimated_hours=task.estimated_hours,
        actual_hours=task.actual_hours,
        tags=list(task.tags or []),
        checklist=[ChecklistItemResponse.model_validate(i) for i in task.checklist_items],
        comments=[TaskCommentResponse.model_validate(c) for c in task.comments],
        time_log=[TimeLogResponse.model_validate(t) for t in task.time_logs],
        is_overdue=service.is_overdue(task),
        days_until_due=days_until(task.due_date),
        checklist_progress=checklist_progress(task),
        total_time_logged=service.total_time_logged(task),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


@router.get("", response_model=Envelope[Page[TaskResponse]])
async def list_tasks(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    type: str | None = Query(None),  # noqa: A002
    status: str | None = Query(None),
    priority: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit)
    tasks, total = await service.list_user_tasks(db, user, page, limit, type, status, priority)
    return {"data": paginate([build_task_response(t) for t in tasks], total, page, limit)}


@router.post("", response_model=Envelope[TaskResponse], status_code=201)
async def create_task(
    body: CreateTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await service.create_task(db, user, body.model_dump())
    await db.commit()
    return {"data": build_task_response(task)}


@router.get("/club/{club_id}", response_model=Envelope[list[TaskResponse]])
async def club_tasks(
    club_id: int,
    status: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    tasks = await service.list_club_tasks(db, club_id, user, status)
    return {"data": [build_task_response(t) for t in tasks]}


@router.get("/{task_id}", response_model=Envelope[TaskResponse])
async def get_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await service.get_task(db, task_id, user)
    return {"data": build_task_response(task)}


@router.put("/{task_id}", response_model=Envelope[TaskResponse])
async def update_task(
    task_id: int,
    body: UpdateTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await service.update_task(db, task_id, user, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": build_task_response(task)}


@router.delete("/{task_id}", response_model=Envelope[Message])
async def delete_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await service.delete_task(db, task_id, user)
    await db.commit()
    return {"data": Message(message="Task deleted successfully")}


@router.put("/{task_id}/progress", response_model=Envelope[TaskResponse])
async def update_progress(
    task_id: int,
    body: ProgressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await service.set_progress(db, task_id, user, body.progress)
    await db.commit()
    return {"data": build_task_response(task)}


@router.post("/{task_id}/comments", response_model=Envelope[TaskCommentResponse], status_code=201)
async def add_comment(
    task_id: int,
    body: CommentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    comment = await service.add_comment(db, task_id, user, body.text)
    await db.commit()
    return {"data": TaskCommentResponse.model_validate(comment)}


@router.post("/{task_id}/time-log", response_model=Envelope[TaskResponse], status_code=201)
async def log_time(
    task_id: int,
    body: TimeLogRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await service.log_time(db, task_id, user, body.hours, body.description)
    await db.commit()
    return {"data": build_task_response(task)}


@router.post("/{task_id}/checklist", response_model=Envelope[TaskResponse], status_code=201)
async def add_checklist_item(
    task_id: int,
    body: ChecklistItemRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await service.add_checklist_item(db, task_id, user, body.text)
    await db.commit()
    return {"data": build_task_response(task)}


@router.put("/{task_id}/checklist/{item_id}/toggle", response_model=Envelope[TaskResponse])
async def toggle_checklist_item(
    task_id: int,
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    task = await service.toggle_checklist_item(db, task_id, item_id, user)
    await db.commit()
    return {"data": build_task_response(task)}
