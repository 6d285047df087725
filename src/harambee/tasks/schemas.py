"""Request/response schemas for /api/tasks."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from harambee.schemas import CamelModel


class CreateTaskRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    type: str = "personal"
    status: str | None = None
    priority: str | None = None
    progress: int | None = Field(None, ge=0, le=100)
    due_date: datetime | None = None
    start_date: datetime | None = None
    estimated_hours: float | None = Field(None, ge=0)
    tags: list[str] = Field(default_factory=list)
    club_id: int | None = Field(None, alias="club")
    assigned_to: list[int] = Field(default_factory=list)
    checklist: list[str] = Field(default_factory=list)


class UpdateTaskRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    status: str | None = None
    priority: str | None = None
    progress: int | None = Field(None, ge=0, le=100)
    due_date: datetime | None = None
    start_date: datetime | None = None
    estimated_hours: float | None = Field(None, ge=0)
    tags: list[str] | None = None
    assigned_to: list[int] | None = None


class ProgressRequest(CamelModel):
    progress: int = Field(..., ge=0, le=100)


class CommentRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=2000)


class TimeLogRequest(CamelModel):
    hours: float = Field(..., gt=0)
    description: str | None = Field(None, max_length=500)


class ChecklistItemRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=300)


class ChecklistItemResponse(CamelModel):
    id: int
    text: str
    completed: bool
    completed_at: datetime | None = None
    completed_by: int | None = None


class TaskCommentResponse(CamelModel):
    id: int
    text: str
    author_id: int | None = None
    created_at: datetime


class TimeLogResponse(CamelModel):
    id: int
    user_id: int | None = None
    hours: float
    description: str | None = None
    logged_at: datetime


class TaskResponse(CamelModel):
    id: int
    type: str
    title: str
    description: str | None = None
    status: str
    priority: str
    progress: int
    club_id: int | None = None
    created_by: int | None = None
    assigned_to: list[int]
    due_date: datetime | None = None
    start_date: datetime | None = None
    completed_date: datetime | None = None
    estimated_hours: float | None = None
    actual_hours: float
    tags: list[str]
    checklist: list[ChecklistItemResponse]
    comments: list[TaskCommentResponse]
    time_log: list[TimeLogResponse]
    is_overdue: bool
    days_until_due: int | None = None
    checklist_progress: int
    total_time_logged: float
    created_at: datetime
    updated_at: datetime
