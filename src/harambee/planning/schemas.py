"""Request/response schemas for /api/planning."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from harambee.schemas import CamelModel

# --- Goals ---


class SmartCriteria(CamelModel):
    specific: str | None = None
    measurable: str | None = None
    achievable: str | None = None
    relevant: str | None = None
    time_bound: str | None = None


class CreateGoalRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    format: str | None = None
    category: str | None = Field(None, max_length=64)
    priority: str | None = None
    status: str | None = None
    smart_criteria: SmartCriteria | None = None
    tags: list[str] = Field(default_factory=list)
    estimated_hours: float | None = Field(None, ge=0)
    start_date: datetime | None = None
    due_date: datetime | None = None
    owner_id: int | None = Field(None, alias="owner")


class UpdateGoalRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    format: str | None = None
    category: str | None = Field(None, max_length=64)
    priority: str | None = None
    status: str | None = None
    smart_criteria: SmartCriteria | None = None
    tags: list[str] | None = None
    estimated_hours: float | None = Field(None, ge=0)
    start_date: datetime | None = None
    due_date: datetime | None = None
    owner_id: int | None = Field(None, alias="owner")


class GoalProgressRequest(CamelModel):
    progress: int = Field(..., ge=0, le=100)
    notes: str | None = Field(None, max_length=1000)


class DuplicateGoalRequest(CamelModel):
    title: str | None = Field(None, max_length=200)
    include_objectives: bool = True
    include_tasks: bool = False


class GoalResponse(CamelModel):
    id: int
    club_id: int
    title: str
    description: str | None = None
    format: str
    category: str | None = None
    priority: str
    status: str
    progress: int
    calculated_progress: int
    smart_criteria: dict[str, str]
    tags: list[str]
    estimated_hours: float | None = None
    start_date: datetime | None = None
    due_date: datetime | None = None
    completed_at: datetime | None = None
    owner_id: int | None = None
    created_by: int | None = None
    objective_count: int
    task_count: int
    is_overdue: bool
    days_remaining: int | None = None
    created_at: datetime
    updated_at: datetime


# --- Objectives and key results ---


class KeyResultRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    target_value: float = Field(..., gt=0)
    current_value: float = Field(0.0, ge=0)
    unit: str | None = Field(None, max_length=32)
    due_date: datetime | None = None
    owner_id: int | None = Field(None, alias="owner")


class UpdateKeyResultRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    target_value: float | None = Field(None, gt=0)
    current_value: float | None = Field(None, ge=0)
    unit: str | None = Field(None, max_length=32)
    due_date: datetime | None = None
    owner_id: int | None = Field(None, alias="owner")


class KeyResultProgressRequest(CamelModel):
    current_value: float = Field(..., ge=0)


class CreateObjectiveRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    success_criteria: str | None = None
    metric_type: str | None = Field(None, max_length=32)
    start_date: datetime | None = None
    due_date: datetime | None = None
    key_results: list[KeyResultRequest] = Field(default_factory=list)


class UpdateObjectiveRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    success_criteria: str | None = None
    metric_type: str | None = Field(None, max_length=32)
    status: str | None = None
    progress: int | None = Field(None, ge=0, le=100)
    start_date: datetime | None = None
    due_date: datetime | None = None


class KeyResultResponse(CamelModel):
    id: int
    title: str
    description: str | None = None
    target_value: float
    current_value: float
    unit: str | None = None
    status: str
    progress: int
    due_date: datetime | None = None
    owner_id: int | None = None


class ObjectiveResponse(CamelModel):
    id: int
    goal_id: int
    title: str
    description: str | None = None
    success_criteria: str | None = None
    metric_type: str | None = None
    status: str
    progress: int
    calculated_progress: int
    key_results: list[KeyResultResponse]
    start_date: datetime | None = None
    due_date: datetime | None = None
    completed_at: datetime | None = None
    created_by: int | None = None
    created_at: datetime
    updated_at: datetime


# --- Enhanced tasks ---


class DependencyRequest(CamelModel):
    task_id: int = Field(..., alias="task")
    type: str = "finish-to-start"
    lag_days: int = Field(0, ge=0, alias="lag")


class CreateEnhancedTaskRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    progress: int | None = Field(None, ge=0, le=100)
    start_date: datetime | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = Field(None, ge=0)
    labels: list[str] = Field(default_factory=list)
    recurrence: dict[str, Any] | None = None
    owner_id: int | None = Field(None, alias="owner")
    goal_id: int | None = Field(None, alias="goal")
    objective_id: int | None = Field(None, alias="objective")
    parent_id: int | None = Field(None, alias="parent")
    assigned_to: list[int] = Field(default_factory=list)
    dependencies: list[DependencyRequest] = Field(default_factory=list)
    checklist: list[str] = Field(default_factory=list)


class UpdateEnhancedTaskRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    progress: int | None = Field(None, ge=0, le=100)
    start_date: datetime | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = Field(None, ge=0)
    labels: list[str] | None = None
    recurrence: dict[str, Any] | None = None
    owner_id: int | None = Field(None, alias="owner")
    goal_id: int | None = Field(None, alias="goal")
    objective_id: int | None = Field(None, alias="objective")
    assigned_to: list[int] | None = None
    dependencies: list[DependencyRequest] | None = None


class TaskCommentRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=2000)
    mentions: list[int] = Field(default_factory=list)


class TimeEntryRequest(CamelModel):
    minutes: int | None = Field(None, gt=0)
    start_time: datetime | None = None
    end_time: datetime | None = None
    description: str | None = Field(None, max_length=500)


class ChecklistRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=300)
    assigned_to: int | None = None
    due_date: datetime | None = None


class BulkTaskRequest(CamelModel):
    action: Literal["update_status", "assign", "delete", "move"]
    task_ids: list[int] = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class BulkTaskResponse(CamelModel):
    action: str
    affected: int
    total: int


class DependencyResponse(CamelModel):
    task_id: int = Field(..., serialization_alias="task")
    type: str
    lag_days: int


class EnhancedChecklistResponse(CamelModel):
    id: int
    title: str
    completed: bool
    completed_at: datetime | None = None
    assigned_to: int | None = None
    due_date: datetime | None = None


class EnhancedCommentResponse(CamelModel):
    id: int
    content: str
    author_id: int | None = None
    mentions: list[int]
    edited: bool
    created_at: datetime


class TimeEntryResponse(CamelModel):
    id: int
    user_id: int | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int
    description: str | None = None


class EnhancedTaskResponse(CamelModel):
    id: int
    club_id: int
    goal_id: int | None = None
    objective_id: int | None = None
    parent_id: int | None = None
    title: str
    description: str | None = None
    status: str
    priority: str
    progress: int
    start_date: datetime | None = None
    due_date: datetime | None = None
    completed_at: datetime | None = None
    estimated_hours: float | None = None
    actual_hours: float
    labels: list[str]
    recurrence: dict[str, Any] | None = None
    owner_id: int | None = None
    created_by: int | None = None
    assigned_to: list[int]
    dependencies: list[DependencyResponse]
    checklist: list[EnhancedChecklistResponse]
    comments: list[EnhancedCommentResponse]
    time_entries: list[TimeEntryResponse]
    checklist_progress: int
    total_time_spent: int
    is_overdue: bool
    days_remaining: int | None = None
    can_start: bool
    created_at: datetime
    updated_at: datetime


# --- Activity ---


class ActivityChange(CamelModel):
    field: str
    old_value: Any = None
    new_value: Any = None
    field_type: str | None = None


class ActivityResponse(CamelModel):
    id: int
    category: str
    verb: str
    object: str
    actor_id: int | None = None
    entity_type: str
    entity_id: int
    entity_name: str | None = None
    description: str | None = None
    club_id: int | None = None
    goal_id: int | None = None
    objective_id: int | None = None
    task_id: int | None = None
    changes: list[ActivityChange]
    metadata: dict[str, Any]
    visibility: str
    source: str
    timestamp: datetime
