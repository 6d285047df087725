"""Request/response schemas for club endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from harambee.auth.schemas import PublicUserResponse
from harambee.schemas import CamelModel

# --- Requests ---


class CreateClubRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str | None = Field(None, max_length=5000)
    purpose: str | None = Field(None, max_length=5000)
    category: str | None = Field(None, max_length=64)


class UpdateClubRequest(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=120)
    description: str | None = Field(None, max_length=5000)
    purpose: str | None = Field(None, max_length=5000)
    category: str | None = Field(None, max_length=64)


class JoinClubRequest(CamelModel):
    message: str | None = Field(None, max_length=500)


class HandleJoinRequest(CamelModel):
    action: str


class ChangeRoleRequest(CamelModel):
    role: str


class ReviewClubRequest(CamelModel):
    action: Literal["approve", "reject"]
    reason: str | None = Field(None, max_length=500)


class TopicRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str | None = None


class UpdateTopicRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = None


class ReplyRequest(CamelModel):
    content: str = Field(..., min_length=1)


class ClubGoalRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    target_date: datetime | None = None


class UpdateClubGoalRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    target_date: datetime | None = None
    status: str | None = None


class KnowledgeBaseRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)


class UpdateKnowledgeBaseRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = Field(None, min_length=1)
    tags: list[str] | None = None


# --- Responses ---


class ClubMemberResponse(CamelModel):
    user: PublicUserResponse
    role: str
    joined_at: datetime


class ClubResponse(CamelModel):
    id: int
    name: str
    description: str | None = None
    purpose: str | None = None
    category: str | None = None
    status: str
    created_by: int | None = None
    member_count: int
    user_role: str | None = None
    joined_at: datetime | None = None
    reviewed_at: datetime | None = None
    review_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class ClubDetailResponse(ClubResponse):
    members: list[ClubMemberResponse] = []
    pending_requests: int | None = None


class JoinRequestResponse(CamelModel):
    id: int
    club_id: int
    user_id: int
    user: PublicUserResponse | None = None
    message: str | None = None
    status: str
    created_at: datetime
    handled_by: int | None = None
    handled_at: datetime | None = None


class ClubLogResponse(CamelModel):
    id: int
    action: str
    user_id: int | None = None
    details: dict[str, Any]
    created_at: datetime


class TopicResponse(CamelModel):
    id: int
    club_id: int
    title: str
    content: str | None = None
    created_by: int | None = None
    reply_count: int = 0
    created_at: datetime
    updated_at: datetime


class ReplyResponse(CamelModel):
    id: int
    topic_id: int
    content: str
    created_by: int | None = None
    created_at: datetime


class ClubGoalResponse(CamelModel):
    id: int
    club_id: int
    title: str
    description: str | None = None
    target_date: datetime | None = None
    status: str
    created_by: int | None = None
    created_at: datetime


class KnowledgeBaseResponse(CamelModel):
    id: int
    club_id: int
    title: str
    content: str
    tags: list[str]
    version: int
    created_by: int | None = None
    created_at: datetime
    updated_at: datetime
