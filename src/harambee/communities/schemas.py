"""Request/response schemas for community endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from harambee.auth.schemas import PublicUserResponse
from harambee.schemas import CamelModel


class CreateCommunityRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str | None = Field(None, max_length=5000)


class UpdateCommunityRequest(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=120)
    description: str | None = Field(None, max_length=5000)
    is_archived: bool | None = None


class RejectCommunityRequest(CamelModel):
    reason: str | None = Field(None, max_length=500)


class CommunityTaskRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    due_date: datetime | None = None


class UpdateCommunityTaskRequest(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    due_date: datetime | None = None
    completed: bool | None = None


class ChatMessageRequest(CamelModel):
    text: str = Field(..., max_length=2000)


class CreatePollRequest(CamelModel):
    question: str = Field(..., max_length=300)
    options: list[str] = Field(..., max_length=20)


class VoteRequest(CamelModel):
    option_index: int


class CommunityMemberResponse(CamelModel):
    user: PublicUserResponse
    role: str
    joined_at: datetime


class CommunityResponse(CamelModel):
    id: int
    club_id: int
    name: str
    description: str | None = None
    status: str
    is_archived: bool
    created_by: int | None = None
    approval_actioned_by: int | None = None
    rejection_reason: str | None = None
    member_count: int
    user_role: str | None = None
    created_at: datetime
    updated_at: datetime


class CommunityTaskResponse(CamelModel):
    id: int
    community_id: int
    title: str
    description: str | None = None
    due_date: datetime | None = None
    completed: bool
    created_by: int | None = None
    created_at: datetime
    updated_at: datetime


class ChatMessageResponse(CamelModel):
    id: int
    community_id: int
    sender: int | None = None
    text: str
    created_at: datetime


class PollOptionResponse(CamelModel):
    index: int
    text: str
    votes: list[int]
    vote_count: int


class PollResponse(CamelModel):
    id: int
    community_id: int
    question: str
    options: list[PollOptionResponse]
    total_votes: int
    user_vote: int | None = None
    is_closed: bool
    created_by: int | None = None
    created_at: datetime
