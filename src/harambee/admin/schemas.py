"""Request/response schemas for /api/admin."""

from __future__ import annotations

from typing import Any

from pydantic import EmailStr, Field

from harambee.auth.schemas import PublicUserResponse, UserResponse
from harambee.clubs.schemas import ClubResponse, JoinRequestResponse
from harambee.schemas import CamelModel


class AdminUpdateUserRequest(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    role: str | None = None
    is_blocked: bool | None = None


class BlockUserRequest(CamelModel):
    is_blocked: bool


class BroadcastRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    type: str = "system"
    user_ids: list[int] | None = None


class AdminUserResponse(UserResponse):
    tasks_completed: int = 0
    clubs_joined: int = 0


class AdminUserDetailResponse(UserResponse):
    clubs: list[dict[str, Any]]
    club_requests: list[dict[str, Any]]
    task_count: int


class AdminClubDetailResponse(ClubResponse):
    roles: dict[str, int]
    pending_requests: int


class PendingClubResponse(ClubResponse):
    creator: PublicUserResponse | None = None


class PendingJoinResponse(JoinRequestResponse):
    club_name: str


class PendingRequestsResponse(CamelModel):
    clubs: list[PendingClubResponse]
    join_requests: list[PendingJoinResponse]


class DeleteUserResponse(CamelModel):
    message: str
    removed: dict[str, int]
    ownerless_clubs: list[int]


class BroadcastResponse(CamelModel):
    message: str
    notification_count: int

