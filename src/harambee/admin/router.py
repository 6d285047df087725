"""Admin endpoints: /api/admin/* (system role ``admin`` only)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.admin import service
from harambee.admin.schemas import (
    AdminClubDetailResponse,
    AdminUpdateUserRequest,
    AdminUserDetailResponse,
    AdminUserResponse,
    BlockUserRequest,
    BroadcastRequest,
    BroadcastResponse,
    DeleteUserResponse,
    PendingClubResponse,
    PendingJoinResponse,
    PendingRequestsResponse,
)
from harambee.auth.dependencies import require_admin
from harambee.auth.schemas import PublicUserResponse, UserResponse
from harambee.clubs.router import build_club_response
from harambee.clubs.schemas import ClubResponse, ReviewClubRequest
from harambee.clubs.service import get_club_or_404, list_clubs, review_club
from harambee.database import get_session
from harambee.db.models import User
from harambee.errors import ValidationError
from harambee.redis_client import get_optional_redis
from harambee.schemas import Envelope, Page, paginate, resolve_limit
from harambee.users.notification_service import VALID_TYPES, broadcast_notification

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/dashboard", response_model=Envelope[dict])
async def dashboard(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict:
    return {"data": await service.get_dashboard_stats(db, redis)}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=Envelope[Page[AdminUserResponse]])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    search: str | None = Query(None, max_length=100),
    role: str | None = Query(None),
    status: str | None = Query(None, pattern="^(active|blocked)$"),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit)
    rows, total = await service.list_users(db, page, limit, search, role, status)
    items = [
        AdminUserResponse(
            **UserResponse.model_validate(user).model_dump(), tasks_completed=done, clubs_joined=joined
        )
        for user, done, joined in rows
    ]
    return {"data": paginate(items, total, page, limit)}


@router.get("/users/{user_id}", response_model=Envelope[AdminUserDetailResponse])
async def get_user(
    user_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    details = await service.get_user_details(db, user_id)
    return {
        "data": AdminUserDetailResponse(
            **UserResponse.model_validate(details["user"]).model_dump(),
            clubs=details["clubs"],
            club_requests=details["club_requests"],
            task_count=details["task_count"],
        )
    }


@router.put("/users/{user_id}", response_model=Envelope[UserResponse])
async def update_user(
    user_id: int,
    body: AdminUpdateUserRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    user = await service.update_user(db, user_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": UserResponse.model_validate(user)}


@router.patch("/users/{user_id}/block", response_model=Envelope[UserResponse])
async def block_user(
    user_id: int,
    body: BlockUserRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    user = await service.set_blocked(db, user_id, body.is_blocked, admin)
    await db.commit()
    return {"data": UserResponse.model_validate(user)}


@router.delete("/users/{user_id}", response_model=Envelope[DeleteUserResponse])
async def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    result = await service.delete_user(db, user_id, admin)
    await db.commit()
    return {
        "data": DeleteUserResponse(
            message="User deleted successfully",
            removed=result["removed"],
            ownerless_clubs=result["ownerlessClubs"],
        )
    }


# ---------------------------------------------------------------------------
# Clubs and review queue
# ---------------------------------------------------------------------------


@router.get("/clubs", response_model=Envelope[Page[ClubResponse]])
async def list_all_clubs(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    status: str | None = Query(None),
    search: str | None = Query(None, max_length=100),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit)
    clubs, total = await list_clubs(db, page, limit, status=status, search=search)
    return {"data": paginate([build_club_response(c) for c in clubs], total, page, limit)}


@router.get("/clubs/{club_id}", response_model=Envelope[AdminClubDetailResponse])
async def get_club(
    club_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    details = await service.get_club_details(db, club_id)
    return {
        "data": AdminClubDetailResponse(
            **build_club_response(details["club"]).model_dump(),
            roles=details["roles"],
            pending_requests=details["pending_requests"],
        )
    }


@router.post("/clubs/{club_id}/approval", response_model=Envelope[ClubResponse])
async def club_approval(
    club_id: int,
    body: ReviewClubRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    club = await review_club(db, club, admin, body.action, body.reason)
    await db.commit()
    return {"data": build_club_response(club)}


@router.get("/requests", response_model=Envelope[PendingRequestsResponse])
async def pending_requests(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    pending = await service.get_pending_requests(db)
    return {
        "data": PendingRequestsResponse(
            clubs=[
                PendingClubResponse(
                    **build_club_response(club).model_dump(),
                    creator=PublicUserResponse.model_validate(creator) if creator else None,
                )
                for club, creator in pending["clubs"]
            ],
            join_requests=[
                PendingJoinResponse(
                    id=req.id,
                    club_id=req.club_id,
                    club_name=club.name,
                    user_id=req.user_id,
                    user=PublicUserResponse.model_validate(user),
                    message=req.message,
                    status=req.status,
                    created_at=req.created_at,
                )
                for req, club, user in pending["join_requests"]
            ],
        )
    }


@router.post("/notifications", response_model=Envelope[BroadcastResponse])
async def send_notification(
    body: BroadcastRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Notify the listed users, or every unblocked user when ``userIds`` is absent."""
    if not body.title.strip() or not body.message.strip():
        raise ValidationError("Title and message are required")
    if body.type not in VALID_TYPES:
        raise ValidationError(f"Invalid notification type. Must be one of: {', '.join(sorted(VALID_TYPES))}")
    count = await broadcast_notification(db, body.title.strip(), body.message.strip(), body.type, body.user_ids)
    await db.commit()
    return {"data": BroadcastResponse(message=f"Notification sent to {count} users", notification_count=count)}
