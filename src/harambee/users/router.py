"""User endpoints: /api/users/me/* (profile, preferences, notifications, clubs, activity)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.activity.service import get_user_activity_summary
from harambee.auth.dependencies import get_current_user
from harambee.auth.schemas import UserResponse
from harambee.clubs.router import build_club_response
from harambee.clubs.schemas import ClubResponse
from harambee.clubs.service import list_user_clubs
from harambee.database import get_session
from harambee.db.models import User
from harambee.errors import NotFoundError
from harambee.schemas import Envelope, Message, resolve_limit
from harambee.users.notification_service import (
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
)
from harambee.users.schemas import (
    ActivitySummaryResponse,
    NotificationPage,
    NotificationResponse,
    PreferencesResponse,
    PreferencesUpdateRequest,
    ProfileUpdateRequest,
)
from harambee.users.service import get_preferences, update_preferences, update_profile

router = APIRouter(prefix="/api/users", tags=["Users"])


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/me", response_model=Envelope[UserResponse])
async def get_profile(user: User = Depends(get_current_user)) -> dict:
    """Get own full profile."""
    return {"data": UserResponse.model_validate(user)}


@router.put("/me", response_model=Envelope[UserResponse])
async def update_my_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Update name, phone and bio."""
    user = await update_profile(db, user, name=body.name, phone=body.phone, bio=body.bio)
    await db.commit()
    return {"data": UserResponse.model_validate(user)}


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


@router.get("/me/preferences", response_model=Envelope[PreferencesResponse])
async def get_preferences_endpoint(user: User = Depends(get_current_user)) -> dict:
    return {"data": PreferencesResponse.model_validate(get_preferences(user))}


@router.put("/me/preferences", response_model=Envelope[PreferencesResponse])
async def update_preferences_endpoint(
    body: PreferencesUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Deep-merge update preferences."""
    preferences = await update_preferences(db, user, body.model_dump(exclude_none=True))
    await db.commit()
    return {"data": PreferencesResponse.model_validate(preferences)}


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@router.get("/me/notifications", response_model=Envelope[NotificationPage])
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit, default=20)
    items, total = await get_notifications(db, user.id, page, limit, unread_only)
    unread = await get_unread_count(db, user.id)
    return {
        "data": NotificationPage(
            items=[NotificationResponse.model_validate(n) for n in items], total=total, unread=unread, page=page
        )
    }


@router.patch("/me/notifications/read-all", response_model=Envelope[Message])
async def read_all_notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    count = await mark_all_as_read(db, user.id)
    await db.commit()
    return {"data": Message(message=f"Marked {count} notifications as read")}


@router.patch("/me/notifications/{notification_id}/read", response_model=Envelope[Message])
async def read_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    if not await mark_as_read(db, user.id, notification_id):
        raise NotFoundError("Notification not found", code="notification_not_found")
    await db.commit()
    return {"data": Message(message="Notification marked as read")}


# ---------------------------------------------------------------------------
# Clubs and activity
# ---------------------------------------------------------------------------


@router.get("/me/clubs", response_model=Envelope[list[ClubResponse]])
async def my_clubs(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    rows = await list_user_clubs(db, user.id)
    return {"data": [build_club_response(club, cm) for club, cm in rows]}


@router.get("/me/activity", response_model=Envelope[ActivitySummaryResponse])
async def my_activity(
    club_id: int | None = Query(None, alias="clubId"),
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    summary = await get_user_activity_summary(db, user.id, club_id, days)
    return {
        "data": ActivitySummaryResponse(
            days=summary["days"],
            total_activities=summary["totalActivities"],
            by_category=summary["byCategory"],
            last_activity_at=summary["lastActivityAt"],
            club_id=club_id,
        )
    }
