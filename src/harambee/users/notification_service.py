"""In-app notifications for users.

Notifications are rows in ``user_notifications``. They are created by club
workflows (join decisions, club review) and by admin broadcasts, and read
through the /api/users/me/notifications endpoints.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.db.models import User, UserNotification

logger = logging.getLogger(__name__)

VALID_TYPES = {"info", "success", "warning", "error", "club", "system"}


async def create_notification(
    db: AsyncSession,
    user_id: int,
    message: str,
    title: str | None = None,
    link: str | None = None,
    type_: str = "info",
) -> UserNotification:
    """Persist a notification for one user."""
    if type_ not in VALID_TYPES:
        raise ValueError(f"Invalid notification type: {type_}")
    notification = UserNotification(user_id=user_id, type=type_, title=title, message=message, link=link)
    db.add(notification)
    await db.flush()
    return notification


async def broadcast_notification(
    db: AsyncSession,
    title: str,
    message: str,
    type_: str = "system",
    user_ids: list[int] | None = None,
) -> int:
    """Notify the given users (all unblocked users when None). Returns recipients."""
    query = select(User.id).where(User.is_blocked.is_(False))
    if user_ids is not None:
        query = query.where(User.id.in_(user_ids))
    recipients = [row[0] for row in await db.execute(query)]
    for uid in recipients:
        db.add(UserNotification(user_id=uid, type=type_, title=title, message=message))
    await db.flush()
    logger.info("Broadcast notification to %d users", len(recipients))
    return len(recipients)


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
) -> tuple[list[UserNotification], int]:
    """Get user's notifications (paginated, most recent first)."""
    conditions = [UserNotification.user_id == user_id]
    if unread_only:
        conditions.append(UserNotification.read.is_(False))

    total_result = await db.execute(select(func.count()).select_from(UserNotification).where(*conditions))
    total = total_result.scalar_one()

    result = await db.execute(
        select(UserNotification)
        .where(*conditions)
        .order_by(UserNotification.created_at.desc(), UserNotification.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """Mark a single notification as read. Returns True if found."""
    result = await db.execute(
        update(UserNotification)
        .where(UserNotification.id == notification_id, UserNotification.user_id == user_id)
        .values(read=True)
    )
    return result.rowcount > 0


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    """Mark every unread notification as read. Returns the number updated."""
    result = await db.execute(
        update(UserNotification)
        .where(UserNotification.user_id == user_id, UserNotification.read.is_(False))
        .values(read=True)
    )
    return result.rowcount


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(UserNotification)
        .where(UserNotification.user_id == user_id, UserNotification.read.is_(False))
    )
    return result.scalar_one()
