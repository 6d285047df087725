"""System administration: dashboard, user moderation, club review queue.

Dashboard stats are cached in Redis for a few seconds; without Redis they
are computed on every call.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.clubs.service import get_club_or_404, record_club_log
from harambee.db.models import (
    Club,
    ClubJoinRequest,
    ClubLog,
    ClubMember,
    CommunityMember,
    EnhancedTaskAssignee,
    PollVote,
    Task,
    TaskAssignee,
    User,
)
from harambee.errors import ConflictError, NotFoundError, ValidationError
from harambee.timeutils import utcnow

logger = structlog.get_logger()

DASHBOARD_CACHE_KEY = "admin:dashboard"
DASHBOARD_CACHE_TTL = 10  # seconds
SYSTEM_ROLES = {"user", "admin"}


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


async def _count(db: AsyncSession, model: type, *conditions: Any) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*conditions))
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def get_dashboard_stats(db: AsyncSession, redis: aioredis.Redis | None = None) -> dict[str, Any]:
    """User, club and task counts, the approval backlog and the latest club log entries."""
    if redis is not None:
        try:
            cached = await redis.get(DASHBOARD_CACHE_KEY)
        except RedisError:
            logger.warning("dashboard_cache_read_failed", exc_info=True)
            cached = None
        if cached:
            return json.loads(cached)

    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    pending_clubs = await _count(db, Club, Club.status == "pending")
    pending_joins = await _count(db, ClubJoinRequest, ClubJoinRequest.status == "pending")

    recent = await db.execute(
        select(ClubLog, Club.name, User.name)
        .join(Club, Club.id == ClubLog.club_id)
        .outerjoin(User, User.id == ClubLog.user_id)
        .order_by(ClubLog.created_at.desc(), ClubLog.id.desc())
        .limit(10)
    )
    stats = {
        "userStats": {
            "totalUsers": await _count(db, User),
            "newUsersToday": await _count(db, User, User.created_at >= today),
            "admins": await _count(db, User, User.role == "admin"),
            "blockedUsers": await _count(db, User, User.is_blocked.is_(True)),
        },
        "clubStats": {
            "totalClubs": await _count(db, Club),
            "pendingClubs": pending_clubs,
            "approvedClubs": await _count(db, Club, Club.status == "approved"),
            "newClubsToday": await _count(db, Club, Club.created_at >= today),
        },
        "taskStats": {
            "totalTasks": await _count(db, Task),
            "completedTasks": await _count(db, Task, Task.status == "completed"),
        },
        "pendingApprovals": {"clubs": pending_clubs, "joinRequests": pending_joins},
        "recentActivities": [
            {
                "id": log.id,
                "action": log.action,
                "clubId": log.club_id,
                "clubName": club_name,
                "userId": log.user_id,
                "userName": user_name,
                "timestamp": log.created_at,
            }
            for log, club_name, user_name in recent.all()
        ],
    }

    if redis is not None:
        payload = json.dumps(stats, default=_json_default)
        try:
            await redis.set(DASHBOARD_CACHE_KEY, payload, ex=DASHBOARD_CACHE_TTL)
        except RedisError:
            logger.warning("dashboard_cache_write_failed", exc_info=True)
        return json.loads(payload)
    return stats


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", code="user_not_found")
    return user


async def list_users(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 10,
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
) -> tuple[list[tuple[User, int, int]], int]:
    """Users newest first with (completed tasks, clubs joined). Returns (rows, total)."""
    conditions = []
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))
    if role:
        conditions.append(User.role == role)
    if status == "blocked":
        conditions.append(User.is_blocked.is_(True))
    elif status == "active":
        conditions.append(User.is_blocked.is_(False))

    completed = (
        select(func.count(Task.id))
        .where(Task.created_by == User.id, Task.status == "completed")
        .correlate(User)
        .scalar_subquery()
    )
    clubs_joined = select(func.count(ClubMember.id)).where(ClubMember.user_id == User.id).correlate(User).scalar_subquery()

    total = await _count(db, User, *conditions)
    result = await db.execute(
        select(User, completed, clubs_joined)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(user, done or 0, joined or 0) for user, done, joined in result.all()], total


async def get_user_details(db: AsyncSession, user_id: int) -> dict[str, Any]:
    user = await get_user_or_404(db, user_id)
    memberships = await db.execute(
        select(Club.id, Club.name, Club.status, ClubMember.role)
        .join(ClubMember, ClubMember.club_id == Club.id)
        .where(ClubMember.user_id == user.id)
        .order_by(Club.name)
    )
    requests = await db.execute(
        select(Club.id, Club.name, Club.status, Club.created_at)
        .where(Club.created_by == user.id)
        .order_by(Club.created_at.desc())
    )
    task_count = await _count(
        db,
        Task,
        or_(Task.created_by == user.id, Task.id.in_(select(TaskAssignee.task_id).where(TaskAssignee.user_id == user.id))),
    )
    return {
        "user": user,
        "clubs": [{"id": cid, "name": name, "status": status, "role": role} for cid, name, status, role in memberships],
        "club_requests": [
            {"id": cid, "name": name, "status": status, "createdAt": created} for cid, name, status, created in requests
        ],
        "task_count": task_count,
    }


async def update_user(db: AsyncSession, user_id: int, changes: dict[str, Any]) -> User:
    """Admin edit of name, email, system role and block flag. A taken email is a 409."""
    user = await get_user_or_404(db, user_id)
    if changes.get("role") is not None and changes["role"] not in SYSTEM_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(sorted(SYSTEM_ROLES))}")

    email = (changes.get("email") or "").lower().strip()
    if email and email != user.email:
        taken = await db.execute(select(User.id).where(User.email == email, User.id != user.id))
        if taken.first() is not None:
            raise ConflictError("Email already exists", code="email_taken")
        user.email = email
    if changes.get("name"):
        user.name = changes["name"].strip()
    if changes.get("role") is not None:
        user.role = changes["role"]
    if changes.get("is_blocked") is not None:
        user.is_blocked = changes["is_blocked"]

    try:
        async with db.begin_nested():
            await db.flush()
    except IntegrityError as exc:
        raise ConflictError("Email already exists", code="email_taken") from exc
    logger.info("admin_user_updated", user_id=user.id, fields=sorted(k for k, v in changes.items() if v is not None))
    return user


async def set_blocked(db: AsyncSession, user_id: int, is_blocked: bool, actor: User) -> User:
    user = await get_user_or_404(db, user_id)
    if user.id == actor.id and is_blocked:
        raise ValidationError("You cannot block your own account", code="cannot_block_self")
    user.is_blocked = is_blocked
    await db.flush()
    logger.info("user_blocked" if is_blocked else "user_unblocked", user_id=user.id, admin_id=actor.id)
    return user


async def _hand_over_owned_clubs(db: AsyncSession, user: User) -> list[int]:
    """Promote the earliest-joined admin of every club the user owns. Returns club ids left ownerless."""
    result = await db.execute(
        select(Club).join(ClubMember, ClubMember.club_id == Club.id).where(
            ClubMember.user_id == user.id, ClubMember.role == "owner"
        )
    )
    ownerless: list[int] = []
    for club in result.scalars().unique():
        admins = sorted(
            (m for m in club.members if m.role == "admin" and m.user_id != user.id),
            key=lambda m: (m.joined_at, m.id),
        )
        if admins:
            admins[0].role = "owner"
            await record_club_log(db, club.id, "ownership_transferred", None, {
                "fromUserId": user.id,
                "toUserId": admins[0].user_id,
            })
        else:
            ownerless.append(club.id)
    return ownerless


async def delete_user(db: AsyncSession, user_id: int, actor: User) -> dict[str, Any]:
    """
    Remove an account and everything that only makes sense with it.

    Order matters: ownership is handed to the earliest admin before the
    roster rows go, then community memberships, pending join requests,
    task assignments and poll votes are removed, and finally the user row.
    Content the user authored stays with its author reference nulled.
    """
    user = await get_user_or_404(db, user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account", code="cannot_delete_self")

    ownerless = await _hand_over_owned_clubs(db, user)

    memberships = await db.execute(
        select(Club).join(ClubMember, ClubMember.club_id == Club.id).where(ClubMember.user_id == user.id)
    )
    for club in memberships.scalars().unique():
        club.members = [m for m in club.members if m.user_id != user.id]
    await db.flush()

    removed = {}
    for label, stmt in (
        ("communityMemberships", delete(CommunityMember).where(CommunityMember.user_id == user.id)),
        (
            "joinRequests",
            delete(ClubJoinRequest).where(ClubJoinRequest.user_id == user.id, ClubJoinRequest.status == "pending"),
        ),
        ("taskAssignments", delete(TaskAssignee).where(TaskAssignee.user_id == user.id)),
        ("planningAssignments", delete(EnhancedTaskAssignee).where(EnhancedTaskAssignee.user_id == user.id)),
        ("pollVotes", delete(PollVote).where(PollVote.user_id == user.id)),
    ):
        result = await db.execute(stmt.execution_options(synchronize_session="fetch"))
        removed[label] = result.rowcount

    await db.delete(user)
    await db.flush()
    logger.info("user_deleted", user_id=user_id, admin_id=actor.id, ownerless_clubs=ownerless, **removed)
    return {"removed": removed, "ownerlessClubs": ownerless}


# ---------------------------------------------------------------------------
# Review queue
# ---------------------------------------------------------------------------


async def get_club_details(db: AsyncSession, club_id: int) -> dict[str, Any]:
    club = await get_club_or_404(db, club_id)
    roles = await db.execute(
        select(ClubMember.role, func.count(ClubMember.id)).where(ClubMember.club_id == club.id).group_by(ClubMember.role)
    )
    pending = await _count(
        db, ClubJoinRequest, ClubJoinRequest.club_id == club.id, ClubJoinRequest.status == "pending"
    )
    return {"club": club, "roles": dict(roles.all()), "pending_requests": pending}


async def get_pending_requests(db: AsyncSession) -> dict[str, list[Any]]:
    """Pending club creations and pending join requests, oldest first."""
    clubs = await db.execute(
        select(Club, User)
        .outerjoin(User, User.id == Club.created_by)
        .where(Club.status == "pending")
        .order_by(Club.created_at, Club.id)
    )
    joins = await db.execute(
        select(ClubJoinRequest, Club, User)
        .join(Club, Club.id == ClubJoinRequest.club_id)
        .join(User, User.id == ClubJoinRequest.user_id)
        .where(ClubJoinRequest.status == "pending")
        .order_by(ClubJoinRequest.created_at, ClubJoinRequest.id)
    )
    return {
        "clubs": [(club, creator) for club, creator in clubs.all()],
        "join_requests": [(req, club, user) for req, club, user in joins.all()],
    }

