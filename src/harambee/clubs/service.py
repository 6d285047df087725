"""Club lifecycle logic.

Rules:
- New clubs start ``pending``; the creator is enrolled as ``owner`` straight away
- Only a system admin moves a club out of ``pending`` (approved | rejected, both terminal)
- Approval re-asserts ownership: the creator ends up as the single ``owner``
- Club names are unique case-insensitively among clubs that are not rejected
- Club log writes are best-effort and never fail the mutation they describe
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.clubs.policy import ADMIN, MANAGERS, OWNER, enforce_club_role, find_membership
from harambee.db.models import Club, ClubJoinRequest, ClubLog, ClubMember, User
from harambee.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from harambee.timeutils import utcnow
from harambee.users.notification_service import create_notification

logger = structlog.get_logger()

REVIEW_ACTIONS = {"approve": "approved", "reject": "rejected"}


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


async def get_club(db: AsyncSession, club_id: int) -> Club | None:
    """Get a club (roster eagerly loaded) by ID."""
    result = await db.execute(select(Club).where(Club.id == club_id))
    return result.scalar_one_or_none()


async def get_club_or_404(db: AsyncSession, club_id: int) -> Club:
    club = await get_club(db, club_id)
    if club is None:
        raise NotFoundError("Club not found", code="club_not_found")
    return club


async def get_club_members(db: AsyncSession, club_id: int) -> list[tuple[ClubMember, User]]:
    """Roster rows joined with their users, oldest membership first."""
    result = await db.execute(
        select(ClubMember, User)
        .join(User, User.id == ClubMember.user_id)
        .where(ClubMember.club_id == club_id)
        .order_by(ClubMember.joined_at.asc(), ClubMember.id.asc())
    )
    return [(row[0], row[1]) for row in result.all()]


def can_view_club(club: Club, user: User) -> bool:
    """Members and system admins see any club; everyone else only approved ones."""
    return club.status == "approved" or user.role == "admin" or find_membership(club, user.id) is not None


async def _name_taken(db: AsyncSession, name: str, exclude_id: int | None = None) -> bool:
    query = select(Club.id).where(func.lower(Club.name) == name.strip().lower(), Club.status != "rejected")
    if exclude_id is not None:
        query = query.where(Club.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Club log
# ---------------------------------------------------------------------------


async def record_club_log(
    db: AsyncSession,
    club_id: int,
    action: str,
    user_id: int | None,
    details: dict[str, Any] | None = None,
) -> ClubLog | None:
    """Append a club log entry inside a savepoint; a failure is logged and dropped."""
    entry = ClubLog(club_id=club_id, action=action, user_id=user_id, details=details or {})
    try:
        async with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError:
        logger.warning("club_log_write_failed", club_id=club_id, action=action, exc_info=True)
        return None
    return entry


async def get_club_logs(
    db: AsyncSession, club: Club, user: User, page: int = 1, per_page: int = 20
) -> tuple[list[ClubLog], int]:
    """Newest first; owner/admin only."""
    enforce_club_role(club, user, MANAGERS)
    total = (
        await db.execute(select(func.count()).select_from(ClubLog).where(ClubLog.club_id == club.id))
    ).scalar_one()
    result = await db.execute(
        select(ClubLog)
        .where(ClubLog.club_id == club.id)
        .order_by(ClubLog.created_at.desc(), ClubLog.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


async def create_club(
    db: AsyncSession,
    user: User,
    name: str,
    description: str | None = None,
    purpose: str | None = None,
    category: str | None = None,
) -> Club:
    """Create a pending club with the caller as owner."""
    name = name.strip()
    if not name:
        raise ValidationError("Club name is required")
    if await _name_taken(db, name):
        raise ConflictError("A club with this name already exists", code="club_name_taken")

    club = Club(
        name=name,
        description=description,
        purpose=purpose,
        category=category,
        status="pending",
        created_by=user.id,
        members=[ClubMember(user_id=user.id, role=OWNER, joined_at=utcnow())],
    )
    db.add(club)
    await db.flush()

    await record_club_log(db, club.id, "club_created", user.id, {"name": name})
    logger.info("club_created", club_id=club.id, name=name, user_id=user.id)
    return club


async def update_club(db: AsyncSession, club: Club, user: User, changes: dict[str, Any]) -> Club:
    """Edit name/description/purpose/category (owner/admin)."""
    enforce_club_role(club, user, MANAGERS)

    new_name = changes.get("name")
    if new_name is not None:
        new_name = new_name.strip()
        if not new_name:
            raise ValidationError("Club name is required")
        if new_name.lower() != club.name.lower() and await _name_taken(db, new_name, exclude_id=club.id):
            raise ConflictError("A club with this name already exists", code="club_name_taken")
        club.name = new_name

    for field in ("description", "purpose", "category"):
        if field in changes:
            setattr(club, field, changes[field])

    await db.flush()
    await record_club_log(db, club.id, "club_updated", user.id, {"fields": sorted(changes)})
    return club


async def delete_club(db: AsyncSession, club: Club, user: User) -> None:
    """Hard delete; system admins only. Children go with the club (FK cascades)."""
    if user.role != "admin":
        raise AuthorizationError("Admin access required", code="admin_required")
    await db.delete(club)
    await db.flush()
    logger.info("club_deleted", club_id=club.id, admin_id=user.id)


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


def ensure_owner_membership(club: Club) -> ClubMember | None:
    """
    Make the creator the club's single owner.

    The creator's entry is promoted (or appended when missing); any other
    ``owner`` entry is demoted to ``admin``. Running it twice changes nothing.
    Returns the owner entry, or None when the creator account no longer exists.
    """
    if club.created_by is None:
        return None

    owner_entry: ClubMember | None = None
    for member in club.members:
        if member.user_id == club.created_by:
            member.role = OWNER
            owner_entry = member
        elif member.role == OWNER:
            member.role = ADMIN

    if owner_entry is None:
        owner_entry = ClubMember(user_id=club.created_by, role=OWNER, joined_at=utcnow())
        club.members.append(owner_entry)
    return owner_entry


async def review_club(
    db: AsyncSession,
    club: Club,
    reviewer: User,
    action: str,
    reason: str | None = None,
) -> Club:
    """
    Approve or reject a pending club (system admin).

    The status flip and the ownership repair are flushed together, and the
    row's version check turns a concurrent review into a 409.
    """
    if reviewer.role != "admin":
        raise AuthorizationError("Admin access required", code="admin_required")
    if action not in REVIEW_ACTIONS:
        raise ValidationError("Invalid action", code="invalid_action")
    if club.status != "pending":
        raise ValidationError("Club request is not pending", code="club_not_pending")

    club.status = REVIEW_ACTIONS[action]
    club.reviewed_by = reviewer.id
    club.reviewed_at = utcnow()
    club.review_reason = reason
    if club.status == "approved":
        ensure_owner_membership(club)
    await db.flush()

    await record_club_log(db, club.id, f"club_{club.status}", reviewer.id, {"reason": reason} if reason else {})
    if club.created_by is not None:
        await create_notification(
            db,
            club.created_by,
            f'Your club "{club.name}" was {club.status}.' + (f" Reason: {reason}" if reason else ""),
            title="Club review",
            link=f"/clubs/{club.id}",
            type_="club",
        )
    logger.info(f"club_{club.status}", club_id=club.id, admin_id=reviewer.id)
    return club


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def _search_filter(search: str | None):  # noqa: ANN202
    if not search:
        return None
    pattern = f"%{search.lower()}%"
    return or_(func.lower(Club.name).like(pattern), func.lower(func.coalesce(Club.description, "")).like(pattern))


async def list_clubs(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 10,
    status: str | None = None,
    search: str | None = None,
    category: str | None = None,
) -> tuple[list[Club], int]:
    """Filtered, paginated club list (newest first). Returns (clubs, total)."""
    conditions = []
    if status:
        conditions.append(Club.status == status)
    if category:
        conditions.append(Club.category == category)
    text_filter = _search_filter(search)
    if text_filter is not None:
        conditions.append(text_filter)

    total = (await db.execute(select(func.count()).select_from(Club).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Club)
        .where(*conditions)
        .order_by(Club.created_at.desc(), Club.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def list_public_clubs(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 10,
    search: str | None = None,
    category: str | None = None,
) -> tuple[list[Club], int]:
    return await list_clubs(db, page, per_page, status="approved", search=search, category=category)


async def list_user_clubs(db: AsyncSession, user_id: int) -> list[tuple[Club, ClubMember]]:
    """Clubs the user belongs to, with their roster entry."""
    result = await db.execute(
        select(Club, ClubMember)
        .join(ClubMember, ClubMember.club_id == Club.id)
        .where(ClubMember.user_id == user_id)
        .order_by(ClubMember.joined_at.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def count_pending_join_requests(db: AsyncSession, club_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(ClubJoinRequest)
        .where(ClubJoinRequest.club_id == club_id, ClubJoinRequest.status == "pending")
    )
    return result.scalar_one()
