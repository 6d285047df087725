"""Community lifecycle and membership.

Rules:
- Any club member may propose a community; it starts ``pending`` with the
  proposer enrolled as community ``admin``
- Club owners/admins move it ``pending -> approved | rejected``
- ``is_archived`` is orthogonal to status; archiving is the only delete
- Only operable communities (approved and not archived) accept content writes:
  archived or missing -> 404, pending/rejected -> 403
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.clubs.policy import ANY_MEMBER, MANAGERS, enforce_club_role, is_manager
from harambee.clubs.service import record_club_log
from harambee.db.models import Club, Community, CommunityMember, User
from harambee.errors import AuthorizationError, NotFoundError, ValidationError
from harambee.timeutils import utcnow

logger = structlog.get_logger()

COMMUNITY_ADMIN = "admin"
COMMUNITY_MEMBER = "member"
STATUSES = {"pending", "approved", "rejected"}


# ---------------------------------------------------------------------------
# Lookup and access helpers
# ---------------------------------------------------------------------------


def find_community_membership(community: Community, user_id: int) -> CommunityMember | None:
    for member in community.members:
        if member.user_id == user_id:
            return member
    return None


def is_community_admin(club: Club, community: Community, user: User) -> bool:
    """Community admin, or club owner/admin (system admins included)."""
    membership = find_community_membership(community, user.id)
    if membership is not None and membership.role == COMMUNITY_ADMIN:
        return True
    return is_manager(club, user)


def require_community_member(community: Community, user: User) -> CommunityMember:
    membership = find_community_membership(community, user.id)
    if membership is None:
        raise AuthorizationError("Only community members can do this", code="not_a_community_member")
    return membership


def require_community_admin(club: Club, community: Community, user: User) -> None:
    if not is_community_admin(club, community, user):
        raise AuthorizationError("Only community or club admins can do this", code="insufficient_role")


def ensure_operable(community: Community) -> Community:
    if community.is_archived:
        raise NotFoundError("Community not found", code="community_not_found")
    if not community.is_operable:
        raise AuthorizationError(f"Community is {community.status}", code="community_not_operable")
    return community


async def get_community(db: AsyncSession, club: Club, community_id: int) -> Community:
    """Community of this club, archived or not; 404 otherwise."""
    community = await db.get(Community, community_id)
    if community is None or community.club_id != club.id:
        raise NotFoundError("Community not found", code="community_not_found")
    return community


async def get_visible_community(db: AsyncSession, club: Club, community_id: int, user: User) -> Community:
    """Community readable by the caller; archived ones are hidden from everyone but club managers."""
    community = await get_community(db, club, community_id)
    if find_community_membership(community, user.id) is None:
        enforce_club_role(club, user, ANY_MEMBER)
    if community.is_archived and not is_manager(club, user):
        raise NotFoundError("Community not found", code="community_not_found")
    return community


async def get_operable_community(db: AsyncSession, club: Club, community_id: int) -> Community:
    return ensure_operable(await get_community(db, club, community_id))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def create_community(
    db: AsyncSession, club: Club, user: User, name: str, description: str | None = None
) -> Community:
    enforce_club_role(club, user, ANY_MEMBER)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Community name is required")

    community = Community(
        club_id=club.id,
        name=name,
        description=description or "",
        status="pending",
        is_archived=False,
        created_by=user.id,
        approval_requested_by=user.id,
        members=[CommunityMember(user_id=user.id, role=COMMUNITY_ADMIN, joined_at=utcnow())],
    )
    db.add(community)
    await db.flush()

    logger.info("community_created", club_id=club.id, community_id=community.id, user_id=user.id)
    return community


async def list_communities(
    db: AsyncSession,
    club: Club,
    user: User,
    include_archived: bool = False,
    status: str | None = None,
) -> list[Community]:
    enforce_club_role(club, user, ANY_MEMBER)
    query = select(Community).where(Community.club_id == club.id)
    if not include_archived:
        query = query.where(Community.is_archived.is_(False))
    if status:
        if status not in STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(STATUSES))}")
        query = query.where(Community.status == status)
    result = await db.execute(query.order_by(Community.created_at.asc(), Community.id.asc()))
    return list(result.scalars().all())


async def review_community(
    db: AsyncSession,
    club: Club,
    community_id: int,
    user: User,
    approve: bool,
    reason: str | None = None,
) -> Community:
    """Approve or reject a pending community (club owner/admin)."""
    enforce_club_role(club, user, MANAGERS)
    community = await get_community(db, club, community_id)
    if community.status != "pending":
        raise ValidationError("Community is not pending approval", code="community_not_pending")

    community.status = "approved" if approve else "rejected"
    community.approval_actioned_by = user.id
    community.rejection_reason = None if approve else (reason or "No reason provided")
    await db.flush()

    details: dict[str, Any] = {"communityId": community.id, "communityName": community.name}
    if not approve:
        details["reason"] = community.rejection_reason
    await record_club_log(db, club.id, f"community_{community.status}", user.id, details)
    logger.info(f"community_{community.status}", club_id=club.id, community_id=community.id, user_id=user.id)
    return community


async def update_community(
    db: AsyncSession, club: Club, community_id: int, user: User, changes: dict[str, Any]
) -> Community:
    """Edit name/description or toggle ``is_archived`` (community or club admin)."""
    community = await get_community(db, club, community_id)
    require_community_admin(club, community, user)

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Community name is required")
        community.name = name
    if "description" in changes:
        community.description = changes["description"] or ""
    archived_now = changes.get("is_archived") is True and not community.is_archived
    if "is_archived" in changes and changes["is_archived"] is not None:
        community.is_archived = bool(changes["is_archived"])
    await db.flush()

    action = "community_archived" if archived_now else "community_updated"
    await record_club_log(
        db, club.id, action, user.id, {"communityId": community.id, "communityName": community.name}
    )
    return community


async def archive_community(db: AsyncSession, club: Club, community_id: int, user: User) -> Community:
    return await update_community(db, club, community_id, user, {"is_archived": True})


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


async def join_community(db: AsyncSession, club: Club, community_id: int, user: User) -> CommunityMember:
    enforce_club_role(club, user, ANY_MEMBER)
    community = await get_operable_community(db, club, community_id)
    if find_community_membership(community, user.id) is not None:
        raise ValidationError("You are already a member of this community", code="already_member")

    membership = CommunityMember(user_id=user.id, role=COMMUNITY_MEMBER, joined_at=utcnow())
    try:
        async with db.begin_nested():
            community.members.append(membership)
    except IntegrityError:
        raise ValidationError("You are already a member of this community", code="already_member") from None

    logger.info("community_joined", club_id=club.id, community_id=community.id, user_id=user.id)
    return membership


async def leave_community(db: AsyncSession, club: Club, community_id: int, user: User) -> None:
    community = await get_community(db, club, community_id)
    membership = find_community_membership(community, user.id)
    if membership is None:
        raise ValidationError("You are not a member of this community", code="not_a_member")
    community.members.remove(membership)
    await db.flush()


async def list_community_members(
    db: AsyncSession, club: Club, community_id: int, user: User
) -> list[tuple[CommunityMember, User]]:
    community = await get_visible_community(db, club, community_id, user)
    result = await db.execute(
        select(CommunityMember, User)
        .join(User, User.id == CommunityMember.user_id)
        .where(CommunityMember.community_id == community.id)
        .order_by(CommunityMember.joined_at.asc(), CommunityMember.id.asc())
    )
    return [(row[0], row[1]) for row in result.all()]
