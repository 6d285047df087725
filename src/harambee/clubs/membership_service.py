"""Club roster: join requests, leaving, role changes and removals.

Join requests are unique while pending (partial unique index) and are
decided with a conditional UPDATE, so two managers handling the same request
cannot both win. The owner entry is never demoted, removed or allowed to
leave; removing a member also drops them from the club's communities.
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.clubs.policy import ADMIN, ANY_MEMBER, MANAGERS, MEMBER, OWNER, OWNER_ONLY, enforce_club_role, find_membership
from harambee.clubs.service import get_club_members, record_club_log
from harambee.db.models import Club, ClubJoinRequest, ClubMember, Community, CommunityMember, User
from harambee.errors import AuthorizationError, NotFoundError, ValidationError
from harambee.timeutils import utcnow
from harambee.users.notification_service import create_notification

logger = structlog.get_logger()

JOIN_ACTIONS = {"approve": "approved", "reject": "rejected"}
ASSIGNABLE_ROLES = {MEMBER, ADMIN}


# ---------------------------------------------------------------------------
# Join requests
# ---------------------------------------------------------------------------


async def _pending_request(db: AsyncSession, club_id: int, user_id: int) -> ClubJoinRequest | None:
    result = await db.execute(
        select(ClubJoinRequest).where(
            ClubJoinRequest.club_id == club_id,
            ClubJoinRequest.user_id == user_id,
            ClubJoinRequest.status == "pending",
        )
    )
    return result.scalar_one_or_none()


async def request_join(db: AsyncSession, club: Club, user: User, message: str | None = None) -> ClubJoinRequest:
    """File a pending join request for an approved club."""
    if club.status != "approved":
        raise NotFoundError("Club not found or not approved", code="club_not_found")
    if find_membership(club, user.id) is not None:
        raise ValidationError("You are already a member of this club", code="already_member")
    if await _pending_request(db, club.id, user.id) is not None:
        raise ValidationError("You have already requested to join this club", code="join_request_pending")

    join_request = ClubJoinRequest(club_id=club.id, user_id=user.id, message=message, status="pending")
    try:
        async with db.begin_nested():
            db.add(join_request)
    except IntegrityError:
        # A concurrent request from the same user got in first.
        raise ValidationError(
            "You have already requested to join this club", code="join_request_pending"
        ) from None

    logger.info("join_requested", club_id=club.id, user_id=user.id)
    return join_request


async def list_join_requests(
    db: AsyncSession, club: Club, user: User, status: str | None = "pending"
) -> list[tuple[ClubJoinRequest, User]]:
    """Join requests with their requesters, oldest first (owner/admin)."""
    enforce_club_role(club, user, MANAGERS)
    query = (
        select(ClubJoinRequest, User)
        .join(User, User.id == ClubJoinRequest.user_id)
        .where(ClubJoinRequest.club_id == club.id)
    )
    if status:
        query = query.where(ClubJoinRequest.status == status)
    result = await db.execute(query.order_by(ClubJoinRequest.created_at.asc(), ClubJoinRequest.id.asc()))
    return [(row[0], row[1]) for row in result.all()]


async def handle_join_request(
    db: AsyncSession, club: Club, actor: User, request_id: int, action: str
) -> ClubJoinRequest:
    """
    Approve or reject a pending join request.

    The status change is a single ``UPDATE ... WHERE status = 'pending'``;
    zero affected rows means another handler already decided it.
    """
    enforce_club_role(club, actor, MANAGERS)
    if action not in JOIN_ACTIONS:
        raise ValidationError("Invalid action", code="invalid_action")

    join_request = await db.get(ClubJoinRequest, request_id)
    if join_request is None or join_request.club_id != club.id:
        raise NotFoundError("Join request not found", code="join_request_not_found")
    if join_request.status != "pending":
        raise ValidationError("Join request has already been processed", code="join_request_processed")

    new_status = JOIN_ACTIONS[action]
    result = await db.execute(
        update(ClubJoinRequest)
        .where(ClubJoinRequest.id == request_id, ClubJoinRequest.status == "pending")
        .values(status=new_status, handled_by=actor.id, handled_at=utcnow())
    )
    if result.rowcount == 0:
        raise ValidationError("Join request has already been processed", code="join_request_processed")

    if new_status == "approved" and find_membership(club, join_request.user_id) is None:
        club.members.append(ClubMember(user_id=join_request.user_id, role=MEMBER, joined_at=utcnow()))
    await db.flush()

    await record_club_log(
        db,
        club.id,
        f"join_request_{new_status}",
        actor.id,
        {"requestId": request_id, "userId": join_request.user_id},
    )
    await create_notification(
        db,
        join_request.user_id,
        f'Your request to join "{club.name}" was {new_status}.',
        title="Join request",
        link=f"/clubs/{club.id}",
        type_="club",
    )
    logger.info("join_request_handled", club_id=club.id, request_id=request_id, status=new_status, actor_id=actor.id)
    return join_request


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------


async def _drop_community_memberships(db: AsyncSession, club_id: int, user_id: int) -> int:
    community_ids = select(Community.id).where(Community.club_id == club_id)
    result = await db.execute(
        delete(CommunityMember)
        .where(CommunityMember.community_id.in_(community_ids), CommunityMember.user_id == user_id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def _remove_from_roster(db: AsyncSession, club: Club, membership: ClubMember) -> None:
    club.members.remove(membership)
    await db.flush()
    await _drop_community_memberships(db, club.id, membership.user_id)


async def leave_club(db: AsyncSession, club: Club, user: User) -> None:
    membership = find_membership(club, user.id)
    if membership is None:
        raise ValidationError("You are not a member of this club", code="not_a_member")
    if membership.role == OWNER:
        raise ValidationError("Club owner cannot leave. Transfer ownership first.", code="owner_cannot_leave")

    await _remove_from_roster(db, club, membership)
    await record_club_log(db, club.id, "member_left", user.id)
    logger.info("club_member_left", club_id=club.id, user_id=user.id)


async def list_members(db: AsyncSession, club: Club, user: User) -> list[tuple[ClubMember, User]]:
    enforce_club_role(club, user, ANY_MEMBER)
    return await get_club_members(db, club.id)


async def change_member_role(db: AsyncSession, club: Club, actor: User, target_user_id: int, role: str) -> ClubMember:
    """Set a member's role to member or admin (owner only)."""
    enforce_club_role(club, actor, OWNER_ONLY)
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError("Role must be 'member' or 'admin'", code="invalid_role")

    target = find_membership(club, target_user_id)
    if target is None:
        raise NotFoundError("Member not found", code="member_not_found")
    if target.role == OWNER:
        raise ValidationError("The club owner's role cannot be changed", code="owner_protected")

    previous = target.role
    target.role = role
    await db.flush()

    await record_club_log(
        db, club.id, "member_role_changed", actor.id, {"userId": target_user_id, "from": previous, "to": role}
    )
    logger.info("club_member_role_changed", club_id=club.id, user_id=target_user_id, role=role)
    return target


async def remove_member(db: AsyncSession, club: Club, actor: User, target_user_id: int) -> None:
    """
    Remove a member (owner/admin).

    The owner cannot be removed, admins can only be removed by the owner (or
    a system admin), and the removed user leaves every community of the club.
    """
    granted = enforce_club_role(club, actor, MANAGERS)

    target = find_membership(club, target_user_id)
    if target is None:
        raise NotFoundError("Member not found", code="member_not_found")
    if target.role == OWNER:
        raise ValidationError("The club owner cannot be removed", code="owner_protected")
    actor_role = granted.membership.role if granted.membership is not None else None
    if target.role == ADMIN and actor_role != OWNER and actor.role != "admin":
        raise AuthorizationError("Only the club owner can remove admins", code="insufficient_role")

    await _remove_from_roster(db, club, target)
    await record_club_log(db, club.id, "member_removed", actor.id, {"userId": target_user_id})
    logger.info("club_member_removed", club_id=club.id, user_id=target_user_id, actor_id=actor.id)
