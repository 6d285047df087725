"""Club role authorization.

Every club-scoped check goes through ``require_club_role``; handlers never
compare role strings themselves. The function is pure: it only reads the
club's loaded roster.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from typing import TYPE_CHECKING

from harambee.errors import AuthorizationError

if TYPE_CHECKING:
    from harambee.db.models import Club, ClubMember, User

OWNER = "owner"
ADMIN = "admin"
MEMBER = "member"

ANY_MEMBER: tuple[str, ...] = (OWNER, ADMIN, MEMBER)
MANAGERS: tuple[str, ...] = (OWNER, ADMIN)
OWNER_ONLY: tuple[str, ...] = (OWNER,)


@dataclass(frozen=True)
class Authorized:
    membership: ClubMember | None
    """None when access comes from the system admin role rather than the roster."""


@dataclass(frozen=True)
class NotMember:
    pass


@dataclass(frozen=True)
class InsufficientRole:
    role: str


AuthorizationResult = Authorized | NotMember | InsufficientRole


def find_membership(club: Club, user_id: int) -> ClubMember | None:
    for member in club.members:
        if member.user_id == user_id:
            return member
    return None


def require_club_role(club: Club, user_id: int, allowed_roles: Collection[str]) -> AuthorizationResult:
    """Classify the caller against ``allowed_roles`` using the club roster."""
    membership = find_membership(club, user_id)
    if membership is None:
        return NotMember()
    if membership.role not in allowed_roles:
        return InsufficientRole(role=membership.role)
    return Authorized(membership=membership)


def check_club_access(club: Club, user: User, allowed_roles: Collection[str]) -> AuthorizationResult:
    """``require_club_role`` with the system admin override applied."""
    result = require_club_role(club, user.id, allowed_roles)
    if not isinstance(result, Authorized) and user.role == "admin":
        return Authorized(membership=find_membership(club, user.id))
    return result


def enforce_club_role(club: Club, user: User, allowed_roles: Collection[str]) -> Authorized:
    """Return the Authorized result or raise the matching 403."""
    result = check_club_access(club, user, allowed_roles)
    if isinstance(result, NotMember):
        raise AuthorizationError("You are not a member of this club", code="not_a_member")
    if isinstance(result, InsufficientRole):
        raise AuthorizationError(
            f"This action requires one of the roles: {', '.join(sorted(allowed_roles))}",
            code="insufficient_role",
        )
    return result


def is_manager(club: Club, user: User) -> bool:
    return isinstance(check_club_access(club, user, MANAGERS), Authorized)
