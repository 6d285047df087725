"""Unit tests for club role authorization."""

from __future__ import annotations

import pytest

from harambee.clubs.policy import (
    ANY_MEMBER,
    MANAGERS,
    OWNER_ONLY,
    Authorized,
    InsufficientRole,
    NotMember,
    check_club_access,
    enforce_club_role,
    find_membership,
    is_manager,
    require_club_role,
)
from harambee.clubs.service import ensure_owner_membership
from harambee.db.models import Club, ClubMember, User
from harambee.errors import AuthorizationError


def _club(*members: tuple[int, str], created_by: int = 1) -> Club:
    return Club(
        name="Chess Club",
        status="approved",
        created_by=created_by,
        members=[ClubMember(user_id=uid, role=role) for uid, role in members],
    )


def _user(user_id: int, role: str = "user") -> User:
    return User(id=user_id, name=f"user{user_id}", email=f"u{user_id}@example.com", role=role)


class TestRequireClubRole:
    def test_not_member(self) -> None:
        club = _club((1, "owner"))
        assert isinstance(require_club_role(club, 99, ANY_MEMBER), NotMember)

    def test_insufficient_role_carries_role(self) -> None:
        club = _club((1, "owner"), (2, "member"))
        result = require_club_role(club, 2, MANAGERS)
        assert isinstance(result, InsufficientRole)
        assert result.role == "member"

    def test_authorized_returns_membership(self) -> None:
        club = _club((1, "owner"), (2, "admin"))
        result = require_club_role(club, 2, MANAGERS)
        assert isinstance(result, Authorized)
        assert result.membership is find_membership(club, 2)

    def test_owner_only(self) -> None:
        club = _club((1, "owner"), (2, "admin"))
        assert isinstance(require_club_role(club, 1, OWNER_ONLY), Authorized)
        assert isinstance(require_club_role(club, 2, OWNER_ONLY), InsufficientRole)


class TestSystemAdminOverride:
    def test_system_admin_passes_without_membership(self) -> None:
        club = _club((1, "owner"))
        result = check_club_access(club, _user(50, role="admin"), OWNER_ONLY)
        assert isinstance(result, Authorized)
        assert result.membership is None

    def test_plain_user_is_not_overridden(self) -> None:
        club = _club((1, "owner"))
        assert isinstance(check_club_access(club, _user(50), ANY_MEMBER), NotMember)

    def test_is_manager(self) -> None:
        club = _club((1, "owner"), (2, "member"))
        assert is_manager(club, _user(1))
        assert not is_manager(club, _user(2))
        assert is_manager(club, _user(3, role="admin"))


class TestEnforceClubRole:
    def test_not_member_code(self) -> None:
        with pytest.raises(AuthorizationError) as exc:
            enforce_club_role(_club((1, "owner")), _user(2), ANY_MEMBER)
        assert exc.value.code == "not_a_member"
        assert exc.value.status_code == 403

    def test_insufficient_role_code(self) -> None:
        with pytest.raises(AuthorizationError) as exc:
            enforce_club_role(_club((1, "owner"), (2, "member")), _user(2), MANAGERS)
        assert exc.value.code == "insufficient_role"


class TestEnsureOwnerMembership:
    def test_appends_missing_creator(self) -> None:
        club = _club(created_by=7)
        entry = ensure_owner_membership(club)
        assert entry is not None
        assert [(m.user_id, m.role) for m in club.members] == [(7, "owner")]

    def test_promotes_creator_and_demotes_other_owner(self) -> None:
        club = _club((7, "member"), (8, "owner"), created_by=7)
        ensure_owner_membership(club)
        roles = {m.user_id: m.role for m in club.members}
        assert roles == {7: "owner", 8: "admin"}

    def test_idempotent(self) -> None:
        club = _club((7, "owner"), (8, "member"), created_by=7)
        ensure_owner_membership(club)
        ensure_owner_membership(club)
        assert [(m.user_id, m.role) for m in club.members] == [(7, "owner"), (8, "member")]

    def test_deleted_creator(self) -> None:
        club = _club((8, "admin"), created_by=None)
        assert ensure_owner_membership(club) is None
        assert len(club.members) == 1
