"""Club log writes are best-effort: a failed insert never undoes the change it describes."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy import event, select
from sqlalchemy.exc import SQLAlchemyError

from harambee.clubs.membership_service import change_member_role
from harambee.clubs.policy import find_membership
from harambee.clubs.service import get_club_or_404, review_club
from harambee.db.models import ClubLog, User


@contextmanager
def club_log_inserts_fail() -> Iterator[None]:
    def _refuse(_mapper: Any, _connection: Any, _target: ClubLog) -> None:
        raise SQLAlchemyError("club_logs is unavailable")

    event.listen(ClubLog, "before_insert", _refuse)
    try:
        yield
    finally:
        event.remove(ClubLog, "before_insert", _refuse)


async def _log_actions(db, club_id: int) -> list[str]:
    result = await db.execute(select(ClubLog.action).where(ClubLog.club_id == club_id).order_by(ClubLog.id))
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_approval_commits_when_log_write_fails(client: AsyncClient, sessions, make_user, admin) -> None:
    owner = await make_user()
    created = await client.post("/api/clubs", json={"name": "Chess Club"}, headers=owner.headers)
    club_id = created.json()["data"]["id"]

    async with sessions() as db:
        club = await get_club_or_404(db, club_id)
        reviewer = await db.get(User, admin.id)
        with club_log_inserts_fail(), patch("harambee.clubs.service.logger") as logger:
            await review_club(db, club, reviewer, "approve")

        logger.warning.assert_called_once_with(
            "club_log_write_failed", club_id=club_id, action="club_approved", exc_info=True
        )

    async with sessions() as db:
        club = await get_club_or_404(db, club_id)
        assert club.status == "approved"
        assert club.reviewed_by == admin.id
        assert find_membership(club, owner.id).role == "owner"
        assert await _log_actions(db, club_id) == ["club_created"]


@pytest.mark.asyncio
async def test_role_change_commits_when_log_write_fails(
    client: AsyncClient, sessions, make_user, admin, club_helpers
) -> None:
    owner = await make_user()
    member = await make_user()
    club_id = await club_helpers.approved_club(client, owner, admin)
    await club_helpers.join(client, club_id, member, owner)

    async with sessions() as db:
        club = await get_club_or_404(db, club_id)
        actor = await db.get(User, owner.id)
        with club_log_inserts_fail(), patch("harambee.clubs.service.logger") as logger:
            await change_member_role(db, club, actor, member.id, "admin")

        assert logger.warning.call_args.args == ("club_log_write_failed",)
        assert logger.warning.call_args.kwargs["action"] == "member_role_changed"

    async with sessions() as db:
        club = await get_club_or_404(db, club_id)
        assert find_membership(club, member.id).role == "admin"
        assert "member_role_changed" not in await _log_actions(db, club_id)
