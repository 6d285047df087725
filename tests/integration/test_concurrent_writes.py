"""Integration tests: racing writes from two sessions.

The stale session loads its rows, then commits to end its read transaction
(``expire_on_commit=False`` keeps the loaded state) so the other session can
write before it.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from harambee.clubs.membership_service import request_join
from harambee.clubs.service import get_club_or_404, review_club
from harambee.communities import content_service
from harambee.communities.service import join_community
from harambee.db.models import ClubJoinRequest, CommunityMember, Poll, PollVote, User
from harambee.errors import ValidationError


async def _operable_community(client: AsyncClient, club_id: int, owner, member) -> int:
    """Approved community with the owner (creator) and ``member`` in it."""
    response = await client.post(f"/api/clubs/{club_id}/communities", json={"name": "Openings"}, headers=owner.headers)
    community_id = response.json()["data"]["id"]
    base = f"/api/clubs/{club_id}/communities/{community_id}"
    assert (await client.patch(f"{base}/approve", headers=owner.headers)).status_code == 200
    assert (await client.post(f"{base}/join", headers=member.headers)).status_code == 201
    return community_id


class TestClubReviewRace:
    @pytest.mark.asyncio
    async def test_second_review_of_stale_club_is_rejected(
        self, client: AsyncClient, sessions, make_user, admin
    ) -> None:
        owner = await make_user("Baraka")
        created = await client.post("/api/clubs", json={"name": "Chess Club"}, headers=owner.headers)
        club_id = created.json()["data"]["id"]

        async with sessions() as stale:
            stale_club = await get_club_or_404(stale, club_id)
            stale_reviewer = await stale.get(User, admin.id)
            await stale.commit()

            async with sessions() as db:
                club = await get_club_or_404(db, club_id)
                await review_club(db, club, await db.get(User, admin.id), "approve")

            with pytest.raises(StaleDataError):
                await review_club(stale, stale_club, stale_reviewer, "reject")
            await stale.rollback()

        async with sessions() as db:
            club = await get_club_or_404(db, club_id)
            assert club.status == "approved"
            assert [(m.user_id, m.role) for m in club.members] == [(owner.id, "owner")]

    @pytest.mark.asyncio
    async def test_stale_write_maps_to_conflict(self, client: AsyncClient, make_user, admin, club_helpers) -> None:
        owner = await make_user()
        club_id = await club_helpers.approved_club(client, owner, admin)

        lost_race = StaleDataError("UPDATE statement on table 'clubs' expected to update 1 row(s); 0 were matched.")
        with patch("harambee.clubs.router.update_club", AsyncMock(side_effect=lost_race)):
            response = await client.put(f"/api/clubs/{club_id}", json={"description": "x"}, headers=owner.headers)

        assert response.status_code == 409
        assert response.json() == {
            "error": "Resource was modified concurrently, retry the request",
            "code": "concurrent_modification",
        }


class TestUniqueRowRaces:
    """The duplicate pre-checks are patched out to replay the window where both writers passed them."""

    @pytest.mark.asyncio
    async def test_duplicate_vote_hits_constraint(
        self, client: AsyncClient, sessions, make_user, admin, club_helpers
    ) -> None:
        owner = await make_user("Baraka")
        member = await make_user("Neema")
        club_id = await club_helpers.approved_club(client, owner, admin)
        await club_helpers.join(client, club_id, member, owner)
        community_id = await _operable_community(client, club_id, owner, member)
        base = f"/api/clubs/{club_id}/communities/{community_id}"
        poll_id = (
            await client.post(
                f"{base}/polls", json={"question": "Pick color", "options": ["White", "Black"]}, headers=owner.headers
            )
        ).json()["data"]["id"]

        async with sessions() as stale:
            club = await get_club_or_404(stale, club_id)
            voter = await stale.get(User, member.id)
            assert (await stale.get(Poll, poll_id)).votes == []
            await stale.commit()

            first = await client.post(f"{base}/polls/{poll_id}/vote", json={"optionIndex": 0}, headers=member.headers)
            assert first.status_code == 200

            with (
                patch.object(content_service, "has_voted", return_value=False),
                pytest.raises(ValidationError) as exc_info,
            ):
                await content_service.cast_vote(stale, club, community_id, poll_id, voter, 1)
            assert exc_info.value.code == "already_voted"
            assert exc_info.value.message == "Already voted"
            await stale.rollback()

        async with sessions() as db:
            votes = (await db.execute(select(PollVote).where(PollVote.poll_id == poll_id))).scalars().all()
            assert len(votes) == 1
            poll = await db.get(Poll, poll_id)
            assert votes[0].option_id == poll.options[0].id

    @pytest.mark.asyncio
    async def test_duplicate_join_request_hits_constraint(
        self, client: AsyncClient, sessions, make_user, admin, club_helpers
    ) -> None:
        owner = await make_user()
        applicant = await make_user()
        club_id = await club_helpers.approved_club(client, owner, admin)
        assert (await client.post(f"/api/clubs/{club_id}/join", json={}, headers=applicant.headers)).status_code == 201

        async with sessions() as db:
            club = await get_club_or_404(db, club_id)
            user = await db.get(User, applicant.id)
            with (
                patch("harambee.clubs.membership_service._pending_request", AsyncMock(return_value=None)),
                pytest.raises(ValidationError) as exc_info,
            ):
                await request_join(db, club, user, "again")
            assert exc_info.value.code == "join_request_pending"
            await db.rollback()

        async with sessions() as db:
            pending = await db.execute(
                select(func.count())
                .select_from(ClubJoinRequest)
                .where(ClubJoinRequest.club_id == club_id, ClubJoinRequest.status == "pending")
            )
            assert pending.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_duplicate_community_join_hits_constraint(
        self, client: AsyncClient, sessions, make_user, admin, club_helpers
    ) -> None:
        owner = await make_user()
        member = await make_user()
        club_id = await club_helpers.approved_club(client, owner, admin)
        await club_helpers.join(client, club_id, member, owner)
        community_id = await _operable_community(client, club_id, owner, member)

        async with sessions() as db:
            club = await get_club_or_404(db, club_id)
            user = await db.get(User, member.id)
            with (
                patch("harambee.communities.service.find_community_membership", return_value=None),
                pytest.raises(ValidationError) as exc_info,
            ):
                await join_community(db, club, community_id, user)
            assert exc_info.value.code == "already_member"
            await db.rollback()

        async with sessions() as db:
            rows = await db.execute(
                select(func.count())
                .select_from(CommunityMember)
                .where(CommunityMember.community_id == community_id, CommunityMember.user_id == member.id)
            )
            assert rows.scalar_one() == 1
