"""Integration tests: community lifecycle, membership, tasks, chat and polls."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import AsyncClient


async def _community(client: AsyncClient, club_id: int, creator, name: str = "Openings") -> int:
    response = await client.post(
        f"/api/clubs/{club_id}/communities", json={"name": name, "description": "Study group"}, headers=creator.headers
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


@pytest_asyncio.fixture
async def chess(client: AsyncClient, make_user, admin, club_helpers):
    """An approved club with an owner and one plain member."""
    owner = await make_user("Baraka")
    member = await make_user("Neema")
    club_id = await club_helpers.approved_club(client, owner, admin)
    await club_helpers.join(client, club_id, member, owner)
    return club_id, owner, member


class TestCommunityLifecycle:
    @pytest.mark.asyncio
    async def test_proposal_starts_pending(self, client: AsyncClient, chess) -> None:
        club_id, _owner, member = chess
        response = await client.post(f"/api/clubs/{club_id}/communities", json={"name": "Endgames"}, headers=member.headers)
        data = response.json()["data"]
        assert data["status"] == "pending"
        assert data["isArchived"] is False
        assert data["userRole"] == "admin"
        assert data["memberCount"] == 1

    @pytest.mark.asyncio
    async def test_outsider_cannot_propose(self, client: AsyncClient, chess, make_user) -> None:
        club_id, _owner, _member = chess
        outsider = await make_user()
        response = await client.post(f"/api/clubs/{club_id}/communities", json={"name": "X"}, headers=outsider.headers)
        assert response.status_code == 403
        assert response.json()["code"] == "not_a_member"

    @pytest.mark.asyncio
    async def test_writes_blocked_until_approved(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, member)
        base = f"/api/clubs/{club_id}/communities/{community_id}"

        pending = await client.post(f"{base}/chat", json={"text": "Hello"}, headers=member.headers)
        assert pending.status_code == 403
        assert pending.json()["code"] == "community_not_operable"

        denied = await client.patch(f"{base}/approve", headers=member.headers)
        assert denied.status_code == 403

        approved = await client.patch(f"{base}/approve", headers=owner.headers)
        assert approved.json()["data"]["status"] == "approved"
        assert approved.json()["data"]["approvalActionedBy"] == owner.id

        again = await client.patch(f"{base}/approve", headers=owner.headers)
        assert again.json()["code"] == "community_not_pending"

        posted = await client.post(f"{base}/chat", json={"text": "Hello"}, headers=member.headers)
        assert posted.status_code == 201
        assert posted.json()["data"]["sender"] == member.id

    @pytest.mark.asyncio
    async def test_reject_records_reason(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, member)
        response = await client.patch(
            f"/api/clubs/{club_id}/communities/{community_id}/reject", json={}, headers=owner.headers
        )
        data = response.json()["data"]
        assert data["status"] == "rejected"
        assert data["rejectionReason"] == "No reason provided"

        join = await client.post(f"/api/clubs/{club_id}/communities/{community_id}/join", headers=owner.headers)
        assert join.json()["code"] == "community_not_operable"

    @pytest.mark.asyncio
    async def test_archive_hides_community(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, member)
        base = f"/api/clubs/{club_id}/communities/{community_id}"
        await client.patch(f"{base}/approve", headers=owner.headers)

        archived = await client.delete(base, headers=member.headers)
        assert archived.json()["data"]["isArchived"] is True
        assert archived.json()["data"]["status"] == "approved"

        listed = (await client.get(f"/api/clubs/{club_id}/communities", headers=member.headers)).json()["data"]
        assert listed == []
        with_archived = await client.get(
            f"/api/clubs/{club_id}/communities", params={"includeArchived": "true"}, headers=owner.headers
        )
        assert [c["id"] for c in with_archived.json()["data"]] == [community_id]

        chat = await client.post(f"{base}/chat", json={"text": "Anyone?"}, headers=member.headers)
        assert chat.status_code == 404
        assert chat.json()["code"] == "community_not_found"

        restored = await client.patch(base, json={"isArchived": False}, headers=owner.headers)
        assert restored.json()["data"]["isArchived"] is False

        logs = (await client.get(f"/api/clubs/{club_id}/logs", headers=owner.headers)).json()["data"]["items"]
        assert "community_archived" in [entry["action"] for entry in logs]


class TestCommunityMembership:
    @pytest.mark.asyncio
    async def test_join_leave(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, member)
        base = f"/api/clubs/{club_id}/communities/{community_id}"
        await client.patch(f"{base}/approve", headers=owner.headers)

        assert (await client.post(f"{base}/join", headers=owner.headers)).status_code == 201
        twice = await client.post(f"{base}/join", headers=owner.headers)
        assert twice.json()["code"] == "already_member"

        members = (await client.get(f"{base}/members", headers=member.headers)).json()["data"]
        assert {m["user"]["id"]: m["role"] for m in members} == {member.id: "admin", owner.id: "member"}

        assert (await client.delete(f"{base}/leave", headers=owner.headers)).status_code == 200
        gone = await client.delete(f"{base}/leave", headers=owner.headers)
        assert gone.json()["code"] == "not_a_member"

    @pytest.mark.asyncio
    async def test_removed_club_member_leaves_communities(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, owner)
        base = f"/api/clubs/{club_id}/communities/{community_id}"
        await client.patch(f"{base}/approve", headers=owner.headers)
        await client.post(f"{base}/join", headers=member.headers)

        removed = await client.delete(f"/api/clubs/{club_id}/members/{member.id}", headers=owner.headers)
        assert removed.status_code == 200

        members = (await client.get(f"{base}/members", headers=owner.headers)).json()["data"]
        assert [m["user"]["id"] for m in members] == [owner.id]


class TestCommunityContent:
    @pytest.mark.asyncio
    async def test_poll_single_vote(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, member)
        base = f"/api/clubs/{club_id}/communities/{community_id}"
        await client.patch(f"{base}/approve", headers=owner.headers)

        created = await client.post(
            f"{base}/polls", json={"question": "Pick color", "options": ["White", "Black"]}, headers=member.headers
        )
        assert created.status_code == 201
        poll_id = created.json()["data"]["id"]

        first = await client.post(f"{base}/polls/{poll_id}/vote", json={"optionIndex": 0}, headers=member.headers)
        assert first.status_code == 200
        poll = first.json()["data"]
        assert poll["options"][0]["votes"] == [member.id]
        assert poll["totalVotes"] == 1
        assert poll["userVote"] == 0

        second = await client.post(f"{base}/polls/{poll_id}/vote", json={"optionIndex": 1}, headers=member.headers)
        assert second.status_code == 400
        assert second.json()["error"] == "Already voted"

        out_of_range = await client.post(f"{base}/polls/{poll_id}/vote", json={"optionIndex": 5}, headers=member.headers)
        assert out_of_range.json()["code"] == "invalid_option"

        non_member = await client.post(f"{base}/polls/{poll_id}/vote", json={"optionIndex": 1}, headers=owner.headers)
        assert non_member.status_code == 403

        closed = await client.patch(f"{base}/polls/{poll_id}/close", headers=member.headers)
        assert closed.json()["data"]["isClosed"] is True

        await client.post(f"{base}/join", headers=owner.headers)
        late = await client.post(f"{base}/polls/{poll_id}/vote", json={"optionIndex": 1}, headers=owner.headers)
        assert late.json()["code"] == "poll_closed"

    @pytest.mark.asyncio
    async def test_poll_needs_two_options(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, member)
        base = f"/api/clubs/{club_id}/communities/{community_id}"
        await client.patch(f"{base}/approve", headers=owner.headers)
        response = await client.post(
            f"{base}/polls", json={"question": "Pick", "options": ["Only", "  "]}, headers=member.headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_tasks_and_chat(self, client: AsyncClient, chess) -> None:
        club_id, owner, member = chess
        community_id = await _community(client, club_id, member)
        base = f"/api/clubs/{club_id}/communities/{community_id}"
        await client.patch(f"{base}/approve", headers=owner.headers)

        task = await client.post(f"{base}/tasks", json={"title": "Prepare puzzles"}, headers=member.headers)
        assert task.status_code == 201
        task_id = task.json()["data"]["id"]
        done = await client.patch(f"{base}/tasks/{task_id}", json={"completed": True}, headers=member.headers)
        assert done.json()["data"]["completed"] is True

        for text in ("First", "Second"):
            await client.post(f"{base}/chat", json={"text": text}, headers=member.headers)
        chat = (await client.get(f"{base}/chat", headers=member.headers)).json()["data"]
        assert [m["text"] for m in chat] == ["First", "Second"]

        blank = await client.post(f"{base}/chat", json={"text": "   "}, headers=member.headers)
        assert blank.status_code == 400

        # Club owner manages content without joining the community.
        deleted = await client.delete(f"{base}/chat/{chat[0]['id']}", headers=owner.headers)
        assert deleted.status_code == 200
        assert (await client.delete(f"{base}/tasks/{task_id}", headers=owner.headers)).status_code == 200
