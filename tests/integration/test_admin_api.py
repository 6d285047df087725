"""Integration tests: admin dashboard, user moderation, review queue and broadcasts."""

from __future__ import annotations

import pytest
from httpx import AsyncClient


class TestAdminAccess:
    @pytest.mark.asyncio
    async def test_requires_admin_role(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        for path in ("/api/admin/dashboard", "/api/admin/users", "/api/admin/requests"):
            response = await client.get(path, headers=user.headers)
            assert response.status_code == 403
            assert response.json()["code"] == "admin_required"


class TestDashboard:
    @pytest.mark.asyncio
    async def test_counts_and_cache(self, client: AsyncClient, make_user, admin, memory_redis) -> None:
        owner = await make_user()
        await client.post("/api/clubs", json={"name": "Chess Club"}, headers=owner.headers)

        stats = (await client.get("/api/admin/dashboard", headers=admin.headers)).json()["data"]
        assert stats["userStats"]["totalUsers"] == 2
        assert stats["userStats"]["admins"] == 1
        assert stats["clubStats"]["pendingClubs"] == 1
        assert stats["pendingApprovals"] == {"clubs": 1, "joinRequests": 0}
        assert stats["recentActivities"][0]["action"] == "club_created"
        assert stats["recentActivities"][0]["clubName"] == "Chess Club"

        await make_user()
        cached = (await client.get("/api/admin/dashboard", headers=admin.headers)).json()["data"]
        assert cached["userStats"]["totalUsers"] == 2

        await memory_redis.delete("admin:dashboard")
        fresh = (await client.get("/api/admin/dashboard", headers=admin.headers)).json()["data"]
        assert fresh["userStats"]["totalUsers"] == 3


class TestUserModeration:
    @pytest.mark.asyncio
    async def test_block_and_unblock(self, client: AsyncClient, make_user, admin) -> None:
        user = await make_user()
        blocked = await client.patch(f"/api/admin/users/{user.id}/block", json={"isBlocked": True}, headers=admin.headers)
        assert blocked.json()["data"]["isBlocked"] is True

        me = await client.get("/api/auth/me", headers=user.headers)
        assert me.status_code == 403
        assert me.json()["code"] == "account_blocked"

        listed = (await client.get("/api/admin/users", params={"status": "blocked"}, headers=admin.headers)).json()[
            "data"
        ]
        assert [u["id"] for u in listed["items"]] == [user.id]

        await client.patch(f"/api/admin/users/{user.id}/block", json={"isBlocked": False}, headers=admin.headers)
        assert (await client.get("/api/auth/me", headers=user.headers)).status_code == 200

    @pytest.mark.asyncio
    async def test_cannot_block_or_delete_self(self, client: AsyncClient, admin) -> None:
        block = await client.patch(f"/api/admin/users/{admin.id}/block", json={"isBlocked": True}, headers=admin.headers)
        assert block.json()["code"] == "cannot_block_self"
        delete = await client.delete(f"/api/admin/users/{admin.id}", headers=admin.headers)
        assert delete.json()["code"] == "cannot_delete_self"

    @pytest.mark.asyncio
    async def test_update_user(self, client: AsyncClient, make_user, admin) -> None:
        first = await make_user()
        second = await make_user()
        taken = await client.put(f"/api/admin/users/{second.id}", json={"email": first.email}, headers=admin.headers)
        assert taken.status_code == 409

        bad_role = await client.put(f"/api/admin/users/{second.id}", json={"role": "owner"}, headers=admin.headers)
        assert bad_role.status_code == 400

        promoted = await client.put(f"/api/admin/users/{second.id}", json={"role": "admin"}, headers=admin.headers)
        assert promoted.json()["data"]["role"] == "admin"

    @pytest.mark.asyncio
    async def test_search_users(self, client: AsyncClient, make_user, admin) -> None:
        await make_user("Wanjiku")
        await make_user("Odhiambo")
        page = (await client.get("/api/admin/users", params={"search": "wanj"}, headers=admin.headers)).json()["data"]
        assert [u["name"] for u in page["items"]] == ["Wanjiku"]
        assert page["items"][0]["clubsJoined"] == 0

    @pytest.mark.asyncio
    async def test_delete_hands_over_ownership(self, client: AsyncClient, make_user, admin, club_helpers) -> None:
        owner = await make_user("Baraka")
        deputy = await make_user("Neema")
        chess = await club_helpers.approved_club(client, owner, admin, name="Chess Club")
        drama = await club_helpers.approved_club(client, owner, admin, name="Drama Club")
        await club_helpers.join(client, chess, deputy, owner)
        await client.put(f"/api/clubs/{chess}/members/{deputy.id}/role", json={"role": "admin"}, headers=owner.headers)

        community = await client.post(f"/api/clubs/{chess}/communities", json={"name": "Blitz"}, headers=owner.headers)
        community_id = community.json()["data"]["id"]

        response = await client.delete(f"/api/admin/users/{owner.id}", headers=admin.headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["ownerlessClubs"] == [drama]
        assert data["removed"]["communityMemberships"] == 1

        members = (await client.get(f"/api/clubs/{chess}/members", headers=deputy.headers)).json()["data"]
        assert [(m["user"]["id"], m["role"]) for m in members] == [(deputy.id, "owner")]

        details = (await client.get(f"/api/admin/clubs/{chess}", headers=admin.headers)).json()["data"]
        assert details["roles"] == {"owner": 1}

        visible = await client.get(f"/api/clubs/{chess}/communities/{community_id}", headers=deputy.headers)
        assert visible.json()["data"]["memberCount"] == 0

        gone = await client.get(f"/api/admin/users/{owner.id}", headers=admin.headers)
        assert gone.status_code == 404


class TestReviewQueue:
    @pytest.mark.asyncio
    async def test_pending_requests(self, client: AsyncClient, make_user, admin, club_helpers) -> None:
        owner = await make_user("Baraka")
        applicant = await make_user("Neema")
        await client.post("/api/clubs", json={"name": "Drama Club"}, headers=owner.headers)
        chess = await club_helpers.approved_club(client, owner, admin)
        await client.post(f"/api/clubs/{chess}/join", json={}, headers=applicant.headers)

        queue = (await client.get("/api/admin/requests", headers=admin.headers)).json()["data"]
        assert [c["name"] for c in queue["clubs"]] == ["Drama Club"]
        assert queue["clubs"][0]["creator"]["id"] == owner.id
        assert [(j["clubName"], j["userId"]) for j in queue["joinRequests"]] == [("Chess Club", applicant.id)]

        all_clubs = (await client.get("/api/admin/clubs", params={"status": "approved"}, headers=admin.headers)).json()[
            "data"
        ]
        assert [c["name"] for c in all_clubs["items"]] == ["Chess Club"]


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_broadcast_to_unblocked_users(self, client: AsyncClient, make_user, admin) -> None:
        await make_user()
        blocked = await make_user()
        await client.patch(f"/api/admin/users/{blocked.id}/block", json={"isBlocked": True}, headers=admin.headers)

        response = await client.post(
            "/api/admin/notifications", json={"title": "Welcome", "message": "Season opens"}, headers=admin.headers
        )
        assert response.json()["data"] == {"message": "Notification sent to 2 users", "notificationCount": 2}

    @pytest.mark.asyncio
    async def test_broadcast_validation(self, client: AsyncClient, admin) -> None:
        blank = await client.post(
            "/api/admin/notifications", json={"title": "Hi", "message": "   "}, headers=admin.headers
        )
        assert blank.status_code == 400
        bad_type = await client.post(
            "/api/admin/notifications", json={"title": "Hi", "message": "Hello", "type": "urgent"}, headers=admin.headers
        )
        assert bad_type.status_code == 400
