"""Integration tests: profile, preferences, notifications."""

from __future__ import annotations

import pytest
from httpx import AsyncClient


class TestProfile:
    @pytest.mark.asyncio
    async def test_update_profile(self, client: AsyncClient, make_user) -> None:
        user = await make_user("Otieno")
        response = await client.put(
            "/api/users/me", json={"name": "Otieno O.", "phone": "+254700000000", "bio": "Chess coach"},
            headers=user.headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "Otieno O."
        assert data["phone"] == "+254700000000"
        assert data["bio"] == "Chess coach"

    @pytest.mark.asyncio
    async def test_bio_length_limit(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        response = await client.put("/api/users/me", json={"bio": "x" * 501}, headers=user.headers)
        assert response.status_code == 400


class TestPreferences:
    @pytest.mark.asyncio
    async def test_defaults_and_nested_merge(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        response = await client.get("/api/users/me/preferences", headers=user.headers)
        assert response.json()["data"]["notifications"] == {"email": True, "sms": False}

        response = await client.put(
            "/api/users/me/preferences",
            json={"notifications": {"sms": True}, "theme": "dark"},
            headers=user.headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["notifications"] == {"email": True, "sms": True}
        assert data["theme"] == "dark"
        assert data["timezone"] == "Africa/Nairobi"

    @pytest.mark.asyncio
    async def test_invalid_theme(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        response = await client.put("/api/users/me/preferences", json={"theme": "neon"}, headers=user.headers)
        assert response.status_code == 400


class TestNotifications:
    @pytest.mark.asyncio
    async def test_club_review_notifies_creator(self, client: AsyncClient, make_user, admin) -> None:
        creator = await make_user("Achieng")
        club = await client.post("/api/clubs", json={"name": "Drama Club"}, headers=creator.headers)
        club_id = club.json()["data"]["id"]
        await client.post(f"/api/admin/clubs/{club_id}/approval", json={"action": "approve"}, headers=admin.headers)

        response = await client.get("/api/users/me/notifications", headers=creator.headers)
        page = response.json()["data"]
        assert page["total"] == 1
        assert page["unread"] == 1
        notification = page["items"][0]
        assert notification["type"] == "club"
        assert "approved" in notification["message"]

        read = await client.patch(f"/api/users/me/notifications/{notification['id']}/read", headers=creator.headers)
        assert read.status_code == 200
        page = (await client.get("/api/users/me/notifications", headers=creator.headers)).json()["data"]
        assert page["unread"] == 0

    @pytest.mark.asyncio
    async def test_cannot_read_someone_elses_notification(self, client: AsyncClient, make_user, admin) -> None:
        target = await make_user()
        other = await make_user()
        await client.post(
            "/api/admin/notifications",
            json={"title": "Maintenance", "message": "Down tonight", "userIds": [target.id]},
            headers=admin.headers,
        )
        items = (await client.get("/api/users/me/notifications", headers=target.headers)).json()["data"]["items"]
        response = await client.patch(f"/api/users/me/notifications/{items[0]['id']}/read", headers=other.headers)
        assert response.status_code == 404
        assert response.json()["code"] == "notification_not_found"

    @pytest.mark.asyncio
    async def test_read_all(self, client: AsyncClient, make_user, admin) -> None:
        user = await make_user()
        for title in ("One", "Two"):
            await client.post(
                "/api/admin/notifications",
                json={"title": title, "message": "Hello", "userIds": [user.id]},
                headers=admin.headers,
            )
        response = await client.patch("/api/users/me/notifications/read-all", headers=user.headers)
        assert response.json()["data"]["message"] == "Marked 2 notifications as read"
