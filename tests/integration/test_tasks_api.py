"""Integration tests: personal and club tasks, checklist, time log."""

from __future__ import annotations

import pytest
from httpx import AsyncClient


class TestPersonalTasks:
    @pytest.mark.asyncio
    async def test_checklist_drives_progress(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        created = await client.post(
            "/api/tasks",
            json={"title": "Plan tournament", "checklist": ["Venue", "Boards", "Clocks", "Prizes"]},
            headers=user.headers,
        )
        assert created.status_code == 201
        task = created.json()["data"]
        assert task["type"] == "personal"
        assert task["status"] == "pending"
        assert task["checklistProgress"] == 0

        items = [item["id"] for item in task["checklist"]]
        for item_id in items[:2]:
            response = await client.put(f"/api/tasks/{task['id']}/checklist/{item_id}/toggle", headers=user.headers)
        task = response.json()["data"]
        assert task["progress"] == 50
        assert task["status"] == "in-progress"

        task = (
            await client.put(f"/api/tasks/{task['id']}/checklist/{items[2]}/toggle", headers=user.headers)
        ).json()["data"]
        assert task["progress"] == 75
        assert task["checklistProgress"] == 75

        # Unticking never lowers progress.
        task = (
            await client.put(f"/api/tasks/{task['id']}/checklist/{items[2]}/toggle", headers=user.headers)
        ).json()["data"]
        assert task["progress"] == 75
        assert task["checklistProgress"] == 50

    @pytest.mark.asyncio
    async def test_progress_100_completes(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        task_id = (await client.post("/api/tasks", json={"title": "Read"}, headers=user.headers)).json()["data"]["id"]

        task = (await client.put(f"/api/tasks/{task_id}/progress", json={"progress": 100}, headers=user.headers)).json()[
            "data"
        ]
        assert task["status"] == "completed"
        assert task["completedDate"] is not None

        reopened = (
            await client.put(f"/api/tasks/{task_id}", json={"status": "in-progress", "progress": 40}, headers=user.headers)
        ).json()["data"]
        assert reopened["status"] == "in-progress"
        assert reopened["completedDate"] is None

    @pytest.mark.asyncio
    async def test_completed_status_keeps_progress(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        task_id = (
            await client.post("/api/tasks", json={"title": "Read", "progress": 30}, headers=user.headers)
        ).json()["data"]["id"]
        task = (await client.put(f"/api/tasks/{task_id}", json={"status": "completed"}, headers=user.headers)).json()[
            "data"
        ]
        assert task["status"] == "completed"
        assert task["progress"] == 30

    @pytest.mark.asyncio
    async def test_progress_out_of_range(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        task_id = (await client.post("/api/tasks", json={"title": "Read"}, headers=user.headers)).json()["data"]["id"]
        response = await client.put(f"/api/tasks/{task_id}/progress", json={"progress": 101}, headers=user.headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_time_log_accumulates(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        task_id = (await client.post("/api/tasks", json={"title": "Study"}, headers=user.headers)).json()["data"]["id"]
        await client.post(f"/api/tasks/{task_id}/time-log", json={"hours": 1.5}, headers=user.headers)
        response = await client.post(
            f"/api/tasks/{task_id}/time-log", json={"hours": 2, "description": "Endgames"}, headers=user.headers
        )
        assert response.status_code == 201
        task = response.json()["data"]
        assert task["actualHours"] == 3.5
        assert task["totalTimeLogged"] == 3.5
        assert len(task["timeLog"]) == 2

        zero = await client.post(f"/api/tasks/{task_id}/time-log", json={"hours": 0}, headers=user.headers)
        assert zero.status_code == 400

    @pytest.mark.asyncio
    async def test_personal_tasks_are_private(self, client: AsyncClient, make_user, admin) -> None:
        owner = await make_user()
        other = await make_user()
        task_id = (await client.post("/api/tasks", json={"title": "Diary"}, headers=owner.headers)).json()["data"]["id"]

        assert (await client.get(f"/api/tasks/{task_id}", headers=other.headers)).status_code == 403
        assert (await client.get(f"/api/tasks/{task_id}", headers=admin.headers)).status_code == 200

        listed = (await client.get("/api/tasks", headers=other.headers)).json()["data"]
        assert listed["pagination"]["totalItems"] == 0

    @pytest.mark.asyncio
    async def test_overdue_flag(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        task = (
            await client.post(
                "/api/tasks", json={"title": "Late", "dueDate": "2020-01-01T00:00:00Z"}, headers=user.headers
            )
        ).json()["data"]
        assert task["isOverdue"] is True
        assert task["daysUntilDue"] < 0


class TestClubTasks:
    @pytest.mark.asyncio
    async def test_club_task_roles(self, client: AsyncClient, make_user, admin, club_helpers) -> None:
        owner = await make_user()
        member = await make_user()
        outsider = await make_user()
        club_id = await club_helpers.approved_club(client, owner, admin)
        await club_helpers.join(client, club_id, member, owner)

        denied = await client.post(
            "/api/tasks", json={"title": "Order boards", "type": "club", "club": club_id}, headers=member.headers
        )
        assert denied.status_code == 403

        created = await client.post(
            "/api/tasks",
            json={"title": "Order boards", "type": "club", "club": club_id, "assignedTo": [member.id, outsider.id]},
            headers=owner.headers,
        )
        assert created.status_code == 201
        task = created.json()["data"]
        assert task["clubId"] == club_id
        assert task["assignedTo"] == [member.id]

        # Members read and contribute, but cannot edit.
        assert (await client.get(f"/api/tasks/{task['id']}", headers=member.headers)).status_code == 200
        comment = await client.post(f"/api/tasks/{task['id']}/comments", json={"text": "On it"}, headers=member.headers)
        assert comment.status_code == 201
        edit = await client.put(f"/api/tasks/{task['id']}", json={"title": "x"}, headers=member.headers)
        assert edit.status_code == 403
        assert (await client.get(f"/api/tasks/{task['id']}", headers=outsider.headers)).status_code == 403

        club_tasks = (await client.get(f"/api/tasks/club/{club_id}", headers=member.headers)).json()["data"]
        assert [t["id"] for t in club_tasks] == [task["id"]]

        assigned = (await client.get("/api/tasks", headers=member.headers)).json()["data"]
        assert assigned["pagination"]["totalItems"] == 1

    @pytest.mark.asyncio
    async def test_club_required_for_club_task(self, client: AsyncClient, make_user) -> None:
        user = await make_user()
        response = await client.post("/api/tasks", json={"title": "x", "type": "club"}, headers=user.headers)
        assert response.status_code == 400
