"""Integration tests: goals, objectives, key results, enhanced tasks and the activity feed."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import AsyncClient


@pytest_asyncio.fixture
async def club(client: AsyncClient, make_user, admin, club_helpers):
    """An approved club with an owner and one plain member."""
    owner = await make_user("Baraka")
    member = await make_user("Neema")
    club_id = await club_helpers.approved_club(client, owner, admin)
    await club_helpers.join(client, club_id, member, owner)
    return club_id, owner, member


async def _goal(client: AsyncClient, club_id: int, account, **extra) -> dict:
    body = {"title": "Win the county league", "format": "OKR", **extra}
    response = await client.post(f"/api/planning/clubs/{club_id}/goals", json=body, headers=account.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _task(client: AsyncClient, club_id: int, account, **extra) -> dict:
    body = {"title": "Book the hall", **extra}
    response = await client.post(f"/api/planning/clubs/{club_id}/tasks", json=body, headers=account.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestGoals:
    @pytest.mark.asyncio
    async def test_create_defaults(self, client: AsyncClient, club) -> None:
        club_id, _owner, member = club
        goal = await _goal(
            client, club_id, member, smartCriteria={"specific": "Top 3 finish", "timeBound": "By June"}
        )
        assert goal["status"] == "draft"
        assert goal["format"] == "OKR"
        assert goal["ownerId"] == member.id
        assert goal["smartCriteria"] == {"specific": "Top 3 finish", "timeBound": "By June"}
        assert goal["calculatedProgress"] == 0

    @pytest.mark.asyncio
    async def test_invalid_values(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        bad_format = await client.post(
            f"/api/planning/clubs/{club_id}/goals", json={"title": "x", "format": "KPI"}, headers=owner.headers
        )
        assert bad_format.status_code == 400
        bad_dates = await client.post(
            f"/api/planning/clubs/{club_id}/goals",
            json={"title": "x", "startDate": "2026-05-01T00:00:00Z", "dueDate": "2026-04-01T00:00:00Z"},
            headers=owner.headers,
        )
        assert bad_dates.status_code == 400

    @pytest.mark.asyncio
    async def test_outsider_cannot_read(self, client: AsyncClient, club, make_user) -> None:
        club_id, owner, _member = club
        outsider = await make_user()
        goal = await _goal(client, club_id, owner)
        response = await client.get(f"/api/planning/goals/{goal['id']}", headers=outsider.headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_only_owner_or_manager_edits(self, client: AsyncClient, club) -> None:
        club_id, owner, member = club
        goal = await _goal(client, club_id, owner)
        denied = await client.put(f"/api/planning/goals/{goal['id']}", json={"title": "Mine"}, headers=member.headers)
        assert denied.status_code == 403

        updated = await client.put(
            f"/api/planning/goals/{goal['id']}", json={"status": "active"}, headers=owner.headers
        )
        assert updated.json()["data"]["status"] == "active"

    @pytest.mark.asyncio
    async def test_manual_progress_completes(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        goal = await _goal(client, club_id, owner)
        response = await client.post(
            f"/api/planning/goals/{goal['id']}/progress", json={"progress": 100, "notes": "Done"}, headers=owner.headers
        )
        data = response.json()["data"]
        assert data["progress"] == 100
        assert data["status"] == "completed"
        assert data["completedAt"] is not None
        assert data["daysRemaining"] == 0

    @pytest.mark.asyncio
    async def test_progress_follows_linked_tasks(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        goal = await _goal(client, club_id, owner)
        first = await _task(client, club_id, owner, goal=goal["id"])
        await _task(client, club_id, owner, goal=goal["id"], title="Print flyers")
        await client.put(f"/api/planning/tasks/{first['id']}", json={"progress": 100}, headers=owner.headers)

        data = (await client.get(f"/api/planning/goals/{goal['id']}", headers=owner.headers)).json()["data"]
        assert data["taskCount"] == 2
        assert data["calculatedProgress"] == 50
        assert data["progress"] == 0

        analytics = (await client.get(f"/api/planning/goals/{goal['id']}/analytics", headers=owner.headers)).json()[
            "data"
        ]
        assert analytics["overview"]["completedTasks"] == 1
        assert analytics["overview"]["progress"] == 50

    @pytest.mark.asyncio
    async def test_delete_keeps_tasks(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        goal = await _goal(client, club_id, owner)
        task = await _task(client, club_id, owner, goal=goal["id"])

        assert (await client.delete(f"/api/planning/goals/{goal['id']}", headers=owner.headers)).status_code == 200
        assert (await client.get(f"/api/planning/goals/{goal['id']}", headers=owner.headers)).status_code == 404
        kept = (await client.get(f"/api/planning/tasks/{task['id']}", headers=owner.headers)).json()["data"]
        assert kept["goalId"] is None

    @pytest.mark.asyncio
    async def test_duplicate(self, client: AsyncClient, club) -> None:
        club_id, owner, member = club
        goal = await _goal(client, club_id, owner)
        await client.post(
            f"/api/planning/goals/{goal['id']}/objectives",
            json={"title": "Recruit", "keyResults": [{"title": "New players", "targetValue": 10, "currentValue": 4}]},
            headers=owner.headers,
        )
        copy = await client.post(f"/api/planning/goals/{goal['id']}/duplicate", json={}, headers=member.headers)
        assert copy.status_code == 201
        data = copy.json()["data"]
        assert data["title"] == "Win the county league (Copy)"
        assert data["status"] == "draft"
        assert data["ownerId"] == member.id
        assert data["objectiveCount"] == 1

        objectives = (
            await client.get(f"/api/planning/goals/{data['id']}/objectives", headers=member.headers)
        ).json()["data"]
        assert objectives[0]["keyResults"][0]["currentValue"] == 0


class TestObjectives:
    @pytest.mark.asyncio
    async def test_key_results_drive_objective(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        goal = await _goal(client, club_id, owner)
        created = await client.post(
            f"/api/planning/goals/{goal['id']}/objectives",
            json={
                "title": "Grow membership",
                "keyResults": [
                    {"title": "Recruit players", "targetValue": 10, "currentValue": 5},
                    {"title": "Run open days", "targetValue": 4, "currentValue": 4},
                ],
            },
            headers=owner.headers,
        )
        assert created.status_code == 201
        objective = created.json()["data"]
        assert objective["progress"] == 75
        assert objective["status"] == "in_progress"
        assert [kr["progress"] for kr in objective["keyResults"]] == [50, 100]
        assert [kr["status"] for kr in objective["keyResults"]] == ["in-progress", "completed"]

        kr_id = objective["keyResults"][0]["id"]
        response = await client.post(
            f"/api/planning/objectives/{objective['id']}/key-results/{kr_id}/progress",
            json={"currentValue": 12},
            headers=owner.headers,
        )
        objective = response.json()["data"]
        assert objective["progress"] == 100
        assert objective["status"] == "completed"
        assert objective["keyResults"][0]["progress"] == 100

        stored = (await client.get(f"/api/planning/objectives/{objective['id']}", headers=owner.headers)).json()["data"]
        assert stored["progress"] == 100
        assert stored["completedAt"] is not None

        goal_now = (await client.get(f"/api/planning/goals/{goal['id']}", headers=owner.headers)).json()["data"]
        assert goal_now["calculatedProgress"] == 100

    @pytest.mark.asyncio
    async def test_key_result_crud(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        goal = await _goal(client, club_id, owner)
        objective = (
            await client.post(f"/api/planning/goals/{goal['id']}/objectives", json={"title": "Train"}, headers=owner.headers)
        ).json()["data"]
        assert objective["keyResults"] == []
        base = f"/api/planning/objectives/{objective['id']}/key-results"

        added = await client.post(base, json={"title": "Puzzles solved", "targetValue": 200}, headers=owner.headers)
        assert added.status_code == 201
        kr_id = added.json()["data"]["keyResults"][0]["id"]

        bad = await client.post(base, json={"title": "Zero", "targetValue": 0}, headers=owner.headers)
        assert bad.status_code == 400

        edited = await client.put(f"{base}/{kr_id}", json={"currentValue": 50}, headers=owner.headers)
        assert edited.json()["data"]["progress"] == 25

        missing = await client.post(f"{base}/999/progress", json={"currentValue": 1}, headers=owner.headers)
        assert missing.status_code == 404
        assert missing.json()["code"] == "key_result_not_found"

        removed = await client.delete(f"{base}/{kr_id}", headers=owner.headers)
        assert removed.json()["data"]["keyResults"] == []

    @pytest.mark.asyncio
    async def test_objective_status_validation(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        goal = await _goal(client, club_id, owner)
        objective = (
            await client.post(f"/api/planning/goals/{goal['id']}/objectives", json={"title": "Train"}, headers=owner.headers)
        ).json()["data"]
        bad = await client.put(
            f"/api/planning/objectives/{objective['id']}", json={"status": "done"}, headers=owner.headers
        )
        assert bad.status_code == 400
        done = await client.put(
            f"/api/planning/objectives/{objective['id']}", json={"progress": 100}, headers=owner.headers
        )
        assert done.json()["data"]["status"] == "completed"


class TestEnhancedTasks:
    @pytest.mark.asyncio
    async def test_checklist_and_time(self, client: AsyncClient, club) -> None:
        club_id, owner, member = club
        task = await _task(client, club_id, owner, assignedTo=[member.id], checklist=["Call venue", "Pay deposit"])
        assert task["status"] == "todo"
        assert task["assignedTo"] == [member.id]
        assert task["checklistProgress"] == 0

        item_id = task["checklist"][0]["id"]
        toggled = await client.post(
            f"/api/planning/tasks/{task['id']}/checklist/{item_id}/toggle", headers=member.headers
        )
        data = toggled.json()["data"]
        assert data["progress"] == 50
        assert data["status"] == "in-progress"

        logged = await client.post(
            f"/api/planning/tasks/{task['id']}/time", json={"minutes": 90, "description": "Calls"}, headers=member.headers
        )
        assert logged.status_code == 201
        assert logged.json()["data"]["durationMinutes"] == 90

        ranged = await client.post(
            f"/api/planning/tasks/{task['id']}/time",
            json={"startTime": "2026-03-01T10:00:00Z", "endTime": "2026-03-01T10:30:00Z"},
            headers=member.headers,
        )
        assert ranged.json()["data"]["durationMinutes"] == 30

        empty = await client.post(f"/api/planning/tasks/{task['id']}/time", json={}, headers=member.headers)
        assert empty.status_code == 400

        data = (await client.get(f"/api/planning/tasks/{task['id']}", headers=member.headers)).json()["data"]
        assert data["totalTimeSpent"] == 120
        assert data["actualHours"] == 2.0

    @pytest.mark.asyncio
    async def test_empty_checklist_counts_complete(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        task = await _task(client, club_id, owner)
        assert task["checklistProgress"] == 100
        assert task["progress"] == 0

    @pytest.mark.asyncio
    async def test_update_permissions(self, client: AsyncClient, club, make_user, club_helpers) -> None:
        club_id, owner, member = club
        bystander = await make_user()
        await club_helpers.join(client, club_id, bystander, owner)
        task = await _task(client, club_id, member)

        denied = await client.put(f"/api/planning/tasks/{task['id']}", json={"title": "x"}, headers=bystander.headers)
        assert denied.status_code == 403
        assert denied.json()["code"] == "insufficient_role"

        # Readers may still comment.
        comment = await client.post(
            f"/api/planning/tasks/{task['id']}/comments",
            json={"content": "Need help?", "mentions": [member.id, 9999]},
            headers=bystander.headers,
        )
        assert comment.status_code == 201
        assert comment.json()["data"]["mentions"] == [member.id]

        by_manager = await client.put(
            f"/api/planning/tasks/{task['id']}", json={"priority": "critical"}, headers=owner.headers
        )
        assert by_manager.json()["data"]["priority"] == "critical"

    @pytest.mark.asyncio
    async def test_dependencies_gate_start(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        first = await _task(client, club_id, owner, title="Book the hall")
        second = await _task(
            client, club_id, owner, title="Send invites", dependencies=[{"task": first["id"], "type": "finish-to-start"}]
        )
        assert second["canStart"] is False
        assert second["dependencies"] == [{"task": first["id"], "type": "finish-to-start", "lagDays": 0}]

        await client.put(f"/api/planning/tasks/{first['id']}", json={"status": "completed"}, headers=owner.headers)
        data = (await client.get(f"/api/planning/tasks/{second['id']}", headers=owner.headers)).json()["data"]
        assert data["canStart"] is True

        self_dep = await client.put(
            f"/api/planning/tasks/{first['id']}", json={"dependencies": [{"task": first["id"]}]}, headers=owner.headers
        )
        assert self_dep.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_removes_subtasks(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        parent = await _task(client, club_id, owner)
        child = await _task(client, club_id, owner, title="Sign contract", parent=parent["id"])
        dependent = await _task(client, club_id, owner, title="Decorate", dependencies=[{"task": parent["id"]}])

        assert (await client.delete(f"/api/planning/tasks/{parent['id']}", headers=owner.headers)).status_code == 200
        assert (await client.get(f"/api/planning/tasks/{child['id']}", headers=owner.headers)).status_code == 404
        remaining = (await client.get(f"/api/planning/tasks/{dependent['id']}", headers=owner.headers)).json()["data"]
        assert remaining["dependencies"] == []
        assert remaining["canStart"] is True

    @pytest.mark.asyncio
    async def test_bulk_update_status(self, client: AsyncClient, club, admin, make_user, club_helpers) -> None:
        club_id, owner, _member = club
        other_owner = await make_user()
        other_club = await club_helpers.approved_club(client, other_owner, admin, name="Drama Club")
        foreign = await _task(client, other_club, other_owner)
        ids = [(await _task(client, club_id, owner, title=f"Task {n}"))["id"] for n in range(2)]

        response = await client.post(
            f"/api/planning/clubs/{club_id}/tasks/bulk",
            json={"action": "update_status", "taskIds": [*ids, foreign["id"]], "data": {"status": "completed"}},
            headers=owner.headers,
        )
        assert response.json()["data"] == {"action": "update_status", "affected": 2, "total": 3}

        listed = (
            await client.get(f"/api/planning/clubs/{club_id}/tasks", params={"status": "completed"}, headers=owner.headers)
        ).json()["data"]
        assert listed["pagination"]["totalItems"] == 2
        assert all(t["progress"] == 0 for t in listed["items"])

        untouched = (await client.get(f"/api/planning/tasks/{foreign['id']}", headers=other_owner.headers)).json()["data"]
        assert untouched["status"] == "todo"

    @pytest.mark.asyncio
    async def test_bulk_rejects_unknown_action(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        response = await client.post(
            f"/api/planning/clubs/{club_id}/tasks/bulk", json={"action": "archive", "taskIds": [1]}, headers=owner.headers
        )
        assert response.status_code == 400


class TestActivityFeed:
    @pytest.mark.asyncio
    async def test_feed_newest_first(self, client: AsyncClient, club) -> None:
        club_id, owner, member = club
        goal = await _goal(client, club_id, owner)
        await client.put(f"/api/planning/goals/{goal['id']}", json={"title": "Win the league"}, headers=owner.headers)
        await _task(client, club_id, member)

        feed = (await client.get(f"/api/planning/clubs/{club_id}/activity", headers=member.headers)).json()["data"]
        assert [(e["category"], e["entityType"]) for e in feed] == [
            ("create", "task"),
            ("update", "goal"),
            ("create", "goal"),
        ]
        change = feed[1]["changes"][0]
        assert change == {
            "field": "title",
            "oldValue": "Win the county league",
            "newValue": "Win the league",
            "fieldType": "string",
        }

        only_goals = await client.get(
            f"/api/planning/clubs/{club_id}/activity", params={"entityType": "goal", "limit": 1}, headers=member.headers
        )
        assert len(only_goals.json()["data"]) == 1

        by_actor = await client.get(
            f"/api/planning/clubs/{club_id}/activity", params={"actor": member.id}, headers=owner.headers
        )
        assert [e["actorId"] for e in by_actor.json()["data"]] == [member.id]

    @pytest.mark.asyncio
    async def test_analytics_buckets(self, client: AsyncClient, club) -> None:
        club_id, owner, member = club
        await _goal(client, club_id, owner)
        await _task(client, club_id, member)

        buckets = (
            await client.get(
                f"/api/planning/clubs/{club_id}/activity/analytics", params={"period": "day"}, headers=owner.headers
            )
        ).json()["data"]
        assert len(buckets) == 1
        assert buckets[0]["totalActivities"] == 2
        assert buckets[0]["activities"] == [{"category": "create", "count": 2, "uniqueActors": 2}]

        bad = await client.get(
            f"/api/planning/clubs/{club_id}/activity/analytics", params={"period": "year"}, headers=owner.headers
        )
        assert bad.status_code == 400

    @pytest.mark.asyncio
    async def test_user_activity_summary(self, client: AsyncClient, club) -> None:
        club_id, owner, _member = club
        await _goal(client, club_id, owner)
        summary = (await client.get("/api/users/me/activity", headers=owner.headers)).json()["data"]
        assert summary["totalActivities"] == 1
        assert summary["byCategory"] == {"create": 1}
