# tests/test_tasks.py — Task API tests (CRUD, sharing, dependencies)
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


async def _create(client: AsyncClient, user, **payload) -> dict:
    payload.setdefault("title", "Write report")
    res = await client.post("/api/tasks", json=payload, headers=get_auth_headers(user))
    assert res.status_code == 201, res.text
    return res.json()


@pytest.mark.asyncio
class TestTaskCRUD:
    async def test_create_task(self, client: AsyncClient, alice):
        task = await _create(
            client, alice, title="Write report", description="Q3 numbers",
            priority="HIGH", due_date="2025-06-30",
        )
        assert task["title"] == "Write report"
        assert task["status"] == "TODO"
        assert task["priority"] == "HIGH"
        assert task["due_date"].startswith("2025-06-30")
        assert task["start_date"] is None
        assert task["creator_id"] == alice.id
        assert task["creator"] == {"id": alice.id, "username": "alice"}
        assert task["task_access"] == []
        assert task["dependencies"] == []
        assert task["depended_by"] == []

    async def test_create_requires_auth(self, client: AsyncClient):
        res = await client.post("/api/tasks", json={"title": "x"})
        assert res.status_code in (401, 403)

    async def test_create_blank_title_rejected(self, client: AsyncClient, alice):
        res = await client.post("/api/tasks", json={"title": "   "}, headers=get_auth_headers(alice))
        assert res.status_code == 400

    async def test_create_invalid_status(self, client: AsyncClient, alice):
        res = await client.post(
            "/api/tasks", json={"title": "x", "status": "SOMEDAY"}, headers=get_auth_headers(alice),
        )
        assert res.status_code == 422

    async def test_create_invalid_date(self, client: AsyncClient, alice):
        res = await client.post(
            "/api/tasks", json={"title": "x", "due_date": "tomorrow"}, headers=get_auth_headers(alice),
        )
        assert res.status_code == 400
        assert res.json()["details"] == {"due_date": "tomorrow"}

    async def test_create_with_dependencies(self, client: AsyncClient, alice):
        t1 = await _create(client, alice, title="T1")
        t2 = await _create(client, alice, title="T2", depends_on_task_ids=[t1["id"]])
        assert [d["depends_on"]["id"] for d in t2["dependencies"]] == [t1["id"]]

        res = await client.get(f"/api/tasks/{t1['id']}", headers=get_auth_headers(alice))
        assert [d["task"]["id"] for d in res.json()["depended_by"]] == [t2["id"]]

    async def test_create_with_missing_dependency(self, client: AsyncClient, alice):
        res = await client.post(
            "/api/tasks",
            json={"title": "T2", "depends_on_task_ids": ["missing"]},
            headers=get_auth_headers(alice),
        )
        assert res.status_code == 400
        assert res.json()["details"] == {"missing_task_ids": ["missing"]}

        res = await client.get("/api/tasks", headers=get_auth_headers(alice))
        assert res.json() == []

    async def test_get_task_not_found(self, client: AsyncClient, alice):
        res = await client.get("/api/tasks/missing", headers=get_auth_headers(alice))
        assert res.status_code == 404
        assert res.json()["detail"] == "Task not found"

    async def test_partial_update(self, client: AsyncClient, alice):
        task = await _create(client, alice, description="draft", due_date="2025-06-30")
        headers = get_auth_headers(alice)

        res = await client.patch(f"/api/tasks/{task['id']}", json={"status": "IN_PROGRESS"}, headers=headers)
        assert res.status_code == 200
        data = res.json()
        assert data["status"] == "IN_PROGRESS"
        assert data["description"] == "draft"
        assert data["due_date"] is not None

        res = await client.put(
            f"/api/tasks/{task['id']}", json={"description": None, "due_date": None}, headers=headers,
        )
        assert res.status_code == 200
        data = res.json()
        assert data["description"] is None
        assert data["due_date"] is None
        assert data["status"] == "IN_PROGRESS"

    async def test_update_null_status_rejected(self, client: AsyncClient, alice):
        task = await _create(client, alice)
        res = await client.patch(
            f"/api/tasks/{task['id']}", json={"status": None}, headers=get_auth_headers(alice),
        )
        assert res.status_code == 400

    async def test_observations_endpoint_appends(self, client: AsyncClient, alice):
        task = await _create(client, alice, observations="kickoff")
        headers = get_auth_headers(alice)

        res = await client.post(
            f"/api/tasks/{task['id']}/observations", json={"content": "blocked on data"}, headers=headers,
        )
        assert res.status_code == 200
        assert res.json()["observations"] == "kickoff\nblocked on data"

        res = await client.patch(
            f"/api/tasks/{task['id']}", json={"observations": "data arrived"}, headers=headers,
        )
        assert res.json()["observations"] == "kickoff\nblocked on data\ndata arrived"

    async def test_list_tasks_sorted(self, client: AsyncClient, alice):
        later = await _create(client, alice, title="later", start_date="2025-02-01")
        low = await _create(client, alice, title="low", start_date="2025-01-01", priority="LOW")
        urgent = await _create(client, alice, title="urgent", start_date="2025-01-01", priority="URGENT")
        unscheduled = await _create(client, alice, title="unscheduled", priority="URGENT")

        res = await client.get("/api/tasks", headers=get_auth_headers(alice))
        assert res.status_code == 200
        assert [t["id"] for t in res.json()] == [urgent["id"], low["id"], later["id"], unscheduled["id"]]

    async def test_list_tasks_recently_updated_first_on_ties(self, client: AsyncClient, alice):
        headers = get_auth_headers(alice)
        first = await _create(client, alice, title="first", start_date="2025-01-01", due_date="2025-02-01")
        second = await _create(client, alice, title="second", start_date="2025-01-01", due_date="2025-02-01")

        res = await client.patch(f"/api/tasks/{first['id']}", json={"status": "REVIEW"}, headers=headers)
        assert res.status_code == 200

        res = await client.get("/api/tasks", headers=headers)
        assert [t["id"] for t in res.json()] == [first["id"], second["id"]]

    async def test_offset_dates_are_returned_in_utc(self, client: AsyncClient, alice):
        task = await _create(client, alice, start_date="2025-01-01T08:00:00+05:00")
        assert task["start_date"].startswith("2025-01-01T03:00:00")


@pytest.mark.asyncio
class TestTaskSharing:
    async def test_view_then_edit_grant(self, client: AsyncClient, alice, bob):
        task = await _create(client, alice)
        url = f"/api/tasks/{task['id']}"

        res = await client.get(url, headers=get_auth_headers(bob))
        assert res.status_code == 403

        res = await client.post(
            f"{url}/access", json={"user_id": bob.id, "access_level": "view"}, headers=get_auth_headers(alice),
        )
        assert res.status_code == 200
        grant = res.json()
        assert grant["access_level"] == "view"
        assert grant["user"] == {"id": bob.id, "username": "bob"}

        res = await client.get(url, headers=get_auth_headers(bob))
        assert res.status_code == 200
        assert [a["user_id"] for a in res.json()["task_access"]] == [bob.id]

        res = await client.patch(url, json={"description": "bob"}, headers=get_auth_headers(bob))
        assert res.status_code == 403

        res = await client.post(
            f"{url}/access", json={"user_id": bob.id, "access_level": "edit"}, headers=get_auth_headers(alice),
        )
        assert res.json()["access_level"] == "edit"

        res = await client.patch(url, json={"description": "bob"}, headers=get_auth_headers(bob))
        assert res.status_code == 200
        assert res.json()["description"] == "bob"
        assert len(res.json()["task_access"]) == 1

    async def test_shared_tasks_are_listed(self, client: AsyncClient, alice, bob):
        task = await _create(client, alice)
        await client.post(
            f"/api/tasks/{task['id']}/access",
            json={"user_id": bob.id, "access_level": "view"},
            headers=get_auth_headers(alice),
        )
        res = await client.get("/api/tasks", headers=get_auth_headers(bob))
        assert [t["id"] for t in res.json()] == [task["id"]]

    async def test_only_creator_manages_access(self, client: AsyncClient, alice, bob, carol):
        task = await _create(client, alice)
        url = f"/api/tasks/{task['id']}/access"
        await client.post(url, json={"user_id": bob.id, "access_level": "edit"}, headers=get_auth_headers(alice))

        res = await client.post(
            url, json={"user_id": carol.id, "access_level": "view"}, headers=get_auth_headers(bob),
        )
        assert res.status_code == 403

        res = await client.delete(f"{url}/{bob.id}", headers=get_auth_headers(bob))
        assert res.status_code == 403

    async def test_grant_validation(self, client: AsyncClient, alice):
        task = await _create(client, alice)
        url = f"/api/tasks/{task['id']}/access"
        headers = get_auth_headers(alice)

        res = await client.post(url, json={"user_id": "nobody", "access_level": "view"}, headers=headers)
        assert res.status_code == 404
        res = await client.post(url, json={"user_id": alice.id, "access_level": "view"}, headers=headers)
        assert res.status_code == 400
        res = await client.post(url, json={"user_id": alice.id, "access_level": "admin"}, headers=headers)
        assert res.status_code == 422

    async def test_revoke_access(self, client: AsyncClient, alice, bob):
        task = await _create(client, alice)
        url = f"/api/tasks/{task['id']}/access"
        headers = get_auth_headers(alice)
        await client.post(url, json={"user_id": bob.id, "access_level": "view"}, headers=headers)

        res = await client.delete(f"{url}/{bob.id}", headers=headers)
        assert res.status_code == 200
        assert res.json()["status"] == "revoked"

        res = await client.delete(f"{url}/{bob.id}", headers=headers)
        assert res.json()["status"] == "not_found"

        res = await client.get(f"/api/tasks/{task['id']}", headers=get_auth_headers(bob))
        assert res.status_code == 403

    async def test_delete_is_creator_only_and_cascades(self, client: AsyncClient, alice, bob):
        t1 = await _create(client, alice, title="T1")
        t2 = await _create(client, alice, title="T2", depends_on_task_ids=[t1["id"]])
        await client.post(
            f"/api/tasks/{t2['id']}/access",
            json={"user_id": bob.id, "access_level": "edit"},
            headers=get_auth_headers(alice),
        )

        res = await client.delete(f"/api/tasks/{t2['id']}", headers=get_auth_headers(bob))
        assert res.status_code == 403

        res = await client.delete(f"/api/tasks/{t2['id']}", headers=get_auth_headers(alice))
        assert res.status_code == 200
        assert res.json()["id"] == t2["id"]

        res = await client.get(f"/api/tasks/{t2['id']}", headers=get_auth_headers(alice))
        assert res.status_code == 404
        res = await client.get(f"/api/tasks/{t1['id']}", headers=get_auth_headers(alice))
        assert res.json()["depended_by"] == []
        res = await client.get("/api/tasks", headers=get_auth_headers(bob))
        assert res.json() == []


@pytest.mark.asyncio
class TestTaskDependencies:
    async def test_reverse_dependency_rejected(self, client: AsyncClient, alice):
        t1 = await _create(client, alice, title="T1")
        t2 = await _create(client, alice, title="T2")
        headers = get_auth_headers(alice)

        res = await client.post(
            f"/api/tasks/{t2['id']}/dependencies", json={"depends_on_task_ids": [t1["id"]]}, headers=headers,
        )
        assert res.status_code == 200
        assert [d["depends_on"]["id"] for d in res.json()["dependencies"]] == [t1["id"]]

        res = await client.post(
            f"/api/tasks/{t1['id']}/dependencies", json={"depends_on_task_ids": [t2["id"]]}, headers=headers,
        )
        assert res.status_code == 400
        assert "circular" in res.json()["detail"]

    async def test_self_dependency_rejected(self, client: AsyncClient, alice):
        t1 = await _create(client, alice, title="T1")
        res = await client.post(
            f"/api/tasks/{t1['id']}/dependencies",
            json={"depends_on_task_ids": [t1["id"]]},
            headers=get_auth_headers(alice),
        )
        assert res.status_code == 400

    async def test_view_grant_cannot_add_dependencies(self, client: AsyncClient, alice, bob):
        t1 = await _create(client, alice, title="T1")
        t2 = await _create(client, alice, title="T2")
        await client.post(
            f"/api/tasks/{t2['id']}/access",
            json={"user_id": bob.id, "access_level": "view"},
            headers=get_auth_headers(alice),
        )
        res = await client.post(
            f"/api/tasks/{t2['id']}/dependencies",
            json={"depends_on_task_ids": [t1["id"]]},
            headers=get_auth_headers(bob),
        )
        assert res.status_code == 403

    async def test_remove_dependency(self, client: AsyncClient, alice):
        t1 = await _create(client, alice, title="T1")
        t2 = await _create(client, alice, title="T2", depends_on_task_ids=[t1["id"]])
        headers = get_auth_headers(alice)

        res = await client.delete(f"/api/tasks/{t2['id']}/dependencies/{t1['id']}", headers=headers)
        assert res.status_code == 200
        assert res.json()["dependencies"] == []

        res = await client.delete(f"/api/tasks/{t2['id']}/dependencies/{t1['id']}", headers=headers)
        assert res.status_code == 200
