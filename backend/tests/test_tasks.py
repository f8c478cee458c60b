# tests/test_tasks.py — Task router: lifecycle, approval gate, access
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from models import AuditLog, AuditEventType, Task, TaskComment, TaskHistory
from tests.conftest import get_auth_headers


def _payload(**fields) -> dict:
    return {
        "title": "Draft brief",
        "description": "First pass",
        "assigned_to": "testuser@brandtasks.dev",
        "due_date": "2099-01-01T00:00:00Z",
        **fields,
    }


async def _create(client: AsyncClient, user, **fields) -> dict:
    res = await client.post("/api/v1/tasks", json=_payload(**fields), headers=get_auth_headers(user))
    assert res.status_code == 201
    return res.json()["data"]


async def _history(client: AsyncClient, user, task_id: str) -> list:
    res = await client.get(f"/api/v1/tasks/{task_id}/history", headers=get_auth_headers(user))
    assert res.status_code == 200
    return res.json()["data"]


@pytest.mark.asyncio
class TestCreateTask:
    async def test_create(self, client: AsyncClient, test_user):
        task = await _create(client, test_user, assigned_to=" TestUser@BrandTasks.dev ")
        assert task["status"] == "pending"
        assert task["priority"] == "medium"
        assert task["task_type"] == "regular"
        assert task["completed_approval"] is False
        assert task["assigned_to"] == "testuser@brandtasks.dev"
        assert task["assigned_by"] == "testuser@brandtasks.dev"
        assert task["due_date"].startswith("2099-01-01T00:00:00")
        assert task["overdue"] is False
        assert task["assigned_to_user"]["id"] == test_user.id

        history = await _history(client, test_user, task["id"])
        assert [h["action"] for h in history] == ["task_created"]
        assert history[0]["new_status"] == "pending"

    async def test_requires_token(self, client: AsyncClient):
        res = await client.post("/api/v1/tasks", json=_payload())
        assert res.status_code == 401

    @pytest.mark.parametrize("missing", ["title", "assigned_to", "due_date"])
    async def test_required_fields(self, client: AsyncClient, test_user, missing):
        payload = _payload()
        del payload[missing]
        res = await client.post("/api/v1/tasks", json=payload, headers=get_auth_headers(test_user))
        assert res.status_code == 400
        assert res.json()["message"] == "Title, assignee email, and due date are required"

    async def test_invalid_priority(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/tasks", json=_payload(priority="urgent"), headers=get_auth_headers(test_user))
        assert res.status_code == 400

    async def test_unregistered_assignee(self, client: AsyncClient, test_user):
        task = await _create(client, test_user, assigned_to="freelancer@elsewhere.dev")
        assert task["assigned_to_user"] == {"email": "freelancer@elsewhere.dev"}

    async def test_brand_fills_label_and_company(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/brands", json={"name": "Aurora", "company": "Globex"},
                                headers=get_auth_headers(test_user))
        brand_id = res.json()["data"]["id"]

        task = await _create(client, test_user, brand_id=brand_id)
        assert task["brand_id"] == brand_id
        assert task["brand"] == "Aurora"
        assert task["company_name"] == "Globex"

    async def test_brand_must_be_accessible(self, client: AsyncClient, test_user, other_user):
        res = await client.post("/api/v1/brands", json={"name": "Private"}, headers=get_auth_headers(other_user))
        brand_id = res.json()["data"]["id"]

        res = await client.post("/api/v1/tasks", json=_payload(brand_id=brand_id), headers=get_auth_headers(test_user))
        assert res.status_code == 403

    async def test_past_due_date_is_overdue(self, client: AsyncClient, test_user):
        task = await _create(client, test_user, due_date="2020-01-01T00:00:00Z")
        assert task["overdue"] is True


@pytest.mark.asyncio
class TestVisibility:
    async def test_list_scoped_to_participants(self, client: AsyncClient, test_user, other_user, admin_user):
        mine = await _create(client, test_user)
        delegated = await _create(client, test_user, assigned_to=other_user.email)
        await _create(client, admin_user, assigned_to=admin_user.email)

        res = await client.get("/api/v1/tasks", headers=get_auth_headers(other_user))
        assert [t["id"] for t in res.json()["data"]] == [delegated["id"]]

        res = await client.get("/api/v1/tasks", headers=get_auth_headers(test_user))
        assert {t["id"] for t in res.json()["data"]} == {mine["id"], delegated["id"]}

        res = await client.get("/api/v1/tasks", headers=get_auth_headers(admin_user))
        assert len(res.json()["data"]) == 3

    async def test_stranger_cannot_touch_task(self, client: AsyncClient, test_user, other_user):
        task = await _create(client, test_user)
        stranger = get_auth_headers(other_user)

        assert (await client.get(f"/api/v1/tasks/{task['id']}", headers=stranger)).status_code == 403
        res = await client.put(f"/api/v1/tasks/{task['id']}", json={"status": "completed"}, headers=stranger)
        assert res.status_code == 403
        assert res.json()["message"] == "You are not authorized to update this task"
        assert (await client.delete(f"/api/v1/tasks/{task['id']}", headers=stranger)).status_code == 403
        assert (await client.get(f"/api/v1/tasks/{task['id']}/history", headers=stranger)).status_code == 403

    async def test_admin_sees_any_task(self, client: AsyncClient, test_user, admin_user):
        task = await _create(client, test_user)
        res = await client.get(f"/api/v1/tasks/{task['id']}", headers=get_auth_headers(admin_user))
        assert res.status_code == 200

    async def test_unknown_task(self, client: AsyncClient, test_user):
        res = await client.get("/api/v1/tasks/missing", headers=get_auth_headers(test_user))
        assert res.status_code == 404


@pytest.mark.asyncio
class TestUpdateTask:
    async def test_status_change_writes_one_entry(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        res = await client.put(f"/api/v1/tasks/{task['id']}", json={"status": "completed", "note": "shipped"},
                               headers=get_auth_headers(test_user))
        assert res.status_code == 200
        assert res.json()["data"]["status"] == "completed"

        history = await _history(client, test_user, task["id"])
        assert [h["action"] for h in history] == ["status_changed", "task_created"]
        entry = history[0]
        assert entry["old_status"] == "pending"
        assert entry["new_status"] == "completed"
        assert entry["note"] == "shipped"
        assert entry["metadata"] == {}
        assert entry["user"]["user_email"] == "testuser@brandtasks.dev"

    async def test_request_recheck_is_recorded(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        await client.put(f"/api/v1/tasks/{task['id']}", json={"status": "completed", "request_recheck": True},
                         headers=get_auth_headers(test_user))
        history = await _history(client, test_user, task["id"])
        assert history[0]["metadata"] == {"request_recheck": True}

    async def test_unchanged_status_writes_nothing(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        res = await client.put(f"/api/v1/tasks/{task['id']}", json={"status": "pending", "title": "Renamed"},
                               headers=get_auth_headers(test_user))
        assert res.json()["data"]["title"] == "Renamed"
        assert [h["action"] for h in await _history(client, test_user, task["id"])] == ["task_created"]

    async def test_status_and_approval_together(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        res = await client.put(f"/api/v1/tasks/{task['id']}",
                               json={"status": "in-progress", "completed_approval": True},
                               headers=get_auth_headers(test_user))
        assert res.status_code == 200
        actions = {h["action"] for h in await _history(client, test_user, task["id"])}
        assert actions == {"task_created", "status_changed", "approval_granted"}

    async def test_invalid_status(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        res = await client.put(f"/api/v1/tasks/{task['id']}", json={"status": "done", "title": "Changed"},
                               headers=get_auth_headers(test_user))
        assert res.status_code == 400

        res = await client.get(f"/api/v1/tasks/{task['id']}", headers=get_auth_headers(test_user))
        assert res.json()["data"]["title"] == "Draft brief"

    async def test_immutable_fields_ignored(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        res = await client.put(f"/api/v1/tasks/{task['id']}",
                               json={"id": "hijacked", "created_at": "2000-01-01T00:00:00Z", "priority": "high"},
                               headers=get_auth_headers(test_user))
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["id"] == task["id"]
        assert data["created_at"] == task["created_at"]
        assert data["priority"] == "high"

    async def test_completion_clears_overdue(self, client: AsyncClient, test_user):
        task = await _create(client, test_user, due_date="2020-01-01T00:00:00Z")
        res = await client.put(f"/api/v1/tasks/{task['id']}", json={"status": "completed"},
                               headers=get_auth_headers(test_user))
        assert res.json()["data"]["overdue"] is False


@pytest.mark.asyncio
class TestApproval:
    async def test_approve_completes_task(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        headers = get_auth_headers(test_user)

        res = await client.put(f"/api/v1/tasks/{task['id']}/approve", json={"completed_approval": True}, headers=headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["completed_approval"] is True
        assert data["status"] == "completed"

        history = await _history(client, test_user, task["id"])
        assert history[0]["action"] == "assigner_permanent_approved"
        assert history[0]["description"] == "Task PERMANENTLY approved by Assigner"
        assert history[0]["old_status"] == "pending"
        assert history[0]["new_status"] == "completed"

    async def test_approval_is_permanent(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        headers = get_auth_headers(test_user)
        await client.put(f"/api/v1/tasks/{task['id']}/approve", json={"completed_approval": True}, headers=headers)

        res = await client.put(f"/api/v1/tasks/{task['id']}/approve", json={"completed_approval": False}, headers=headers)
        assert res.status_code == 409

        res = await client.put(f"/api/v1/tasks/{task['id']}", json={"completed_approval": False}, headers=headers)
        assert res.status_code == 409
        assert res.json()["message"] == "Completed approval is permanent and cannot be cleared"

        res = await client.get(f"/api/v1/tasks/{task['id']}", headers=headers)
        assert res.json()["data"]["completed_approval"] is True

    async def test_reapprove_is_noop(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        headers = get_auth_headers(test_user)
        await client.put(f"/api/v1/tasks/{task['id']}/approve", json={"completed_approval": True}, headers=headers)
        res = await client.put(f"/api/v1/tasks/{task['id']}/approve", json={"completed_approval": True}, headers=headers)
        assert res.status_code == 200

        actions = [h["action"] for h in await _history(client, test_user, task["id"])]
        assert actions.count("assigner_permanent_approved") == 1

    async def test_unapprove_unapproved_is_noop(self, client: AsyncClient, test_user):
        task = await _create(client, test_user)
        res = await client.put(f"/api/v1/tasks/{task['id']}/approve", json={"completed_approval": False},
                               headers=get_auth_headers(test_user))
        assert res.status_code == 200
        assert res.json()["data"]["status"] == "pending"


@pytest.mark.asyncio
class TestDeleteTask:
    async def test_delete_cascades(self, client: AsyncClient, test_user, db_session):
        task = await _create(client, test_user)
        headers = get_auth_headers(test_user)
        await client.post(f"/api/v1/tasks/{task['id']}/comments", json={"content": "one"}, headers=headers)
        await client.put(f"/api/v1/tasks/{task['id']}", json={"status": "in-progress"}, headers=headers)

        res = await client.delete(f"/api/v1/tasks/{task['id']}", headers=headers)
        assert res.status_code == 200
        assert res.json()["data"]["id"] == task["id"]

        assert (await client.get(f"/api/v1/tasks/{task['id']}", headers=headers)).status_code == 404
        assert (await db_session.execute(select(Task))).scalars().all() == []
        assert (await db_session.execute(select(TaskComment))).scalars().all() == []
        assert (await db_session.execute(select(TaskHistory))).scalars().all() == []

        log = (await db_session.execute(
            select(AuditLog).where(AuditLog.event_type == AuditEventType.TASK_DELETED)
        )).scalar_one()
        assert log.resource_id == task["id"]
        assert log.details["task"]["title"] == "Draft brief"

    async def test_delete_unknown(self, client: AsyncClient, test_user):
        res = await client.delete("/api/v1/tasks/missing", headers=get_auth_headers(test_user))
        assert res.status_code == 404
