# tests/test_comments.py — Task comments, including the legacy endpoints
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


async def _task(client: AsyncClient, owner, assignee_email: str) -> str:
    res = await client.post("/api/v1/tasks", json={
        "title": "Review copy",
        "assigned_to": assignee_email,
        "due_date": "2099-01-01T00:00:00Z",
    }, headers=get_auth_headers(owner))
    return res.json()["data"]["id"]


async def _comment(client: AsyncClient, user, task_id: str, content: str) -> dict:
    res = await client.post(f"/api/v1/tasks/{task_id}/comments", json={"content": content},
                            headers=get_auth_headers(user))
    assert res.status_code == 201
    return res.json()["data"]


@pytest.mark.asyncio
async def test_add_and_list_newest_first(client: AsyncClient, test_user, other_user):
    task_id = await _task(client, test_user, other_user.email)
    first = await _comment(client, test_user, task_id, "  Please tighten the intro  ")
    second = await _comment(client, other_user, task_id, "Done")

    assert first["content"] == "Please tighten the intro"
    assert first["user"]["user_id"] == test_user.id
    assert first["user"]["user_email"] == "testuser@brandtasks.dev"

    res = await client.get(f"/api/v1/tasks/{task_id}/comments", headers=get_auth_headers(other_user))
    assert [c["id"] for c in res.json()["data"]] == [second["id"], first["id"]]


@pytest.mark.asyncio
async def test_empty_comment_rejected(client: AsyncClient, test_user):
    task_id = await _task(client, test_user, test_user.email)
    res = await client.post(f"/api/v1/tasks/{task_id}/comments", json={"content": "   "},
                            headers=get_auth_headers(test_user))
    assert res.status_code == 400
    assert res.json()["message"] == "Comment content is required"


@pytest.mark.asyncio
async def test_stranger_cannot_comment(client: AsyncClient, test_user, other_user):
    task_id = await _task(client, test_user, test_user.email)
    res = await client.post(f"/api/v1/tasks/{task_id}/comments", json={"content": "hi"},
                            headers=get_auth_headers(other_user))
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_only_author_or_admin_deletes(client: AsyncClient, test_user, other_user, admin_user):
    task_id = await _task(client, test_user, other_user.email)
    mine = await _comment(client, test_user, task_id, "mine")
    theirs = await _comment(client, other_user, task_id, "theirs")

    res = await client.delete(f"/api/v1/tasks/{task_id}/comments/{theirs['id']}", headers=get_auth_headers(test_user))
    assert res.status_code == 403
    assert res.json()["message"] == "You can only delete your own comments"

    res = await client.delete(f"/api/v1/tasks/{task_id}/comments/{mine['id']}", headers=get_auth_headers(test_user))
    assert res.status_code == 200

    res = await client.delete(f"/api/v1/tasks/{task_id}/comments/{theirs['id']}", headers=get_auth_headers(admin_user))
    assert res.status_code == 200

    res = await client.get(f"/api/v1/tasks/{task_id}/comments", headers=get_auth_headers(test_user))
    assert res.json()["data"] == []


@pytest.mark.asyncio
async def test_comment_must_belong_to_task(client: AsyncClient, test_user):
    task_a = await _task(client, test_user, test_user.email)
    task_b = await _task(client, test_user, test_user.email)
    comment = await _comment(client, test_user, task_a, "on a")

    res = await client.delete(f"/api/v1/tasks/{task_b}/comments/{comment['id']}", headers=get_auth_headers(test_user))
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_legacy_endpoints(client: AsyncClient, test_user):
    task_id = await _task(client, test_user, test_user.email)
    headers = get_auth_headers(test_user)

    res = await client.post(f"/api/v1/comments/addComment/{task_id}", json={"content": "legacy"}, headers=headers)
    assert res.status_code == 201
    comment = res.json()["data"]
    assert comment["user_id"] == test_user.id
    assert comment["user_name"] == "Test User"

    res = await client.get(f"/api/v1/comments/getComments/{task_id}", headers=headers)
    assert [c["content"] for c in res.json()["data"]] == ["legacy"]

    res = await client.delete(f"/api/v1/comments/deleteComment/{task_id}/{comment['id']}", headers=headers)
    assert res.status_code == 200
    assert res.json()["success"] is True

    res = await client.get(f"/api/v1/comments/getComments/{task_id}", headers=headers)
    assert res.json()["data"] == []
