# tests/test_users.py — Admin user management
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_list_users_admin_only(client: AsyncClient, test_user, admin_user):
    res = await client.get("/api/v1/users", headers=get_auth_headers(test_user))
    assert res.status_code == 403
    assert res.json()["message"] == "Access denied. Admin only."

    res = await client.get("/api/v1/users", headers=get_auth_headers(admin_user))
    assert res.status_code == 200
    users = res.json()["data"]
    assert {u["email"] for u in users} == {"testuser@brandtasks.dev", "admin@brandtasks.dev"}
    for u in users:
        assert "password_hash" not in u
        assert "reset_otp" not in u


@pytest.mark.asyncio
async def test_admin_creates_user_with_role(client: AsyncClient, admin_user):
    headers = get_auth_headers(admin_user)
    res = await client.post("/api/v1/users", json={
        "name": "Second Admin",
        "email": "Second.Admin@brandtasks.dev",
        "password": "secret123",
        "role": "admin",
    }, headers=headers)
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["email"] == "second.admin@brandtasks.dev"
    assert data["role"] == "admin"

    res = await client.post("/api/v1/users", json={
        "name": "Dup", "email": "second.admin@brandtasks.dev", "password": "secret123",
    }, headers=headers)
    assert res.status_code == 409


@pytest.mark.asyncio
async def test_create_user_invalid_role(client: AsyncClient, admin_user):
    res = await client.post("/api/v1/users", json={
        "name": "X", "email": "x@brandtasks.dev", "password": "secret123", "role": "superuser",
    }, headers=get_auth_headers(admin_user))
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_update_user(client: AsyncClient, admin_user, test_user):
    res = await client.put(f"/api/v1/users/{test_user.id}", json={
        "name": "Renamed",
        "role": "admin",
    }, headers=get_auth_headers(admin_user))
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["name"] == "Renamed"
    assert data["role"] == "admin"


@pytest.mark.asyncio
async def test_update_user_email_conflict(client: AsyncClient, admin_user, test_user):
    res = await client.put(f"/api/v1/users/{test_user.id}", json={
        "email": "admin@brandtasks.dev",
    }, headers=get_auth_headers(admin_user))
    assert res.status_code == 409


@pytest.mark.asyncio
async def test_admin_cannot_delete_self(client: AsyncClient, admin_user):
    res = await client.delete(f"/api/v1/users/{admin_user.id}", headers=get_auth_headers(admin_user))
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_delete_user(client: AsyncClient, admin_user, test_user):
    headers = get_auth_headers(admin_user)
    res = await client.delete(f"/api/v1/users/{test_user.id}", headers=headers)
    assert res.status_code == 200

    res = await client.delete(f"/api/v1/users/{test_user.id}", headers=headers)
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_owning_brands_is_blocked(client: AsyncClient, admin_user, test_user):
    await client.post("/api/v1/brands", json={"name": "Owned"}, headers=get_auth_headers(test_user))
    res = await client.delete(f"/api/v1/users/{test_user.id}", headers=get_auth_headers(admin_user))
    assert res.status_code == 409
