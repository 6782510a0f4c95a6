"""
Integration tests for registration, login and user administration.
"""
import pytest

from app.core.roles import UserRole
from conftest import make_user, auth_header


@pytest.mark.asyncio
async def test_register_login_me(client):
    """Register -> Login -> Me."""
    response = await client.post("/api/v1/auth/register", json={
        "name": "Rahim Traders",
        "email": "rahim@example.com",
        "password": "secret123",
        "businessName": "Rahim Traders Ltd",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["role"] == "BUYER"
    assert body["data"]["user"]["businessName"] == "Rahim Traders Ltd"

    response = await client.post("/api/v1/auth/login", json={"email": "RAHIM@example.com", "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["data"]["accessToken"]

    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["email"] == "rahim@example.com"
    assert "orders:place" in data["permissions"]
    assert "orders:manage" not in data["permissions"]


@pytest.mark.asyncio
async def test_duplicate_email_rejected(client, buyer):
    response = await client.post("/api/v1/auth/register", json={
        "name": "Someone", "email": "buyer@example.com", "password": "secret123",
    })
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Email already registered"}


@pytest.mark.asyncio
async def test_wrong_password(client, buyer):
    response = await client.post("/api/v1/auth/login", json={"email": "buyer@example.com", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["error"] == "Incorrect email or password"


@pytest.mark.asyncio
async def test_validation_errors_use_error_envelope(client):
    response = await client.post("/api/v1/auth/register", json={"name": "X", "email": "bad", "password": "1"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]
    assert body["details"]


@pytest.mark.asyncio
async def test_missing_token(client):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Not authenticated"}


@pytest.mark.asyncio
async def test_buyer_cannot_reach_admin_routes(client, buyer_headers):
    response = await client.get("/api/v1/admin/users", headers=buyer_headers)
    assert response.status_code == 403
    assert response.json()["error"].startswith("Missing required permissions")


@pytest.mark.asyncio
async def test_admin_cannot_grant_admin(client, db_session, admin_headers, buyer):
    """Only a super admin may hand out roles at or above admin."""
    response = await client.patch(f"/api/v1/admin/users/{buyer.id}/role", headers=admin_headers, json={"role": "ADMIN"})
    assert response.status_code == 403

    response = await client.patch(f"/api/v1/admin/users/{buyer.id}/role", headers=admin_headers, json={"role": "MANAGER"})
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "MANAGER"


@pytest.mark.asyncio
async def test_super_admin_grants_admin_and_disabled_users_are_locked_out(client, db_session, super_admin_headers, buyer):
    response = await client.patch(f"/api/v1/admin/users/{buyer.id}/role", headers=super_admin_headers, json={"role": "admin"})
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "ADMIN"

    seller = make_user(db_session, UserRole.SELLER, "seller@example.com")
    response = await client.patch(
        f"/api/v1/admin/users/{seller.id}/status", headers=super_admin_headers, json={"isActive": False}
    )
    assert response.status_code == 200

    response = await client.get("/api/v1/auth/me", headers=auth_header(seller))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_activity_log_records_logins(client, buyer, admin_headers):
    await client.post("/api/v1/auth/login", json={"email": "buyer@example.com", "password": "password123"})

    response = await client.get("/api/v1/admin/activity-logs", headers=admin_headers, params={"action": "LOGIN"})
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert body["data"][0]["userName"] == "Buyer"

    response = await client.get("/api/v1/admin/activity-logs/stats", headers=admin_headers)
    assert response.json()["data"]["byAction"]["LOGIN"] == 1
