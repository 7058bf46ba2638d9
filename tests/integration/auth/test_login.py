"""
Integration tests for login endpoints.

Tests:
- POST /api/auth/login
- POST /api/auth/logout
- GET /api/auth/me
- POST /api/auth/heartbeat
"""

import pytest
from datetime import timedelta
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.types import utcnow
from tests.conftest import TEST_IP, bearer
from tests.factories import AdminFactory, UserFactory


@pytest.mark.asyncio
class TestLoginEndpoint:
    """Test POST /api/auth/login endpoint."""

    async def test_customer_login_success(self, client: AsyncClient, customer):
        response = await client.post(
            "/api/auth/login",
            json={"email": "customer@gmail.com", "password": "Password123!"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["principal_type"] == "customer"
        assert data["user"]["username"] == "customer_one"
        assert len(data["access_token"]) > 50  # JWT should be long

    async def test_login_is_case_insensitive_on_email(self, client: AsyncClient, customer):
        response = await client.post(
            "/api/auth/login",
            json={"email": "Customer@Gmail.com", "password": "Password123!"}
        )

        assert response.status_code == 200

    async def test_login_invalid_password(self, client: AsyncClient, customer):
        response = await client.post(
            "/api/auth/login",
            json={"email": "customer@gmail.com", "password": "WrongPassword1!"}
        )

        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid email or password", "code": "invalid_credentials"}

    async def test_login_unknown_email_looks_the_same(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"email": "ghost@gmail.com", "password": "WrongPassword1!"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    async def test_lockout_after_five_failures(self, client: AsyncClient, customer):
        for _ in range(5):
            response = await client.post(
                "/api/auth/login",
                json={"email": "customer@gmail.com", "password": "WrongPassword1!"}
            )
            assert response.status_code == 401

        response = await client.post(
            "/api/auth/login",
            json={"email": "customer@gmail.com", "password": "Password123!"}
        )

        assert response.status_code == 429
        data = response.json()
        assert data["code"] == "account_locked"
        assert data["remaining_minutes"] == 15
        assert data["attempt_count"] == 5
        assert "locked_until" in data
        assert response.headers["Retry-After"] == "900"

    async def test_lockout_does_not_spread_to_other_ips(self, client: AsyncClient, customer):
        for _ in range(5):
            await client.post(
                "/api/auth/login",
                json={"email": "customer@gmail.com", "password": "WrongPassword1!"}
            )

        response = await client.post(
            "/api/auth/login",
            json={"email": "customer@gmail.com", "password": "Password123!"},
            headers={"X-Forwarded-For": "192.0.2.50"},
        )

        assert response.status_code == 200

    async def test_rotating_forwarded_for_does_not_dodge_lockout(self, client: AsyncClient, customer):
        # The proxy appends the real peer; everything left of it is client supplied
        for i in range(5):
            response = await client.post(
                "/api/auth/login",
                json={"email": "customer@gmail.com", "password": "WrongPassword1!"},
                headers={"X-Forwarded-For": f"10.0.{i}.1, {TEST_IP}"},
            )
            assert response.status_code == 401

        response = await client.post(
            "/api/auth/login",
            json={"email": "customer@gmail.com", "password": "Password123!"},
            headers={"X-Forwarded-For": f"10.0.99.1, {TEST_IP}"},
        )

        assert response.status_code == 429
        assert response.json()["code"] == "account_locked"

    async def test_admin_login_requires_code(self, client: AsyncClient, admin, dispatcher):
        response = await client.post(
            "/api/auth/login",
            json={"email": "manager@cafe.com", "password": "AdminPass123!"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["requires_otp"] is True
        assert data["user_type"] == "admin"
        assert "access_token" not in data
        assert dispatcher.sent[-1]["purpose"] == "admin_login"

    async def test_trusted_admin_skips_code(self, client: AsyncClient, db_session: AsyncSession):
        remembered_until = utcnow() + timedelta(days=10)
        await AdminFactory.create_async(db_session, email="trusted@cafe.com", remembered_until=remembered_until)
        await db_session.commit()

        response = await client.post(
            "/api/auth/login",
            json={"email": "trusted@cafe.com", "password": "AdminPass123!"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["principal_type"] == "admin"
        assert data["user"]["status"] == "active"
        assert "access_token" in data


@pytest.mark.asyncio
class TestSessionEndpoints:

    async def test_me(self, client: AsyncClient, customer, customer_headers):
        response = await client.get("/api/auth/me", headers=customer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["principal_type"] == "customer"
        assert data["user"]["email"] == "customer@gmail.com"

    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401

    async def test_me_with_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me", headers=bearer("not-a-jwt"))

        assert response.status_code == 401

    async def test_heartbeat_for_admin(self, client: AsyncClient, db_session: AsyncSession, admin, admin_headers):
        response = await client.post("/api/auth/heartbeat", headers=admin_headers)

        assert response.status_code == 200
        await db_session.refresh(admin)
        assert admin.status == "active"
        assert admin.last_login_at is not None

    async def test_heartbeat_forbidden_for_customer(self, client: AsyncClient, customer, customer_headers):
        response = await client.post("/api/auth/heartbeat", headers=customer_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    async def test_logout_revokes_token(self, client: AsyncClient, customer, customer_headers):
        response = await client.post("/api/auth/logout", headers=customer_headers)
        assert response.status_code == 200

        response = await client.get("/api/auth/me", headers=customer_headers)
        assert response.status_code == 401

    async def test_admin_logout_marks_inactive(self, client: AsyncClient, db_session: AsyncSession, admin, admin_headers):
        await client.post("/api/auth/heartbeat", headers=admin_headers)

        response = await client.post("/api/auth/logout", headers=admin_headers)

        assert response.status_code == 200
        await db_session.refresh(admin)
        assert admin.status == "inactive"
