"""
Smoke tests for critical endpoints.

Fast tests to detect critical breaks in CI/CD pipeline.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.dependencies import get_auth_service, get_redis
from app.main import app


@pytest.mark.smoke
@pytest.mark.asyncio
class TestCriticalEndpoints:
    """Smoke tests for critical application endpoints."""

    async def test_signup_endpoint(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/signup",
            json={
                "full_name": "Smoke Test",
                "username": "smoke_test",
                "email": "smoke@gmail.com",
                "password": "SmokeTest123!",
                "birthday": "2000-01-01",
                "gender": "Male",
            },
        )

        assert response.status_code == 200
        assert response.json()["requires_otp"] is True

    async def test_login_endpoint(self, client: AsyncClient, customer):
        response = await client.post(
            "/api/auth/login",
            json={"email": customer.email, "password": "Password123!"},
        )

        assert response.status_code == 200
        assert "access_token" in response.json()

    async def test_me_endpoint(self, client: AsyncClient, customer, customer_headers):
        response = await client.get("/api/auth/me", headers=customer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == customer.id
        assert data["user"]["email"] == customer.email

    async def test_unauthorized_access(self, client: AsyncClient):
        """Test that protected endpoints reject unauthorized access."""
        response = await client.get("/api/auth/me")

        assert response.status_code == 401

    async def test_invalid_credentials(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"email": "nonexistent@gmail.com", "password": "wrong"},
        )

        assert response.status_code == 401


@pytest.mark.smoke
@pytest.mark.asyncio
class TestHealthChecks:
    """Smoke tests for application health."""

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_root(self, client: AsyncClient):
        response = await client.get("/")

        assert response.status_code == 200

    async def test_request_id_header(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-ID": "smoke-123"})

        assert response.headers["X-Request-ID"] == "smoke-123"

    async def test_openapi_lists_auth_routes(self, client: AsyncClient):
        response = await client.get("/openapi.json")

        paths = response.json()["paths"]
        for path in [
            "/api/auth/signup",
            "/api/auth/signup/verify-otp",
            "/api/auth/forgot-password",
            "/api/auth/reset-password",
            "/api/auth/admin/request-otp",
            "/api/auth/admin/verify-otp",
            "/api/auth/login",
            "/api/auth/logout",
        ]:
            assert path in paths


@pytest.mark.smoke
@pytest.mark.asyncio
class TestUnhandledErrors:
    """Unexpected failures are answered with a generic 500."""

    async def test_internal_error_message_is_not_echoed(self, redis_client, mocker):
        service = mocker.Mock()
        service.login = mocker.AsyncMock(side_effect=RuntimeError("connection to db failed: password=hunter2"))
        capture = mocker.patch("app.main.capture_error")

        async def override_get_redis():
            yield redis_client

        app.dependency_overrides[get_auth_service] = lambda: service
        app.dependency_overrides[get_redis] = override_get_redis
        try:
            # The server error middleware re-raises after sending the 500
            transport = ASGITransport(app=app, raise_app_exceptions=False)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await ac.post(
                    "/api/auth/login",
                    json={"email": "customer@gmail.com", "password": "Password123!"},
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}
        assert "hunter2" not in response.text
        capture.assert_called_once()
