"""
End-to-end test for admin login with the e-mailed second factor and the
30-day trusted device.
"""

import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient

from app.db.types import utcnow

CREDENTIALS = {"email": "manager@cafe.com", "password": "AdminPass123!"}


@pytest.mark.e2e
@pytest.mark.asyncio
class TestAdminLoginFlow:

    async def test_remembered_device_skips_code(self, client: AsyncClient, admin, dispatcher):
        """
        1. Password login asks for a code
        2. Verify the code with remember=true (30-day token)
        3. Next password login returns a token straight away, ending with the trust window
        4. Heartbeat and logout work with that token
        """
        # Step 1
        first = await client.post("/api/auth/login", json=CREDENTIALS)
        assert first.status_code == 200
        assert first.json()["requires_otp"] is True
        code = dispatcher.last_code("manager@cafe.com", "admin_login")

        # Step 2
        verify = await client.post(
            "/api/auth/admin/verify-otp",
            json={"email": "manager@cafe.com", "otp": code, "remember": True},
        )
        assert verify.status_code == 200
        trusted_until = datetime.fromisoformat(verify.json()["expires_at"])
        assert timedelta(days=29) < trusted_until - utcnow() <= timedelta(days=30)

        # Step 3
        codes_sent = len(dispatcher.sent)
        second = await client.post("/api/auth/login", json=CREDENTIALS)
        assert second.status_code == 200
        data = second.json()
        assert "access_token" in data
        assert datetime.fromisoformat(data["expires_at"]) == trusted_until
        assert len(dispatcher.sent) == codes_sent

        # Step 4
        headers = {"Authorization": f"Bearer {data['access_token']}"}
        assert (await client.post("/api/auth/heartbeat", headers=headers)).status_code == 200
        assert (await client.post("/api/auth/logout", headers=headers)).status_code == 200
        assert (await client.get("/api/auth/me", headers=headers)).status_code == 401

    async def test_without_remember_every_login_needs_a_code(self, client: AsyncClient, admin, dispatcher):
        await client.post("/api/auth/login", json=CREDENTIALS)
        code = dispatcher.last_code("manager@cafe.com", "admin_login")

        verify = await client.post(
            "/api/auth/admin/verify-otp",
            json={"email": "manager@cafe.com", "otp": code},
        )
        expires_at = datetime.fromisoformat(verify.json()["expires_at"])
        assert timedelta(hours=23) < expires_at - utcnow() <= timedelta(days=1)

        again = await client.post("/api/auth/login", json=CREDENTIALS)
        assert again.json()["requires_otp"] is True
