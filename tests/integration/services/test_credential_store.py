"""
Integration tests for the credential store (app/services/credential_store.py).
"""

import pytest

from app.core.exceptions import ValidationError
from app.core.permissions import PrincipalRole
from app.db.types import utcnow
from app.services.credential_store import CredentialStore
from tests.factories import AdminFactory, UserFactory


@pytest.mark.asyncio
class TestCredentialStore:

    async def test_lookups_are_case_insensitive(self, db_session):
        user = await UserFactory.create_async(db_session, email="jane@gmail.com")
        store = CredentialStore(db_session)

        assert await store.find_customer_by_email("JANE@gmail.com") is user
        assert await store.find_by_email("Jane@Gmail.com") is user

    async def test_admin_takes_precedence(self, db_session):
        await UserFactory.create_async(db_session, email="shared@cafe.com")
        admin = await AdminFactory.create_async(db_session, email="shared@cafe.com")

        assert await CredentialStore(db_session).find_by_email("shared@cafe.com") is admin

    async def test_find_by_id(self, db_session):
        user = await UserFactory.create_async(db_session)
        admin = await AdminFactory.create_async(db_session)
        store = CredentialStore(db_session)

        assert await store.find_by_id("customer", user.id) is user
        assert await store.find_by_id("admin", admin.id) is admin

    async def test_create_admin_starts_inactive(self, db_session):
        admin = await CredentialStore(db_session).create_admin(
            email="New.Admin@Cafe.com", full_name="New Admin", password_hash="x", role=PrincipalRole.MANAGER,
        )

        assert admin.email == "new.admin@cafe.com"
        assert admin.status == "inactive"
        assert admin.role == "manager"

    async def test_create_admin_rejects_customer_role(self, db_session):
        with pytest.raises(ValidationError):
            await CredentialStore(db_session).create_admin(
                email="a@cafe.com", full_name="A", password_hash="x", role=PrincipalRole.CUSTOMER,
            )

    async def test_update_bumps_token_version(self, db_session):
        user = await UserFactory.create_async(db_session)

        await CredentialStore(db_session).update(user, password_hash="new", bump_token_version=True)

        assert user.password_hash == "new"
        assert user.token_version == 2

    async def test_trusted_device_only_for_admins(self, db_session):
        user = await UserFactory.create_async(db_session)

        with pytest.raises(ValidationError):
            await CredentialStore(db_session).update(user, remembered_until=utcnow())
