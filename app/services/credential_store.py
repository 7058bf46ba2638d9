"""
Durable principal records (admins and customers).

All lookups are by lowercase e-mail. Uniqueness of e-mail and username is
enforced by the database; callers turn IntegrityError into ConflictError.
"""

import logging
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.core.permissions import PrincipalRole, PrincipalStatus, PrincipalType
from app.models.admin import Admin
from app.models.user import User

logger = logging.getLogger(__name__)

Principal = Union[Admin, User]

# Distinguishes "leave unchanged" from "set to NULL" in update()
UNSET = object()


class CredentialStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_admin_by_email(self, email: str) -> Optional[Admin]:
        result = await self.db.execute(select(Admin).where(Admin.email == email.lower()))
        return result.scalar_one_or_none()

    async def find_customer_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def find_customer_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[Principal]:
        """Admin accounts take precedence over customer accounts with the same e-mail."""
        admin = await self.find_admin_by_email(email)
        if admin:
            return admin
        return await self.find_customer_by_email(email)

    async def find_by_id(self, principal_type: str, principal_id: int) -> Optional[Principal]:
        model = Admin if principal_type == PrincipalType.ADMIN.value else User
        return await self.db.get(model, principal_id)

    async def email_in_use(self, email: str) -> bool:
        return await self.find_by_email(email) is not None

    async def create_customer(
        self,
        *,
        email: str,
        username: str,
        full_name: str,
        password_hash: str,
        birthday: date,
        gender: str,
        employment_status: str = "Prefer not to say",
    ) -> User:
        user = User(
            email=email.lower(),
            username=username,
            full_name=full_name,
            password_hash=password_hash,
            birthday=birthday,
            gender=gender,
            employment_status=employment_status,
            role=PrincipalRole.CUSTOMER.value,
            status=PrincipalStatus.ACTIVE.value,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def create_admin(
        self,
        *,
        email: str,
        full_name: str,
        password_hash: str,
        role: PrincipalRole = PrincipalRole.STAFF,
    ) -> Admin:
        role = PrincipalRole(role)
        if role == PrincipalRole.CUSTOMER:
            raise ValidationError("Admins cannot carry the customer role")
        admin = Admin(
            email=email.lower(),
            full_name=full_name,
            password_hash=password_hash,
            role=role.value,
            status=PrincipalStatus.INACTIVE.value,
        )
        self.db.add(admin)
        await self.db.flush()
        logger.info(f"Provisioned admin id={admin.id} role={role.value}")
        return admin

    async def update(
        self,
        principal: Principal,
        *,
        password_hash: Optional[str] = None,
        status: Optional[PrincipalStatus] = None,
        remembered_until=UNSET,
        last_login_at: Optional[datetime] = None,
        bump_token_version: bool = False,
    ) -> Principal:
        """
        Apply a partial update to a principal and flush it.

        Args:
            principal: Admin or User instance
            password_hash: New bcrypt hash
            status: New status
            remembered_until: Trusted-device expiry (admins only); None clears it
            last_login_at: Login timestamp
            bump_token_version: Invalidate every token issued so far
        """
        if password_hash is not None:
            principal.password_hash = password_hash
        if status is not None:
            principal.status = PrincipalStatus(status).value
        if remembered_until is not UNSET:
            if not isinstance(principal, Admin):
                raise ValidationError("Only admins can have a trusted device")
            principal.remembered_until = remembered_until
        if last_login_at is not None:
            principal.last_login_at = last_login_at
        if bump_token_version:
            principal.token_version = (principal.token_version or 1) + 1
        await self.db.flush()
        return principal
