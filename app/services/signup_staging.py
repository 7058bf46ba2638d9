"""
Temporary Signup Staging

Holds an unverified customer registration, keyed by (email, ip), until the
e-mailed code is confirmed. Rows older than SIGNUP_TTL_MINUTES are treated as
absent whether or not the janitor has removed them yet.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError
from app.core.security import get_password_hash
from app.db.types import utcnow
from app.models.pending_signup import PendingSignup
from app.models.user import User
from app.schemas.user import UserCreate
from app.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class SignupStaging:
    def __init__(self, db: AsyncSession, store: Optional[CredentialStore] = None):
        self.db = db
        self.store = store or CredentialStore(db)

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=settings.SIGNUP_TTL_MINUTES)

    async def stage(self, profile: UserCreate, ip_address: str, user_agent: str = "") -> int:
        """Hash the password and store the profile, replacing any earlier attempt from the same pair."""
        email = profile.email.lower()
        await self.discard(email, ip_address)

        pending = PendingSignup(
            email=email,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512],
            password_hash=get_password_hash(profile.password),
            full_name=profile.full_name,
            username=profile.username,
            birthday=profile.birthday,
            gender=profile.gender,
            employment_status=profile.employment_status,
            created_at=utcnow(),
        )
        self.db.add(pending)
        await self.db.flush()
        return pending.id

    async def find(self, email: str, ip_address: str) -> Optional[PendingSignup]:
        result = await self.db.execute(
            select(PendingSignup)
            .where(
                PendingSignup.email == email.lower(),
                PendingSignup.ip_address == ip_address,
                PendingSignup.created_at > utcnow() - self.ttl,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def discard(self, email: str, ip_address: str) -> int:
        result = await self.db.execute(
            delete(PendingSignup).where(
                PendingSignup.email == email.lower(),
                PendingSignup.ip_address == ip_address,
            )
        )
        return result.rowcount or 0

    async def promote(self, email: str, ip_address: str) -> User:
        """
        Turn the staged registration into a customer account.

        Uniqueness is re-checked here because the account may have been taken
        while the code was in flight; the unique constraints catch anything that
        slips past the check. On conflict the staging row is discarded, so the
        signup has to start over.

        Raises:
            NotFoundError: Nothing staged for (email, ip), or it expired
            ConflictError: E-mail or username is already registered
        """
        pending = await self.find(email, ip_address)
        if pending is None:
            raise NotFoundError("Signup session expired. Please start the signup process again.")
        email, ip_address = pending.email, pending.ip_address

        if await self.store.email_in_use(email):
            await self._abandon(email, ip_address, "Email already in use")
        if await self.store.find_customer_by_username(pending.username):
            await self._abandon(email, ip_address, "Username already taken")

        try:
            # Only the insert is undone on a clash; the consumed code stays consumed
            async with self.db.begin_nested():
                user = await self.store.create_customer(
                    email=email,
                    username=pending.username,
                    full_name=pending.full_name,
                    password_hash=pending.password_hash,
                    birthday=pending.birthday,
                    gender=pending.gender,
                    employment_status=pending.employment_status,
                )
        except IntegrityError:
            logger.warning("Signup promotion lost a uniqueness race")
            await self._abandon(email, ip_address, "Email or username already exists")

        await self.db.delete(pending)
        await self.db.flush()
        logger.info(f"Promoted staged signup to customer id={user.id}")
        return user

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        result = await self.db.execute(
            delete(PendingSignup).where(PendingSignup.created_at <= now - self.ttl)
        )
        return result.rowcount or 0

    async def _abandon(self, email: str, ip_address: str, detail: str):
        await self.discard(email, ip_address)
        raise ConflictError(detail)
