"""
OTP Ledger

Issues, stores and verifies 6-digit one-time codes per (email, purpose).

Invariants:
- At most one live (unused, unexpired) record per (email, purpose) once
  `generate(force_new=True)` returns; older live records are marked used first.
- A record verifies successfully at most once: consumption is a conditional
  UPDATE on `is_used = false`, so concurrent verifications of the same code
  cannot both win.
- After OTP_MAX_ATTEMPTS wrong guesses the record is dead, even for the
  correct code.

Wrong guesses are counted inside `verify` itself. `increment_failed_attempt`
is still exposed for callers that record a failed guess separately, but no
flow in this service needs to call it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import DispatchFailure, OTPAttemptsExceeded, OTPInvalidOrExpired
from app.core.security import generate_otp, hash_otp, verify_otp
from app.db.types import utcnow
from app.models.otp import OTPRecord

logger = logging.getLogger(__name__)


class OTPPurpose(str, Enum):
    ADMIN_LOGIN = "admin_login"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


@dataclass
class OTPIssue:
    code_id: int
    expires_at: datetime
    reused: bool = False


class OTPLedger:
    def __init__(self, db: AsyncSession, dispatcher):
        self.db = db
        self.dispatcher = dispatcher

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=settings.OTP_TTL_MINUTES)

    @property
    def max_attempts(self) -> int:
        return settings.OTP_MAX_ATTEMPTS

    def _live_filter(self, email: str, purpose: OTPPurpose, now: datetime):
        return (
            OTPRecord.email == email,
            OTPRecord.purpose == purpose.value,
            OTPRecord.is_used.is_(False),
            OTPRecord.expires_at > now,
        )

    async def find_live(self, email: str, purpose: OTPPurpose, now: Optional[datetime] = None) -> Optional[OTPRecord]:
        """Newest live record for (email, purpose), read fresh from the database."""
        now = now or utcnow()
        result = await self.db.execute(
            select(OTPRecord)
            .where(*self._live_filter(email.lower(), OTPPurpose(purpose), now))
            .order_by(OTPRecord.created_at.desc(), OTPRecord.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def generate(
        self,
        email: str,
        purpose: OTPPurpose,
        force_new: bool = False,
        payload: Optional[Dict[str, Any]] = None,
    ) -> OTPIssue:
        """
        Issue a code and hand it to the notification dispatcher.

        Args:
            email: Recipient (normalised to lowercase)
            purpose: What the code authorises
            force_new: Invalidate any live code and send a fresh one
            payload: Extra template data for the message

        Returns:
            OTPIssue with the record id and expiry

        Raises:
            DispatchFailure: The message could not be delivered; the new record is removed
        """
        email = email.lower()
        purpose = OTPPurpose(purpose)
        await self._lock(email, purpose)
        now = utcnow()

        live = await self.find_live(email, purpose, now)
        if live is not None and not force_new:
            return OTPIssue(code_id=live.id, expires_at=live.expires_at, reused=True)

        # Retire every unused record, expired ones included, so the new one is the only candidate
        await self.db.execute(
            update(OTPRecord)
            .where(
                OTPRecord.email == email,
                OTPRecord.purpose == purpose.value,
                OTPRecord.is_used.is_(False),
            )
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )

        code = generate_otp()
        record = OTPRecord(
            email=email,
            purpose=purpose.value,
            code_hash=hash_otp(code),
            expires_at=now + self.ttl,
            attempts=0,
            is_used=False,
            created_at=now,
        )
        self.db.add(record)
        await self.db.flush()

        message = {"code": code, "expires_in_minutes": settings.OTP_TTL_MINUTES}
        message.update(payload or {})
        delivered = await self.dispatcher.send(email, purpose.value, message)
        if not delivered:
            await self.db.delete(record)
            await self.db.flush()
            logger.warning(f"OTP dispatch failed for purpose={purpose.value}; record {record.id} removed")
            raise DispatchFailure()

        logger.info(f"OTP issued id={record.id} purpose={purpose.value}")
        return OTPIssue(code_id=record.id, expires_at=record.expires_at)

    async def verify(self, email: str, code: str, purpose: OTPPurpose) -> OTPRecord:
        """
        Consume the live code for (email, purpose).

        Raises:
            OTPInvalidOrExpired: No live record, wrong code, or lost a concurrent race
            OTPAttemptsExceeded: The attempt cap was already reached
        """
        email = email.lower()
        purpose = OTPPurpose(purpose)
        record = await self.find_live(email, purpose)
        if record is None:
            raise OTPInvalidOrExpired()

        if record.attempts >= self.max_attempts:
            await self._mark_used(record.id)
            logger.warning(f"OTP {record.id} invalidated after {record.attempts} failed attempts")
            raise OTPAttemptsExceeded()

        if not verify_otp(code, record.code_hash):
            await self._bump_attempts(record.id)
            raise OTPInvalidOrExpired()

        result = await self.db.execute(
            update(OTPRecord)
            .where(
                OTPRecord.id == record.id,
                OTPRecord.is_used.is_(False),
                OTPRecord.attempts < self.max_attempts,
            )
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OTPInvalidOrExpired()

        record.is_used = True
        return record

    async def increment_failed_attempt(self, email: str, code: str, purpose: OTPPurpose) -> bool:
        """
        Count `code` as a wrong guess against the live record.

        Returns:
            True if a live record was charged an attempt
        """
        record = await self.find_live(email, purpose)
        if record is None or verify_otp(code, record.code_hash):
            return False
        await self._bump_attempts(record.id)
        return True

    async def status(self, email: str, purpose: OTPPurpose) -> Dict[str, Any]:
        now = utcnow()
        record = await self.find_live(email, purpose, now)
        if record is None:
            return {"exists": False}
        return {
            "exists": True,
            "attempts": record.attempts,
            "expires_at": record.expires_at,
            "seconds_remaining": max(0, int((record.expires_at - now).total_seconds())),
        }

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        result = await self.db.execute(
            delete(OTPRecord).where(OTPRecord.expires_at <= (now or utcnow()))
        )
        return result.rowcount or 0

    async def _lock(self, email: str, purpose: OTPPurpose) -> None:
        """Serialise issuers for one (email, purpose) until the transaction ends."""
        if self.db.bind.dialect.name != "postgresql":
            # SQLite takes a database-wide write lock on the first UPDATE
            return
        await self.db.execute(
            select(func.pg_advisory_xact_lock(func.hashtext(f"otp:{email}:{purpose.value}")))
        )

    async def _bump_attempts(self, record_id: int) -> None:
        await self.db.execute(
            update(OTPRecord)
            .where(OTPRecord.id == record_id)
            .values(attempts=OTPRecord.attempts + 1)
            .execution_options(synchronize_session=False)
        )

    async def _mark_used(self, record_id: int) -> None:
        await self.db.execute(
            update(OTPRecord)
            .where(OTPRecord.id == record_id)
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
