"""
Failed-Attempt Tracker

Counts rejected guesses per (email, ip, attempt type) and locks the pair once
the count reaches LOCKOUT_THRESHOLD. Counting is a single upsert statement so
concurrent failures from the same pair cannot lose increments.

Rows expire FAILED_ATTEMPT_TTL_HOURS after creation regardless of lock state;
a row whose `locked_until` has passed simply stops blocking.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import case, delete, literal, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.types import UTCDateTime, utcnow
from app.models.failed_attempt import FailedAttempt

logger = logging.getLogger(__name__)


class AttemptType(str, Enum):
    LOGIN = "login"
    SIGNUP = "signup"
    OTP = "otp"


_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class FailedAttemptTracker:
    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def lock_duration(self) -> timedelta:
        return timedelta(minutes=settings.LOCKOUT_MINUTES)

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=settings.FAILED_ATTEMPT_TTL_HOURS)

    async def is_locked(self, email: str, ip_address: str) -> Optional[FailedAttempt]:
        """Active lock on (email, ip) for any attempt type, or None."""
        now = utcnow()
        result = await self.db.execute(
            select(FailedAttempt)
            .where(
                FailedAttempt.email == email.lower(),
                FailedAttempt.ip_address == ip_address,
                FailedAttempt.is_locked.is_(True),
                FailedAttempt.locked_until > now,
                FailedAttempt.created_at > now - self.ttl,
            )
            .order_by(FailedAttempt.locked_until.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def remaining_lock_seconds(self, email: str, ip_address: str) -> int:
        attempt = await self.is_locked(email, ip_address)
        if attempt is None:
            return 0
        return max(0, int((attempt.locked_until - utcnow()).total_seconds()))

    async def record(
        self,
        email: str,
        ip_address: str,
        user_agent: str = "",
        attempt_type: AttemptType = AttemptType.LOGIN,
    ) -> FailedAttempt:
        """
        Count one failed attempt, locking the pair at the threshold.

        Returns:
            The counter row as stored after the increment
        """
        email = email.lower()
        attempt_type = AttemptType(attempt_type)
        user_agent = (user_agent or "")[:512]
        now = utcnow()
        threshold = settings.LOCKOUT_THRESHOLD
        locked_until = now + self.lock_duration

        # Expired rows must not keep counting
        await self.db.execute(
            delete(FailedAttempt).where(
                FailedAttempt.email == email,
                FailedAttempt.ip_address == ip_address,
                FailedAttempt.attempt_type == attempt_type.value,
                FailedAttempt.created_at <= now - self.ttl,
            )
        )

        insert = _UPSERT_DIALECTS.get(self.db.bind.dialect.name)
        if insert is None:
            raise NotImplementedError(f"No upsert support for dialect {self.db.bind.dialect.name}")

        new_count = FailedAttempt.attempt_count + 1
        stmt = insert(FailedAttempt).values(
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            attempt_type=attempt_type.value,
            attempt_count=1,
            last_attempt_at=now,
            is_locked=threshold <= 1,
            locked_until=locked_until if threshold <= 1 else None,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["email", "ip_address", "attempt_type"],
            set_={
                "attempt_count": new_count,
                "last_attempt_at": literal(now, UTCDateTime()),
                "user_agent": stmt.excluded.user_agent,
                "is_locked": case((new_count >= threshold, True), else_=FailedAttempt.is_locked),
                "locked_until": case(
                    (new_count >= threshold, literal(locked_until, UTCDateTime())),
                    else_=FailedAttempt.locked_until,
                ),
            },
        ).returning(FailedAttempt)

        result = await self.db.scalars(stmt.execution_options(populate_existing=True))
        attempt = result.one()

        if attempt.is_locked and attempt.attempt_count == threshold:
            logger.warning(
                f"Lockout triggered for type={attempt_type.value} ip={ip_address} "
                f"until {attempt.locked_until.isoformat()}"
            )
        return attempt

    async def clear(self, email: str, ip_address: str, *attempt_types: AttemptType) -> int:
        """Delete counters for (email, ip); all types when none are given."""
        conditions = [FailedAttempt.email == email.lower(), FailedAttempt.ip_address == ip_address]
        if attempt_types:
            conditions.append(
                FailedAttempt.attempt_type.in_([AttemptType(t).value for t in attempt_types])
            )
        result = await self.db.execute(delete(FailedAttempt).where(*conditions))
        return result.rowcount or 0

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        result = await self.db.execute(
            delete(FailedAttempt).where(FailedAttempt.created_at <= now - self.ttl)
        )
        return result.rowcount or 0
