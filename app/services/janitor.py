"""
Background janitor for the authentication tables.

Reads never depend on this having run: every lookup already ignores expired
rows. Purging only keeps the tables small.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.types import utcnow
from app.services.failed_attempts import FailedAttemptTracker
from app.services.otp_ledger import OTPLedger
from app.services.signup_staging import SignupStaging

logger = logging.getLogger(__name__)


async def purge_expired_records(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utcnow()
    counts = {
        "otp_records": await OTPLedger(db, dispatcher=None).purge_expired(now),
        "pending_signups": await SignupStaging(db).purge_expired(now),
        "failed_attempts": await FailedAttemptTracker(db).purge_expired(now),
    }
    await db.commit()
    return counts


async def run_purge() -> Dict[str, int]:
    """Entry point for the Celery beat task: opens its own session and engine scope."""
    from app.db.session import SessionAsync, engine

    try:
        async with SessionAsync() as db:
            return await purge_expired_records(db)
    finally:
        # asyncio.run() closes the loop; pooled connections must not outlive it
        await engine.dispose()
