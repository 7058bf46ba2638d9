"""
Notification Dispatcher

`send` delivers one-time codes synchronously (SMTP in the thread pool) and
reports success as a bool, so the OTP ledger can roll back an undeliverable
code. `queue_confirmation` hands post-success notices to Celery; a failure
there is logged and swallowed.
"""

import logging
import smtplib
from typing import Any, Dict

from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.helpers.getters import isDebugMode
from app.mycelery.worker import (
    deliver_email,
    deliver_email_local,
    render_otp_email,
    send_confirmation_email,
)

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    @property
    def local_delivery(self) -> bool:
        return isDebugMode() or not settings.SMTP_USERNAME

    async def send(self, email: str, purpose: str, payload: Dict[str, Any]) -> bool:
        subject, body = render_otp_email(purpose, payload)
        deliver = deliver_email_local if self.local_delivery else deliver_email
        try:
            await run_in_threadpool(deliver, email, subject, body)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            logger.error(f"Failed to deliver {purpose} code: {e}")
            return False
        return True

    def queue_confirmation(self, email: str, kind: str, payload: Dict[str, Any]) -> bool:
        try:
            send_confirmation_email.delay(email, kind, payload)
        except Exception as e:
            # Broker outages must not fail a completed signup or reset
            logger.error(f"Failed to queue {kind} confirmation: {e}")
            return False
        return True
