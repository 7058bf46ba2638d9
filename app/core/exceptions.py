"""
Error taxonomy for the authentication flows.

Every error carries the HTTP status it maps to, a stable machine-readable
`code` and a user-facing `detail`. The API layer renders them through a
single exception handler (see app.main).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AuthFlowError(Exception):
    """Base class for all expected authentication failures."""

    status_code: int = 400
    code: str = "auth_error"
    default_detail: str = "Authentication error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def extra(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.detail, "code": self.code}
        body.update(self.extra())
        return body


class ValidationError(AuthFlowError):
    """
    A value breaks a domain rule the request schemas cannot see, such as
    a trusted device on a customer. Malformed request bodies never get here;
    FastAPI answers those with its own 422.
    """

    status_code = 422
    code = "validation_error"
    default_detail = "Invalid input data"


class AuthenticationError(AuthFlowError):
    status_code = 401
    code = "invalid_credentials"
    default_detail = "Invalid email or password"


class LockedError(AuthFlowError):
    status_code = 429
    code = "account_locked"

    def __init__(self, locked_until: datetime, attempt_count: int = 0, detail: Optional[str] = None):
        self.locked_until = locked_until
        self.attempt_count = attempt_count
        super().__init__(
            detail
            or f"Too many failed attempts. Please try again in {self.remaining_minutes} minutes."
        )

    @property
    def remaining_minutes(self) -> int:
        seconds = (self.locked_until - datetime.now(timezone.utc)).total_seconds()
        # Round up so a lock with 10 seconds left still reads as 1 minute
        return max(0, -int(-seconds // 60))

    def extra(self) -> Dict[str, Any]:
        return {
            "locked_until": self.locked_until.isoformat(),
            "remaining_minutes": self.remaining_minutes,
            "attempt_count": self.attempt_count,
        }


class OTPInvalidOrExpired(AuthFlowError):
    status_code = 400
    code = "otp_invalid_or_expired"
    default_detail = "Invalid or expired OTP code"


class OTPAttemptsExceeded(AuthFlowError):
    status_code = 400
    code = "otp_attempts_exceeded"
    default_detail = "Too many failed attempts. OTP has been invalidated."


class ConflictError(AuthFlowError):
    status_code = 409
    code = "conflict"
    default_detail = "Email or username already exists"


class DispatchFailure(AuthFlowError):
    status_code = 503
    code = "dispatch_failure"
    default_detail = "Failed to send verification email"


class NotFoundError(AuthFlowError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class RateLimitedError(AuthFlowError):
    status_code = 429
    code = "rate_limited"
    default_detail = "Rate limit exceeded. Please try again later."

    def __init__(self, retry_after: int, detail: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(detail)

    def extra(self) -> Dict[str, Any]:
        return {"retry_after": self.retry_after}


class PermissionDeniedError(AuthFlowError):
    status_code = 403
    code = "forbidden"
    default_detail = "Insufficient permissions"
