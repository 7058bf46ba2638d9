"""
Auth Orchestrator

Sequences the credential store, OTP ledger, failed-attempt tracker, signup
staging and token issuer for each flow:

- Customer signup:  staged -> code sent -> verified -> promoted
                    (or expired / conflict)
- Admin login:      password ok -> trusted device ? token
                                 : code sent -> verified -> token
- Password reset:   request -> code sent -> verified + new password -> done

Rules shared by every flow:
- a step that consumes a guess (password or code) first checks the lockout
- a rejected guess is recorded and committed before the error propagates
- a successful terminal step clears the counters it was guarding
- a code that cannot be delivered leaves nothing behind (rollback)

Each public method owns its transaction and commits exactly once on every
path that changes state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import NoReturn, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AuthFlowError,
    AuthenticationError,
    ConflictError,
    DispatchFailure,
    LockedError,
    NotFoundError,
    OTPAttemptsExceeded,
    OTPInvalidOrExpired,
)
from app.core.permissions import Capability, PrincipalStatus, PrincipalType, has_capability
from app.core.security import get_password_hash, verify_password
from app.db.types import utcnow
from app.models.admin import Admin
from app.models.user import User
from app.schemas.user import UserCreate
from app.services.credential_store import CredentialStore, Principal
from app.services.failed_attempts import AttemptType, FailedAttemptTracker
from app.services.otp_ledger import OTPIssue, OTPLedger, OTPPurpose
from app.services.signup_staging import SignupStaging
from app.services.token_issuer import IssuedToken, TokenIssuer, is_trusted, trusted_device_expiry

logger = logging.getLogger(__name__)

OTP_ERRORS = (OTPInvalidOrExpired, OTPAttemptsExceeded)


@dataclass
class ClientContext:
    """Where a request came from; the lockout is keyed on it."""
    ip_address: str
    user_agent: str = ""


@dataclass
class LoginResult:
    principal: Principal
    token: Optional[IssuedToken] = None
    requires_otp: bool = False
    otp_expires_at: Optional[datetime] = None


class AuthOrchestrator:
    def __init__(self, db: AsyncSession, dispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.store = CredentialStore(db)
        self.otps = OTPLedger(db, dispatcher)
        self.attempts = FailedAttemptTracker(db)
        self.staging = SignupStaging(db, self.store)
        self.tokens = TokenIssuer()

    # ==================== Shared steps ====================

    async def _ensure_not_locked(self, email: str, ctx: ClientContext) -> None:
        locked = await self.attempts.is_locked(email, ctx.ip_address)
        if locked is not None:
            logger.info(f"Rejected request from locked pair ip={ctx.ip_address}")
            raise LockedError(locked.locked_until, locked.attempt_count)

    async def _reject(
        self,
        email: str,
        ctx: ClientContext,
        attempt_type: AttemptType,
        error: AuthFlowError,
    ) -> NoReturn:
        """Record a failed guess, persist everything done so far, and raise."""
        await self.attempts.record(email, ctx.ip_address, ctx.user_agent, attempt_type)
        await self.db.commit()
        raise error

    async def _issue_code(self, email: str, purpose: OTPPurpose, **payload) -> OTPIssue:
        try:
            return await self.otps.generate(email, purpose, force_new=True, payload=payload)
        except DispatchFailure:
            await self.db.rollback()
            raise

    # ==================== Customer signup ====================

    async def request_signup_otp(self, profile: UserCreate, ctx: ClientContext) -> OTPIssue:
        email = profile.email.lower()
        await self._ensure_not_locked(email, ctx)

        if await self.store.email_in_use(email):
            await self._reject(email, ctx, AttemptType.SIGNUP, ConflictError("Email already in use"))
        if await self.store.find_customer_by_username(profile.username):
            raise ConflictError("Username already taken")

        await self.staging.stage(profile, ctx.ip_address, ctx.user_agent)
        issue = await self._issue_code(email, OTPPurpose.EMAIL_VERIFICATION, full_name=profile.full_name)
        await self.db.commit()
        return issue

    async def verify_signup_otp(self, email: str, code: str, ctx: ClientContext) -> User:
        email = email.lower()
        await self._ensure_not_locked(email, ctx)

        try:
            await self.otps.verify(email, code, OTPPurpose.EMAIL_VERIFICATION)
        except OTP_ERRORS as exc:
            error = exc
            # A concurrent request may have consumed the code and promoted the signup
            if await self.staging.find(email, ctx.ip_address) is None:
                if await self.store.email_in_use(email):
                    error = ConflictError("Email already in use")
                else:
                    error = NotFoundError("Signup session expired. Please start the signup process again.")
            await self._reject(email, ctx, AttemptType.OTP, error)

        try:
            user = await self.staging.promote(email, ctx.ip_address)
        except (ConflictError, NotFoundError):
            # Keep the consumed code and the discarded staging row
            await self.db.commit()
            raise

        await self.attempts.clear(email, ctx.ip_address, AttemptType.OTP, AttemptType.SIGNUP)
        await self.db.commit()

        self.dispatcher.queue_confirmation(user.email, "signup_success", {
            "full_name": user.full_name,
            "email": user.email,
            "username": user.username,
        })
        return user

    # ==================== Password reset ====================

    async def request_password_reset(self, email: str, ctx: ClientContext) -> OTPIssue:
        email = email.lower()
        await self._ensure_not_locked(email, ctx)

        principal = await self.store.find_by_email(email)
        if principal is None or not has_capability(principal.role, Capability.SELF_SERVICE_RESET):
            await self._reject(
                email, ctx, AttemptType.LOGIN,
                NotFoundError("No account found with this email address"),
            )

        issue = await self._issue_code(email, OTPPurpose.PASSWORD_RESET, full_name=principal.full_name)
        await self.db.commit()
        return issue

    async def reset_password(self, email: str, code: str, new_password: str, ctx: ClientContext) -> Principal:
        email = email.lower()
        await self._ensure_not_locked(email, ctx)

        try:
            await self.otps.verify(email, code, OTPPurpose.PASSWORD_RESET)
        except OTP_ERRORS as exc:
            await self._reject(email, ctx, AttemptType.OTP, exc)

        principal = await self.store.find_by_email(email)
        if principal is None or not has_capability(principal.role, Capability.SELF_SERVICE_RESET):
            await self.db.commit()
            raise NotFoundError("User not found")

        await self.store.update(
            principal,
            password_hash=get_password_hash(new_password),
            bump_token_version=True,
        )
        await self.attempts.clear(email, ctx.ip_address)
        await self.db.commit()
        logger.info(f"Password reset completed for {principal.principal_type} id={principal.id}")

        self.dispatcher.queue_confirmation(principal.email, "password_reset_success", {
            "full_name": principal.full_name,
            "email": principal.email,
        })
        return principal

    # ==================== Admin login ====================

    async def _check_password(self, email: str, password: str, ctx: ClientContext) -> Principal:
        principal = await self.store.find_by_email(email)
        if (
            principal is None
            or not has_capability(principal.role, Capability.PASSWORD_LOGIN)
            or not verify_password(password, principal.password_hash)
        ):
            await self._reject(email, ctx, AttemptType.LOGIN, AuthenticationError())
        return principal

    async def request_admin_otp(self, email: str, password: str, ctx: ClientContext) -> OTPIssue:
        email = email.lower()
        await self._ensure_not_locked(email, ctx)

        principal = await self._check_password(email, password, ctx)
        if not has_capability(principal.role, Capability.SECOND_FACTOR):
            # Right password, wrong console: not a guess, so nothing is recorded
            raise AuthenticationError("This account cannot sign in to the admin console")

        issue = await self._issue_code(email, OTPPurpose.ADMIN_LOGIN, full_name=principal.full_name)
        await self.attempts.clear(email, ctx.ip_address, AttemptType.LOGIN)
        await self.db.commit()
        return issue

    async def verify_admin_otp(
        self,
        email: str,
        code: str,
        remember: bool,
        ctx: ClientContext,
    ) -> Tuple[IssuedToken, Admin]:
        email = email.lower()
        await self._ensure_not_locked(email, ctx)

        try:
            await self.otps.verify(email, code, OTPPurpose.ADMIN_LOGIN)
        except OTP_ERRORS as exc:
            await self._reject(email, ctx, AttemptType.OTP, exc)

        admin = await self.store.find_admin_by_email(email)
        if admin is None:
            await self.db.commit()
            raise NotFoundError("Admin not found")

        now = utcnow()
        trusted = remember and has_capability(admin.role, Capability.TRUSTED_DEVICE)
        await self.store.update(
            admin,
            status=PrincipalStatus.ACTIVE,
            last_login_at=now,
            remembered_until=trusted_device_expiry(now) if trusted else None,
        )
        admin.first_login_completed = True

        token = self.tokens.issue(admin, remember=trusted)
        await self.attempts.clear(email, ctx.ip_address, AttemptType.OTP, AttemptType.LOGIN)
        await self.db.commit()
        logger.info(f"Admin id={admin.id} signed in (trusted device: {trusted})")
        return token, admin

    # ==================== Password login (both principal types) ====================

    async def login(self, email: str, password: str, ctx: ClientContext) -> LoginResult:
        email = email.lower()
        await self._ensure_not_locked(email, ctx)

        principal = await self._check_password(email, password, ctx)
        now = utcnow()
        trusted = has_capability(principal.role, Capability.TRUSTED_DEVICE) and is_trusted(principal, now)

        if has_capability(principal.role, Capability.SECOND_FACTOR) and not trusted:
            issue = await self._issue_code(email, OTPPurpose.ADMIN_LOGIN, full_name=principal.full_name)
            await self.attempts.clear(email, ctx.ip_address, AttemptType.LOGIN)
            await self.db.commit()
            return LoginResult(principal=principal, requires_otp=True, otp_expires_at=issue.expires_at)

        await self.store.update(principal, status=PrincipalStatus.ACTIVE, last_login_at=now)
        token = self.tokens.issue(principal, remember=trusted)
        await self.attempts.clear(email, ctx.ip_address, AttemptType.LOGIN)
        await self.db.commit()
        return LoginResult(principal=principal, token=token)

    # ==================== Sessions ====================

    async def resolve_session(self, token: str, redis=None) -> Principal:
        """Rebuild the principal behind a bearer token, rejecting revoked or outdated tokens."""
        claims = self.tokens.decode(token)
        if redis is not None and await redis.exists(f"blacklist:{token}"):
            raise AuthenticationError("Token has been revoked")

        try:
            principal_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise AuthenticationError("Invalid or expired token")

        principal = await self.store.find_by_id(claims["principal_type"], principal_id)
        if principal is None or int(claims["tv"]) != int(principal.token_version or 1):
            raise AuthenticationError("Invalid or expired token")
        return principal

    async def heartbeat(self, principal: Principal) -> None:
        if has_capability(principal.role, Capability.SESSION_HEARTBEAT):
            await self.store.update(principal, status=PrincipalStatus.ACTIVE, last_login_at=utcnow())
            await self.db.commit()

    async def logout(self, principal: Principal, token: str, redis) -> None:
        claims = self.tokens.decode(token)
        ttl = int(claims["exp"]) - int(datetime.now(timezone.utc).timestamp())
        if ttl > 0:
            await redis.setex(f"blacklist:{token}", ttl, "revoked")

        if principal.principal_type == PrincipalType.ADMIN.value:
            await self.store.update(principal, status=PrincipalStatus.INACTIVE)
            await self.db.commit()
