"""
    Authentication Endpoints
    Customer signup with e-mailed verification code, password reset, admin
    login with an e-mailed second factor (and optional 30-day trusted device),
    and session endpoints. Every state-changing step is delegated to the
    AuthOrchestrator; handlers only enforce request rate limits and shape
    responses.
    Endpoints:
    - /signup: Stages a customer registration and e-mails a verification code.
    - /signup/verify-otp: Verifies the code and creates the customer account.
    - /forgot-password: E-mails a password reset code.
    - /reset-password: Verifies the reset code and sets the new password.
    - /admin/request-otp: Checks admin credentials and e-mails a login code.
    - /admin/verify-otp: Verifies the admin login code and issues a token.
    - /login: Password login; admins without a trusted device are sent a code instead.
    - /me: Returns the authenticated principal.
    - /heartbeat: Keeps an admin session marked active.
    - /logout: Revokes the bearer token.
    Errors are raised as AuthFlowError subclasses and rendered by the handler
    registered in app.main.
"""
from typing import Union

from fastapi import APIRouter, Depends, status

from app.api.dependencies import (
    get_auth_service,
    get_bearer_token,
    get_client_context,
    get_current_principal,
    get_redis,
    require_capability,
)
from app.core.config import settings
from app.core.permissions import Capability, PrincipalType
from app.helpers.rate_limit import enforce
from app.schemas.auth import (
    AdminOTPRequestIn,
    AdminOTPVerifyIn,
    ForgotPasswordIn,
    Login,
    LoginOut,
    MessageOut,
    OTPRequiredOut,
    OTPSentOut,
    ResetPasswordIn,
    SignupVerifiedOut,
    SignupVerifyIn,
)
from app.schemas.user import AdminOut, UserCreate, UserOut
from app.services.auth_orchestrator import AuthOrchestrator, ClientContext
from app.services.credential_store import Principal

router = APIRouter()


def serialize_principal(principal: Principal) -> Union[AdminOut, UserOut]:
    if principal.principal_type == PrincipalType.ADMIN.value:
        return AdminOut.model_validate(principal)
    return UserOut.model_validate(principal)


async def limit_auth(redis, scope: str, email: str, ctx: ClientContext):
    await enforce(
        redis, scope, email, ctx.ip_address,
        max_attempts=settings.AUTH_RATE_LIMIT,
        window_sec=settings.AUTH_RATE_WINDOW_SEC,
    )

# ==================== Customer signup ====================

@router.post("/signup", response_model=OTPSentOut)
async def signup(
    payload: UserCreate,
    ctx: ClientContext = Depends(get_client_context),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    """
    Stage a customer registration and send the e-mail verification code.

    The account is only created by /signup/verify-otp.
    """
    await enforce(
        redis, "signup", None, ctx.ip_address,
        max_attempts=settings.SIGNUP_RATE_LIMIT,
        window_sec=settings.SIGNUP_RATE_WINDOW_SEC,
    )
    issue = await service.request_signup_otp(payload, ctx)
    return OTPSentOut(
        message="Verification code sent to your email",
        expires_at=issue.expires_at,
        requires_otp=True,
        user_type=PrincipalType.CUSTOMER.value,
    )

@router.post("/signup/verify-otp", response_model=SignupVerifiedOut, status_code=status.HTTP_201_CREATED)
async def signup_verify_otp(
    payload: SignupVerifyIn,
    ctx: ClientContext = Depends(get_client_context),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    await limit_auth(redis, "signup:verify", payload.email, ctx)
    user = await service.verify_signup_otp(payload.email, payload.otp, ctx)
    return SignupVerifiedOut(
        message="Account created successfully",
        user=UserOut.model_validate(user),
    )

# ==================== Password reset ====================

@router.post("/forgot-password", response_model=OTPSentOut)
async def forgot_password(
    payload: ForgotPasswordIn,
    ctx: ClientContext = Depends(get_client_context),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    await limit_auth(redis, "fp:start", payload.email, ctx)
    issue = await service.request_password_reset(payload.email, ctx)
    return OTPSentOut(
        message="Password reset code sent to your email",
        expires_at=issue.expires_at,
        user_type=PrincipalType.CUSTOMER.value,
    )

@router.post("/reset-password", response_model=MessageOut)
async def reset_password(
    payload: ResetPasswordIn,
    ctx: ClientContext = Depends(get_client_context),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    await limit_auth(redis, "fp:confirm", payload.email, ctx)
    await service.reset_password(payload.email, payload.otp, payload.new_password, ctx)
    return MessageOut(message="Password reset successfully")

# ==================== Admin login ====================

@router.post("/admin/request-otp", response_model=OTPSentOut)
async def admin_request_otp(
    payload: AdminOTPRequestIn,
    ctx: ClientContext = Depends(get_client_context),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    await limit_auth(redis, "admin:otp", payload.email, ctx)
    issue = await service.request_admin_otp(payload.email, payload.password, ctx)
    return OTPSentOut(
        message="Login code sent to your email",
        expires_at=issue.expires_at,
        user_type=PrincipalType.ADMIN.value,
    )

@router.post("/admin/verify-otp", response_model=LoginOut)
async def admin_verify_otp(
    payload: AdminOTPVerifyIn,
    ctx: ClientContext = Depends(get_client_context),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    """
    Verify the admin login code and issue a session token.

    With `remember=true` the device is trusted for 30 days and the token
    lives until then; otherwise it lives one day.
    """
    await limit_auth(redis, "admin:verify", payload.email, ctx)
    token, admin = await service.verify_admin_otp(payload.email, payload.otp, payload.remember, ctx)
    return LoginOut(
        message="Login successful",
        access_token=token.token,
        token_type=token.token_type,
        expires_at=token.expires_at,
        user=AdminOut.model_validate(admin),
        principal_type=PrincipalType.ADMIN.value,
    )

# ==================== Password login ====================

@router.post("/login", response_model=Union[LoginOut, OTPRequiredOut])
async def login(
    payload: Login,
    ctx: ClientContext = Depends(get_client_context),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    """
    Password login for customers and admins.

    Admins on a trusted device get a token straight away; any other admin
    login is answered with `requires_otp` and a code sent by e-mail, to be
    completed through /admin/verify-otp.
    """
    await limit_auth(redis, "login", payload.email, ctx)
    result = await service.login(payload.email, payload.password, ctx)
    if result.requires_otp:
        return OTPRequiredOut(
            message="Login code sent to your email",
            expires_at=result.otp_expires_at,
        )
    return LoginOut(
        message="Login successful",
        access_token=result.token.token,
        token_type=result.token.token_type,
        expires_at=result.token.expires_at,
        user=serialize_principal(result.principal),
        principal_type=result.principal.principal_type,
    )

# ==================== Sessions ====================

@router.get("/me")
async def read_me(principal: Principal = Depends(require_capability(Capability.VIEW_PROFILE))):
    return {
        "principal_type": principal.principal_type,
        "user": serialize_principal(principal),
    }

@router.post("/heartbeat", response_model=MessageOut)
async def heartbeat(
    principal: Principal = Depends(require_capability(Capability.SESSION_HEARTBEAT)),
    service: AuthOrchestrator = Depends(get_auth_service),
):
    await service.heartbeat(principal)
    return MessageOut(message="Session refreshed")

@router.post("/logout", response_model=MessageOut)
async def logout(
    principal: Principal = Depends(get_current_principal),
    token: str = Depends(get_bearer_token),
    service: AuthOrchestrator = Depends(get_auth_service),
    redis=Depends(get_redis),
):
    await service.logout(principal, token, redis)
    return MessageOut(message="Logout successful")
