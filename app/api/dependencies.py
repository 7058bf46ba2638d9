from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.core.permissions import Capability, has_capability
from app.db.session import SessionAsync
from app.services.auth_orchestrator import AuthOrchestrator, ClientContext
from app.services.credential_store import Principal
from app.services.notifications import NotificationDispatcher

bearer_scheme = HTTPBearer(
    auto_error=False,
    description="Bearer token from /api/auth/login or /api/auth/admin/verify-otp"
)

async def get_db():
    async with SessionAsync() as session:
        yield session

async def get_redis():
    redis = aioredis.from_url(settings.REDIS_URL)
    try:
        yield redis
    finally:
        await redis.aclose()

def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()

def get_client_ip(request: Request) -> str:
    """
    Address the lockout and rate limits are keyed on.

    Only the last TRUSTED_PROXY_HOPS entries of X-Forwarded-For were written
    by our own proxies; anything to their left is whatever the client sent.
    With no trusted hops the socket peer is used as is.
    """
    peer = request.client.host if request.client else "unknown"
    hops = settings.TRUSTED_PROXY_HOPS
    if hops <= 0:
        return peer

    forwarded_for = request.headers.get("x-forwarded-for", "")
    chain = [addr.strip() for addr in forwarded_for.split(",") if addr.strip()]
    if not chain:
        return peer
    # Count from the right, never further left than the chain goes
    return chain[-min(hops, len(chain))]

def get_client_context(request: Request) -> ClientContext:
    return ClientContext(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
    )

def get_auth_service(
        db: AsyncSession = Depends(get_db),
        dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AuthOrchestrator:
    return AuthOrchestrator(db, dispatcher)

def get_bearer_token(
        credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Not authenticated")
    return credentials.credentials

async def get_current_principal(
        request: Request,
        token: str = Depends(get_bearer_token),
        service: AuthOrchestrator = Depends(get_auth_service),
        redis=Depends(get_redis),
) -> Principal:
    principal = await service.resolve_session(token, redis)
    request.state.principal = principal
    return principal

# ==================== Permission Dependencies ====================

def require_capability(capability: Capability):
    """
    Factory for a dependency that lets through only principals whose role
    holds `capability`.

    Usage:
        @router.post("/heartbeat")
        async def heartbeat(
            principal = Depends(require_capability(Capability.SESSION_HEARTBEAT)),
        ):
            ...
    """
    async def capability_checker(
        principal: Principal = Depends(get_current_principal)
    ) -> Principal:
        if not has_capability(principal.role, capability):
            raise PermissionDeniedError(f"Insufficient permissions: {capability.value}")
        return principal

    return capability_checker
