"""
Session Token Issuer

Mints role-bearing JWTs. Lifetime policy:
- customers: ACCESS_TOKEN_EXPIRE_MINUTES (1 day), no extension path
- admins: 1 day, or up to the trusted-device expiry (`remembered_until`)
  when `remember` is requested and the role holds TRUSTED_DEVICE

Tokens are never stored; verification reloads the principal from the
credential store and compares the token version.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.permissions import Capability, has_capability
from app.core.security import create_access_token, decode_access_token
from app.db.types import utcnow
from app.services.credential_store import Principal


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime
    token_type: str = "bearer"


def trusted_device_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.TRUSTED_DEVICE_DAYS)


def is_trusted(principal: Principal, now: Optional[datetime] = None) -> bool:
    """True while the principal's trusted-device window is open."""
    remembered_until = getattr(principal, "remembered_until", None)
    return remembered_until is not None and remembered_until > (now or utcnow())


class TokenIssuer:
    def lifetime_for(self, principal: Principal, remember: bool = False, now: Optional[datetime] = None) -> datetime:
        now = now or utcnow()
        default_expiry = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        if not remember or not has_capability(principal.role, Capability.TRUSTED_DEVICE):
            return default_expiry
        if is_trusted(principal, now):
            return principal.remembered_until
        return trusted_device_expiry(now)

    def issue(self, principal: Principal, remember: bool = False) -> IssuedToken:
        expires_at = self.lifetime_for(principal, remember)
        claims = {
            "sub": str(principal.id),
            "email": principal.email,
            "role": principal.role,
            "principal_type": principal.principal_type,
        }
        token = create_access_token(claims, token_version=principal.token_version or 1, expires_at=expires_at)
        return IssuedToken(token=token, expires_at=expires_at)

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            claims = decode_access_token(token)
        except JWTError:
            raise AuthenticationError("Invalid or expired token")
        if not claims.get("sub") or claims.get("tv") is None or not claims.get("principal_type"):
            raise AuthenticationError("Invalid or expired token")
        return claims
