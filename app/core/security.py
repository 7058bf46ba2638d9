"""
Hashing and token primitives shared by the authentication services.

- Passwords and one-time codes are stored as bcrypt hashes.
- Access tokens are HS256 JWTs signed with SECRET_KEY.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import jwt

from app.core.config import settings

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM

# bcrypt only looks at the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def _to_bcrypt_bytes(value: str) -> bytes:
    return value.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_to_bcrypt_bytes(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_to_bcrypt_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


def generate_otp(length: int = 6) -> str:
    """Uniformly random numeric code, zero-padded to `length` digits."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def hash_otp(code: str) -> str:
    return get_password_hash(code)


def verify_otp(code: str, code_hash: str) -> bool:
    return verify_password(code, code_hash)


def create_access_token(
    data: Dict[str, Any],
    token_version: int = 1,
    expires_at: Optional[datetime] = None,
) -> str:
    """
    Sign a JWT carrying `data` plus the token version (`tv`).

    Args:
        data: Claims to embed (at least `sub`)
        token_version: Principal's current token version
        expires_at: Absolute expiry; defaults to ACCESS_TOKEN_EXPIRE_MINUTES from now

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    if expires_at is None:
        expires_at = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = dict(data)
    to_encode.update({
        "tv": token_version,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    })
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT. Raises jose.JWTError when invalid or expired."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
