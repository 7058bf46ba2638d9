"""
Fixed-window request limiter on Redis (INCR + EXPIRE NX in one MULTI/EXEC).
"""

import logging
from typing import Optional

from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


def _key(scope: str, email: Optional[str], client_ip: str) -> str:
    return f"rl:{scope}:{(email or '*').lower()}:{client_ip}"


async def allow(redis, scope: str, email: Optional[str], client_ip: str, max_attempts: int, window_sec: int) -> bool:
    """True while the (scope, email, ip) window still has room."""
    if not settings.RATE_LIMIT_ENABLED or redis is None:
        return True

    key = _key(scope, email, client_ip)
    try:
        async with redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            # NX leaves a running window alone and repairs a key that lost its TTL
            pipe.expire(key, window_sec, nx=True)
            count, _ = await pipe.execute()
    except RedisError as e:
        # Lockouts in the database still apply when Redis is down
        logger.error(f"Rate limiter unavailable for scope={scope}: {e}")
        return True
    return count <= max_attempts


async def enforce(redis, scope: str, email: Optional[str], client_ip: str, max_attempts: int, window_sec: int) -> None:
    if await allow(redis, scope, email, client_ip, max_attempts, window_sec):
        return
    retry_after = window_sec
    try:
        ttl = await redis.ttl(_key(scope, email, client_ip))
        if ttl and ttl > 0:
            retry_after = ttl
    except RedisError as e:
        logger.debug(f"Could not read rate-limit TTL: {e}")
    logger.warning(f"Rate limit hit for scope={scope} ip={client_ip}")
    raise RateLimitedError(retry_after)
