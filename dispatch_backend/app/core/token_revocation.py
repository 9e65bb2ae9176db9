"""
Token Revocation System using Redis.

Implements token blacklisting so a logged-out token stops resolving to an
actor before it expires.
"""

import logging
from redis.exceptions import RedisError
from dispatch_backend.app.core import redis_client as redis_module
from dispatch_backend.app.core.config import settings

logger = logging.getLogger("dispatch.auth")

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Args:
        token: The JWT token string to revoke
        user_id: User ID who owns the token

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        # Tokens auto-expire anyway, so the blacklist entry only needs to outlive them
        ttl_seconds = settings.access_token_expire_minutes * 60

        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        await redis_module.redis_client.setex(key, ttl_seconds, str(user_id))

        return True
    except RedisError as e:
        logger.warning("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Fails open when Redis is unreachable.
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await redis_module.redis_client.exists(key)
        return exists > 0
    except RedisError as e:
        logger.warning("Error checking token revocation: %s", e)
        return False
