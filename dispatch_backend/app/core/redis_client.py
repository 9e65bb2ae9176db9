"""
Redis client initialization and connection management.

Redis holds the token revocation list; no ride state is ever kept here.
"""

import redis.asyncio as redis
from dispatch_backend.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    Used as a FastAPI dependency so tests can swap the client.
    """
    return redis_client
