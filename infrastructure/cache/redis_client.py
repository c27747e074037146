"""Async Redis connection factory.

Returns a connected client, or None when Redis is unreachable at startup (or
the URI cannot be parsed) so the app can fall back to the in-process
challenge store.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.logging import get_logger

log = get_logger(__name__)


async def create_redis_client(redis_uri: str) -> Optional[aioredis.Redis]:
    """Connect to *redis_uri* and ping it; None on failure."""
    client: Optional[aioredis.Redis] = None
    try:
        client = aioredis.from_url(redis_uri, decode_responses=True)
        await client.ping()
    except (RedisError, ValueError) as e:
        log.warning(
            "redis_connection_failed",
            error=str(e),
            error_type=type(e).__name__,
            fallback="in_memory_challenge_store",
        )
        if client is not None:
            await client.aclose()
        return None
    log.info("redis_connected", uri=redis_uri.split("@")[-1])  # mask credentials
    return client
