"""
Redis client for Comic Catalog

Backs the RedisRecordStore (page cache, year totals, image pools for
random sampling). A missing REDIS_URL or an unreachable server degrades to
"no cache": every request goes upstream.
"""
import logging
from typing import Optional
import redis.asyncio as redis
from redis.exceptions import RedisError
from comic_catalog.core.config import settings

logger = logging.getLogger(__name__)

# Shared client, created on first use
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Shared Redis client, or None when REDIS_URL is unset or Redis is down."""
    global _redis_client

    if not settings.REDIS_URL:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.warning(f"Redis connection failed: {e}. Running without cache.")
            await client.aclose()
            return None
        logger.info("Redis connection established")
        _redis_client = client

    return _redis_client


async def close_redis():
    """Drop the shared client; the next get_redis() reconnects."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
