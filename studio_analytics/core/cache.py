"""Redis caching for the aggregate stats response.

The record store only changes when the ingestion pipeline runs, so the
computed dashboard payload is cached and explicitly invalidated afterwards.
Every helper here swallows Redis errors and reports a miss: the cache is an
optimisation, never a dependency of the response.
"""

import json
import logging
from typing import Any

from studio_analytics.db.redis import get_redis

logger = logging.getLogger(__name__)

STATS_KEY_PREFIX = "stats:dashboard"


def stats_cache_key(as_of: str) -> str:
    """Key for the dashboard payload computed as of a given date."""
    return f"{STATS_KEY_PREFIX}:{as_of}"


async def cache_get(key: str) -> Any | None:
    """Get a JSON value from cache, or None on miss or error."""
    try:
        redis = await get_redis()
        value = await redis.get(key)

        if value is not None:
            logger.debug("Cache hit: %s", key)
            return json.loads(value)

        logger.debug("Cache miss: %s", key)
        return None

    except Exception:
        logger.exception("Error getting from cache key '%s'", key)
        return None


async def cache_set(key: str, value: Any, ttl: int = 300) -> bool:
    """Store a JSON-serializable value with a TTL in seconds."""
    try:
        redis = await get_redis()
        await redis.setex(key, ttl, json.dumps(value, default=str))
        logger.debug("Cache set: %s (TTL: %ss)", key, ttl)
        return True

    except Exception:
        logger.exception("Error setting cache key '%s'", key)
        return False


async def cache_invalidate(pattern: str) -> int:
    """Delete every key matching a Redis glob pattern.

    Returns:
        Number of keys deleted
    """
    try:
        redis = await get_redis()
        keys = [key async for key in redis.scan_iter(match=pattern)]

        if keys:
            deleted: int = await redis.delete(*keys)
            logger.info("Cache invalidated: %s keys matching '%s'", deleted, pattern)
            return deleted

        return 0

    except Exception:
        logger.exception("Error invalidating cache pattern '%s'", pattern)
        return 0


async def invalidate_stats_cache() -> int:
    """Drop every cached dashboard payload (called after ingestion)."""
    return await cache_invalidate(f"{STATS_KEY_PREFIX}:*")
