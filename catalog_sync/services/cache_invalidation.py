"""Invalidation of caches derived from catalog data."""
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)

DELETE_CHUNK = 500


async def clear_derived_caches(redis: Redis, pattern: str) -> int:
    """Delete every Redis key matching `pattern`.

    Keys are collected with SCAN (never KEYS) and deleted in chunks.

    Args:
        redis: Redis connection
        pattern: Glob-style key pattern, e.g. "catalog:cache:*"

    Returns:
        Number of deleted keys

    Raises:
        RedisError: If Redis is unreachable
    """
    log = logger.bind(pattern=pattern)
    deleted = 0
    chunk = []
    try:
        async for key in redis.scan_iter(match=pattern, count=DELETE_CHUNK):
            chunk.append(key)
            if len(chunk) >= DELETE_CHUNK:
                deleted += await redis.delete(*chunk)
                chunk = []
        if chunk:
            deleted += await redis.delete(*chunk)
    except RedisError as e:
        log.error("derived_cache_clear_failed", error=str(e), deleted=deleted)
        raise

    log.info("derived_caches_cleared", deleted=deleted)
    return deleted
