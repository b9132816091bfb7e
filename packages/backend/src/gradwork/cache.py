"""Redis response cache.

Learn: Caching is strictly best-effort. If Redis never connected, or a
command fails, callers get a miss (or a no-op) and fall through to the
database — a cache outage must never fail a request.

Keys:
- gradwork:conversations:{user_id}   conversation list, invalidated on read
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog

from gradwork.config import settings

logger = structlog.get_logger()

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_cache() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection before publishing the client
    await client.ping()
    _redis = client
    return _redis


async def close_cache() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_cache() -> Optional[aioredis.Redis]:
    """The Redis client, or None when caching is disabled."""
    return _redis


def conversations_key(user_id: Any) -> str:
    return f"gradwork:conversations:{user_id}"


async def cache_get(key: str) -> Optional[Any]:
    r = get_cache()
    if r is None:
        return None
    try:
        raw = await r.get(key)
    except aioredis.RedisError as e:
        logger.warning("cache.get_failed", key=key, error=str(e))
        return None
    return json.loads(raw) if raw is not None else None


async def cache_set(key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
    r = get_cache()
    if r is None:
        return
    try:
        await r.set(key, json.dumps(value, default=str), ex=ttl_seconds)
    except aioredis.RedisError as e:
        logger.warning("cache.set_failed", key=key, error=str(e))


async def cache_delete(*keys: str) -> None:
    r = get_cache()
    if r is None or not keys:
        return
    try:
        await r.delete(*keys)
    except aioredis.RedisError as e:
        logger.warning("cache.delete_failed", keys=list(keys), error=str(e))
