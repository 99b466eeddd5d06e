"""
Redis caching service for the on-sale session listing.

CACHING STRATEGY
================

What we cache:
  - The public "sessions on sale" listing (JSON-serialized)
  - Cache key: "sessions:on_sale"

Why:
  - It is the page every buyer hits before checkout
  - It only changes when seats move or an admin edits a session

Invalidation strategy:
  - On every ledger movement (reserve/release): delete the key
  - On session/performance edits: delete the key
  - Short TTL as safety net

What we never cache:
  - Seat counts used for decisions. The ledger always reads and writes the
    database row; the cached listing is display-only and may lag by one
    request.

Redis is optional: when disabled or unreachable every call degrades to a
cache miss.
"""

import json
from typing import Optional

import redis.asyncio as redis
from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

ON_SALE_KEY = "sessions:on_sale"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except redis.RedisError as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_cached_on_sale() -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(ON_SALE_KEY)
        if data:
            logger.debug("cache_hit", key=ON_SALE_KEY)
            return json.loads(data)
        logger.debug("cache_miss", key=ON_SALE_KEY)
    except redis.RedisError as e:
        logger.error("cache_get_error", key=ON_SALE_KEY, error=str(e))

    return None


async def set_cached_on_sale(data: list) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(ON_SALE_KEY, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=ON_SALE_KEY, ttl=settings.REDIS_CACHE_TTL)
    except redis.RedisError as e:
        logger.error("cache_set_error", key=ON_SALE_KEY, error=str(e))


async def invalidate_session_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(ON_SALE_KEY)
        logger.debug("cache_invalidated", key=ON_SALE_KEY)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}
