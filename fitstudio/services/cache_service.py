"""
Redis caching service for the upcoming-terms listing.

CACHING STRATEGY
================

What we cache:
  - The upcoming term listing (JSON-serialized, with booked counts)
  - Single key: "terms:list:upcoming"

Invalidation strategy:
  - On any term create/edit/delete/cancel and week generation
  - On any join or member cancel (booked_count changes)
  - Whenever the lifecycle sweep flips at least one term to finished
  - TTL-based expiry as safety net

  The listing path always materializes due transitions before reading the
  cache, so a term that has started since the entry was written flips,
  triggers invalidation, and is never served as upcoming.

Redis is advisory: every failure degrades to a cache miss.
"""

import json
from typing import Optional

import redis.asyncio as redis
from fitstudio.core.config import get_settings
from fitstudio.core.logging import get_logger
from fitstudio.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

TERM_LIST_KEY = "terms:list:upcoming"

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
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
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


async def get_cached_terms() -> Optional[list[dict]]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(TERM_LIST_KEY)
        record_cache_operation("get", hit=data is not None)
        if data:
            return json.loads(data)
    except Exception as e:
        logger.error("cache_get_error", key=TERM_LIST_KEY, error=str(e))

    return None


async def set_cached_terms(terms: list[dict]) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(TERM_LIST_KEY, settings.REDIS_CACHE_TTL, json.dumps(terms, default=str))
        record_cache_operation("set", hit=False)
    except Exception as e:
        logger.error("cache_set_error", key=TERM_LIST_KEY, error=str(e))


async def invalidate_term_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(TERM_LIST_KEY)
        logger.debug("cache_invalidated", key=TERM_LIST_KEY)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
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
    except Exception as e:
        return {"status": "error", "error": str(e)}
