"""
Redis caching service for seat listings.

CACHING STRATEGY
================

What we cache:
  - Seat map responses (JSON-serialized), keyed by the listing filters
  - Cache key pattern: "seats:list:area={area}&floor={floor}&features={a,b}"

Why:
  - The seat map is polled by every open client
  - Reads vastly outnumber status changes

Invalidation strategy:
  - Every seat status write (booking, check-in/out, temp-release, resume,
    sweep remediation) deletes all seat list keys
  - Short TTL as safety net, since the sweep mutates seats in the background

  Key-prefix invalidation: all seat list keys start with "seats:list:"
  so we can SCAN and delete them.

Redis is advisory only. Every failure is logged and treated as a miss.
"""

import json
from typing import Optional, Sequence

import redis.asyncio as redis
from library_seats.core.config import get_settings
from library_seats.core.logging import get_logger
from library_seats.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None

SEAT_LIST_PREFIX = "seats:list:"


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


def _make_seat_list_key(
    area: Optional[str], floor: Optional[int], features: Optional[Sequence[str]] = None
) -> str:
    # Sorted so ?features=window&features=power shares a key with the reverse order
    feature_part = ",".join(sorted(set(features))) if features else "*"
    return (
        f"{SEAT_LIST_PREFIX}area={area or '*'}"
        f"&floor={floor if floor is not None else '*'}&features={feature_part}"
    )


async def get_cached_seats(
    area: Optional[str], floor: Optional[int], features: Optional[Sequence[str]] = None
) -> Optional[list]:
    """Retrieve cached seat list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_seat_list_key(area, floor, features)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            record_cache_operation("get", hit=True)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
        record_cache_operation("get", hit=False)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_seats(
    area: Optional[str], floor: Optional[int], data: list, features: Optional[Sequence[str]] = None
) -> None:
    """Cache seat list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_seat_list_key(area, floor, features)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_seat_cache() -> None:
    """
    Invalidate all cached seat listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{SEAT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.debug("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        keyspace = await client.info("keyspace")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "hit_rate": (
                round(
                    info.get("keyspace_hits", 0)
                    / max(info.get("keyspace_hits", 0) + info.get("keyspace_misses", 0), 1)
                    * 100,
                    2,
                )
            ),
            "keys": keyspace,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
