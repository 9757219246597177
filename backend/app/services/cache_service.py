"""
Redis cache for the upcoming-trips timetable search.

Only the search results are cached, one entry per (origin, destination,
local date) combination, under "trips:upcoming:<from>:<to>:<date>".
A missing filter is stored as "*" in its slot.

Any trip write (operator create/status/delete, or a sweep that marked
trips arrived) drops the whole "trips:upcoming:" namespace. The TTL is
kept short because the undated listing also shifts as the clock moves.

Seat maps are never cached. Redis errors fall back to uncached reads.
"""

import json
from datetime import date, datetime
from typing import NamedTuple, Optional

import redis.asyncio as redis
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_cache_lookup

logger = get_logger(__name__)
settings = get_settings()

UPCOMING_PREFIX = "trips:upcoming:"
_INVALIDATE_BATCH = 200

_redis_client: Optional[redis.Redis] = None


class TripSearch(NamedTuple):
    from_station_id: Optional[int] = None
    to_station_id: Optional[int] = None
    on_date: Optional[date] = None

    @property
    def cache_key(self) -> str:
        parts = ("*" if part is None else str(part) for part in self)
        return UPCOMING_PREFIX + ":".join(parts)


async def get_redis() -> Optional[redis.Redis]:
    """Shared client, created lazily. None when Redis is disabled or down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.error("redis_connection_failed", url=settings.REDIS_URL, error=str(e))
            await client.aclose()
            return None
        logger.info("redis_connected", url=settings.REDIS_URL)
        _redis_client = client

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_cached_upcoming(search: TripSearch) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = search.cache_key
    try:
        payload = await client.get(key)
    except redis.RedisError as e:
        record_cache_lookup("error")
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_lookup("hit" if payload else "miss")
    return json.loads(payload) if payload else None


def drop_departed(payload: dict, now: datetime) -> dict:
    """
    Remove trips that departed after the undated listing was cached.
    Dated listings cover the whole day and are returned as stored.
    """
    trips = [t for t in payload["trips"] if datetime.fromisoformat(t["departure_time"]) >= now]
    return {**payload, "trips": trips, "total": len(trips)}


async def set_cached_upcoming(search: TripSearch, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = search.cache_key
    try:
        await client.set(key, json.dumps(data), ex=settings.UPCOMING_TRIPS_CACHE_TTL)
    except redis.RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_trip_cache() -> None:
    """Drop every cached upcoming listing, unlinking keys in batches."""
    client = await get_redis()
    if not client:
        return

    deleted = 0
    batch: list[str] = []
    try:
        async for key in client.scan_iter(match=f"{UPCOMING_PREFIX}*", count=100):
            batch.append(key)
            if len(batch) >= _INVALIDATE_BATCH:
                deleted += await client.unlink(*batch)
                batch.clear()
        if batch:
            deleted += await client.unlink(*batch)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))
        return

    logger.info("trip_cache_invalidated", keys_deleted=deleted)


async def get_cache_stats() -> dict:
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
