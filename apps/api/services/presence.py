"""Online-user presence tracked in Redis with a bounded lifetime."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Tuple

import redis.asyncio as redis

from config import settings


logger = logging.getLogger(__name__)

PRESENCE_KEY = "devempire:presence"
PRESENCE_NAMES_KEY = "devempire:presence:names"

# Used only while Redis is unreachable; state is per process.
_local_presence: Dict[str, Tuple[str, float]] = {}
_local_lock = asyncio.Lock()


def _redis_client() -> redis.Redis:
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def _ttl_seconds() -> int:
    return max(int(settings.PRESENCE_TTL_SECONDS), 1)


async def _touch_local(user_id: str, username: str, now: float) -> None:
    async with _local_lock:
        _local_presence[user_id] = (username, now)


async def _list_local(cutoff: float) -> List[Dict[str, Any]]:
    async with _local_lock:
        for user_id in [key for key, (_, seen) in _local_presence.items() if seen < cutoff]:
            _local_presence.pop(user_id, None)
        return [
            {"id": user_id, "username": username, "last_seen": seen}
            for user_id, (username, seen) in _local_presence.items()
        ]


async def touch_presence(user_id: str, username: str) -> None:
    """Record a heartbeat for ``user_id``."""
    now = time.time()
    try:
        client = _redis_client()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.zadd(PRESENCE_KEY, {user_id: now})
                pipe.hset(PRESENCE_NAMES_KEY, user_id, username)
                pipe.expire(PRESENCE_KEY, _ttl_seconds() * 2)
                pipe.expire(PRESENCE_NAMES_KEY, _ttl_seconds() * 2)
                await pipe.execute()
        finally:
            await client.aclose()
    except (redis.RedisError, OSError) as exc:
        logger.warning("Presence store unavailable, using local fallback: %s", exc)
        await _touch_local(user_id, username, now)


async def list_online_users() -> List[Dict[str, Any]]:
    """Return users seen within the presence TTL, pruning stale entries."""
    cutoff = time.time() - _ttl_seconds()
    try:
        client = _redis_client()
        try:
            stale = await client.zrangebyscore(PRESENCE_KEY, "-inf", f"({cutoff}")
            if stale:
                await client.zremrangebyscore(PRESENCE_KEY, "-inf", f"({cutoff}")
                await client.hdel(PRESENCE_NAMES_KEY, *stale)
            entries = await client.zrangebyscore(PRESENCE_KEY, cutoff, "+inf", withscores=True)
            names = await client.hmget(PRESENCE_NAMES_KEY, [user_id for user_id, _ in entries]) if entries else []
        finally:
            await client.aclose()
    except (redis.RedisError, OSError) as exc:
        logger.warning("Presence store unavailable, using local fallback: %s", exc)
        return await _list_local(cutoff)

    return [
        {"id": user_id, "username": name or user_id, "last_seen": score}
        for (user_id, score), name in zip(entries, names)
    ]


async def clear_presence(user_id: str) -> None:
    try:
        client = _redis_client()
        try:
            await client.zrem(PRESENCE_KEY, user_id)
            await client.hdel(PRESENCE_NAMES_KEY, user_id)
        finally:
            await client.aclose()
    except (redis.RedisError, OSError) as exc:
        logger.warning("Presence store unavailable, using local fallback: %s", exc)
    async with _local_lock:
        _local_presence.pop(user_id, None)
