"""Rate limiting, idempotency and job lock helpers backed by Redis."""
from __future__ import annotations

import time
from typing import Optional

import redis.asyncio as redis

from src.core.config import settings
from src.core.exceptions import DuplicateRequestError, RateLimitError

_redis_client: redis.Redis | None = None


async def _get_client() -> redis.Redis:
    """Return a cached Redis client instance."""

    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            str(settings.REDIS_URI), decode_responses=True
        )
    return _redis_client


async def close_client() -> None:
    global _redis_client
    if _redis_client is not None and hasattr(_redis_client, "aclose"):
        await _redis_client.aclose()
    _redis_client = None


async def check_rate_limit(member_id: str) -> None:
    """Enforce a simple fixed-window rate limit per member."""

    client = await _get_client()
    minute_window = int(time.time() // 60)
    key = f"rl:{member_id}:{minute_window}"
    current = await client.incr(key)
    if current == 1:
        await client.expire(key, 60)
    if current > settings.limits.rate_limit_rpm:
        raise RateLimitError()


async def ensure_idempotent(member_id: str, key: Optional[str]) -> None:
    """Reject duplicate POST requests sharing the same idempotency key."""

    if not key:
        return
    client = await _get_client()
    redis_key = f"idemp:{member_id}:{key}"
    was_set = await client.set(
        redis_key, "1", ex=settings.limits.idempotency_ttl_seconds, nx=True
    )
    if not was_set:
        raise DuplicateRequestError()


async def release_idempotency_key(member_id: str, key: Optional[str]) -> None:
    """Forget an idempotency key so a failed request can be retried."""

    if not key:
        return
    client = await _get_client()
    await client.delete(f"idemp:{member_id}:{key}")


async def acquire_job_lock(name: str, ttl_seconds: int) -> bool:
    """Take a named lock; False when another run already holds it."""

    client = await _get_client()
    return bool(await client.set(f"lock:{name}", "1", ex=ttl_seconds, nx=True))


async def release_job_lock(name: str) -> None:
    client = await _get_client()
    await client.delete(f"lock:{name}")
