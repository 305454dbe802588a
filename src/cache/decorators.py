"""
Response caching for read-mostly endpoints (the plan catalogue).

Entries live under ``{namespace}:{function}:{argument hash}``; writers drop a
whole namespace with :func:`invalidate_prefix` after committing.
"""
import functools
import hashlib
import inspect
import json
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from fastapi.encoders import jsonable_encoder
from redis.exceptions import RedisError

from src.cache.backends.factory import get_cache_backend
from src.core.config import settings


logger = logging.getLogger(__name__)

# Dependency-injected parameters never identify a cached resource.
DEFAULT_IGNORED_PARAMS = ("self", "cls", "request", "db", "auth")


def build_cache_key(namespace: str, func_name: str, params: Dict[str, Any]) -> str:
    digest = hashlib.md5(
        json.dumps(params, sort_keys=True, default=str).encode()
    ).hexdigest()
    return f"{namespace}:{func_name}:{digest}"


def cached(
    ttl: Optional[int] = None,
    key_prefix: str = "cache",
    exclude_keys: Iterable[str] = DEFAULT_IGNORED_PARAMS,
):
    """
    Cache the JSON form of an async endpoint's result.

    A hit returns the decoded JSON rather than the original objects, so the
    route's ``response_model`` must accept plain dicts. Cache outages fall
    through to the wrapped function.

    Args:
        ttl: Seconds to keep an entry. Defaults to settings.CACHE_TTL_SECONDS.
        key_prefix: Namespace passed to invalidate_prefix by writers
        exclude_keys: Parameter names left out of the key
    """
    ignored = frozenset(exclude_keys)

    def decorator(func: Callable):
        sig = inspect.signature(func)
        func_name = func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            backend = get_cache_backend()
            bound = sig.bind(*args, **kwargs)
            bound.apply_defaults()
            cache_key = build_cache_key(
                key_prefix,
                func_name,
                {k: v for k, v in bound.arguments.items() if k not in ignored},
            )

            try:
                hit = await backend.get(cache_key)
            except RedisError as exc:
                logger.warning(f"Cache read failed for {cache_key}: {exc}")
                hit = None
            if hit is not None:
                logger.debug(f"Cache hit: {cache_key}")
                return json.loads(hit)

            result = await func(*args, **kwargs)

            try:
                await backend.set(
                    cache_key,
                    json.dumps(jsonable_encoder(result)),
                    ex=ttl if ttl is not None else settings.CACHE_TTL_SECONDS,
                )
            except RedisError as exc:
                logger.warning(f"Cache write failed for {cache_key}: {exc}")
            return result

        return wrapper
    return decorator


async def invalidate_prefix(key_prefix: str) -> int:
    """Delete every cached entry under ``key_prefix``; returns the count."""

    backend = get_cache_backend()
    pattern = f"{key_prefix}:*"
    removed = 0
    cursor = "0"
    try:
        while True:
            cursor, keys = await backend.scan(cursor=cursor, match=pattern, count=100)
            if keys:
                removed += await backend.delete(*keys)
            if cursor == "0":
                break
    except RedisError as exc:
        # Entries still expire after their TTL.
        logger.error(f"Invalidating '{pattern}' failed after {removed} keys: {exc}")
        return removed

    logger.info(f"Invalidated {removed} cache keys matching '{pattern}'")
    return removed
