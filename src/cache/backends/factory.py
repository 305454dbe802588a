"""
Cache backend selection
"""
import logging
from typing import Optional

from src.cache.backends.base import CacheBackend
from src.cache.backends.memory import MemoryCacheBackend
from src.cache.backends.redis import RedisCacheBackend
from src.core.config import settings
from src.core.exceptions import CacheError


logger = logging.getLogger(__name__)

_cache_backend: Optional[CacheBackend] = None


def get_cache_backend() -> CacheBackend:
    """Return the process-wide cache backend chosen by settings.cache.backend_type."""

    global _cache_backend
    if _cache_backend is None:
        backend_type = settings.cache.backend_type
        if backend_type == "memory":
            _cache_backend = MemoryCacheBackend()
        elif backend_type == "redis":
            _cache_backend = RedisCacheBackend(str(settings.REDIS_URI))
        else:
            raise CacheError(f"Unknown cache backend: {backend_type}")
        logger.info(f"Using {backend_type} cache backend")
    return _cache_backend


async def close_cache_backend() -> None:
    global _cache_backend
    if _cache_backend is not None:
        await _cache_backend.close()
    _cache_backend = None
