"""
In-process cache backend for tests and single-worker deployments
"""
import fnmatch
import time
from typing import Dict, List, Optional, Tuple

from src.cache.backends.base import CacheBackend


class MemoryCacheBackend(CacheBackend):
    def __init__(self) -> None:
        self._store: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> bool:
        entry = self._store.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and expires_at <= time.monotonic():
            del self._store[key]
            return False
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._store[key][0] if self._live(key) else None

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        expires_at = time.monotonic() + ex if ex else None
        self._store[key] = (value, expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def scan(
        self, cursor: str = "0", match: Optional[str] = None, count: int = 100
    ) -> Tuple[str, List[str]]:
        # Single pass; the cursor is always exhausted.
        keys = [k for k in list(self._store) if self._live(k)]
        if match:
            keys = [k for k in keys if fnmatch.fnmatchcase(k, match)]
        return "0", keys

    async def clear(self) -> None:
        self._store.clear()
