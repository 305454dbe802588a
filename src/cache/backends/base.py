"""
Cache backend interface
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple


class CacheBackend(ABC):
    """Minimal async key/value interface used by the caching decorators."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        ...

    @abstractmethod
    async def scan(
        self, cursor: str = "0", match: Optional[str] = None, count: int = 100
    ) -> Tuple[str, List[str]]:
        ...

    async def close(self) -> None:
        return None
