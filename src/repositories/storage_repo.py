"""Repository helpers for storage usage tracking."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.dates import utcnow
from src.db.models.storage_usage import StorageUsage


class StorageUsageRepo:
    """Reads and updates per-owner storage counters."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, owner_type: str, owner_id: int) -> StorageUsage | None:
        return await self.session.get(StorageUsage, (owner_type, owner_id))

    async def used_mb(self, owner_type: str, owner_id: int) -> float:
        usage = await self.get(owner_type, owner_id)
        return float(usage.used_storage_mb) if usage else 0.0

    async def set_usage(
        self, owner_type: str, owner_id: int, used_storage_mb: float
    ) -> StorageUsage:
        usage = await self.get(owner_type, owner_id)
        if usage is None:
            usage = StorageUsage(owner_type=owner_type, owner_id=owner_id)
        usage.used_storage_mb = max(float(used_storage_mb), 0.0)
        usage.updated_at = utcnow()
        self.session.add(usage)
        await self.session.flush()
        return usage

    async def record_usage(
        self, owner_type: str, owner_id: int, delta_mb: float
    ) -> StorageUsage:
        """Add (or, with a negative delta, release) storage for an owner."""

        current = await self.used_mb(owner_type, owner_id)
        return await self.set_usage(owner_type, owner_id, current + delta_mb)
