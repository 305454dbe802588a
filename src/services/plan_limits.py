"""Plan-derived limits consumed by the team and file features."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import MemberLimitError, StorageLimitError
from src.repositories.storage_repo import StorageUsageRepo
from src.repositories.subscription_repo import SubscriptionRepo


@dataclass
class PlanLimits:
    plan_id: Optional[int]
    plan_name: Optional[str]
    max_members: int
    max_storage_mb: float


@dataclass
class StorageCheck:
    allowed: bool
    current: float
    limit: float


class PlanLimitService:
    """Resolves an owner's limits from its ACTIVE subscription."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.subscriptions = SubscriptionRepo(session)
        self.storage = StorageUsageRepo(session)

    async def get_plan_limits(self, owner_type: str, owner_id: int) -> PlanLimits:
        subscription = await self.subscriptions.get_active_by_owner(owner_id, owner_type)
        plan = subscription.plan if subscription else None
        if plan is None:
            return PlanLimits(
                plan_id=None,
                plan_name=None,
                max_members=settings.limits.default_max_members,
                max_storage_mb=settings.limits.default_max_storage_mb,
            )
        return PlanLimits(
            plan_id=plan.id,
            plan_name=plan.name,
            max_members=plan.max_members,
            max_storage_mb=float(plan.max_storage_mb),
        )

    async def check_storage(
        self, owner_type: str, owner_id: int, additional_mb: float
    ) -> StorageCheck:
        limits = await self.get_plan_limits(owner_type, owner_id)
        current = await self.storage.used_mb(owner_type, owner_id)
        return StorageCheck(
            allowed=current + additional_mb <= limits.max_storage_mb,
            current=current,
            limit=limits.max_storage_mb,
        )

    async def ensure_storage_available(
        self, owner_type: str, owner_id: int, additional_mb: float
    ) -> StorageCheck:
        check = await self.check_storage(owner_type, owner_id, additional_mb)
        if not check.allowed:
            raise StorageLimitError(
                f"Storage limit exceeded: {check.current:.1f}MB used of {check.limit:.1f}MB"
            )
        return check

    async def ensure_member_capacity(
        self, owner_type: str, owner_id: int, current_count: int
    ) -> PlanLimits:
        """Raise when adding one more member would exceed the plan."""

        limits = await self.get_plan_limits(owner_type, owner_id)
        if current_count >= limits.max_members:
            raise MemberLimitError(
                f"Member limit reached ({limits.max_members}) for your plan"
            )
        return limits
