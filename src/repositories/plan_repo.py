"""Repository utilities for subscription plans."""
from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.plan import Plan
from src.db.models.subscription import Subscription


class PlanRepo:
    """Data-access helpers for :class:`Plan`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, plan_id: int) -> Plan | None:
        result = await self.session.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def list_all(self) -> list[Plan]:
        result = await self.session.execute(select(Plan).order_by(Plan.price, Plan.id))
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> Plan:
        plan = Plan(**fields)
        self.session.add(plan)
        await self.session.flush()
        await self.session.refresh(plan)
        return plan

    async def update(self, plan: Plan, **fields: Any) -> Plan:
        for name, value in fields.items():
            setattr(plan, name, value)
        self.session.add(plan)
        await self.session.flush()
        return plan

    async def is_referenced(self, plan_id: int) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(Subscription)
            .where(Subscription.plan_id == plan_id)
        )
        return int(result.scalar_one() or 0) > 0

    async def delete(self, plan: Plan) -> None:
        await self.session.delete(plan)
        await self.session.flush()
