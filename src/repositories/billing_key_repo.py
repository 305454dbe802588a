"""Repository utilities for stored billing keys."""
from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.dates import utcnow
from src.db.models.billing_key import BillingKey, BillingKeyStatus


class BillingKeyRepo:
    """Data-access helpers for :class:`BillingKey`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, key_id: int) -> BillingKey | None:
        return await self.session.get(BillingKey, key_id)

    async def get_active(self, member_id: int) -> BillingKey | None:
        """Return the member's newest non-removed key."""

        result = await self.session.execute(
            select(BillingKey)
            .where(
                BillingKey.member_id == member_id,
                BillingKey.status == BillingKeyStatus.ACTIVE.value,
            )
            .order_by(BillingKey.created_at.desc(), BillingKey.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_for_member(self, member_id: int) -> list[BillingKey]:
        result = await self.session.execute(
            select(BillingKey)
            .where(BillingKey.member_id == member_id)
            .order_by(BillingKey.created_at.desc(), BillingKey.id.desc())
        )
        return list(result.scalars().all())

    async def save(
        self,
        member_id: int,
        bid: str,
        card_code: str | None,
        card_name: str | None,
        card_no_masked: str | None,
    ) -> BillingKey:
        """
        Store a new active key. Keys the member already had are marked removed
        before the insert, so exactly one key per member stays active.
        """

        await self.session.execute(
            update(BillingKey)
            .where(
                BillingKey.member_id == member_id,
                BillingKey.status == BillingKeyStatus.ACTIVE.value,
            )
            .values(status=BillingKeyStatus.REMOVED.value, removed_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        key = BillingKey(
            member_id=member_id,
            bid=bid,
            card_code=card_code,
            card_name=card_name,
            card_no_masked=card_no_masked,
            status=BillingKeyStatus.ACTIVE.value,
            created_at=utcnow(),
        )
        self.session.add(key)
        await self.session.flush()
        return key

    async def remove_by_id(self, key_id: int) -> bool:
        """Mark a key removed. Returns False only when the key does not exist."""

        key = await self.get(key_id)
        if key is None:
            return False
        if key.status != BillingKeyStatus.REMOVED.value:
            key.status = BillingKeyStatus.REMOVED.value
            key.removed_at = utcnow()
            self.session.add(key)
            await self.session.flush()
        return True
