"""Repository utilities for the subscription ledger."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.dates import add_months, utcnow
from src.core.exceptions import ValidationError
from src.db.models.subscription import Subscription, SubscriptionStatus


logger = logging.getLogger(__name__)

ACTIVE = SubscriptionStatus.ACTIVE.value
CANCELED = SubscriptionStatus.CANCELED.value
EXPIRED = SubscriptionStatus.EXPIRED.value


class SubscriptionRepo:
    """
    Data-access helpers for :class:`Subscription`.

    Owners hold at most one ACTIVE row. ACTIVE rows move to CANCELED (user
    action) or EXPIRED (superseded, or abandoned after failed charges); both
    are terminal.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, subscription_id: int) -> Subscription | None:
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan))
            .where(Subscription.id == subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_active_by_owner(
        self, owner_id: int, owner_type: str
    ) -> Subscription | None:
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan))
            .where(
                Subscription.owner_id == owner_id,
                Subscription.owner_type == owner_type,
                Subscription.status == ACTIVE,
            )
            .order_by(Subscription.started_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_by_owner(self, owner_id: int, owner_type: str) -> list[Subscription]:
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan))
            .where(
                Subscription.owner_id == owner_id,
                Subscription.owner_type == owner_type,
            )
            .order_by(Subscription.started_at.desc(), Subscription.id.desc())
        )
        return list(result.scalars().all())

    async def _get_for_update(self, subscription_id: int) -> Subscription | None:
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.id == subscription_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        owner_id: int,
        owner_type: str,
        plan_id: int,
        created_by: int | None = None,
        billing_key_member_id: int | None = None,
    ) -> Subscription:
        """
        Expire the owner's current ACTIVE subscription and insert a new one.

        The superseded row is flushed before the insert so the partial unique
        index on ACTIVE rows never sees two at once. A concurrent create for
        the same owner fails that index with ``IntegrityError``. On any
        failure the session is rolled back and the previous subscription
        stays ACTIVE.
        """

        now = utcnow()
        created_by = created_by if created_by is not None else owner_id
        try:
            result = await self.session.execute(
                select(Subscription)
                .where(
                    Subscription.owner_id == owner_id,
                    Subscription.owner_type == owner_type,
                    Subscription.status == ACTIVE,
                )
                .with_for_update()
            )
            for previous in result.scalars().all():
                previous.status = EXPIRED
                previous.ended_at = now
                previous.next_payment_date = None
                logger.info(
                    f"Subscription {previous.id} for {owner_type}:{owner_id} superseded"
                )
            await self.session.flush()

            subscription = Subscription(
                owner_id=owner_id,
                owner_type=owner_type,
                plan_id=plan_id,
                status=ACTIVE,
                started_at=now,
                next_payment_date=add_months(now),
                created_by=created_by,
                billing_key_member_id=(
                    billing_key_member_id
                    if billing_key_member_id is not None
                    else created_by
                ),
                retry_count=0,
            )
            self.session.add(subscription)
            await self.session.flush()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        return subscription

    async def cancel(self, subscription_id: int) -> bool:
        """
        Cancel an ACTIVE subscription. Cancelling an already canceled
        subscription succeeds without changes.
        """

        subscription = await self._get_for_update(subscription_id)
        if subscription is None:
            return False
        if subscription.status == CANCELED:
            return True
        if subscription.status != ACTIVE:
            return False

        subscription.status = CANCELED
        subscription.ended_at = utcnow()
        subscription.next_payment_date = None
        await self.session.flush()
        return True

    async def expire(self, subscription_id: int) -> bool:
        subscription = await self._get_for_update(subscription_id)
        if subscription is None or subscription.status != ACTIVE:
            return False

        subscription.status = EXPIRED
        subscription.ended_at = utcnow()
        subscription.next_payment_date = None
        await self.session.flush()
        return True

    async def update_status(self, subscription_id: int, status: str) -> bool:
        if status not in {CANCELED, EXPIRED}:
            raise ValidationError(f"Cannot change subscription status to {status}")

        subscription = await self._get_for_update(subscription_id)
        if subscription is None:
            return False
        if subscription.status == status:
            return True
        if subscription.status != ACTIVE:
            raise ValidationError(
                f"Subscription is {subscription.status} and can no longer change"
            )

        if status == CANCELED:
            return await self.cancel(subscription_id)
        return await self.expire(subscription_id)

    async def get_due(self, now: datetime | None = None) -> list[Subscription]:
        """Return ACTIVE subscriptions whose payment date has passed, oldest first."""

        now = now or utcnow()
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan))
            .where(
                Subscription.status == ACTIVE,
                Subscription.next_payment_date.is_not(None),
                Subscription.next_payment_date <= now,
            )
            .order_by(Subscription.next_payment_date.asc(), Subscription.id.asc())
        )
        return list(result.scalars().all())

    async def advance_payment_date(self, subscription_id: int) -> bool:
        """Move the next payment one month forward and clear the retry counter."""

        subscription = await self._get_for_update(subscription_id)
        if subscription is None or subscription.status != ACTIVE:
            return False

        base = subscription.next_payment_date or utcnow()
        subscription.next_payment_date = add_months(base)
        subscription.retry_count = 0
        await self.session.flush()
        return True

    async def increment_retry_count(self, subscription_id: int) -> int:
        subscription = await self._get_for_update(subscription_id)
        if subscription is None:
            return 0

        subscription.retry_count = (subscription.retry_count or 0) + 1
        await self.session.flush()
        return subscription.retry_count
