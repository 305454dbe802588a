"""Recurring charge processing for due subscriptions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import GatewayError
from src.repositories.billing_key_repo import BillingKeyRepo
from src.repositories.subscription_repo import SubscriptionRepo
from src.services.billing import goods_name_for, order_id
from src.services.nicepay import ApprovalResult, NicePayClient


logger = logging.getLogger(__name__)


@dataclass
class DueCharge:
    subscription_id: int
    member_id: Optional[int]
    price: Optional[int]
    goods_name: Optional[str]


@dataclass
class ChargeRunSummary:
    charged: List[int] = field(default_factory=list)
    advanced: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    expired: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    unrecorded: List[int] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return (
            len(self.charged)
            + len(self.advanced)
            + len(self.failed)
            + len(self.skipped)
            + len(self.unrecorded)
        )

    def as_dict(self) -> dict:
        return {
            "charged": self.charged,
            "advanced": self.advanced,
            "failed": self.failed,
            "expired": self.expired,
            "skipped": self.skipped,
            "unrecorded": self.unrecorded,
        }


class RecurringChargeService:
    """
    Charges every due subscription once.

    A successful charge advances the payment date by one month; a failed one
    bumps the retry counter and leaves the subscription due, so the next run
    tries again. After ``max_retries`` consecutive failures the subscription
    is expired. Every subscription is committed separately. A charge that
    cannot be recorded is canceled at the gateway and reported as unrecorded.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: NicePayClient,
        max_retries: Optional[int] = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.subscriptions = SubscriptionRepo(session)
        self.keys = BillingKeyRepo(session)
        self.max_retries = (
            max_retries if max_retries is not None else settings.billing.max_charge_retries
        )

    async def run_due_charges(self, now: Optional[datetime] = None) -> ChargeRunSummary:
        summary = ChargeRunSummary()
        due = await self.subscriptions.get_due(now)
        logger.info(f"{len(due)} subscription(s) due for payment")

        # Plain values only: a rollback below expires every loaded row.
        batch = [
            DueCharge(
                subscription_id=subscription.id,
                member_id=subscription.billing_key_member_id or subscription.created_by,
                price=subscription.plan.price if subscription.plan is not None else None,
                goods_name=(
                    goods_name_for(subscription.plan) if subscription.plan is not None else None
                ),
            )
            for subscription in due
        ]

        for charge in batch:
            subscription_id = charge.subscription_id
            if charge.price is None:
                logger.error(f"Subscription {subscription_id} references a missing plan")
                summary.skipped.append(subscription_id)
                continue

            if charge.price <= 0:
                await self.subscriptions.advance_payment_date(subscription_id)
                await self.session.commit()
                summary.advanced.append(subscription_id)
                continue

            member_id = charge.member_id
            billing_key = (
                await self.keys.get_active(member_id) if member_id is not None else None
            )
            try:
                if billing_key is None:
                    raise GatewayError(f"No active billing key for member {member_id}")
                approval = await self.gateway.approve_billing(
                    billing_key.bid,
                    order_id("RC", subscription_id),
                    charge.price,
                    charge.goods_name,
                )
            except GatewayError as exc:
                await self._record_failure(subscription_id, exc, summary)
                continue

            try:
                await self.subscriptions.advance_payment_date(subscription_id)
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.critical(
                    f"Charge {approval.tid} for subscription {subscription_id} "
                    f"was approved but not recorded: {exc}"
                )
                await self._compensate(subscription_id, approval)
                summary.unrecorded.append(subscription_id)
                continue

            summary.charged.append(subscription_id)
            logger.info(
                f"Charged subscription {subscription_id}: {approval.amount} KRW (tid {approval.tid})"
            )

        logger.info(
            f"Recurring charge run finished: {len(summary.charged)} charged, "
            f"{len(summary.advanced)} advanced, {len(summary.failed)} failed, "
            f"{len(summary.expired)} expired, {len(summary.unrecorded)} unrecorded"
        )
        return summary

    async def _compensate(self, subscription_id: int, approval: ApprovalResult) -> None:
        try:
            await self.gateway.cancel_approval(
                approval.tid,
                order_id("RX", subscription_id),
                approval.amount,
                "Recurring charge could not be recorded",
            )
            logger.warning(f"Canceled unrecorded charge {approval.tid}")
        except GatewayError as exc:
            # Charged but still due; the next run would bill again without a manual refund.
            logger.critical(
                f"Could not cancel charge {approval.tid} ({approval.amount} KRW) "
                f"for subscription {subscription_id}: {exc.message}"
            )

    async def _record_failure(
        self, subscription_id: int, exc: GatewayError, summary: ChargeRunSummary
    ) -> None:
        retries = await self.subscriptions.increment_retry_count(subscription_id)
        summary.failed.append(subscription_id)
        logger.warning(
            f"Charge for subscription {subscription_id} failed (attempt {retries}): {exc.message}"
        )
        if self.max_retries is not None and retries >= self.max_retries:
            if await self.subscriptions.expire(subscription_id):
                summary.expired.append(subscription_id)
                logger.warning(
                    f"Subscription {subscription_id} expired after {retries} failed charges"
                )
        await self.session.commit()
