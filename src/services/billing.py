"""
Checkout and card management.

Checkout runs gateway calls first (register key, approve the first charge)
and local writes last, in one commit. If the commit fails the approved charge
is canceled at the gateway so the member is never billed for a subscription
that was not recorded.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import (
    DuplicateRequestError,
    GatewayError,
    NotFoundError,
    PaymentRecordError,
    PermissionDeniedError,
    ValidationError,
)
from src.db.models.billing_key import BillingKey
from src.db.models.plan import Plan
from src.db.models.subscription import OwnerType, Subscription
from src.repositories.billing_key_repo import BillingKeyRepo
from src.repositories.plan_repo import PlanRepo
from src.repositories.subscription_repo import SubscriptionRepo
from src.schemas.billing import RegisterBillingRequest
from src.services.nicepay import ApprovalResult, NicePayClient, generate_moid


logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    tid: str
    subscription: Subscription
    billing_key: BillingKey
    plan: Plan


def goods_name_for(plan: Plan) -> str:
    return f"{settings.nicepay.goods_name_prefix} {plan.name}"


def order_id(kind: str, ref: int) -> str:
    return generate_moid(f"{settings.nicepay.order_prefix}_{kind}_{ref}")


class BillingService:
    def __init__(self, session: AsyncSession, gateway: NicePayClient) -> None:
        self.session = session
        self.gateway = gateway
        self.plans = PlanRepo(session)
        self.keys = BillingKeyRepo(session)
        self.subscriptions = SubscriptionRepo(session)

    async def get_active_card(self, member_id: int) -> BillingKey | None:
        return await self.keys.get_active(member_id)

    async def register_and_subscribe(
        self, member_id: int, payload: RegisterBillingRequest
    ) -> CheckoutResult:
        """Register a card, charge the first month and open the subscription."""

        plan = await self.plans.get(payload.plan_id)
        if plan is None:
            raise NotFoundError("Plan not found")
        if plan.price <= 0:
            raise ValidationError("Free plans do not require payment")
        if payload.owner_type == OwnerType.PERSONAL.value and payload.owner_id != member_id:
            raise PermissionDeniedError("Cannot subscribe on behalf of another member")
        plan_id = plan.id
        if payload.owner_type == OwnerType.TEAM.value:
            await self._ensure_team_plan_owner(member_id, payload.owner_id)

        enc_data = self.gateway.encrypt_card_data(
            payload.card_no,
            payload.exp_year,
            payload.exp_month,
            payload.id_no,
            payload.card_pw,
        )
        logger.info(f"Requesting billing key for member {member_id}")
        key_result = await self.gateway.register_billing_key(
            enc_data, order_id("BK", member_id)
        )

        try:
            approval = await self.gateway.approve_billing(
                key_result.bid,
                order_id("AP", member_id),
                plan.price,
                goods_name_for(plan),
            )
        except GatewayError:
            logger.warning(f"First charge declined for member {member_id}")
            await self._discard_key(member_id, key_result.bid)
            raise

        previous = await self.keys.get_active(member_id)
        previous_bid = previous.bid if previous is not None else None
        try:
            billing_key = await self.keys.save(
                member_id,
                key_result.bid,
                key_result.card_code,
                key_result.card_name,
                key_result.card_no,
            )
            subscription = await self.subscriptions.create(
                payload.owner_id,
                payload.owner_type,
                plan_id,
                created_by=member_id,
                billing_key_member_id=member_id,
            )
            await self.session.commit()
        except IntegrityError as exc:
            # Another checkout for the same owner or member committed first.
            await self.session.rollback()
            logger.warning(f"Concurrent checkout for member {member_id} rejected: {exc.orig}")
            await self._compensate(approval, plan_id)
            await self._discard_key(member_id, key_result.bid)
            raise DuplicateRequestError(
                "Another checkout for this subscription finished first; the charge has been canceled"
            ) from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(f"Recording checkout for member {member_id} failed: {exc}")
            await self._compensate(approval, plan_id)
            await self._discard_key(member_id, key_result.bid)
            raise PaymentRecordError(
                "Payment could not be recorded; the charge has been canceled"
            ) from exc

        if previous_bid and previous_bid != key_result.bid:
            await self._discard_key(member_id, previous_bid)

        logger.info(
            f"Checkout complete for member {member_id}: subscription {subscription.id}, "
            f"{payload.owner_type}:{payload.owner_id} on plan {plan_id}"
        )
        return CheckoutResult(
            tid=approval.tid,
            subscription=subscription,
            billing_key=billing_key,
            plan=plan,
        )

    async def remove_card(self, member_id: int) -> BillingKey:
        billing_key = await self.keys.get_active(member_id)
        if billing_key is None:
            raise NotFoundError("No registered card")

        await self._discard_key(member_id, billing_key.bid)
        await self.keys.remove_by_id(billing_key.id)
        await self.session.commit()
        logger.info(f"Billing key {billing_key.id} removed for member {member_id}")
        return billing_key

    async def _ensure_team_plan_owner(self, member_id: int, team_id: int) -> None:
        """A team's running plan may only be replaced by the member who bought it."""

        current = await self.subscriptions.get_active_by_owner(team_id, OwnerType.TEAM.value)
        if current is not None and current.created_by not in (None, member_id):
            raise PermissionDeniedError(
                "Only the member who subscribed the team can change its plan"
            )

    async def _discard_key(self, member_id: int, bid: str) -> None:
        """Deactivate a key at the gateway; failures are logged and ignored."""

        try:
            await self.gateway.remove_billing_key(bid, order_id("RM", member_id))
        except GatewayError as exc:
            logger.warning(
                f"Gateway removal of billing key for member {member_id} failed: "
                f"{exc.message} ({exc.result_code})"
            )

    async def _compensate(self, approval: ApprovalResult, plan_id: int) -> None:
        try:
            await self.gateway.cancel_approval(
                approval.tid,
                order_id("CC", plan_id),
                approval.amount,
                "Subscription could not be recorded",
            )
            logger.info(f"Canceled charge {approval.tid} after failed checkout")
        except GatewayError as exc:
            # The member has been charged without a subscription; needs manual refund.
            logger.critical(
                f"Could not cancel charge {approval.tid} ({approval.amount} KRW): {exc.message}"
            )
