"""Endpoints for reading and changing subscriptions."""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.auth.jwt import require_auth
from src.core.exceptions import NotFoundError, PermissionDeniedError
from src.db.models.subscription import OwnerType, Subscription
from src.repositories.subscription_repo import SubscriptionRepo
from src.schemas.subscription import SubscriptionRead, SubscriptionStatusUpdate


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def ensure_owner_access(member_id: int, owner_type: str, owner_id: int) -> None:
    if owner_type == OwnerType.PERSONAL.value and owner_id != member_id:
        raise PermissionDeniedError("Not your subscription")


def ensure_can_modify(member_id: int, subscription: Subscription) -> None:
    if subscription.owner_type == OwnerType.PERSONAL.value:
        ensure_owner_access(member_id, subscription.owner_type, subscription.owner_id)
    elif subscription.created_by != member_id:
        raise PermissionDeniedError("Only the member who subscribed the team can change it")


@router.get("")
async def list_subscriptions(
    owner_id: int,
    owner_type: Literal["team", "personal"],
    active: bool = False,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    ensure_owner_access(auth["member_id"], owner_type, owner_id)
    repo = SubscriptionRepo(db)

    if active:
        subscription = await repo.get_active_by_owner(owner_id, owner_type)
        return {
            "subscription": (
                SubscriptionRead.from_model(subscription).model_dump(mode="json")
                if subscription
                else None
            )
        }

    subscriptions = await repo.list_by_owner(owner_id, owner_type)
    return {
        "subscriptions": [
            SubscriptionRead.from_model(s).model_dump(mode="json") for s in subscriptions
        ]
    }


@router.put("")
async def update_subscription_status(
    body: SubscriptionStatusUpdate,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    repo = SubscriptionRepo(db)
    subscription = await repo.get_by_id(body.subscription_id)
    if subscription is None:
        raise NotFoundError("Subscription not found")
    ensure_can_modify(auth["member_id"], subscription)

    await repo.update_status(body.subscription_id, body.status)
    await db.commit()

    updated = await repo.get_by_id(body.subscription_id)
    return {
        "success": True,
        "subscription": SubscriptionRead.from_model(updated).model_dump(mode="json"),
    }
