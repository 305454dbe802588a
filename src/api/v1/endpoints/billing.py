"""Endpoints for card registration, checkout and card removal."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session, get_gateway
from src.auth.jwt import require_auth
from src.core.exceptions import AppError
from src.schemas.billing import BillingKeyRead, CheckoutResponse, RegisterBillingRequest
from src.services.billing import BillingService
from src.services.limits import (
    check_rate_limit,
    ensure_idempotent,
    release_idempotency_key,
)
from src.services.nicepay import NicePayClient


router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/register")
async def get_registered_card(
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
    gateway: NicePayClient = Depends(get_gateway),
):
    service = BillingService(db, gateway)
    billing_key = await service.get_active_card(auth["member_id"])
    if billing_key is None:
        return {"billing_key": None}
    return {"billing_key": BillingKeyRead.model_validate(billing_key).model_dump(mode="json")}


@router.post("/register", response_model=CheckoutResponse)
async def register(
    body: RegisterBillingRequest,
    auth=Depends(require_auth),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db_session),
    gateway: NicePayClient = Depends(get_gateway),
):
    member_id = auth["member_id"]

    await check_rate_limit(str(member_id))
    await ensure_idempotent(str(member_id), idempotency_key)

    service = BillingService(db, gateway)
    try:
        result = await service.register_and_subscribe(member_id, body)
    except AppError:
        # Nothing was recorded, so the same key may be used to retry.
        await release_idempotency_key(str(member_id), idempotency_key)
        raise

    return CheckoutResponse(
        message="Payment completed",
        tid=result.tid,
        subscription_id=result.subscription.id,
        next_payment_date=result.subscription.next_payment_date,
    )


@router.delete("/remove")
async def remove(
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
    gateway: NicePayClient = Depends(get_gateway),
):
    member_id = auth["member_id"]
    await check_rate_limit(str(member_id))

    service = BillingService(db, gateway)
    await service.remove_card(member_id)
    return {"success": True, "message": "Card removed"}
