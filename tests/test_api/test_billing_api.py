from __future__ import annotations

import httpx
import pytest
from fastapi import status
from sqlalchemy import select

from src.core.config import settings
from src.db.models import BillingKey, Subscription

from tests.conftest import API_PREFIX, build_auth_header, seed_plan


def _checkout_body(plan_id: int, owner_id: int = 1, owner_type: str = "personal") -> dict:
    return {
        "card_no": "5365101234567890",
        "exp_year": "28",
        "exp_month": "07",
        "id_no": "900101",
        "card_pw": "12",
        "plan_id": plan_id,
        "owner_id": owner_id,
        "owner_type": owner_type,
    }


@pytest.mark.asyncio
async def test_health(client: httpx.AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_register_requires_token(client: httpx.AsyncClient):
    resp = await client.post(f"{API_PREFIX}/billing/register", json=_checkout_body(1))
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
    assert resp.json() == {"error": "Missing bearer token"}

    resp = await client.get(
        f"{API_PREFIX}/billing/register", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_register_and_subscribe(client: httpx.AsyncClient, test_db, fake_gateway):
    plan = await seed_plan(test_db, name="Pro", price=9900)
    headers = build_auth_header(1)

    resp = await client.post(
        f"{API_PREFIX}/billing/register", json=_checkout_body(plan.id), headers=headers
    )

    assert resp.status_code == status.HTTP_200_OK, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["tid"] == "TID0001"
    assert body["next_payment_date"] is not None
    assert fake_gateway.names() == ["register", "approve"]

    subscription = await test_db.scalar(
        select(Subscription).where(Subscription.id == body["subscription_id"])
    )
    assert subscription.status == "ACTIVE"
    assert subscription.plan_id == plan.id

    card = await client.get(f"{API_PREFIX}/billing/register", headers=headers)
    assert card.status_code == status.HTTP_200_OK
    billing_key = card.json()["billing_key"]
    assert billing_key["card_name"] == "Samsung"
    assert billing_key["card_no_masked"] == "5365-****-****-1234"
    assert "bid" not in billing_key


@pytest.mark.asyncio
async def test_register_rejects_malformed_card(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db)
    body = _checkout_body(plan.id)
    body["card_no"] = "1234-abcd"

    resp = await client.post(
        f"{API_PREFIX}/billing/register", json=body, headers=build_auth_header(1)
    )

    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["error"].startswith("Invalid or missing fields")
    assert "card_no" in resp.json()["error"]


@pytest.mark.asyncio
async def test_register_unknown_plan(client: httpx.AsyncClient):
    resp = await client.post(
        f"{API_PREFIX}/billing/register", json=_checkout_body(999), headers=build_auth_header(1)
    )
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert resp.json() == {"error": "Plan not found"}


@pytest.mark.asyncio
async def test_register_for_someone_else_is_forbidden(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db)
    resp = await client.post(
        f"{API_PREFIX}/billing/register",
        json=_checkout_body(plan.id, owner_id=2),
        headers=build_auth_header(1),
    )
    assert resp.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_declined_card_returns_gateway_message(
    client: httpx.AsyncClient, test_db, fake_gateway
):
    plan = await seed_plan(test_db)
    fake_gateway.fail["approve"] = "Card limit exceeded"

    resp = await client.post(
        f"{API_PREFIX}/billing/register", json=_checkout_body(plan.id), headers=build_auth_header(1)
    )

    assert resp.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert resp.json() == {"error": "Card limit exceeded"}
    assert (await test_db.scalars(select(BillingKey))).all() == []


@pytest.mark.asyncio
async def test_idempotency_key_blocks_duplicates(client: httpx.AsyncClient, test_db, fake_gateway):
    plan = await seed_plan(test_db)
    headers = {**build_auth_header(1), "Idempotency-Key": "checkout-1"}

    first = await client.post(
        f"{API_PREFIX}/billing/register", json=_checkout_body(plan.id), headers=headers
    )
    second = await client.post(
        f"{API_PREFIX}/billing/register", json=_checkout_body(plan.id), headers=headers
    )

    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_409_CONFLICT
    assert fake_gateway.names().count("approve") == 1


@pytest.mark.asyncio
async def test_failed_checkout_can_be_retried_with_same_key(
    client: httpx.AsyncClient, test_db, fake_gateway
):
    plan = await seed_plan(test_db)
    headers = {**build_auth_header(1), "Idempotency-Key": "checkout-2"}
    fake_gateway.fail["approve"] = "Temporary failure"

    failed = await client.post(
        f"{API_PREFIX}/billing/register", json=_checkout_body(plan.id), headers=headers
    )
    assert failed.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR

    fake_gateway.fail.clear()
    retried = await client.post(
        f"{API_PREFIX}/billing/register", json=_checkout_body(plan.id), headers=headers
    )
    assert retried.status_code == status.HTTP_200_OK


@pytest.mark.asyncio
async def test_rate_limit(client: httpx.AsyncClient, monkeypatch):
    monkeypatch.setattr(settings.limits, "rate_limit_rpm", 2)
    headers = build_auth_header(1)

    codes = []
    for _ in range(3):
        resp = await client.delete(f"{API_PREFIX}/billing/remove", headers=headers)
        codes.append(resp.status_code)

    assert codes == [
        status.HTTP_404_NOT_FOUND,
        status.HTTP_404_NOT_FOUND,
        status.HTTP_429_TOO_MANY_REQUESTS,
    ]


@pytest.mark.asyncio
async def test_remove_card(client: httpx.AsyncClient, test_db, fake_gateway):
    plan = await seed_plan(test_db)
    headers = build_auth_header(1)
    await client.post(f"{API_PREFIX}/billing/register", json=_checkout_body(plan.id), headers=headers)

    resp = await client.delete(f"{API_PREFIX}/billing/remove", headers=headers)

    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["success"] is True
    assert fake_gateway.names()[-1] == "remove"

    card = await client.get(f"{API_PREFIX}/billing/register", headers=headers)
    assert card.json() == {"billing_key": None}

    again = await client.delete(f"{API_PREFIX}/billing/remove", headers=headers)
    assert again.status_code == status.HTTP_404_NOT_FOUND
    assert again.json() == {"error": "No registered card"}
