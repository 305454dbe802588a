from __future__ import annotations

from datetime import timedelta

import httpx
import pytest
from fastapi import status

from src.core.dates import utcnow
from src.repositories.storage_repo import StorageUsageRepo

from tests.conftest import API_PREFIX, build_auth_header, seed_plan, seed_subscription


@pytest.mark.asyncio
async def test_get_active_subscription(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db, name="Pro", price=9900)
    subscription = await seed_subscription(
        test_db, plan, owner_id=1, next_payment_date=utcnow() + timedelta(days=30)
    )

    resp = await client.get(
        f"{API_PREFIX}/subscriptions",
        params={"owner_id": 1, "owner_type": "personal", "active": "true"},
        headers=build_auth_header(1),
    )

    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()["subscription"]
    assert body["id"] == subscription.id
    assert body["status"] == "ACTIVE"
    assert body["plan_name"] == "Pro"
    assert body["plan_price"] == 9900


@pytest.mark.asyncio
async def test_no_active_subscription_returns_null(client: httpx.AsyncClient):
    resp = await client.get(
        f"{API_PREFIX}/subscriptions",
        params={"owner_id": 1, "owner_type": "personal", "active": "true"},
        headers=build_auth_header(1),
    )
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json() == {"subscription": None}


@pytest.mark.asyncio
async def test_history_lists_all_statuses(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db)
    await seed_subscription(test_db, plan, owner_id=5, owner_type="team", status="EXPIRED")
    await seed_subscription(test_db, plan, owner_id=5, owner_type="team")

    resp = await client.get(
        f"{API_PREFIX}/subscriptions",
        params={"owner_id": 5, "owner_type": "team"},
        headers=build_auth_header(5),
    )

    assert resp.status_code == status.HTTP_200_OK
    statuses = sorted(s["status"] for s in resp.json()["subscriptions"])
    assert statuses == ["ACTIVE", "EXPIRED"]


@pytest.mark.asyncio
async def test_reading_another_members_subscription_is_forbidden(client: httpx.AsyncClient):
    resp = await client.get(
        f"{API_PREFIX}/subscriptions",
        params={"owner_id": 2, "owner_type": "personal"},
        headers=build_auth_header(1),
    )
    assert resp.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_cancel_subscription_is_idempotent(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db)
    subscription = await seed_subscription(
        test_db, plan, owner_id=1, next_payment_date=utcnow() + timedelta(days=30)
    )
    headers = build_auth_header(1)
    payload = {"subscription_id": subscription.id, "status": "CANCELED"}

    first = await client.put(f"{API_PREFIX}/subscriptions", json=payload, headers=headers)
    second = await client.put(f"{API_PREFIX}/subscriptions", json=payload, headers=headers)

    assert first.status_code == status.HTTP_200_OK
    assert first.json()["subscription"]["status"] == "CANCELED"
    assert first.json()["subscription"]["next_payment_date"] is None
    assert second.status_code == status.HTTP_200_OK

    active = await client.get(
        f"{API_PREFIX}/subscriptions",
        params={"owner_id": 1, "owner_type": "personal", "active": "true"},
        headers=headers,
    )
    assert active.json() == {"subscription": None}


@pytest.mark.asyncio
async def test_status_update_rules(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db)
    expired = await seed_subscription(test_db, plan, owner_id=1, status="EXPIRED")
    team = await seed_subscription(test_db, plan, owner_id=9, owner_type="team")
    headers = build_auth_header(1)

    reactivate = await client.put(
        f"{API_PREFIX}/subscriptions",
        json={"subscription_id": expired.id, "status": "ACTIVE"},
        headers=headers,
    )
    assert reactivate.status_code == status.HTTP_400_BAD_REQUEST

    cancel_expired = await client.put(
        f"{API_PREFIX}/subscriptions",
        json={"subscription_id": expired.id, "status": "CANCELED"},
        headers=headers,
    )
    assert cancel_expired.status_code == status.HTTP_400_BAD_REQUEST

    missing = await client.put(
        f"{API_PREFIX}/subscriptions",
        json={"subscription_id": 999, "status": "CANCELED"},
        headers=headers,
    )
    assert missing.status_code == status.HTTP_404_NOT_FOUND

    # team subscriptions can only be changed by the member who created them
    not_creator = await client.put(
        f"{API_PREFIX}/subscriptions",
        json={"subscription_id": team.id, "status": "CANCELED"},
        headers=headers,
    )
    assert not_creator.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_current_limits(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db, name="Team", max_members=20, max_storage_mb=10000)
    await seed_subscription(test_db, plan, owner_id=3, owner_type="team")
    await StorageUsageRepo(test_db).set_usage("team", 3, 2500)
    await test_db.commit()

    resp = await client.get(
        f"{API_PREFIX}/limits/current",
        params={"owner_type": "team", "owner_id": 3},
        headers=build_auth_header(3),
    )

    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["subscribed"] is True
    assert body["plan_name"] == "Team"
    assert body["limits"] == {"max_members": 20, "max_storage_mb": 10000}
    assert body["usage"] == {"used_storage_mb": 2500}


@pytest.mark.asyncio
async def test_storage_and_member_checks(client: httpx.AsyncClient, test_db):
    plan = await seed_plan(test_db, max_members=2, max_storage_mb=100)
    await seed_subscription(test_db, plan, owner_id=1)
    await StorageUsageRepo(test_db).set_usage("personal", 1, 90)
    await test_db.commit()
    headers = build_auth_header(1)

    ok = await client.post(
        f"{API_PREFIX}/limits/storage/check",
        json={"owner_type": "personal", "owner_id": 1, "additional_mb": 10},
        headers=headers,
    )
    assert ok.status_code == status.HTTP_200_OK
    assert ok.json() == {"allowed": True, "current": 90, "limit": 100}

    too_big = await client.post(
        f"{API_PREFIX}/limits/storage/check",
        json={"owner_type": "personal", "owner_id": 1, "additional_mb": 11},
        headers=headers,
    )
    assert too_big.status_code == status.HTTP_403_FORBIDDEN
    assert too_big.json()["error"].startswith("Storage limit exceeded")

    full = await client.post(
        f"{API_PREFIX}/limits/members/check",
        json={"owner_type": "personal", "owner_id": 1, "current_count": 2},
        headers=headers,
    )
    assert full.status_code == status.HTTP_403_FORBIDDEN
    assert full.json() == {"error": "Member limit reached (2) for your plan"}
