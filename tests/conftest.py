"""
Pytest configuration for the application
"""
import os
from typing import AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import jwt
import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine
)

from src.cache.backends import factory as cache_factory
from src.core.config import settings
from src.core.dates import utcnow
from src.core.exceptions import GatewayError
from src.db.base import Base
from src.db.models import Plan, Subscription
from src.db.session import get_db
from src.services import limits as limits_service
from src.services.nicepay import ApprovalResult, BillingKeyResult, GatewayResult


# Set test environment and override runtime settings to avoid external deps
os.environ["ENV"] = "test"
settings.ENV = "test"
settings.scheduler.enabled = False
settings.cache.backend_type = "memory"
API_PREFIX = f"{settings.API_PREFIX}/v1"


class FakeRedis:
    """Minimal async Redis stub for rate limiting, idempotency and locks."""

    def __init__(self) -> None:
        self.store: Dict[str, int | str] = {}

    async def incr(self, key: str) -> int:
        current = int(self.store.get(key, 0)) + 1
        self.store[key] = current
        return current

    async def expire(self, key: str, seconds: int) -> None:
        self.store.setdefault(f"{key}:ttl", seconds)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        if nx and key in self.store:
            return False
        self.store[key] = value
        if ex is not None:
            self.store[f"{key}:ttl"] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.store.pop(f"{key}:ttl", None)
        return removed


class FakeGateway:
    """Records gateway calls; individual operations can be told to fail."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, tuple]] = []
        self.fail: Dict[str, str] = {}
        self._bid_seq = 0
        self._tid_seq = 0

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail:
            raise GatewayError(self.fail[operation], result_code="9999")

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def encrypt_card_data(self, card_no, exp_year, exp_month, id_no, card_pw) -> str:
        return f"enc:{card_no[-4:]}"

    async def register_billing_key(self, enc_data: str, order_id: str) -> BillingKeyResult:
        self.calls.append(("register", (enc_data, order_id)))
        self._maybe_fail("register")
        self._bid_seq += 1
        return BillingKeyResult(
            result_code="F100",
            result_msg="ok",
            raw={},
            bid=f"BID{self._bid_seq:04d}",
            card_code="04",
            card_name="Samsung",
            card_no="5365-****-****-1234",
            auth_date="261019",
        )

    async def approve_billing(
        self, bid: str, order_id: str, amount: int, goods_name: str
    ) -> ApprovalResult:
        self.calls.append(("approve", (bid, order_id, amount, goods_name)))
        self._maybe_fail("approve")
        self._tid_seq += 1
        return ApprovalResult(
            result_code="3001",
            result_msg="ok",
            raw={},
            tid=f"TID{self._tid_seq:04d}",
            amount=amount,
            auth_code="000000",
            auth_date="261019",
        )

    async def remove_billing_key(self, bid: str, order_id: str) -> GatewayResult:
        self.calls.append(("remove", (bid, order_id)))
        self._maybe_fail("remove")
        return GatewayResult("F101", "ok", {})

    async def cancel_approval(
        self, tid: str, order_id: str, amount: int, reason: str
    ) -> GatewayResult:
        self.calls.append(("cancel", (tid, order_id, amount, reason)))
        self._maybe_fail("cancel")
        return GatewayResult("2001", "ok", {})


def build_auth_header(member_id: int, role: Optional[str] = None) -> Dict[str, str]:
    claims = {"member_id": member_id}
    if role:
        claims["role"] = role
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)
    return {"Authorization": f"Bearer {token}"}


async def seed_plan(
    session: AsyncSession,
    *,
    name: str = "Pro",
    price: int = 9900,
    max_members: int = 10,
    max_storage_mb: float = 5000,
) -> Plan:
    plan = Plan(
        name=name,
        price=price,
        max_members=max_members,
        max_storage_mb=max_storage_mb,
    )
    session.add(plan)
    await session.commit()
    await session.refresh(plan)
    return plan


async def seed_subscription(
    session: AsyncSession,
    plan: Plan,
    *,
    owner_id: int,
    owner_type: str = "personal",
    status: str = "ACTIVE",
    next_payment_date=None,
    billing_key_member_id: Optional[int] = None,
    retry_count: int = 0,
) -> Subscription:
    subscription = Subscription(
        owner_id=owner_id,
        owner_type=owner_type,
        plan_id=plan.id,
        status=status,
        started_at=utcnow(),
        next_payment_date=next_payment_date,
        created_by=owner_id,
        billing_key_member_id=billing_key_member_id or owner_id,
        retry_count=retry_count,
    )
    session.add(subscription)
    await session.commit()
    await session.refresh(subscription)
    return subscription


@pytest_asyncio.fixture
async def test_db_engine(tmp_path):
    """
    Create a fresh SQLite database for each test.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test_app.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session for a test.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    """Patch the limits module to use an in-memory Redis stub."""

    fake = FakeRedis()
    monkeypatch.setattr(limits_service, "_redis_client", fake, raising=False)
    yield fake
    monkeypatch.setattr(limits_service, "_redis_client", None, raising=False)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(autouse=True)
def fresh_cache(monkeypatch):
    monkeypatch.setattr(cache_factory, "_cache_backend", None)


@pytest_asyncio.fixture
async def test_app(session_factory, fake_gateway, fake_redis) -> AsyncGenerator[FastAPI, None]:
    """
    Create a FastAPI test application.
    """
    from src.api.deps import get_gateway
    from src.main import create_application

    app = create_application()

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_gateway] = lambda: fake_gateway
    async with LifespanManager(app):
        yield app


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an async HTTP client for testing.
    """
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as client:
        yield client
