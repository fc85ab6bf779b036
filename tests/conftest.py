"""Pytest fixtures for commission ledger tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from commission_ledger.cache import InMemoryCache
from commission_ledger.models import (
    Base,
    CommissionRate,
    CommissionTransaction,
    Store,
    Subscription,
)

# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache(default_ttl=300)


@pytest.fixture
async def test_store(session: AsyncSession) -> Store:
    """Create a test store."""
    store = Store(store_id=uuid4(), name="Loja Teste", slug="loja-teste")
    session.add(store)
    await session.flush()
    return store


@pytest.fixture
async def other_store(session: AsyncSession) -> Store:
    """Create a second store for isolation checks."""
    store = Store(store_id=uuid4(), name="Outra Loja", slug="outra-loja")
    session.add(store)
    await session.flush()
    return store


@pytest.fixture
def make_rate(session: AsyncSession):
    """Factory for commission rates."""

    async def _make(
        category_id: str = "electronics",
        commission_type: str = "percentage",
        commission_value: str = "0.10",
        min_amount: str | None = None,
        max_amount: str | None = None,
        is_active: bool = True,
    ) -> CommissionRate:
        rate = CommissionRate(
            commission_rate_id=uuid4(),
            category_id=category_id,
            commission_type=commission_type,
            commission_value=Decimal(commission_value),
            min_amount=None if min_amount is None else Decimal(min_amount),
            max_amount=None if max_amount is None else Decimal(max_amount),
            is_active=is_active,
        )
        session.add(rate)
        await session.flush()
        return rate

    return _make


@pytest.fixture
def make_transaction(session: AsyncSession):
    """Factory for ledger entries written directly, bypassing rate resolution."""

    async def _make(
        store: Store,
        rate: CommissionRate,
        commission_amount: str,
        created_at: datetime,
        status: str = "calculated",
        order_amount: str = "100.00",
        payout_id: UUID | None = None,
    ) -> CommissionTransaction:
        txn = CommissionTransaction(
            commission_transaction_id=uuid4(),
            store_id=store.store_id,
            category_id=rate.category_id,
            commission_rate_id=rate.commission_rate_id,
            order_id=f"order-{uuid4().hex[:12]}",
            order_amount=Decimal(order_amount),
            commission_rate_applied=rate.commission_value,
            commission_amount=Decimal(commission_amount),
            status=status,
            payout_id=payout_id,
            created_at=created_at,
        )
        session.add(txn)
        await session.flush()
        return txn

    return _make


@pytest.fixture
def make_subscription(session: AsyncSession):
    """Factory for store subscriptions."""

    async def _make(store: Store, plan_slug: str = "pro", status: str = "pending") -> Subscription:
        subscription = Subscription(
            subscription_id=uuid4(),
            store_id=store.store_id,
            plan_slug=plan_slug,
            status=status,
        )
        session.add(subscription)
        await session.flush()
        return subscription

    return _make
