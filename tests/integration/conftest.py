"""Integration fixtures: the FastAPI app over the in-memory test database."""

from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from commission_ledger.api.app import create_app
from commission_ledger.api.dependencies import get_db_session
from commission_ledger.cache import InMemoryCache
from commission_ledger.config import Settings
from commission_ledger.gateway import StubGateway
from commission_ledger.models import Store, Subscription

from helpers import WEBHOOK_SECRET


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        host="127.0.0.1",
        port=8000,
        debug=True,
        log_level="DEBUG",
        webhook_secret=WEBHOOK_SECRET,
        webhook_retry_failed=True,
        gateway_base_url="https://gateway.invalid",
        gateway_api_key="",
        gateway_timeout_seconds=1.0,
        rate_cache_ttl_seconds=60,
        redis_url=None,
        require_active_subscription=False,
    )


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest_asyncio.fixture
async def client(session_factory, settings, gateway) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app(settings=settings, gateway=gateway, cache=InMemoryCache())

    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def store_id(session_factory) -> UUID:
    """A committed store."""
    async with session_factory() as session:
        store = Store(store_id=uuid4(), name="Loja API", slug="loja-api")
        session.add(store)
        await session.commit()
        return store.store_id


@pytest_asyncio.fixture
async def pending_subscription_id(session_factory, store_id) -> UUID:
    async with session_factory() as session:
        subscription = Subscription(
            subscription_id=uuid4(), store_id=store_id, plan_slug="pro", status="pending"
        )
        session.add(subscription)
        await session.commit()
        return subscription.subscription_id
