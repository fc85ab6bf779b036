"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from commission_ledger.cache import Cache
from commission_ledger.config import Settings
from commission_ledger.database import async_session_factory
from commission_ledger.errors import AuthenticationError, PermissionDeniedError
from commission_ledger.gateway.base import PaymentGateway

OPERATOR_ROLE = "admin"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> Cache:
    return request.app.state.cache


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


@dataclass(frozen=True)
class Actor:
    """Caller identity as asserted by the upstream auth layer."""

    actor_id: str
    role: str | None = None

    @property
    def is_operator(self) -> bool:
        return self.role == OPERATOR_ROLE


async def get_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Extract the calling actor from headers."""
    if not x_actor_id:
        raise AuthenticationError("X-Actor-ID header is required")
    return Actor(actor_id=x_actor_id, role=(x_actor_role or "").lower() or None)


async def require_operator(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    """Only operators may change rates, payouts and ledger entries."""
    if not actor.is_operator:
        raise PermissionDeniedError(
            "Operator privilege required", actor_id=actor.actor_id, role=actor.role
        )
    return actor


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SettingsDep = Annotated[Settings, Depends(get_settings_dep)]
CacheDep = Annotated[Cache, Depends(get_cache)]
GatewayDep = Annotated[PaymentGateway, Depends(get_gateway)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
OperatorActor = Annotated[Actor, Depends(require_operator)]
