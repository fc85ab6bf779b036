"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from commission_ledger.api.routes import (
    commission_rates_router,
    health_router,
    payouts_router,
    transactions_router,
    webhooks_router,
)
from commission_ledger.cache import Cache, InMemoryCache, RedisCache
from commission_ledger.calculators.rate_resolver import RateResolver
from commission_ledger.config import Settings, get_settings
from commission_ledger.database import dispose_db, init_db
from commission_ledger.errors import CommissionError
from commission_ledger.gateway import AsaasGateway, PaymentGateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db(app.state.settings.database_url)
    # Rate entries cached before this process started are not trusted
    dropped = await app.state.cache.invalidate_pattern(RateResolver.cache_key("*"))
    if dropped:
        logger.info("Dropped %d cached rates at startup", dropped)
    yield
    # Shutdown
    gateway = app.state.gateway
    if hasattr(gateway, "aclose"):
        await gateway.aclose()
    cache = app.state.cache
    if isinstance(cache, RedisCache):
        await cache.redis.aclose()
    await dispose_db()


def _default_cache(settings: Settings) -> Cache:
    if settings.redis_url:
        return RedisCache.from_url(settings.redis_url, default_ttl=settings.rate_cache_ttl_seconds)
    return InMemoryCache(default_ttl=settings.rate_cache_ttl_seconds)


def create_app(
    settings: Settings | None = None,
    gateway: PaymentGateway | None = None,
    cache: Cache | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Commission Ledger API",
        description="Marketplace commission ledger and payout reconciliation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cache = cache or _default_cache(settings)
    app.state.gateway = gateway or AsaasGateway(
        settings.gateway_base_url,
        settings.gateway_api_key,
        timeout=settings.gateway_timeout_seconds,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(CommissionError)
    async def commission_error_handler(
        request: Request, exc: CommissionError
    ) -> JSONResponse:
        """Render domain errors with their mapped status."""
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed requests are 400s."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Invalid request",
                "code": "VALIDATION_ERROR",
                "context": {"errors": jsonable_errors(exc)},
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(commission_rates_router, prefix="/api/v1")
    app.include_router(transactions_router, prefix="/api/v1")
    app.include_router(payouts_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Location and message of each validation error."""
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
