"""API routes."""

from commission_ledger.api.routes.commission_rates import router as commission_rates_router
from commission_ledger.api.routes.health import router as health_router
from commission_ledger.api.routes.payouts import router as payouts_router
from commission_ledger.api.routes.transactions import router as transactions_router
from commission_ledger.api.routes.webhooks import router as webhooks_router

__all__ = [
    "commission_rates_router",
    "health_router",
    "payouts_router",
    "transactions_router",
    "webhooks_router",
]
