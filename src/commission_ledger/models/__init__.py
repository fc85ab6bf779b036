"""SQLAlchemy ORM models."""

from commission_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from commission_ledger.models.commission import (
    CommissionPayout,
    CommissionRate,
    CommissionTransaction,
)
from commission_ledger.models.store import Store, Subscription
from commission_ledger.models.webhook import WebhookEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "utcnow",
    "CommissionPayout",
    "CommissionRate",
    "CommissionTransaction",
    "Store",
    "Subscription",
    "WebhookEvent",
]
