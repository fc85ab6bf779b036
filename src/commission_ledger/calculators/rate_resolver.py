"""Commission rate resolution by product category."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commission_ledger.cache import Cache
from commission_ledger.errors import NotFoundError, ValidationError
from commission_ledger.models import CommissionRate

CENT = Decimal("0.01")


class CommissionType(str, Enum):
    """How a rate turns an order amount into commission."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class RateNotFoundError(NotFoundError):
    """Raised when no active rate exists for a category."""

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(
            f"No active commission rate for category '{category_id}'",
            category_id=category_id,
        )


@dataclass(frozen=True)
class ResolvedRate:
    """Detached, cacheable view of an active commission rate."""

    commission_rate_id: UUID
    category_id: str
    commission_type: str
    commission_value: Decimal
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None

    @classmethod
    def from_model(cls, rate: CommissionRate) -> ResolvedRate:
        return cls(
            commission_rate_id=rate.commission_rate_id,
            category_id=rate.category_id,
            commission_type=rate.commission_type,
            commission_value=Decimal(rate.commission_value),
            min_amount=None if rate.min_amount is None else Decimal(rate.min_amount),
            max_amount=None if rate.max_amount is None else Decimal(rate.max_amount),
        )

    def to_cache(self) -> dict[str, Any]:
        return {
            "commission_rate_id": str(self.commission_rate_id),
            "category_id": self.category_id,
            "commission_type": self.commission_type,
            "commission_value": str(self.commission_value),
            "min_amount": None if self.min_amount is None else str(self.min_amount),
            "max_amount": None if self.max_amount is None else str(self.max_amount),
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> ResolvedRate:
        return cls(
            commission_rate_id=UUID(data["commission_rate_id"]),
            category_id=data["category_id"],
            commission_type=data["commission_type"],
            commission_value=Decimal(data["commission_value"]),
            min_amount=None if data["min_amount"] is None else Decimal(data["min_amount"]),
            max_amount=None if data["max_amount"] is None else Decimal(data["max_amount"]),
        )


def validate_rate_terms(
    commission_type: str,
    commission_value: Decimal,
    min_amount: Decimal | None,
    max_amount: Decimal | None,
) -> None:
    """Validate rate terms at write time.

    Raises:
        ValidationError: unknown type, negative value, percentage above 100%,
            negative bounds, or min_amount >= max_amount
    """
    if commission_type not in (CommissionType.PERCENTAGE, CommissionType.FIXED):
        raise ValidationError(
            f"commission_type must be 'percentage' or 'fixed', got '{commission_type}'"
        )
    if commission_value < 0:
        raise ValidationError("commission_value must not be negative")
    if commission_type == CommissionType.PERCENTAGE and commission_value > 1:
        raise ValidationError(
            "percentage commission_value is a fraction and must not exceed 1"
        )
    for name, bound in (("min_amount", min_amount), ("max_amount", max_amount)):
        if bound is not None and bound < 0:
            raise ValidationError(f"{name} must not be negative")
    if min_amount is not None and max_amount is not None and min_amount >= max_amount:
        raise ValidationError("min_amount must be less than max_amount")


def compute_commission(rate: ResolvedRate | CommissionRate, order_amount: Decimal) -> Decimal:
    """Apply a rate to an order amount.

    percentage: order_amount * commission_value; fixed: commission_value.
    The result is clamped to [min_amount, max_amount] when both bounds are
    set, then rounded half-up to cents.
    """
    order_amount = Decimal(order_amount)
    if order_amount < 0:
        raise ValidationError("order_amount must not be negative")

    value = Decimal(rate.commission_value)
    if rate.commission_type == CommissionType.PERCENTAGE:
        amount = order_amount * value
    elif rate.commission_type == CommissionType.FIXED:
        amount = value
    else:
        raise ValidationError(f"Unknown commission_type '{rate.commission_type}'")

    lower, upper = rate.min_amount, rate.max_amount
    if lower is not None and upper is not None and lower < upper:
        amount = min(max(amount, Decimal(lower)), Decimal(upper))

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class RateResolver:
    """Resolves the active commission rate for a category.

    Lookups go through the injected cache when one is given; rate writes
    invalidate by category (see ``CommissionRateService``).
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Cache | None = None,
        cache_ttl: float | None = None,
    ):
        self.session = session
        self.cache = cache
        self.cache_ttl = cache_ttl

    @staticmethod
    def cache_key(category_id: str) -> str:
        return f"rate:category:{category_id}"

    async def resolve(self, category_id: str) -> ResolvedRate:
        """Resolve the active rate for a category.

        Raises:
            RateNotFoundError: If the category has no active rate
        """
        key = self.cache_key(category_id)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                return ResolvedRate.from_cache(cached)

        result = await self.session.execute(
            select(CommissionRate).where(
                CommissionRate.category_id == category_id,
                CommissionRate.is_active.is_(True),
            )
        )
        rate = result.scalar_one_or_none()
        if rate is None:
            raise RateNotFoundError(category_id)

        resolved = ResolvedRate.from_model(rate)
        if self.cache is not None:
            await self.cache.set(key, resolved.to_cache(), self.cache_ttl)
        return resolved

    @staticmethod
    def apply(rate: ResolvedRate | CommissionRate, order_amount: Decimal) -> Decimal:
        """Compute commission for an order amount. Deterministic."""
        return compute_commission(rate, order_amount)

    async def invalidate(self, *category_ids: str) -> None:
        if self.cache is None:
            return
        for category_id in category_ids:
            await self.cache.delete(self.cache_key(category_id))
