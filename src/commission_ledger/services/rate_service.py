"""Commission rate administration."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commission_ledger.cache import Cache
from commission_ledger.calculators.rate_resolver import (
    CommissionType,
    RateResolver,
    validate_rate_terms,
)
from commission_ledger.errors import ConflictError, NotFoundError
from commission_ledger.models import CommissionRate, CommissionTransaction

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "category_id",
    "commission_type",
    "commission_value",
    "min_amount",
    "max_amount",
    "is_active",
)


class CommissionRateService:
    """Create, update, delete and list commission rates.

    Key invariants:
    1. At most one active rate per category (partial unique index backs the check)
    2. min_amount < max_amount whenever both are set, validated on every write
    3. A rate referenced by ledger transactions is never deleted; deactivate it
    4. Cached rates of every written category are dropped again after commit
    """

    def __init__(self, session: AsyncSession, cache: Cache | None = None):
        self.session = session
        self.resolver = RateResolver(session, cache)
        self._written_categories: set[str] = set()

    async def get_rate(self, rate_id: UUID) -> CommissionRate:
        rate = await self.session.get(CommissionRate, rate_id)
        if rate is None:
            raise NotFoundError(f"Commission rate {rate_id} not found", rate_id=str(rate_id))
        return rate

    async def list_rates(
        self,
        category_id: str | None = None,
        is_active: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[CommissionRate], int]:
        """List rates, newest first. Returns (items, total)."""
        query = select(CommissionRate)
        if category_id is not None:
            query = query.where(CommissionRate.category_id == category_id)
        if is_active is not None:
            query = query.where(CommissionRate.is_active.is_(is_active))

        total = await self.session.scalar(
            select(func.count()).select_from(query.subquery())
        ) or 0

        query = query.order_by(CommissionRate.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def create_rate(
        self,
        *,
        category_id: str,
        commission_type: str,
        commission_value: Decimal,
        min_amount: Decimal | None = None,
        max_amount: Decimal | None = None,
        is_active: bool = True,
        created_by: str | None = None,
    ) -> CommissionRate:
        """Create a rate.

        Raises:
            ValidationError: If the terms are invalid
            ConflictError: If the category already has an active rate
        """
        validate_rate_terms(commission_type, commission_value, min_amount, max_amount)
        if is_active:
            await self._ensure_category_free(category_id)

        rate = CommissionRate(
            category_id=category_id,
            commission_type=CommissionType(commission_type).value,
            commission_value=commission_value,
            min_amount=min_amount,
            max_amount=max_amount,
            is_active=is_active,
            created_by=created_by,
        )
        self.session.add(rate)
        await self._flush_or_conflict(category_id)
        await self._invalidate(category_id)

        logger.info(
            "Created commission rate %s for category %s",
            rate.commission_rate_id,
            category_id,
        )
        return rate

    async def update_rate(self, rate_id: UUID, **changes: Any) -> CommissionRate:
        """Apply a partial update to a rate.

        Raises:
            NotFoundError: If the rate does not exist
            ValidationError: If the resulting terms are invalid
            ConflictError: If the result would be a second active rate for its category
        """
        rate = await self.get_rate(rate_id)
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported rate fields: {sorted(unknown)}")

        merged = {name: changes.get(name, getattr(rate, name)) for name in _UPDATABLE_FIELDS}
        validate_rate_terms(
            merged["commission_type"],
            Decimal(merged["commission_value"]),
            merged["min_amount"],
            merged["max_amount"],
        )

        old_category = rate.category_id
        becomes_active = merged["is_active"] and (
            not rate.is_active or merged["category_id"] != old_category
        )
        if becomes_active:
            await self._ensure_category_free(merged["category_id"], exclude_id=rate_id)

        merged["commission_type"] = CommissionType(merged["commission_type"]).value
        for name, value in merged.items():
            setattr(rate, name, value)
        await self._flush_or_conflict(merged["category_id"])
        await self._invalidate(old_category, merged["category_id"])
        return rate

    async def delete_rate(self, rate_id: UUID) -> None:
        """Delete a rate that no transaction references.

        Raises:
            NotFoundError: If the rate does not exist
            ConflictError: If transactions reference the rate
        """
        rate = await self.get_rate(rate_id)
        referenced = await self.session.scalar(
            select(func.count())
            .select_from(CommissionTransaction)
            .where(CommissionTransaction.commission_rate_id == rate_id)
        )
        if referenced:
            raise ConflictError(
                "Commission rate has ledger transactions; deactivate instead of delete",
                rate_id=str(rate_id),
                transactions=referenced,
            )

        category_id = rate.category_id
        await self.session.delete(rate)
        await self.session.flush()
        await self._invalidate(category_id)

    async def commit(self) -> None:
        """Commit the session, then invalidate the categories written through it.

        Until the commit lands, other sessions still resolve the old row and
        may cache it again, so flush-time invalidation alone is not enough.
        """
        await self.session.commit()
        categories = sorted(self._written_categories)
        self._written_categories.clear()
        await self.resolver.invalidate(*categories)

    async def _invalidate(self, *category_ids: str) -> None:
        self._written_categories.update(category_ids)
        await self.resolver.invalidate(*category_ids)

    async def _ensure_category_free(
        self, category_id: str, exclude_id: UUID | None = None
    ) -> None:
        query = select(CommissionRate.commission_rate_id).where(
            CommissionRate.category_id == category_id,
            CommissionRate.is_active.is_(True),
        )
        if exclude_id is not None:
            query = query.where(CommissionRate.commission_rate_id != exclude_id)
        existing = await self.session.scalar(query.limit(1))
        if existing is not None:
            raise ConflictError(
                f"Category '{category_id}' already has an active commission rate",
                category_id=category_id,
                existing_rate_id=str(existing),
            )

    async def _flush_or_conflict(self, category_id: str) -> None:
        """Flush, translating a lost race on the active-category index."""
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(
                f"Category '{category_id}' already has an active commission rate",
                category_id=category_id,
            ) from exc
