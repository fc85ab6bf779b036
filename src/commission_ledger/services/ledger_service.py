"""Transaction ledger - one commission entry per completed order."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commission_ledger.cache import Cache
from commission_ledger.calculators.rate_resolver import CENT, RateResolver
from commission_ledger.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from commission_ledger.models import (
    CommissionPayout,
    CommissionTransaction,
    Store,
    Subscription,
    utcnow,
)
from commission_ledger.services.periods import as_utc, period_bounds, period_of
from commission_ledger.services.state_machine import PayoutStatus, TransactionStatus

logger = logging.getLogger(__name__)

GROUP_BY_CHOICES = ("month", "category", "store")


@dataclass
class CommissionTotals:
    """Running commission totals for a set of transactions."""

    total_commission: Decimal = Decimal("0.00")
    total_orders: int = 0
    total_order_value: Decimal = Decimal("0.00")
    pending_commission: Decimal = Decimal("0.00")
    paid_commission: Decimal = Decimal("0.00")

    def add(self, txn: CommissionTransaction) -> None:
        amount = Decimal(txn.commission_amount)
        self.total_commission += amount
        self.total_orders += 1
        self.total_order_value += Decimal(txn.order_amount)
        if txn.status == TransactionStatus.CALCULATED:
            self.pending_commission += amount
        elif txn.status == TransactionStatus.PAID:
            self.paid_commission += amount

    @property
    def average_commission_rate(self) -> Decimal:
        """Commission as a percentage of order value, two decimals."""
        if self.total_order_value <= 0:
            return Decimal("0.00")
        rate = self.total_commission / self.total_order_value * 100
        return rate.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class StatsBucket:
    key: str
    label: str | None
    totals: CommissionTotals = field(default_factory=CommissionTotals)


@dataclass
class CommissionStats:
    group_by: str
    period: str | None
    summary: CommissionTotals
    buckets: list[StatsBucket]


class TransactionLedger:
    """Records and reads commission transactions.

    Key invariants:
    1. One entry per order_id (unique constraint backs the check)
    2. Entries are written as 'calculated' with the rate resolved at record time
    3. Only a completed payout flips its entries to 'paid'
    4. 'paid' and 'cancelled' entries are never modified again
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Cache | None = None,
        cache_ttl: float | None = None,
        require_active_subscription: bool = False,
    ):
        self.session = session
        self.resolver = RateResolver(session, cache, cache_ttl)
        self.require_active_subscription = require_active_subscription

    async def record(
        self,
        store_id: UUID,
        category_id: str,
        order_id: str,
        order_amount: Decimal,
        recorded_at: datetime | None = None,
    ) -> CommissionTransaction:
        """Record the commission for a completed order.

        Args:
            store_id: Store the order belongs to
            category_id: Product category used to resolve the rate
            order_id: Upstream order identifier
            order_amount: Order value the rate applies to
            recorded_at: Completion time, defaults to now

        Returns:
            The new 'calculated' transaction (flushed, not committed)

        Raises:
            NotFoundError: Unknown store, or no active rate for the category
            ValidationError: Negative amount, or the store lacks a required subscription
            ConflictError: The order already has a ledger entry
        """
        order_amount = Decimal(order_amount)
        if order_amount < 0:
            raise ValidationError("order_amount must not be negative", order_id=order_id)

        store = await self.session.get(Store, store_id)
        if store is None:
            raise NotFoundError(f"Store {store_id} not found", store_id=str(store_id))

        if self.require_active_subscription:
            await self._ensure_subscribed(store_id)

        existing = await self.session.scalar(
            select(CommissionTransaction.commission_transaction_id).where(
                CommissionTransaction.order_id == order_id
            )
        )
        if existing is not None:
            raise ConflictError(
                f"Order '{order_id}' already has a commission entry",
                order_id=order_id,
                commission_transaction_id=str(existing),
            )

        rate = await self.resolver.resolve(category_id)
        commission_amount = self.resolver.apply(rate, order_amount)

        txn = CommissionTransaction(
            store_id=store_id,
            category_id=category_id,
            commission_rate_id=rate.commission_rate_id,
            order_id=order_id,
            order_amount=order_amount.quantize(CENT, rounding=ROUND_HALF_UP),
            commission_rate_applied=rate.commission_value,
            commission_amount=commission_amount,
            status=TransactionStatus.CALCULATED.value,
            created_at=as_utc(recorded_at) if recorded_at else utcnow(),
        )
        self.session.add(txn)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(
                f"Order '{order_id}' already has a commission entry", order_id=order_id
            ) from exc

        logger.info(
            "Recorded commission %s for order %s (store %s)",
            commission_amount,
            order_id,
            store_id,
        )
        return txn

    async def get_transaction(self, transaction_id: UUID) -> CommissionTransaction:
        txn = await self.session.get(CommissionTransaction, transaction_id)
        if txn is None:
            raise NotFoundError(
                f"Commission transaction {transaction_id} not found",
                transaction_id=str(transaction_id),
            )
        return txn

    async def list_transactions(
        self,
        store_id: UUID | None = None,
        status: str | None = None,
        category_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[CommissionTransaction], int]:
        """List transactions, newest first. ``end`` is exclusive."""
        query = select(CommissionTransaction)
        if store_id is not None:
            query = query.where(CommissionTransaction.store_id == store_id)
        if status is not None:
            query = query.where(CommissionTransaction.status == status)
        if category_id is not None:
            query = query.where(CommissionTransaction.category_id == category_id)
        if start is not None:
            query = query.where(CommissionTransaction.created_at >= as_utc(start))
        if end is not None:
            query = query.where(CommissionTransaction.created_at < as_utc(end))

        total = await self.session.scalar(
            select(func.count()).select_from(query.subquery())
        ) or 0

        query = query.order_by(CommissionTransaction.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def cancel(self, transaction_id: UUID) -> CommissionTransaction:
        """Cancel a calculated entry that no payout has claimed.

        Raises:
            NotFoundError: If the transaction does not exist
            InvalidTransitionError: If the entry is not 'calculated'
            ValidationError: If a payout already includes the entry
        """
        txn = await self.get_transaction(transaction_id)
        if txn.status != TransactionStatus.CALCULATED:
            raise InvalidTransitionError(
                txn.status,
                TransactionStatus.CANCELLED.value,
                "only calculated transactions can be cancelled",
            )
        if txn.payout_id is not None:
            raise ValidationError(
                f"Transaction is part of payout {txn.payout_id}",
                transaction_id=str(transaction_id),
                payout_id=str(txn.payout_id),
            )

        txn.status = TransactionStatus.CANCELLED.value
        txn.cancelled_at = utcnow()
        await self.session.flush()
        logger.info("Cancelled commission transaction %s", transaction_id)
        return txn

    async def mark_paid_for_payout(
        self,
        payout: CommissionPayout,
        paid_at: datetime | None = None,
    ) -> int:
        """Flip the calculated entries a completed payout was built from to paid.

        This is the only write path to 'paid'. Entries are selected by
        reference (``payout_id``), so rows outside the payout's snapshot are
        untouched whatever their store or period.

        Returns:
            Number of entries marked paid

        Raises:
            ValidationError: If the payout is not completed
        """
        if payout.status != PayoutStatus.COMPLETED:
            raise ValidationError(
                "Only a completed payout can mark transactions paid",
                payout_id=str(payout.commission_payout_id),
                status=payout.status,
            )

        result = await self.session.execute(
            update(CommissionTransaction)
            .where(
                CommissionTransaction.payout_id == payout.commission_payout_id,
                CommissionTransaction.status == TransactionStatus.CALCULATED.value,
            )
            .values(status=TransactionStatus.PAID.value, paid_at=paid_at or utcnow())
        )
        return result.rowcount or 0

    async def summarize(
        self,
        store_id: UUID | None = None,
        period: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        group_by: str = "month",
    ) -> CommissionStats:
        """Aggregate non-cancelled entries into totals and grouped buckets.

        ``period`` takes precedence over ``start``/``end``. Month buckets sort
        chronologically; category and store buckets by commission, largest first.
        """
        if group_by not in GROUP_BY_CHOICES:
            raise ValidationError(
                f"group_by must be one of {', '.join(GROUP_BY_CHOICES)}", group_by=group_by
            )
        if period is not None:
            start, end = period_bounds(period)

        query = (
            select(CommissionTransaction, Store.name)
            .join(Store, Store.store_id == CommissionTransaction.store_id)
            .where(CommissionTransaction.status != TransactionStatus.CANCELLED.value)
        )
        if store_id is not None:
            query = query.where(CommissionTransaction.store_id == store_id)
        if start is not None:
            query = query.where(CommissionTransaction.created_at >= as_utc(start))
        if end is not None:
            query = query.where(CommissionTransaction.created_at < as_utc(end))

        result = await self.session.execute(query)

        summary = CommissionTotals()
        buckets: dict[str, StatsBucket] = {}
        for txn, store_name in result.all():
            summary.add(txn)
            if group_by == "month":
                key, label = period_of(txn.created_at), None
            elif group_by == "category":
                key, label = txn.category_id, None
            else:
                key, label = str(txn.store_id), store_name
            bucket = buckets.setdefault(key, StatsBucket(key=key, label=label))
            bucket.totals.add(txn)

        if group_by == "month":
            ordered = sorted(buckets.values(), key=lambda b: b.key)
        else:
            ordered = sorted(
                buckets.values(), key=lambda b: b.totals.total_commission, reverse=True
            )

        return CommissionStats(
            group_by=group_by, period=period, summary=summary, buckets=ordered
        )

    async def _ensure_subscribed(self, store_id: UUID) -> None:
        active = await self.session.scalar(
            select(Subscription.subscription_id)
            .where(Subscription.store_id == store_id, Subscription.status == "active")
            .limit(1)
        )
        if active is None:
            raise ValidationError(
                "Store has no active subscription", store_id=str(store_id)
            )
