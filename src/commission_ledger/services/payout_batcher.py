"""Payout batcher - aggregates a store's period commission into a payout."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commission_ledger.errors import ConflictError, EmptyPayoutError, NotFoundError
from commission_ledger.models import CommissionPayout, CommissionTransaction, Store
from commission_ledger.services.periods import period_bounds
from commission_ledger.services.state_machine import PayoutStatus, TransactionStatus

logger = logging.getLogger(__name__)


class PayoutBatcher:
    """Builds payouts from calculated commission.

    Key invariants:
    1. One payout per (store, period); the unique constraint decides races
    2. total_commission is a snapshot taken at creation
    3. The snapshot is kept by reference: every summed transaction gets payout_id
    4. Transactions recorded after the snapshot stay unbatched for a later payout
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_payout(
        self,
        store_id: UUID,
        period: str,
        payment_method: str | None = None,
        notes: str | None = None,
        include_carryover: bool = False,
    ) -> CommissionPayout:
        """Create a pending payout for a store's calculated commission in a period.

        Args:
            store_id: Store to pay out
            period: Billing month, ``YYYY-MM``
            payment_method: Free-form method label (pix, transfer, ...)
            notes: Operator notes
            include_carryover: Also sweep calculated transactions from earlier
                periods that no payout claimed

        Returns:
            The pending payout (flushed, not committed)

        Raises:
            ValidationError: Malformed period
            NotFoundError: Unknown store
            ConflictError: A payout already exists for (store, period)
            EmptyPayoutError: Nothing calculated to pay in the period
        """
        start, end = period_bounds(period)

        store = await self.session.get(Store, store_id)
        if store is None:
            raise NotFoundError(f"Store {store_id} not found", store_id=str(store_id))

        existing = await self.session.scalar(
            select(CommissionPayout.commission_payout_id).where(
                CommissionPayout.store_id == store_id,
                CommissionPayout.period == period,
            )
        )
        if existing is not None:
            raise ConflictError(
                f"Payout for store {store_id} and period {period} already exists",
                store_id=str(store_id),
                period=period,
                payout_id=str(existing),
            )

        result = await self.session.execute(
            self._unbatched_query(store_id, start, end, include_carryover).with_for_update()
        )
        transactions = list(result.scalars().all())
        total = sum((Decimal(t.commission_amount) for t in transactions), Decimal("0.00"))

        if total <= 0:
            raise EmptyPayoutError(
                f"No calculated commission for store {store_id} in {period}",
                store_id=str(store_id),
                period=period,
            )

        payout = CommissionPayout(
            store_id=store_id,
            period=period,
            total_commission=total,
            # No deductions are modeled; the payout equals the commission
            total_payout=total,
            transaction_count=len(transactions),
            status=PayoutStatus.PENDING.value,
            payment_method=payment_method,
            notes=notes,
        )
        self.session.add(payout)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(
                f"Payout for store {store_id} and period {period} already exists",
                store_id=str(store_id),
                period=period,
            ) from exc

        for txn in transactions:
            txn.payout_id = payout.commission_payout_id
        await self.session.flush()

        logger.info(
            "Created payout %s for store %s period %s: %s over %d transactions",
            payout.commission_payout_id,
            store_id,
            period,
            total,
            len(transactions),
        )
        return payout

    async def get_payout(self, payout_id: UUID) -> CommissionPayout:
        payout = await self.session.get(CommissionPayout, payout_id)
        if payout is None:
            raise NotFoundError(f"Payout {payout_id} not found", payout_id=str(payout_id))
        return payout

    async def list_payouts(
        self,
        store_id: UUID | None = None,
        status: str | None = None,
        period: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[CommissionPayout], int]:
        """List payouts, newest first. Returns (items, total)."""
        query = select(CommissionPayout)
        if store_id is not None:
            query = query.where(CommissionPayout.store_id == store_id)
        if status is not None:
            query = query.where(CommissionPayout.status == status)
        if period is not None:
            query = query.where(CommissionPayout.period == period)

        total = await self.session.scalar(
            select(func.count()).select_from(query.subquery())
        ) or 0

        query = query.order_by(CommissionPayout.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def find_unbatched(self, store_id: UUID, period: str) -> list[CommissionTransaction]:
        """Calculated transactions of a period that no payout has claimed."""
        start, end = period_bounds(period)
        result = await self.session.execute(self._unbatched_query(store_id, start, end))
        return list(result.scalars().all())

    @staticmethod
    def _unbatched_query(store_id, start, end, include_carryover=False):
        query = select(CommissionTransaction).where(
            CommissionTransaction.store_id == store_id,
            CommissionTransaction.status == TransactionStatus.CALCULATED.value,
            CommissionTransaction.payout_id.is_(None),
            CommissionTransaction.created_at < end,
        )
        if not include_carryover:
            query = query.where(CommissionTransaction.created_at >= start)
        return query.order_by(CommissionTransaction.created_at)
