"""Payout lifecycle - status transitions and the ledger cascade."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commission_ledger.errors import InvalidTransitionError, NotFoundError, ValidationError
from commission_ledger.models import CommissionPayout, utcnow
from commission_ledger.services.ledger_service import TransactionLedger
from commission_ledger.services.payout_batcher import PayoutBatcher
from commission_ledger.services.state_machine import PayoutStateMachine, PayoutStatus

logger = logging.getLogger(__name__)

SYNCED = "synced"
SYNC_FAILED = "failed"


class PayoutService:
    """Service for driving a payout through its lifecycle.

    Operations:
    - update_status: validated transition, stamping processed_at/processed_by
    - reconcile_ledger: re-run the completion cascade after a failure

    Completion is settled money, so the status change is committed on its own
    before the cascade runs. A cascade failure never rolls the payout back; it
    is recorded in ledger_sync_status/ledger_sync_error and logged as an error
    for reconcile_ledger to pick up.
    """

    def __init__(self, session: AsyncSession, ledger: TransactionLedger | None = None):
        self.session = session
        self.ledger = ledger or TransactionLedger(session)

    async def get_payout(self, payout_id: UUID, for_update: bool = False) -> CommissionPayout:
        query = select(CommissionPayout).where(
            CommissionPayout.commission_payout_id == payout_id
        )
        if for_update:
            query = query.with_for_update()
        payout = (await self.session.execute(query)).scalar_one_or_none()
        if payout is None:
            raise NotFoundError(f"Payout {payout_id} not found", payout_id=str(payout_id))
        return payout

    async def update_status(
        self,
        payout_id: UUID,
        new_status: str,
        actor_id: str,
        notes: str | None = None,
        payment_reference: str | None = None,
    ) -> CommissionPayout:
        """Transition a payout to a new status.

        Side effects:
        - processing/completed: stamp processed_at and processed_by
        - completed: cascade the payout's transactions to paid

        Raises:
            NotFoundError: If the payout does not exist
            InvalidTransitionError: If the transition is not allowed
        """
        payout = await self.get_payout(payout_id, for_update=True)
        from_status = payout.status

        PayoutStateMachine.validate_transition(from_status, new_status)
        errors = PayoutStateMachine.validate_payout_for_transition(payout, new_status)
        if errors:
            raise InvalidTransitionError(from_status, new_status, "; ".join(errors))

        payout.status = PayoutStatus(new_status).value
        if PayoutStateMachine.stamps_processed(new_status):
            payout.processed_at = utcnow()
            payout.processed_by = actor_id
        if notes is not None:
            payout.notes = notes
        if payment_reference is not None:
            payout.payment_reference = payment_reference

        await self.session.commit()
        logger.info(
            "Payout %s moved %s -> %s by %s", payout_id, from_status, new_status, actor_id
        )

        if PayoutStateMachine.triggers_cascade(new_status):
            await self._cascade(payout, payout.processed_at)
        return payout

    async def reconcile_ledger(self, payout_id: UUID) -> CommissionPayout:
        """Re-run the paid cascade for a completed payout that is not synced.

        Transactions are stamped paid at reconcile time.
        Already-synced payouts are returned untouched.

        Raises:
            NotFoundError: If the payout does not exist
            ValidationError: If the payout is not completed
        """
        payout = await self.get_payout(payout_id, for_update=True)
        if payout.status != PayoutStatus.COMPLETED:
            raise ValidationError(
                "Only completed payouts can be reconciled",
                payout_id=str(payout_id),
                status=payout.status,
            )
        if payout.ledger_sync_status == SYNCED:
            logger.info("Payout %s ledger already synced", payout_id)
            return payout

        await self._cascade(payout, utcnow())
        return payout

    async def _cascade(self, payout: CommissionPayout, paid_at: datetime) -> None:
        payout_id = payout.commission_payout_id
        try:
            count = await self.ledger.mark_paid_for_payout(payout, paid_at=paid_at)
            payout.ledger_sync_status = SYNCED
            payout.ledger_sync_error = None
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            logger.exception(
                "ALERT: ledger cascade failed for completed payout %s; "
                "payout stays completed, reconcile required",
                payout_id,
            )
            await self._record_sync_failure(payout_id, payout, exc)
            return

        logger.info("Payout %s marked %d transactions paid", payout_id, count)
        await self._warn_unbatched(payout)

    async def _record_sync_failure(
        self, payout_id: UUID, payout: CommissionPayout, exc: Exception
    ) -> None:
        try:
            await self.session.refresh(payout)
            payout.ledger_sync_status = SYNC_FAILED
            payout.ledger_sync_error = f"{type(exc).__name__}: {exc}"[:2000]
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception(
                "Could not record ledger sync failure for payout %s", payout_id
            )

    async def _warn_unbatched(self, payout: CommissionPayout) -> None:
        stragglers = await PayoutBatcher(self.session).find_unbatched(
            payout.store_id, payout.period
        )
        if stragglers:
            logger.warning(
                "Payout %s completed with %d unbatched calculated transactions "
                "in %s for store %s; sweep them with a carry-over payout",
                payout.commission_payout_id,
                len(stragglers),
                payout.period,
                payout.store_id,
            )
