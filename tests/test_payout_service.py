"""Tests for the payout lifecycle and the paid cascade."""

import logging
from uuid import uuid4

import pytest

from commission_ledger.errors import InvalidTransitionError, NotFoundError, ValidationError
from commission_ledger.services import payout_service
from commission_ledger.services.ledger_service import TransactionLedger
from commission_ledger.services.payout_batcher import PayoutBatcher
from commission_ledger.services.payout_service import PayoutService
from commission_ledger.services.periods import as_utc

from helpers import at

pytestmark = pytest.mark.asyncio


class ExplodingLedger(TransactionLedger):
    """Ledger whose paid cascade always fails."""

    async def mark_paid_for_payout(self, payout, paid_at=None):
        raise RuntimeError("ledger unavailable")


@pytest.fixture
async def january_payout(session, test_store, make_rate, make_transaction):
    """A pending January payout over two calculated entries."""
    rate = await make_rate()
    txns = [
        await make_transaction(test_store, rate, "30.00", at(2025, 1, 5)),
        await make_transaction(test_store, rate, "20.00", at(2025, 1, 20)),
    ]
    payout = await PayoutBatcher(session).create_payout(test_store.store_id, "2025-01")
    await session.commit()
    return payout, txns


class TestUpdateStatus:
    async def test_full_lifecycle_marks_transactions_paid(self, session, january_payout):
        """pending -> processing -> completed flips the snapshot to paid."""
        payout, txns = january_payout
        service = PayoutService(session)

        payout = await service.update_status(payout.commission_payout_id, "processing", "op-1")
        assert payout.status == "processing"
        assert payout.processed_by == "op-1"
        assert payout.processed_at is not None

        payout = await service.update_status(
            payout.commission_payout_id,
            "completed",
            "op-2",
            payment_reference="PIX-0001",
            notes="paid",
        )

        assert payout.status == "completed"
        assert payout.processed_by == "op-2"
        assert payout.payment_reference == "PIX-0001"
        assert payout.notes == "paid"
        assert payout.ledger_sync_status == "synced"
        for txn in txns:
            await session.refresh(txn)
            assert txn.status == "paid"
            assert txn.paid_at is not None

    async def test_pending_to_completed_rejected(self, session, january_payout):
        payout, txns = january_payout

        with pytest.raises(InvalidTransitionError):
            await PayoutService(session).update_status(
                payout.commission_payout_id, "completed", "op-1"
            )

    async def test_completed_is_terminal(self, session, january_payout):
        """Completed payouts cannot go anywhere, not even back to pending."""
        payout, _ = january_payout
        service = PayoutService(session)
        await service.update_status(payout.commission_payout_id, "processing", "op-1")
        await service.update_status(payout.commission_payout_id, "completed", "op-1")

        for target in ("pending", "processing", "failed"):
            with pytest.raises(InvalidTransitionError):
                await service.update_status(payout.commission_payout_id, target, "op-1")

    async def test_failed_payout_can_be_retried(self, session, january_payout):
        """failed -> pending is allowed and touches no transaction."""
        payout, txns = january_payout
        service = PayoutService(session)
        await service.update_status(payout.commission_payout_id, "failed", "op-1")

        payout = await service.update_status(payout.commission_payout_id, "pending", "op-1")

        assert payout.status == "pending"
        for txn in txns:
            await session.refresh(txn)
            assert txn.status == "calculated"
            assert txn.payout_id == payout.commission_payout_id

    async def test_failed_does_not_stamp_processed(self, session, january_payout):
        payout, _ = january_payout

        payout = await PayoutService(session).update_status(
            payout.commission_payout_id, "failed", "op-1"
        )

        assert payout.processed_at is None
        assert payout.processed_by is None

    async def test_unknown_payout(self, session):
        with pytest.raises(NotFoundError):
            await PayoutService(session).update_status(uuid4(), "processing", "op-1")


class TestCascadeIsolation:
    async def test_only_snapshot_rows_are_paid(
        self, session, test_store, other_store, make_rate, make_transaction
    ):
        """Other stores, other periods and cancelled rows are untouched."""
        rate = await make_rate()
        included = await make_transaction(test_store, rate, "10.00", at(2025, 1, 10))
        february = await make_transaction(test_store, rate, "11.00", at(2025, 2, 10))
        foreign = await make_transaction(other_store, rate, "12.00", at(2025, 1, 10))
        batcher = PayoutBatcher(session)
        payout = await batcher.create_payout(test_store.store_id, "2025-01")
        other_payout = await batcher.create_payout(other_store.store_id, "2025-01")
        cancelled = await make_transaction(
            test_store,
            rate,
            "13.00",
            at(2025, 1, 11),
            status="cancelled",
            payout_id=payout.commission_payout_id,
        )
        await session.commit()

        service = PayoutService(session)
        await service.update_status(payout.commission_payout_id, "processing", "op-1")
        await service.update_status(payout.commission_payout_id, "completed", "op-1")

        expected = {
            included.commission_transaction_id: "paid",
            february.commission_transaction_id: "calculated",
            foreign.commission_transaction_id: "calculated",
            cancelled.commission_transaction_id: "cancelled",
        }
        for txn in (included, february, foreign, cancelled):
            await session.refresh(txn)
            assert txn.status == expected[txn.commission_transaction_id]
        assert foreign.payout_id == other_payout.commission_payout_id
        assert february.payout_id is None

    async def test_straggler_stays_calculated_and_is_reported(
        self, session, test_store, make_rate, make_transaction, caplog
    ):
        """An entry recorded after the snapshot is not paid by completion."""
        rate = await make_rate()
        await make_transaction(test_store, rate, "10.00", at(2025, 1, 10))
        payout = await PayoutBatcher(session).create_payout(test_store.store_id, "2025-01")
        straggler = await make_transaction(test_store, rate, "4.00", at(2025, 1, 30))
        await session.commit()

        service = PayoutService(session)
        await service.update_status(payout.commission_payout_id, "processing", "op-1")
        with caplog.at_level(logging.WARNING, logger="commission_ledger"):
            payout = await service.update_status(
                payout.commission_payout_id, "completed", "op-1"
            )

        await session.refresh(straggler)
        assert straggler.status == "calculated"
        assert straggler.payout_id is None
        assert payout.total_commission == 10
        assert any("unbatched" in record.getMessage() for record in caplog.records)


class TestLedgerSync:
    async def test_cascade_failure_keeps_payout_completed(
        self, session, january_payout, caplog
    ):
        """A failing cascade is recorded on the payout, never rolled back."""
        payout, txns = january_payout
        payout_id = payout.commission_payout_id
        txn_ids = [t.commission_transaction_id for t in txns]
        service = PayoutService(session, ledger=ExplodingLedger(session))
        await service.update_status(payout_id, "processing", "op-1")

        with caplog.at_level(logging.ERROR, logger="commission_ledger"):
            payout = await service.update_status(payout_id, "completed", "op-1")

        assert payout.status == "completed"
        assert payout.ledger_sync_status == "failed"
        assert "ledger unavailable" in payout.ledger_sync_error
        assert any("ALERT" in record.getMessage() for record in caplog.records)

        ledger = TransactionLedger(session)
        for txn_id in txn_ids:
            txn = await ledger.get_transaction(txn_id)
            assert txn.status == "calculated"

    async def test_reconcile_repairs_failed_cascade(self, session, january_payout):
        payout, txns = january_payout
        payout_id = payout.commission_payout_id
        txn_ids = [t.commission_transaction_id for t in txns]
        failing = PayoutService(session, ledger=ExplodingLedger(session))
        await failing.update_status(payout_id, "processing", "op-1")
        await failing.update_status(payout_id, "completed", "op-1")

        payout = await PayoutService(session).reconcile_ledger(payout_id)

        assert payout.ledger_sync_status == "synced"
        assert payout.ledger_sync_error is None
        ledger = TransactionLedger(session)
        for txn_id in txn_ids:
            txn = await ledger.get_transaction(txn_id)
            await session.refresh(txn)
            assert txn.status == "paid"

    async def test_reconcile_stamps_paid_at_reconcile_time(
        self, session, january_payout, monkeypatch
    ):
        payout, txns = january_payout
        payout_id = payout.commission_payout_id
        failing = PayoutService(session, ledger=ExplodingLedger(session))
        await failing.update_status(payout_id, "processing", "op-1")
        await failing.update_status(payout_id, "completed", "op-1")
        reconciled_at = at(2030, 6, 1, 9)
        monkeypatch.setattr(payout_service, "utcnow", lambda: reconciled_at)

        payout = await PayoutService(session).reconcile_ledger(payout_id)

        await session.refresh(payout)
        assert as_utc(payout.processed_at) < reconciled_at
        for txn in txns:
            await session.refresh(txn)
            assert txn.status == "paid"
            assert as_utc(txn.paid_at) == reconciled_at

    async def test_reconcile_requires_completed(self, session, january_payout):
        payout, _ = january_payout

        with pytest.raises(ValidationError):
            await PayoutService(session).reconcile_ledger(payout.commission_payout_id)

    async def test_reconcile_synced_is_noop(self, session, january_payout):
        payout, _ = january_payout
        service = PayoutService(session)
        await service.update_status(payout.commission_payout_id, "processing", "op-1")
        await service.update_status(payout.commission_payout_id, "completed", "op-1")

        payout = await service.reconcile_ledger(payout.commission_payout_id)

        assert payout.ledger_sync_status == "synced"
