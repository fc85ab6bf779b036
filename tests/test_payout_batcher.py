"""Tests for payout batching."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from commission_ledger.errors import (
    ConflictError,
    EmptyPayoutError,
    NotFoundError,
    ValidationError,
)
from commission_ledger.models import CommissionPayout
from commission_ledger.services.payout_batcher import PayoutBatcher
from commission_ledger.services.periods import period_bounds

from helpers import at


class TestPeriodBounds:
    def test_bounds_are_half_open_months(self):
        assert period_bounds("2025-01") == (at(2025, 1, 1, 0), at(2025, 2, 1, 0))
        assert period_bounds("2024-12") == (at(2024, 12, 1, 0), at(2025, 1, 1, 0))

    @pytest.mark.parametrize("period", ["2025-13", "2025-1", "25-01", "", "2025/01"])
    def test_malformed_period_rejected(self, period):
        with pytest.raises(ValidationError):
            period_bounds(period)


class TestCreatePayout:
    async def test_snapshot_of_calculated_transactions(
        self, session, test_store, make_rate, make_transaction
    ):
        """Three calculated entries summing to 120.00 make one pending payout."""
        rate = await make_rate()
        txns = [
            await make_transaction(test_store, rate, "50.00", at(2025, 1, 3)),
            await make_transaction(test_store, rate, "45.50", at(2025, 1, 15)),
            await make_transaction(test_store, rate, "24.50", at(2025, 1, 31, 23)),
        ]

        payout = await PayoutBatcher(session).create_payout(test_store.store_id, "2025-01")

        assert payout.total_commission == Decimal("120.00")
        assert payout.total_payout == Decimal("120.00")
        assert payout.transaction_count == 3
        assert payout.status == "pending"
        assert all(t.payout_id == payout.commission_payout_id for t in txns)

    async def test_excludes_other_periods_stores_and_statuses(
        self, session, test_store, other_store, make_rate, make_transaction
    ):
        rate = await make_rate()
        included = await make_transaction(test_store, rate, "10.00", at(2025, 1, 1, 0))
        next_month = await make_transaction(test_store, rate, "20.00", at(2025, 2, 1, 0))
        other = await make_transaction(other_store, rate, "30.00", at(2025, 1, 10))
        cancelled = await make_transaction(
            test_store, rate, "40.00", at(2025, 1, 10), status="cancelled"
        )
        paid = await make_transaction(test_store, rate, "50.00", at(2025, 1, 10), status="paid")

        payout = await PayoutBatcher(session).create_payout(test_store.store_id, "2025-01")

        assert payout.total_commission == Decimal("10.00")
        assert payout.transaction_count == 1
        assert included.payout_id == payout.commission_payout_id
        for txn in (next_month, other, cancelled, paid):
            assert txn.payout_id is None

    async def test_duplicate_payout_conflicts(
        self, session, test_store, make_rate, make_transaction
    ):
        """Second call for the same (store, period) fails."""
        rate = await make_rate()
        await make_transaction(test_store, rate, "10.00", at(2025, 1, 10))
        batcher = PayoutBatcher(session)
        await batcher.create_payout(test_store.store_id, "2025-01")

        await make_transaction(test_store, rate, "5.00", at(2025, 1, 20))
        with pytest.raises(ConflictError):
            await batcher.create_payout(test_store.store_id, "2025-01")

        payouts, total = await batcher.list_payouts(store_id=test_store.store_id)
        assert total == 1

    async def test_store_period_unique_in_schema(self, session, test_store):
        """The datastore, not the pre-check, settles racing creators."""
        for _ in range(2):
            session.add(
                CommissionPayout(
                    store_id=test_store.store_id,
                    period="2025-01",
                    total_commission=Decimal("1.00"),
                    total_payout=Decimal("1.00"),
                    transaction_count=1,
                    status="pending",
                )
            )
        with pytest.raises(IntegrityError):
            await session.flush()

    async def test_empty_period_rejected(self, session, test_store):
        """Nothing to pay is an EmptyPayoutError (a ValidationError)."""
        with pytest.raises(EmptyPayoutError) as exc_info:
            await PayoutBatcher(session).create_payout(test_store.store_id, "2025-01")

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.status_code == 409

    async def test_zero_sum_rejected(self, session, test_store, make_rate, make_transaction):
        rate = await make_rate(commission_type="fixed", commission_value="0")
        await make_transaction(test_store, rate, "0.00", at(2025, 1, 10))

        with pytest.raises(EmptyPayoutError):
            await PayoutBatcher(session).create_payout(test_store.store_id, "2025-01")

    async def test_unknown_store(self, session):
        with pytest.raises(NotFoundError):
            await PayoutBatcher(session).create_payout(uuid4(), "2025-01")

    async def test_payment_method_and_notes_kept(
        self, session, test_store, make_rate, make_transaction
    ):
        rate = await make_rate()
        await make_transaction(test_store, rate, "10.00", at(2025, 1, 10))

        payout = await PayoutBatcher(session).create_payout(
            test_store.store_id, "2025-01", payment_method="pix", notes="January run"
        )

        assert payout.payment_method == "pix"
        assert payout.notes == "January run"


class TestUnbatched:
    async def test_late_entries_are_reported_not_absorbed(
        self, session, test_store, make_rate, make_transaction
    ):
        """Entries recorded after the snapshot stay out of the payout."""
        rate = await make_rate()
        await make_transaction(test_store, rate, "10.00", at(2025, 1, 10))
        batcher = PayoutBatcher(session)
        payout = await batcher.create_payout(test_store.store_id, "2025-01")

        late = await make_transaction(test_store, rate, "7.00", at(2025, 1, 28))

        assert payout.total_commission == Decimal("10.00")
        unbatched = await batcher.find_unbatched(test_store.store_id, "2025-01")
        assert [t.commission_transaction_id for t in unbatched] == [
            late.commission_transaction_id
        ]

    async def test_carryover_sweeps_earlier_unbatched(
        self, session, test_store, make_rate, make_transaction
    ):
        """A carry-over payout picks up stragglers of earlier periods."""
        rate = await make_rate()
        await make_transaction(test_store, rate, "10.00", at(2025, 1, 10))
        batcher = PayoutBatcher(session)
        await batcher.create_payout(test_store.store_id, "2025-01")
        late = await make_transaction(test_store, rate, "7.00", at(2025, 1, 28))
        await make_transaction(test_store, rate, "3.00", at(2025, 2, 2))

        payout = await batcher.create_payout(
            test_store.store_id, "2025-02", include_carryover=True
        )

        assert payout.total_commission == Decimal("10.00")
        assert payout.transaction_count == 2
        assert late.payout_id == payout.commission_payout_id
        assert await batcher.find_unbatched(test_store.store_id, "2025-01") == []
