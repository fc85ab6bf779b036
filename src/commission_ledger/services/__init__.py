"""Commission ledger services."""

from commission_ledger.services.ledger_service import (
    CommissionStats,
    CommissionTotals,
    StatsBucket,
    TransactionLedger,
)
from commission_ledger.services.payout_batcher import PayoutBatcher
from commission_ledger.services.payout_service import PayoutService
from commission_ledger.services.rate_service import CommissionRateService
from commission_ledger.services.state_machine import (
    PayoutStateMachine,
    PayoutStatus,
    TransactionStatus,
)

__all__ = [
    "CommissionRateService",
    "CommissionStats",
    "CommissionTotals",
    "PayoutBatcher",
    "PayoutService",
    "PayoutStateMachine",
    "PayoutStatus",
    "StatsBucket",
    "TransactionLedger",
    "TransactionStatus",
]
