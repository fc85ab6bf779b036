"""Commission ledger and payout reconciliation engine."""

__version__ = "0.1.0"
