"""Commission calculation."""

from commission_ledger.calculators.rate_resolver import (
    CommissionType,
    RateNotFoundError,
    RateResolver,
    ResolvedRate,
    compute_commission,
    validate_rate_terms,
)

__all__ = [
    "CommissionType",
    "RateNotFoundError",
    "RateResolver",
    "ResolvedRate",
    "compute_commission",
    "validate_rate_terms",
]
