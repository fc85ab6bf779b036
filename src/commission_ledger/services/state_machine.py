"""Payout state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from commission_ledger.errors import InvalidTransitionError

if TYPE_CHECKING:
    from commission_ledger.models import CommissionPayout


class PayoutStatus(str, Enum):
    """Payout status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionStatus(str, Enum):
    """Commission transaction status values."""

    CALCULATED = "calculated"
    PAID = "paid"
    CANCELLED = "cancelled"


class PayoutStateMachine:
    """State machine for payout status transitions.

    Allowed transitions:
    - pending → processing
    - pending → failed
    - processing → completed
    - processing → failed
    - failed → pending (retry)
    """

    # {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayoutStatus.PENDING: [PayoutStatus.PROCESSING, PayoutStatus.FAILED],
        PayoutStatus.PROCESSING: [PayoutStatus.COMPLETED, PayoutStatus.FAILED],
        PayoutStatus.COMPLETED: [],  # Terminal state
        PayoutStatus.FAILED: [PayoutStatus.PENDING],
    }

    # Entering these stamps processed_at / processed_by
    STAMPS_PROCESSED = {
        PayoutStatus.PROCESSING,
        PayoutStatus.COMPLETED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if to_status not in {s.value for s in PayoutStatus}:
            raise InvalidTransitionError(from_status, to_status, "unknown status")
        if not cls.can_transition(from_status, to_status):
            if cls.is_terminal(from_status):
                reason = "payout is terminal"
            else:
                reason = "allowed: " + ", ".join(cls.get_next_statuses(from_status))
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [str(s.value) for s in cls.VALID_TRANSITIONS.get(current_status, [])]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.VALID_TRANSITIONS and not cls.VALID_TRANSITIONS[status]

    @classmethod
    def stamps_processed(cls, status: str) -> bool:
        """Check if entering this status records who processed the payout."""
        return status in cls.STAMPS_PROCESSED

    @classmethod
    def triggers_cascade(cls, to_status: str) -> bool:
        """Completion flips the payout's transactions to paid."""
        return to_status == PayoutStatus.COMPLETED

    @classmethod
    def validate_payout_for_transition(
        cls, payout: CommissionPayout, to_status: str
    ) -> list[str]:
        """Validate a payout for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        if not cls.can_transition(payout.status, to_status):
            errors.append(f"Cannot transition from '{payout.status}' to '{to_status}'")
            return errors

        if to_status == PayoutStatus.COMPLETED and payout.transaction_count <= 0:
            errors.append("Payout has no transactions to settle")

        return errors
