"""Error taxonomy for the commission ledger.

Every error carries the HTTP status and machine code it is rendered with by
the API layer. Services raise these; they never build HTTP responses.
"""

from __future__ import annotations

from typing import Any


class CommissionError(Exception):
    """Base class for all commission ledger errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)


class ValidationError(CommissionError):
    """Malformed input, invalid rate bounds or a forbidden state change."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """Raised when an invalid payout state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=from_status, to_status=to_status)


class EmptyPayoutError(ValidationError):
    """Raised when a payout period has no calculated commission to pay."""

    status_code = 409
    code = "EMPTY_PAYOUT"


class NotFoundError(CommissionError):
    """A rate, payout, store, transaction or payment does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(CommissionError):
    """Duplicate payout, category collision or delete-with-dependents."""

    status_code = 409
    code = "CONFLICT"


class AuthenticationError(CommissionError):
    """Missing or invalid credentials (webhook signature, actor header)."""

    status_code = 401
    code = "UNAUTHENTICATED"


class PermissionDeniedError(CommissionError):
    """Caller is authenticated but lacks operator privilege."""

    status_code = 403
    code = "FORBIDDEN"


class GatewayError(CommissionError):
    """Timeout or unexpected response from the payment gateway."""

    status_code = 502
    code = "GATEWAY_ERROR"


class WebhookProcessingError(CommissionError):
    """Side effects of a webhook failed; the gateway is expected to retry."""

    status_code = 500
    code = "WEBHOOK_FAILED"
