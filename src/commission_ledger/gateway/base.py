"""Base protocol and types for payment gateway clients.

All gateway adapters must implement the PaymentGateway protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol


@dataclass(frozen=True)
class GatewayPayment:
    """A payment as reported by the gateway."""

    id: str
    status: str  # PENDING/RECEIVED/CONFIRMED/OVERDUE/REFUNDED/...
    external_reference: str | None = None
    value: Decimal | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> GatewayPayment:
        value = payload.get("value")
        return cls(
            id=str(payload["id"]),
            status=str(payload.get("status", "")).upper(),
            external_reference=payload.get("externalReference"),
            value=None if value is None else Decimal(str(value)),
            raw_payload=payload,
        )


class PaymentGateway(Protocol):
    """Protocol for payment gateway adapters.

    The webhook guard only reads payments back to confirm what a
    notification claims; it never trusts the notification body for status.
    """

    gateway_name: str

    async def get_payment(self, payment_id: str) -> GatewayPayment | None:
        """Fetch a payment.

        Returns:
            The payment, or None if the gateway does not know it.

        Raises:
            GatewayError: On transport failures or unexpected responses.
        """
        ...
