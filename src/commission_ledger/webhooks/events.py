"""Typed view of gateway notification payloads.

Payloads are parsed into a closed set of shapes: a payment notification or
an unknown notification. Unknown notifications are acknowledged and ignored.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Union

from commission_ledger.errors import ValidationError

PAYMENT_EVENT_PREFIX = "PAYMENT_"


@dataclass(frozen=True)
class PaymentNotification:
    """``PAYMENT_*`` event referencing a gateway payment."""

    event: str
    payment_id: str
    date_created: str | None = None
    payment: dict[str, Any] = field(default_factory=dict)

    kind = "payment"


@dataclass(frozen=True)
class UnknownNotification:
    """Any other event; acknowledged without side effects."""

    event: str | None
    reason: str

    kind = "unknown"


Notification = Union[PaymentNotification, UnknownNotification]


def parse_notification(raw_body: bytes) -> Notification:
    """Parse a raw webhook body.

    Raises:
        ValidationError: Malformed JSON, a non-object body, or a payment
            event whose payment carries no id
    """
    try:
        body = json.loads(raw_body or b"{}")
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError("Invalid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object")

    event = body.get("event")
    payment = body.get("payment")
    if not isinstance(event, str) or not event:
        return UnknownNotification(event=None, reason="Missing event type")
    if not event.startswith(PAYMENT_EVENT_PREFIX):
        return UnknownNotification(event=event, reason=f"Unhandled event type {event}")
    if not isinstance(payment, dict):
        return UnknownNotification(event=event, reason="Event carries no payment")

    payment_id = payment.get("id")
    if not payment_id:
        raise ValidationError("Payment ID not found", event=event)

    date_created = body.get("dateCreated")
    return PaymentNotification(
        event=event,
        payment_id=str(payment_id),
        date_created=None if date_created is None else str(date_created),
        payment=payment,
    )


def idempotency_key(notification: PaymentNotification, now_ms: int | None = None) -> str:
    """Deterministic key for one logical delivery.

    Falls back to the receive time when the payload has no ``dateCreated``;
    such deliveries cannot be recognised as duplicates.
    """
    stamp = notification.date_created
    if stamp is None:
        stamp = str(now_ms if now_ms is not None else int(time.time() * 1000))
    return f"webhook_{notification.event}_{notification.payment_id}_{stamp}"
