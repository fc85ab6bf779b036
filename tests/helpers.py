"""Shared test helpers."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from commission_ledger.webhooks.signature import compute_signature

WEBHOOK_SECRET = "whsec_test"

OPERATOR = {"X-Actor-ID": "operator-1", "X-Actor-Role": "admin"}
VIEWER = {"X-Actor-ID": "viewer-1"}


def at(year: int, month: int, day: int, hour: int = 12) -> datetime:
    """UTC timestamp helper."""
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def webhook_body(
    payment_id: str = "pay_123",
    event: str = "PAYMENT_RECEIVED",
    date_created: str | None = "2025-01-15 10:00:00",
    **payment: Any,
) -> bytes:
    body: dict[str, Any] = {"event": event, "payment": {"id": payment_id, **payment}}
    if date_created is not None:
        body["dateCreated"] = date_created
    return json.dumps(body).encode()


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return "sha256=" + compute_signature(secret, body)
