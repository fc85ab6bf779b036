"""Gateway webhook handling."""

from commission_ledger.webhooks.events import (
    Notification,
    PaymentNotification,
    UnknownNotification,
    idempotency_key,
    parse_notification,
)
from commission_ledger.webhooks.ingestion import (
    WebhookAck,
    WebhookIngestionGuard,
    subscription_status_for,
)
from commission_ledger.webhooks.signature import (
    SIGNATURE_HEADERS,
    compute_signature,
    extract_signature,
    verify_signature,
)

__all__ = [
    "Notification",
    "PaymentNotification",
    "SIGNATURE_HEADERS",
    "UnknownNotification",
    "WebhookAck",
    "WebhookIngestionGuard",
    "compute_signature",
    "extract_signature",
    "idempotency_key",
    "parse_notification",
    "subscription_status_for",
    "verify_signature",
]
