"""Webhook ingestion guard - at-most-once processing of gateway notifications."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commission_ledger.errors import (
    AuthenticationError,
    GatewayError,
    NotFoundError,
    WebhookProcessingError,
)
from commission_ledger.gateway.base import GatewayPayment, PaymentGateway
from commission_ledger.models import Store, Subscription, WebhookEvent, utcnow
from commission_ledger.webhooks.events import (
    PaymentNotification,
    UnknownNotification,
    idempotency_key,
    parse_notification,
)
from commission_ledger.webhooks.signature import verify_signature

logger = logging.getLogger(__name__)

SUBSCRIPTION_PREFIX = "subscription_"

# Gateway payment status -> subscription status
ACTIVATING_STATUSES = frozenset({"RECEIVED", "CONFIRMED"})
CANCELLING_STATUSES = frozenset({"OVERDUE", "REFUNDED"})


def subscription_status_for(payment_status: str) -> str:
    status = payment_status.upper()
    if status in ACTIVATING_STATUSES:
        return "active"
    if status in CANCELLING_STATUSES:
        return "cancelled"
    return "pending"


@dataclass(frozen=True)
class WebhookAck:
    """What the gateway is told about a delivery."""

    received: bool = True
    duplicate: bool = False
    status: str = "completed"
    message: str | None = None
    subscription_id: UUID | None = None
    subscription_status: str | None = None


@dataclass(frozen=True)
class _Outcome:
    message: str
    subscription_id: UUID | None = None
    subscription_status: str | None = None


class WebhookIngestionGuard:
    """Verifies, de-duplicates and applies gateway notifications.

    Key invariants:
    1. The signature is checked over the raw body before any parsing
    2. The WebhookEvent row is committed as 'processing' before side effects;
       its unique idempotency_key decides which concurrent delivery proceeds
    3. A redelivery returns the stored outcome without re-running effects
    4. The gateway lookup is bounded by a timeout and holds no row locks
    5. Effects and the 'completed' mark commit together; any failure marks
       the event 'failed' so a redelivery can retry it
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        secret: str | None,
        timeout: float = 10.0,
        retry_failed: bool = True,
    ):
        self.session = session
        self.gateway = gateway
        self.secret = secret
        self.timeout = timeout
        self.retry_failed = retry_failed

    async def ingest(self, raw_body: bytes, signature: str | None) -> WebhookAck:
        """Process one delivery.

        Raises:
            AuthenticationError: Missing or invalid signature, or no secret configured
            ValidationError: Malformed payload
            GatewayError: Gateway lookup timed out or failed (event marked failed)
            NotFoundError: Gateway does not know the payment (event marked failed)
            WebhookProcessingError: Applying effects failed (event marked failed)
        """
        self._authenticate(raw_body, signature)

        notification = parse_notification(raw_body)
        if isinstance(notification, UnknownNotification):
            logger.warning(
                "Ignoring webhook event %s: %s", notification.event, notification.reason
            )
            return WebhookAck(status="ignored", message=notification.reason)

        key = idempotency_key(notification)
        duplicate = await self._claim(key, notification)
        if duplicate is not None:
            return duplicate

        payment = await self._lookup_payment(key, notification.payment_id)

        try:
            outcome = await self._apply(payment)
            await self._mark(key, "completed", result_message=outcome.message)
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            logger.exception("Webhook %s failed while applying effects", key)
            await self._fail(key, str(exc) or type(exc).__name__)
            raise WebhookProcessingError(
                "Failed to process webhook", idempotency_key=key
            ) from exc

        logger.info("Webhook %s processed: %s", key, outcome.message)
        return WebhookAck(
            status="completed",
            message=outcome.message,
            subscription_id=outcome.subscription_id,
            subscription_status=outcome.subscription_status,
        )

    def _authenticate(self, raw_body: bytes, signature: str | None) -> None:
        if not self.secret:
            logger.warning("Webhook rejected: no webhook secret configured")
            raise AuthenticationError("Webhook secret is not configured")
        if not signature:
            logger.warning("Webhook rejected: missing signature")
            raise AuthenticationError("Missing webhook signature")
        if not verify_signature(raw_body, signature, self.secret):
            logger.warning("Webhook rejected: invalid signature")
            raise AuthenticationError("Invalid webhook signature")

    async def _claim(self, key: str, notification: PaymentNotification) -> WebhookAck | None:
        """Insert the idempotency row. Returns an ack when the key is taken."""
        self.session.add(
            WebhookEvent(
                idempotency_key=key,
                event_type=notification.event,
                payment_id=notification.payment_id,
                status="processing",
            )
        )
        try:
            await self.session.commit()
            return None
        except IntegrityError:
            await self.session.rollback()

        existing = await self.session.scalar(
            select(WebhookEvent)
            .where(WebhookEvent.idempotency_key == key)
            .execution_options(populate_existing=True)
        )
        if existing is None:
            raise WebhookProcessingError(
                "Idempotency record vanished after conflict", idempotency_key=key
            )

        if existing.status == "failed" and self.retry_failed:
            result = await self.session.execute(
                update(WebhookEvent)
                .where(
                    WebhookEvent.idempotency_key == key,
                    WebhookEvent.status == "failed",
                )
                .values(
                    status="processing",
                    attempts=WebhookEvent.attempts + 1,
                    error_message=None,
                    processed_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            if result.rowcount == 1:
                logger.info("Re-claimed failed webhook %s for retry", key)
                return None
            await self.session.refresh(existing)

        logger.info("Duplicate webhook %s ignored, stored status %s", key, existing.status)
        return WebhookAck(
            duplicate=True,
            status=existing.status,
            message=existing.result_message or existing.error_message or "Already processed",
        )

    async def _lookup_payment(self, key: str, payment_id: str) -> GatewayPayment:
        try:
            payment = await asyncio.wait_for(
                self.gateway.get_payment(payment_id), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            logger.error("Gateway lookup for payment %s timed out", payment_id)
            await self._fail(key, "Gateway lookup timed out")
            raise GatewayError(
                f"Gateway timed out fetching payment {payment_id}", payment_id=payment_id
            ) from exc
        except GatewayError as exc:
            logger.error("Gateway lookup for payment %s failed: %s", payment_id, exc.message)
            await self._fail(key, exc.message)
            raise
        except Exception as exc:
            logger.exception("Gateway lookup for payment %s failed", payment_id)
            await self._fail(key, f"Gateway lookup failed: {type(exc).__name__}: {exc}")
            raise GatewayError(
                f"Gateway lookup failed for payment {payment_id}", payment_id=payment_id
            ) from exc

        if payment is None:
            logger.error("Payment %s not found in gateway", payment_id)
            await self._fail(key, "Payment not found in gateway")
            raise NotFoundError("Payment not found", payment_id=payment_id)
        return payment

    async def _apply(self, payment: GatewayPayment) -> _Outcome:
        reference = payment.external_reference
        if not reference or not reference.startswith(SUBSCRIPTION_PREFIX):
            return _Outcome(message="Not a subscription payment; nothing to apply")

        parts = reference.split("_", 2)
        if len(parts) != 3 or not parts[2]:
            logger.warning("Malformed subscription reference %r", reference)
            return _Outcome(message="Malformed subscription reference; nothing to apply")
        try:
            store_id = UUID(parts[1])
        except ValueError:
            logger.warning("Subscription reference %r has no valid store id", reference)
            return _Outcome(message="Malformed subscription reference; nothing to apply")
        plan_slug = parts[2]

        subscription = await self.session.scalar(
            select(Subscription)
            .where(
                Subscription.store_id == store_id,
                Subscription.plan_slug == plan_slug,
                Subscription.status == "pending",
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        if subscription is None:
            logger.warning("No pending subscription matches reference %r", reference)
            return _Outcome(message="Subscription not found; nothing to apply")

        new_status = subscription_status_for(payment.status)
        subscription.status = new_status
        subscription.payment_id = payment.id

        if new_status == "active":
            store = await self.session.get(Store, store_id)
            if store is not None:
                store.plan = plan_slug
                store.plan_updated_at = utcnow()
            await self.session.execute(
                update(Subscription)
                .where(
                    Subscription.store_id == store_id,
                    Subscription.status == "active",
                    Subscription.subscription_id != subscription.subscription_id,
                )
                .values(status="cancelled", cancelled_reason="New subscription activated")
                .execution_options(synchronize_session=False)
            )
        elif new_status == "cancelled":
            subscription.cancelled_reason = f"Payment {payment.status.lower()}"

        await self.session.flush()
        return _Outcome(
            message=f"Subscription {new_status}",
            subscription_id=subscription.subscription_id,
            subscription_status=new_status,
        )

    async def _mark(self, key: str, status: str, **values) -> None:
        await self.session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.idempotency_key == key)
            .values(status=status, processed_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )

    async def _fail(self, key: str, message: str) -> None:
        await self._mark(key, "failed", error_message=message[:2000])
        await self.session.commit()
