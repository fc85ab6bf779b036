"""In-memory gateway for local development and testing."""

from __future__ import annotations

import asyncio
from decimal import Decimal

from commission_ledger.errors import GatewayError
from commission_ledger.gateway.base import GatewayPayment


class StubGateway:
    """Stub gateway backed by a dict of payments.

    ``delay`` simulates a slow gateway and ``fail_with`` a broken one.
    """

    gateway_name = "stub"

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.fail_with: str | None = None
        self.lookups: list[str] = []
        self._payments: dict[str, GatewayPayment] = {}

    def add_payment(
        self,
        payment_id: str,
        status: str,
        external_reference: str | None = None,
        value: Decimal | None = None,
    ) -> GatewayPayment:
        payment = GatewayPayment(
            id=payment_id,
            status=status.upper(),
            external_reference=external_reference,
            value=value,
        )
        self._payments[payment_id] = payment
        return payment

    async def get_payment(self, payment_id: str) -> GatewayPayment | None:
        self.lookups.append(payment_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise GatewayError(self.fail_with, payment_id=payment_id)
        return self._payments.get(payment_id)
