"""Asaas payment gateway client."""

from __future__ import annotations

import logging

import httpx

from commission_ledger.errors import GatewayError
from commission_ledger.gateway.base import GatewayPayment

logger = logging.getLogger(__name__)


class AsaasGateway:
    """Reads payments from the Asaas REST API.

    Authenticates with the ``access_token`` header. An injected
    ``httpx.AsyncClient`` is used as-is (tests pass one with a mock transport).
    """

    gateway_name = "asaas"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"access_token": api_key, "Content-Type": "application/json"},
            timeout=timeout,
        )

    async def get_payment(self, payment_id: str) -> GatewayPayment | None:
        try:
            response = await self._client.get(f"/payments/{payment_id}")
        except httpx.TimeoutException as exc:
            raise GatewayError(
                f"Gateway timed out fetching payment {payment_id}", payment_id=payment_id
            ) from exc
        except httpx.HTTPError as exc:
            raise GatewayError(
                f"Gateway request failed for payment {payment_id}: {exc}",
                payment_id=payment_id,
            ) from exc

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error(
                "Gateway returned %s for payment %s: %s",
                response.status_code,
                payment_id,
                response.text[:500],
            )
            raise GatewayError(
                f"Gateway returned {response.status_code} for payment {payment_id}",
                payment_id=payment_id,
                status_code=response.status_code,
            )

        try:
            return GatewayPayment.from_payload(response.json())
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as exc:
            raise GatewayError(
                f"Gateway returned an unreadable payment {payment_id}", payment_id=payment_id
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()
