"""Payment gateway adapters."""

from commission_ledger.gateway.asaas import AsaasGateway
from commission_ledger.gateway.base import GatewayPayment, PaymentGateway
from commission_ledger.gateway.stub import StubGateway

__all__ = [
    "AsaasGateway",
    "GatewayPayment",
    "PaymentGateway",
    "StubGateway",
]
