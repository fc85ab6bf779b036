"""Payment gateway webhook endpoint."""

from fastapi import APIRouter, Request

from commission_ledger.api.dependencies import DbSession, GatewayDep, SettingsDep
from commission_ledger.api.schemas import ErrorResponse, WebhookAckResponse
from commission_ledger.webhooks.ingestion import WebhookIngestionGuard
from commission_ledger.webhooks.signature import extract_signature

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/webhook",
    response_model=WebhookAckResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def receive_payment_webhook(
    request: Request,
    db: DbSession,
    gateway: GatewayDep,
    settings: SettingsDep,
) -> WebhookAckResponse:
    """Receive a gateway notification.

    The body is read raw so the signature is verified before parsing.
    """
    raw_body = await request.body()
    guard = WebhookIngestionGuard(
        db,
        gateway,
        secret=settings.webhook_secret,
        timeout=settings.gateway_timeout_seconds,
        retry_failed=settings.webhook_retry_failed,
    )
    ack = await guard.ingest(raw_body, extract_signature(request.headers))
    return WebhookAckResponse.model_validate(ack)
