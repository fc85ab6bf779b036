"""Payout API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from commission_ledger.api.dependencies import CurrentActor, DbSession, OperatorActor
from commission_ledger.api.schemas import (
    ErrorResponse,
    PayoutCreate,
    PayoutListResponse,
    PayoutResponse,
    PayoutStatusUpdate,
)
from commission_ledger.services.payout_batcher import PayoutBatcher
from commission_ledger.services.payout_service import PayoutService

router = APIRouter(prefix="/payouts", tags=["payouts"])


# ============================================================================
# Payout batching
# ============================================================================


@router.post(
    "",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_payout(
    db: DbSession,
    actor: OperatorActor,
    payload: PayoutCreate,
) -> PayoutResponse:
    """Batch a store's calculated commission for a period into a pending payout."""
    payout = await PayoutBatcher(db).create_payout(
        store_id=payload.store_id,
        period=payload.period,
        payment_method=payload.payment_method,
        notes=payload.notes,
        include_carryover=payload.include_carryover,
    )
    await db.commit()
    await db.refresh(payout)
    return PayoutResponse.model_validate(payout)


@router.get("", response_model=PayoutListResponse)
async def list_payouts(
    db: DbSession,
    actor: CurrentActor,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    store_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    period: str | None = None,
) -> PayoutListResponse:
    """List payouts with optional filters."""
    payouts, total = await PayoutBatcher(db).list_payouts(
        store_id=store_id,
        status=status_filter,
        period=period,
        page=page,
        page_size=page_size,
    )
    return PayoutListResponse(
        items=[PayoutResponse.model_validate(p) for p in payouts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{payout_id}",
    response_model=PayoutResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payout(
    db: DbSession,
    actor: CurrentActor,
    payout_id: Annotated[UUID, Path()],
) -> PayoutResponse:
    """Get a payout by ID."""
    payout = await PayoutBatcher(db).get_payout(payout_id)
    return PayoutResponse.model_validate(payout)


# ============================================================================
# Payout state transitions
# ============================================================================


@router.patch(
    "/{payout_id}/status",
    response_model=PayoutResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def update_payout_status(
    db: DbSession,
    actor: OperatorActor,
    payout_id: Annotated[UUID, Path()],
    payload: PayoutStatusUpdate,
) -> PayoutResponse:
    """Move a payout along its lifecycle; completion marks its transactions paid."""
    payout = await PayoutService(db).update_status(
        payout_id,
        payload.status,
        actor_id=actor.actor_id,
        notes=payload.notes,
        payment_reference=payload.payment_reference,
    )
    return PayoutResponse.model_validate(payout)


@router.post(
    "/{payout_id}/reconcile",
    response_model=PayoutResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def reconcile_payout_ledger(
    db: DbSession,
    actor: OperatorActor,
    payout_id: Annotated[UUID, Path()],
) -> PayoutResponse:
    """Re-run the paid cascade for a completed payout whose ledger sync failed."""
    payout = await PayoutService(db).reconcile_ledger(payout_id)
    return PayoutResponse.model_validate(payout)
