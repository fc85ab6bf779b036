"""Commission transaction and statistics API endpoints."""

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from commission_ledger.api.dependencies import (
    CacheDep,
    CurrentActor,
    DbSession,
    OperatorActor,
    SettingsDep,
)
from commission_ledger.api.schemas import (
    CommissionStatsResponse,
    ErrorResponse,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from commission_ledger.services.ledger_service import TransactionLedger

router = APIRouter(tags=["transactions"])


def _ledger(db, cache, settings) -> TransactionLedger:
    return TransactionLedger(
        db,
        cache=cache,
        cache_ttl=settings.rate_cache_ttl_seconds,
        require_active_subscription=settings.require_active_subscription,
    )


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def record_transaction(
    db: DbSession,
    cache: CacheDep,
    settings: SettingsDep,
    actor: CurrentActor,
    payload: TransactionCreate,
) -> TransactionResponse:
    """Record commission for a completed order."""
    txn = await _ledger(db, cache, settings).record(
        store_id=payload.store_id,
        category_id=payload.category_id,
        order_id=payload.order_id,
        order_amount=payload.order_amount,
        recorded_at=payload.recorded_at,
    )
    await db.commit()
    await db.refresh(txn)
    return TransactionResponse.model_validate(txn)


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    db: DbSession,
    cache: CacheDep,
    settings: SettingsDep,
    actor: CurrentActor,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    store_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    category_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> TransactionListResponse:
    """List commission transactions with optional filters."""
    items, total = await _ledger(db, cache, settings).list_transactions(
        store_id=store_id,
        status=status_filter,
        category_id=category_id,
        start=start,
        end=end,
        page=page,
        page_size=page_size,
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/transactions/{transaction_id}/cancel",
    response_model=TransactionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def cancel_transaction(
    db: DbSession,
    cache: CacheDep,
    settings: SettingsDep,
    actor: OperatorActor,
    transaction_id: Annotated[UUID, Path()],
) -> TransactionResponse:
    """Cancel a calculated transaction not yet claimed by a payout."""
    txn = await _ledger(db, cache, settings).cancel(transaction_id)
    await db.commit()
    return TransactionResponse.model_validate(txn)


@router.get(
    "/commission/stats",
    response_model=CommissionStatsResponse,
    responses={400: {"model": ErrorResponse}},
)
async def commission_stats(
    db: DbSession,
    cache: CacheDep,
    settings: SettingsDep,
    actor: CurrentActor,
    store_id: UUID | None = None,
    period: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    group_by: Literal["month", "category", "store"] = "month",
) -> CommissionStatsResponse:
    """Commission totals, grouped by month, category or store."""
    stats = await _ledger(db, cache, settings).summarize(
        store_id=store_id, period=period, start=start, end=end, group_by=group_by
    )
    return CommissionStatsResponse.model_validate(stats)
