"""Commission rate API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from commission_ledger.api.dependencies import CacheDep, CurrentActor, DbSession, OperatorActor
from commission_ledger.api.schemas import (
    CommissionRateCreate,
    CommissionRateListResponse,
    CommissionRateResponse,
    CommissionRateUpdate,
    ErrorResponse,
)
from commission_ledger.services.rate_service import CommissionRateService

router = APIRouter(prefix="/commission-rates", tags=["commission-rates"])

# Fields a client may not clear by sending null
_REQUIRED_FIELDS = {"category_id", "commission_type", "commission_value", "is_active"}


@router.get("", response_model=CommissionRateListResponse)
async def list_commission_rates(
    db: DbSession,
    cache: CacheDep,
    actor: CurrentActor,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    category_id: str | None = None,
    is_active: bool | None = None,
) -> CommissionRateListResponse:
    """List commission rates with optional filters."""
    service = CommissionRateService(db, cache)
    rates, total = await service.list_rates(
        category_id=category_id, is_active=is_active, page=page, page_size=page_size
    )
    return CommissionRateListResponse(
        items=[CommissionRateResponse.model_validate(r) for r in rates],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{rate_id}",
    response_model=CommissionRateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_commission_rate(
    db: DbSession,
    cache: CacheDep,
    actor: CurrentActor,
    rate_id: Annotated[UUID, Path()],
) -> CommissionRateResponse:
    """Get a commission rate by ID."""
    rate = await CommissionRateService(db, cache).get_rate(rate_id)
    return CommissionRateResponse.model_validate(rate)


@router.post(
    "",
    response_model=CommissionRateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_commission_rate(
    db: DbSession,
    cache: CacheDep,
    actor: OperatorActor,
    payload: CommissionRateCreate,
) -> CommissionRateResponse:
    """Create a commission rate. A category has at most one active rate."""
    service = CommissionRateService(db, cache)
    rate = await service.create_rate(**payload.model_dump(), created_by=actor.actor_id)
    await service.commit()
    await db.refresh(rate)
    return CommissionRateResponse.model_validate(rate)


@router.put(
    "/{rate_id}",
    response_model=CommissionRateResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_commission_rate(
    db: DbSession,
    cache: CacheDep,
    actor: OperatorActor,
    rate_id: Annotated[UUID, Path()],
    payload: CommissionRateUpdate,
) -> CommissionRateResponse:
    """Update a commission rate. Omitted fields keep their values."""
    changes = {
        name: value
        for name, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or name not in _REQUIRED_FIELDS
    }
    service = CommissionRateService(db, cache)
    rate = await service.update_rate(rate_id, **changes)
    await service.commit()
    await db.refresh(rate)
    return CommissionRateResponse.model_validate(rate)


@router.delete(
    "/{rate_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_commission_rate(
    db: DbSession,
    cache: CacheDep,
    actor: OperatorActor,
    rate_id: Annotated[UUID, Path()],
) -> Response:
    """Delete a rate no transaction references; referenced rates must be deactivated."""
    service = CommissionRateService(db, cache)
    await service.delete_rate(rate_id)
    await service.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
