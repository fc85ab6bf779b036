"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PERIOD_REGEX = r"^\d{4}-(0[1-9]|1[0-2])$"


# ============================================================================
# Base schemas
# ============================================================================


class RequestBody(BaseModel):
    """Request bodies accept snake_case or camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Commission rate schemas
# ============================================================================


class CommissionRateCreate(RequestBody):
    """Schema for creating a commission rate."""

    category_id: str = Field(min_length=1)
    commission_type: Literal["percentage", "fixed"]
    commission_value: Decimal = Field(ge=0)
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    is_active: bool = True


class CommissionRateUpdate(RequestBody):
    """Schema for a partial rate update; omitted fields are left unchanged."""

    category_id: str | None = Field(default=None, min_length=1)
    commission_type: Literal["percentage", "fixed"] | None = None
    commission_value: Decimal | None = Field(default=None, ge=0)
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    is_active: bool | None = None


class CommissionRateResponse(BaseModel):
    """Schema for commission rate response."""

    model_config = ConfigDict(from_attributes=True)

    commission_rate_id: UUID
    category_id: str
    commission_type: str
    commission_value: Decimal
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    is_active: bool
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class CommissionRateListResponse(BaseModel):
    """Schema for listing commission rates."""

    items: list[CommissionRateResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Transaction schemas
# ============================================================================


class TransactionCreate(RequestBody):
    """Order completion event to record commission for."""

    store_id: UUID
    category_id: str = Field(min_length=1)
    order_id: str = Field(min_length=1)
    order_amount: Decimal = Field(ge=0)
    recorded_at: datetime | None = None


class TransactionResponse(BaseModel):
    """Schema for commission transaction response."""

    model_config = ConfigDict(from_attributes=True)

    commission_transaction_id: UUID
    store_id: UUID
    category_id: str
    commission_rate_id: UUID
    order_id: str
    order_amount: Decimal
    commission_rate_applied: Decimal
    commission_amount: Decimal
    status: str
    payout_id: UUID | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime


class TransactionListResponse(BaseModel):
    """Schema for listing commission transactions."""

    items: list[TransactionResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Statistics schemas
# ============================================================================


class CommissionTotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_commission: Decimal
    total_orders: int
    total_order_value: Decimal
    average_commission_rate: Decimal
    pending_commission: Decimal
    paid_commission: Decimal


class StatsBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    label: str | None = None
    totals: CommissionTotalsResponse


class CommissionStatsResponse(BaseModel):
    """Commission statistics with grouped buckets."""

    model_config = ConfigDict(from_attributes=True)

    group_by: str
    period: str | None = None
    summary: CommissionTotalsResponse
    buckets: list[StatsBucketResponse]


# ============================================================================
# Payout schemas
# ============================================================================


class PayoutCreate(RequestBody):
    """Schema for creating a payout."""

    store_id: UUID
    period: str = Field(pattern=PERIOD_REGEX)
    payment_method: str | None = None
    notes: str | None = None
    include_carryover: bool = False


class PayoutStatusUpdate(RequestBody):
    """Schema for a payout status transition."""

    status: Literal["pending", "processing", "completed", "failed"]
    notes: str | None = None
    payment_reference: str | None = None


class PayoutResponse(BaseModel):
    """Schema for payout response."""

    model_config = ConfigDict(from_attributes=True)

    commission_payout_id: UUID
    store_id: UUID
    period: str
    total_commission: Decimal
    total_payout: Decimal
    transaction_count: int
    status: str
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    ledger_sync_status: str | None = None
    ledger_sync_error: str | None = None
    created_at: datetime
    updated_at: datetime


class PayoutListResponse(BaseModel):
    """Schema for listing payouts."""

    items: list[PayoutResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Webhook schemas
# ============================================================================


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the gateway."""

    model_config = ConfigDict(from_attributes=True)

    received: bool = True
    duplicate: bool = False
    status: str
    message: str | None = None
    subscription_id: UUID | None = None
    subscription_status: str | None = None
