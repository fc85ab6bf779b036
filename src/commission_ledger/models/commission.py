"""Commission rate, ledger transaction and payout models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from commission_ledger.models.store import Store


class CommissionRate(Base, TimestampMixin, UpdatedAtMixin):
    """Commission rule for a product category.

    At most one active rate exists per category; the partial unique index
    enforces it in the datastore.
    """

    __tablename__ = "commission_rate"

    commission_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    category_id: Mapped[str] = mapped_column(String, nullable=False)
    commission_type: Mapped[str] = mapped_column(String, nullable=False)
    commission_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "commission_type IN ('percentage', 'fixed')",
            name="commission_rate_type_check",
        ),
        CheckConstraint("commission_value >= 0", name="commission_rate_value_check"),
        CheckConstraint(
            "min_amount IS NULL OR max_amount IS NULL OR min_amount < max_amount",
            name="commission_rate_bounds_check",
        ),
        Index(
            "uq_commission_rate_active_category",
            "category_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )


class CommissionTransaction(Base, TimestampMixin):
    """One computed commission entry for a completed order."""

    __tablename__ = "commission_transaction"

    commission_transaction_id: Mapped[UUID] = mapped_column(
        primary_key=True, default=uuid4
    )
    store_id: Mapped[UUID] = mapped_column(
        ForeignKey("store.store_id", ondelete="RESTRICT"),
        nullable=False,
    )
    category_id: Mapped[str] = mapped_column(String, nullable=False)
    commission_rate_id: Mapped[UUID] = mapped_column(
        ForeignKey("commission_rate.commission_rate_id", ondelete="RESTRICT"),
        nullable=False,
    )
    order_id: Mapped[str] = mapped_column(String, nullable=False)
    order_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    commission_rate_applied: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False
    )
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="calculated")
    payout_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("commission_payout.commission_payout_id", ondelete="SET NULL"),
        nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("order_id", name="commission_transaction_order_unique"),
        CheckConstraint(
            "status IN ('calculated', 'paid', 'cancelled')",
            name="commission_transaction_status_check",
        ),
        CheckConstraint(
            "commission_amount >= 0", name="commission_transaction_amount_check"
        ),
        Index(
            "ix_commission_transaction_store_status_created",
            "store_id",
            "status",
            "created_at",
        ),
    )

    store: Mapped[Store] = relationship()
    payout: Mapped[CommissionPayout | None] = relationship(back_populates="transactions")


class CommissionPayout(Base, TimestampMixin, UpdatedAtMixin):
    """Periodic payout aggregating a store's calculated commission.

    Totals are a snapshot taken at creation; the transactions summed are
    referenced through ``CommissionTransaction.payout_id``.
    """

    __tablename__ = "commission_payout"

    commission_payout_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    store_id: Mapped[UUID] = mapped_column(
        ForeignKey("store.store_id", ondelete="RESTRICT"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    total_commission: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_payout: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ledger_sync_status: Mapped[str | None] = mapped_column(String, nullable=True)
    ledger_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("store_id", "period", name="commission_payout_store_period"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="commission_payout_status_check",
        ),
        CheckConstraint(
            "ledger_sync_status IS NULL OR ledger_sync_status IN ('synced', 'failed')",
            name="commission_payout_sync_status_check",
        ),
    )

    store: Mapped[Store] = relationship()
    transactions: Mapped[list[CommissionTransaction]] = relationship(
        back_populates="payout"
    )
