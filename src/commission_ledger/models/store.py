"""Store and subscription models.

Stores and their plan subscriptions belong to the marketplace catalog; the
ledger only reads stores and lets webhook processing move subscriptions
through their lifecycle.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin


class Store(Base, TimestampMixin):
    """A seller's storefront; the unit commission is accumulated for."""

    __tablename__ = "store"

    store_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    plan: Mapped[str | None] = mapped_column(String, nullable=True)
    plan_updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    subscriptions: Mapped[list[Subscription]] = relationship(back_populates="store")


class Subscription(Base, TimestampMixin, UpdatedAtMixin):
    """Store plan subscription, paid through the payment gateway."""

    __tablename__ = "subscription"

    subscription_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    store_id: Mapped[UUID] = mapped_column(
        ForeignKey("store.store_id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_slug: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    payment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    cancelled_reason: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'cancelled')",
            name="subscription_status_check",
        ),
        Index("ix_subscription_store_status", "store_id", "status"),
    )

    store: Mapped[Store] = relationship(back_populates="subscriptions")
