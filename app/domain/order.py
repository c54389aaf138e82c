"""SQLAlchemy ORM models for orders, order lines and order notes, plus the order status machine.

Status flow::

    Created --capture ok--> Paid | Pending FFL | Hold - Multi-Firearm
    Paid --distributor ok--> Processing
    Paid --distributor fail--> Manual Processing Required
    Pending FFL --verify--> Ready to Fulfill
    Hold - Multi-Firearm --admin override--> Ready to Fulfill
    Ready to Fulfill --> Shipped --> Delivered

``Rejected`` and ``Cancelled`` are terminal. Nothing returns to ``Created``
and order rows are never deleted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.domain.mixins import CreatedAtMixin, TenantMixin, TimestampMixin


class OrderStatus(str, Enum):
    CREATED = "Created"
    PAID = "Paid"
    PENDING_FFL = "Pending FFL"
    HOLD_MULTI_FIREARM = "Hold - Multi-Firearm"
    PROCESSING = "Processing"
    MANUAL_PROCESSING_REQUIRED = "Manual Processing Required"
    READY_TO_FULFILL = "Ready to Fulfill"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class HoldReason(str, Enum):
    FFL = "FFL"
    MULTI_FIREARM = "Multi-Firearm"


class FFLStatus(str, Enum):
    MISSING = "Missing"
    PENDING_VERIFICATION = "Pending Verification"
    VERIFIED = "Verified"


HOLD_STATUSES = frozenset({OrderStatus.PENDING_FFL, OrderStatus.HOLD_MULTI_FIREARM})

_CLOSE = {OrderStatus.REJECTED, OrderStatus.CANCELLED}

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset(
        {OrderStatus.PAID, OrderStatus.PENDING_FFL, OrderStatus.HOLD_MULTI_FIREARM}
    ),
    OrderStatus.PAID: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.MANUAL_PROCESSING_REQUIRED, *_CLOSE}
    ),
    OrderStatus.PENDING_FFL: frozenset({OrderStatus.READY_TO_FULFILL, *_CLOSE}),
    OrderStatus.HOLD_MULTI_FIREARM: frozenset({OrderStatus.READY_TO_FULFILL, *_CLOSE}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, *_CLOSE}),
    OrderStatus.MANUAL_PROCESSING_REQUIRED: frozenset({OrderStatus.PROCESSING, *_CLOSE}),
    OrderStatus.READY_TO_FULFILL: frozenset({OrderStatus.SHIPPED, *_CLOSE}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    try:
        return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def is_hold_status(status: str) -> bool:
    try:
        return OrderStatus(status) in HOLD_STATUSES
    except ValueError:
        return False


def status_for_hold(hold: HoldReason | None) -> OrderStatus:
    """Initial persisted status for a captured order given its compliance hold."""
    if hold is HoldReason.FFL:
        return OrderStatus.PENDING_FFL
    if hold is HoldReason.MULTI_FIREARM:
        return OrderStatus.HOLD_MULTI_FIREARM
    return OrderStatus.PAID


class Order(Base, TenantMixin, TimestampMixin):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    # Minted main order number (human-facing)
    order_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # FFL | Multi-Firearm; non-null iff status is a hold status
    hold_reason: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # FFL handling
    ffl_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ffl_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    ffl_dealer_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    ffl_recipient_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    ffl_verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Compliance decision inputs, frozen at creation for audit
    firearms_window_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    limit_qty: Mapped[int] = mapped_column(Integer, nullable=False)

    # Payment and downstream references
    payment_transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    distributor_order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    estimated_ship_date: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    external_contact_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    external_deal_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    shipping_address: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    customer_info: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    lines: Mapped[List["OrderLine"]] = relationship(
        back_populates="order", lazy="selectin", cascade="all, delete-orphan"
    )
    notes: Mapped[List["OrderNote"]] = relationship(
        back_populates="order", lazy="raise", cascade="all, delete-orphan"
    )

    @property
    def is_on_hold(self) -> bool:
        return is_hold_status(self.status)


class OrderLine(Base, CreatedAtMixin):
    """One purchased product. ``is_firearm`` is copied from the cart and never recomputed."""

    __tablename__ = "order_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_firearm: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    order: Mapped["Order"] = relationship(back_populates="lines")


class OrderNote(Base, CreatedAtMixin):
    """Free-text note attached to an order (e.g. distributor rejection reasons)."""

    __tablename__ = "order_notes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # "distributor" | "crm" | "compliance" | "staff"
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="notes")
