"""SQLAlchemy ORM models for order snapshots and minted order numbers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.domain.mixins import CreatedAtMixin, TimestampMixin


class OrderSnapshot(Base, TimestampMixin):
    """Canonical, render-ready copy of an order taken at payment-success time."""

    __tablename__ = "order_snapshots"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer: Mapped[Any] = mapped_column(JSON, nullable=False, default=dict)
    # [{sku, upc, mpn, name, qty, price, imageUrl}, ...]
    items: Mapped[Any] = mapped_column(JSON, nullable=False)
    shipping_outcomes: Mapped[Any] = mapped_column(JSON, nullable=False)
    # {main, parts: [{outcome, orderNumber}]}; written once, never recomputed
    minted: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="processing")
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    enriched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class MintedOrderNumber(Base, CreatedAtMixin):
    """The minted number set for one order. The primary key makes minting a conditional insert."""

    __tablename__ = "minted_order_numbers"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    base_number: Mapped[int] = mapped_column(Integer, nullable=False)
    main: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    parts: Mapped[Any] = mapped_column(JSON, nullable=False)


class SequenceCounter(Base):
    """Monotonic counter, one row per scope (``orders``, ``test-orders``)."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
