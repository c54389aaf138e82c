"""SQLAlchemy ORM model for catalog products (read-only from this service's point of view)."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.domain.mixins import TimestampMixin


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Distributor stock number
    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    upc: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    mpn: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    manufacturer: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_firearm: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_ffl: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
