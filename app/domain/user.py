"""SQLAlchemy ORM models for customer accounts and FFL dealers."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.domain.mixins import TimestampMixin


class FFLDealerStatus(str, Enum):
    NOT_ON_FILE = "NotOnFile"
    ON_FILE = "OnFile"
    PREFERRED = "Preferred"


class FFLDealer(Base, TimestampMixin):
    """A Federal Firearms Licensee able to receive firearm transfers."""

    __tablename__ = "ffl_dealers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    license_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    zip: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # NotOnFile | OnFile | Preferred
    status: Mapped[str] = mapped_column(
        String(20), default=FFLDealerStatus.NOT_ON_FILE.value, nullable=False
    )
    is_atf_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def is_verified_on_file(self) -> bool:
        return self.is_atf_active and self.status in (
            FFLDealerStatus.ON_FILE.value,
            FFLDealerStatus.PREFERRED.value,
        )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    preferred_ffl_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("ffl_dealers.id", ondelete="SET NULL"), nullable=True
    )
    preferred_ffl: Mapped[Optional[FFLDealer]] = relationship(lazy="selectin")
