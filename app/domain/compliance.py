"""SQLAlchemy ORM model for the firearms compliance policy.

Rows are append-only: an update deactivates the current row and inserts a
new active one, so the full policy history stays queryable.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.domain.mixins import CreatedAtMixin


class ComplianceConfig(Base, CreatedAtMixin):
    __tablename__ = "compliance_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    firearm_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    multi_firearm_hold_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ffl_hold_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    last_modified_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
