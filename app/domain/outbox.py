"""SQLAlchemy ORM model for the durable side-task outbox.

Checkout writes these rows in the same transaction as the order; the
outbox worker executes them later and records every failure here.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.domain.mixins import TimestampMixin, utcnow


class OutboxKind(str, Enum):
    DISTRIBUTOR_SUBMIT = "distributor.submit"
    CRM_SYNC = "crm.sync"
    CRM_UPDATE_STAGE = "crm.update_stage"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class OutboxTask(Base, TimestampMixin):
    __tablename__ = "outbox_tasks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    payload: Mapped[Any] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(
        String(20), default=OutboxStatus.PENDING.value, nullable=False, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
