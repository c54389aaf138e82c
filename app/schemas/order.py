"""Order schemas for staff views and hold-resolution requests."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field

from app.domain.order import OrderStatus
from app.schemas.common import CamelModel

class OrderLineOut(CamelModel):
    product_id: str
    sku: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    is_firearm: bool

class OrderNoteOut(CamelModel):
    kind: str
    body: str
    created_at: datetime

class OrderOut(CamelModel):
    id: str
    user_id: str
    order_number: str | None = None
    total_price: Decimal
    status: str
    hold_reason: str | None = None
    ffl_required: bool
    ffl_status: str | None = None
    ffl_dealer_id: str | None = None
    ffl_recipient_id: str | None = None
    firearms_window_count: int
    window_days: int
    limit_qty: int
    payment_transaction_id: str
    distributor_order_number: str | None = None
    external_deal_id: str | None = None
    shipping_address: dict[str, Any] | None = None
    lines: list[OrderLineOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

class AttachFFLRequest(CamelModel):
    ffl_dealer_id: str = Field(min_length=1)
    verify: bool = False

class OverrideHoldRequest(CamelModel):
    reason: str = Field(min_length=3)
    admin_user_id: str

class StatusUpdateRequest(CamelModel):
    status: OrderStatus
    note: str | None = None
    actor_user_id: str | None = None
