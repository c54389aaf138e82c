"""Checkout request/response schemas."""

from typing import Any

from pydantic import Field

from app.domain.order import HoldReason
from app.schemas.common import CamelModel
from app.schemas.compliance import CartItem

class PaymentDetails(CamelModel):
    card_number: str = Field(min_length=12, max_length=19, repr=False)
    expiration_date: str = Field(repr=False)
    cvv: str = Field(min_length=3, max_length=4, repr=False)

class CustomerInfo(CamelModel):
    first_name: str
    last_name: str
    email: str
    phone: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

class CheckoutRequest(CamelModel):
    user_id: str
    cart_items: list[CartItem] = Field(min_length=1)
    payment_details: PaymentDetails
    shipping_address: dict[str, Any]
    customer_info: CustomerInfo
    ffl_recipient_id: str | None = None

class HoldInfo(CamelModel):
    type: HoldReason
    reason: str

class CheckoutResult(CamelModel):
    success: bool
    order_id: str | None = None
    order_number: str | None = None
    status: str | None = None
    hold: HoldInfo | None = None
    transaction_id: str | None = None
    external_deal_id: str | None = None
    error: str | None = None
