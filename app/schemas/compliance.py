"""Compliance schemas: cart items, check results and policy configuration."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from app.domain.order import HoldReason
from app.schemas.common import CamelModel

class CartItem(CamelModel):
    """One request-scoped cart line."""

    id: str
    name: str
    sku: str
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    is_firearm: bool = False
    requires_ffl: bool = Field(default=False, alias="requiresFFL")
    manufacturer: str | None = None

    @property
    def counts_as_firearm(self) -> bool:
        return self.is_firearm or self.requires_ffl

class ComplianceCheckResult(CamelModel):
    has_firearms: bool
    requires_hold: bool
    hold_type: HoldReason | None = None
    cart_firearm_count: int = 0
    past_firearm_count_in_window: int = 0
    window_days: int
    limit_quantity: int
    ffl_on_file: bool = False
    reason: str | None = None

class ComplianceCheckRequest(CamelModel):
    user_id: str
    cart_items: list[CartItem] = Field(min_length=1)

class CompliancePolicy(CamelModel):
    """The effective policy the engine evaluates against."""

    window_days: int = Field(gt=0)
    firearm_limit: int = Field(gt=0)
    multi_firearm_hold_enabled: bool = True
    ffl_hold_enabled: bool = True

class ComplianceConfigUpdate(CamelModel):
    window_days: int | None = Field(default=None, gt=0)
    firearm_limit: int | None = Field(default=None, gt=0)
    multi_firearm_hold_enabled: bool | None = None
    ffl_hold_enabled: bool | None = None
    modified_by: str | None = None

class ComplianceConfigOut(CompliancePolicy):
    id: int | None = None
    is_active: bool = True
    last_modified_by: str | None = None
    created_at: datetime | None = None
