"""Order snapshot and summary schemas.

Incoming snapshot items are normalised once here: legacy key spellings
(``UPC``, ``upc_code``, ``quantity``, ``unitPrice`` ...) are accepted at the
boundary and everything downstream works with the canonical
:class:`SnapshotItem` shape.
"""

from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, Field, field_serializer

from app.schemas.common import CamelModel

class SnapshotItemIn(CamelModel):
    """Raw item as posted. Nothing is required here; the service reports missing fields by path."""

    # Catalog identifiers often arrive as JSON numbers (UPCs especially)
    model_config = {**CamelModel.model_config, "coerce_numbers_to_str": True}

    sku: str | None = Field(
        default=None, validation_alias=AliasChoices("sku", "SKU", "stockNumber"),
    )
    upc: str | None = Field(
        default=None, validation_alias=AliasChoices("upc", "UPC", "upc_code", "upcCode"),
    )
    mpn: str | None = Field(
        default=None,
        validation_alias=AliasChoices("mpn", "MPN", "manufacturerPartNumber"),
    )
    name: str | None = Field(default=None, validation_alias=AliasChoices("name", "title"))
    qty: Any = Field(default=None, validation_alias=AliasChoices("qty", "quantity"))
    price: Any = Field(
        default=None, validation_alias=AliasChoices("price", "unitPrice", "unit_price"),
    )
    image_url: str | None = Field(
        default=None, validation_alias=AliasChoices("imageUrl", "image_url", "image"),
    )

class SnapshotItem(CamelModel):
    """Canonical stored item. All fields are mandatory."""

    sku: str
    upc: str
    mpn: str
    name: str
    qty: int
    price: Decimal
    image_url: str

    @field_serializer("price")
    def _price_number(self, value: Decimal) -> float:
        return float(value)

class SnapshotWriteRequest(CamelModel):
    items: list[SnapshotItemIn] = Field(default_factory=list)
    shipping_outcomes: list[str] = Field(default_factory=list)
    customer: dict[str, Any] = Field(default_factory=dict)
    txn_id: str | None = None
    status: str | None = None

class MintedPart(CamelModel):
    outcome: str
    order_number: str

class MintedOrderNumberSet(CamelModel):
    main: str
    parts: list[MintedPart]

class SnapshotWriteResult(CamelModel):
    ok: bool = True
    order_id: str
    order_number: str
    minted: MintedOrderNumberSet

class Totals(CamelModel):
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    grand_total: Decimal

    @field_serializer("subtotal", "tax", "shipping", "grand_total")
    def _as_number(self, value: Decimal) -> float:
        return float(value)

class SummaryLine(CamelModel):
    sku: str
    upc: str
    mpn: str
    name: str
    qty: int
    unit_price: Decimal
    extended_price: Decimal
    image_url: str

    @field_serializer("unit_price", "extended_price")
    def _as_number(self, value: Decimal) -> float:
        return float(value)

class Shipment(CamelModel):
    idx: int
    outcome: str
    order_number: str
    lines: list[SummaryLine]
    totals: Totals

class SummaryView(CamelModel):
    order_id: str
    order_number: str
    main_order_number: str
    multi_shipment: bool
    lines: list[SummaryLine]
    shipments: list[Shipment]
    customer: dict[str, Any] = Field(default_factory=dict)
    totals: Totals
    status: str
    txn_id: str = ""

