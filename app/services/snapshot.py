"""Order snapshot writer and summary reader.

Write path (``POST /orders/{id}/snapshot``): strict. Every item must carry
sku, upc, mpn, name, qty > 0, price >= 0 and imageUrl; otherwise the request
is rejected with the list of offending field paths. The order number set is
minted once per order id and stored on the snapshot.

Read path (``GET /orders/{id}/summary``): never synthesises a summary for an
unknown order. Legacy snapshots holding placeholder values (``UNKNOWN-*``,
empty strings, placeholder images) are repaired from the product catalog,
but only the placeholder fields are touched. The repaired snapshot is saved
only when something actually changed. Items are validated again after the
repair and the read fails with 422 if any still cannot be rendered.
"""


import asyncio
import logging
import re
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.domain.mixins import utcnow
from app.domain.product import Product
from app.domain.snapshot import OrderSnapshot
from app.integrations.catalog import DatabaseProductCatalog, ProductCatalog
from app.repositories.snapshot import SnapshotRepository
from app.schemas.snapshot import (
    MintedOrderNumberSet,
    Shipment,
    SnapshotItem,
    SnapshotItemIn,
    SnapshotWriteRequest,
    SnapshotWriteResult,
    SummaryLine,
    SummaryView,
    Totals,
)
from app.services.minting import MIXED_FFL, OrderNumberMinter, normalize_outcomes

logger = logging.getLogger(__name__)

_ORDER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
_CENTS = Decimal("0.01")

IMAGE_PREFIX = "/images/"
DEFAULT_STATUS = "processing"

# Canonical field order used in every field-path report
_TEXT_FIELDS = ("sku", "upc", "mpn", "name")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def validate_order_id(order_id: str) -> str:
    order_id = (order_id or "").strip()
    if not _ORDER_ID_RE.match(order_id):
        raise ValidationError("Malformed order id", fields=["orderId"])
    return order_id

def round2(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)

def _as_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None

def _as_quantity(value: Any) -> int | None:
    number = _as_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)

def _text(value: Any) -> str:
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value.strip() if isinstance(value, str) else ""

def is_placeholder(value: Any) -> bool:
    text = _text(value)
    return not text or text.upper().startswith("UNKNOWN")

def is_placeholder_name(value: Any) -> bool:
    return is_placeholder(value) or "Product name missing" in _text(value)

def is_placeholder_image(value: Any) -> bool:
    text = _text(value)
    return not text or "placeholder" in text.lower()

def item_field_errors(idx: int, item: dict[str, Any], *, require_image_prefix: bool) -> list[str]:
    """Field paths that make *item* invalid, in canonical order."""
    missing = [f"items[{idx}].{name}" for name in _TEXT_FIELDS if not _text(item.get(name))]
    qty = _as_quantity(item.get("qty"))
    if qty is None or qty <= 0:
        missing.append(f"items[{idx}].qty")
    price = _as_decimal(item.get("price"))
    if price is None or price < 0:
        missing.append(f"items[{idx}].price")
    image = _text(item.get("imageUrl"))
    if not image or (require_image_prefix and not image.startswith(IMAGE_PREFIX)):
        missing.append(f"items[{idx}].imageUrl")
    return missing

def _canonical(item: dict[str, Any]) -> SnapshotItem:
    return SnapshotItem(
        sku=_text(item["sku"]),
        upc=_text(item["upc"]),
        mpn=_text(item["mpn"]),
        name=_text(item["name"]),
        qty=_as_quantity(item["qty"]),
        price=_as_decimal(item["price"]),
        image_url=_text(item["imageUrl"]),
    )

def to_line(item: SnapshotItem) -> SummaryLine:
    return SummaryLine(
        sku=item.sku,
        upc=item.upc,
        mpn=item.mpn,
        name=item.name,
        qty=item.qty,
        unit_price=item.price,
        extended_price=round2(item.price * item.qty),
        image_url=item.image_url,
    )

def compute_totals(lines: Iterable[SummaryLine]) -> Totals:
    """Totals over *lines*, each rounded half-up to cents. Tax and shipping are zero in v1."""
    subtotal = round2(sum((line.extended_price for line in lines), Decimal("0")))
    tax = round2(Decimal("0"))
    shipping = round2(Decimal("0"))
    return Totals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        grand_total=round2(subtotal + tax + shipping),
    )

# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class OrderSnapshotService:
    def __init__(self, session: AsyncSession, catalog: ProductCatalog | None = None):
        self._session = session
        self._snapshots = SnapshotRepository(session)
        self._minter = OrderNumberMinter(session)
        self._catalog = catalog or DatabaseProductCatalog(session)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @staticmethod
    def validate_items(raw_items: list[SnapshotItemIn]) -> list[SnapshotItem]:
        if not raw_items:
            raise ValidationError("items[] required", fields=["items"])
        as_dicts = [item.model_dump(by_alias=True) for item in raw_items]
        missing: list[str] = []
        for idx, item in enumerate(as_dicts):
            missing.extend(item_field_errors(idx, item, require_image_prefix=False))
        if missing:
            raise ValidationError("Snapshot items are incomplete", fields=missing)
        return [_canonical(item) for item in as_dicts]

    async def write_snapshot(self, order_id: str, body: SnapshotWriteRequest) -> SnapshotWriteResult:
        order_id = validate_order_id(order_id)
        items = self.validate_items(body.items)
        outcomes = normalize_outcomes(body.shipping_outcomes)

        existing = await self._snapshots.get_by_id(order_id, for_update=True)
        if existing is not None and existing.minted:
            minted = MintedOrderNumberSet.model_validate(existing.minted)
        else:
            minted = await self._minter.mint_once(order_id, outcomes)

        values = dict(
            items=[item.model_dump(by_alias=True) for item in items],
            shipping_outcomes=[o.value for o in outcomes],
            minted=minted.model_dump(by_alias=True),
        )
        if existing is None:
            snapshot, created = await self._snapshots.insert_if_absent(
                OrderSnapshot(
                    order_id=order_id,
                    customer=body.customer,
                    transaction_id=body.txn_id or "",
                    status=body.status or DEFAULT_STATUS,
                    **values,
                )
            )
            if created:
                logger.info("Snapshot written for order %s (%s)", order_id, minted.main)
                return SnapshotWriteResult(order_id=order_id, order_number=minted.main, minted=minted)
            existing = snapshot
            # A concurrent writer created the row first; keep its minted set
            values["minted"] = existing.minted or values["minted"]
            minted = MintedOrderNumberSet.model_validate(values["minted"])

        existing.items = values["items"]
        existing.shipping_outcomes = values["shipping_outcomes"]
        existing.minted = values["minted"]
        existing.customer = body.customer or existing.customer or {}
        existing.transaction_id = body.txn_id or existing.transaction_id or ""
        existing.status = body.status or existing.status or DEFAULT_STATUS
        existing.updated_at = utcnow()
        await self._session.flush()
        logger.info("Snapshot rewritten for order %s (%s)", order_id, minted.main)
        return SnapshotWriteResult(order_id=order_id, order_number=minted.main, minted=minted)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def _lookup(self, item: dict[str, Any]) -> Product | None:
        upc = item.get("upc")
        if not is_placeholder(upc):
            product = await self._catalog.get_by_upc(_text(upc))
            if product is not None:
                return product
        for key in ("mpn", "sku"):
            identifier = item.get(key)
            if not is_placeholder(identifier):
                product = await self._catalog.get_by_mpn_or_sku(_text(identifier))
                if product is not None:
                    return product
        return None

    @staticmethod
    def needs_enrichment(item: dict[str, Any]) -> bool:
        return (
            is_placeholder_name(item.get("name"))
            or is_placeholder(item.get("upc"))
            or is_placeholder_image(item.get("imageUrl"))
        )

    @staticmethod
    def apply_product(item: dict[str, Any], product: Product) -> dict[str, Any] | None:
        """Back-fill placeholder fields of *item* from *product*; None when nothing changed."""
        enriched = dict(item)
        if is_placeholder_name(item.get("name")) and product.name:
            enriched["name"] = product.name
        if is_placeholder(item.get("upc")) and product.upc:
            enriched["upc"] = product.upc
        if is_placeholder(item.get("mpn")) and product.mpn:
            enriched["mpn"] = product.mpn
        if is_placeholder(item.get("sku")) and product.sku:
            enriched["sku"] = product.sku
        if is_placeholder_image(item.get("imageUrl")):
            key = enriched.get("upc") if not is_placeholder(enriched.get("upc")) else product.sku
            if key:
                enriched["imageUrl"] = f"{IMAGE_PREFIX}{key}.jpg"
        return enriched if enriched != item else None

    async def enrich(self, order_id: str, items: list[dict[str, Any]]) -> int:
        """Repair placeholder items in place; returns how many items changed.

        Each lookup is bounded by the catalog timeout and isolated: a failure
        on one item is logged and the remaining items are still processed.
        """
        changed = 0
        for idx, item in enumerate(items):
            if not self.needs_enrichment(item):
                continue
            try:
                product = await asyncio.wait_for(
                    self._lookup(item), timeout=settings.catalog_timeout
                )
            except Exception as exc:
                logger.warning(
                    "Enrichment lookup failed for order %s item %d: %s", order_id, idx, exc
                )
                continue
            if product is None:
                logger.info("No catalog match for order %s item %d", order_id, idx)
                continue
            enriched = self.apply_product(item, product)
            if enriched is not None:
                items[idx] = enriched
                changed += 1
        return changed

    async def _requires_ffl(self, item: SnapshotItem) -> bool:
        try:
            product = await asyncio.wait_for(
                self._catalog.get_by_upc(item.upc), timeout=settings.catalog_timeout
            )
        except Exception as exc:
            logger.warning("FFL classification lookup failed for UPC %s: %s", item.upc, exc)
            return False
        return bool(product and (product.requires_ffl or product.is_firearm))

    async def classify(self, items: list[SnapshotItem]) -> bool:
        """True when the cart mixes FFL-required and non-FFL items."""
        flags = [await self._requires_ffl(item) for item in items]
        return any(flags) and not all(flags)

    async def read_summary(self, order_id: str) -> SummaryView:
        order_id = validate_order_id(order_id)
        snap = await self._snapshots.get_by_id(order_id)
        if snap is None:
            raise NotFoundError("Order snapshot", order_id)

        if not snap.minted:
            outcomes = normalize_outcomes(snap.shipping_outcomes or [])
            minted = await self._minter.mint_once(order_id, outcomes)
            snap.minted = minted.model_dump(by_alias=True)
            snap.updated_at = utcnow()
            await self._session.commit()
        minted = MintedOrderNumberSet.model_validate(snap.minted)

        raw_items = [dict(it) for it in (snap.items or []) if isinstance(it, dict)]
        if not raw_items:
            raise ValidationError("No items in order snapshot", fields=["items"])

        changed = await self.enrich(order_id, raw_items)
        if changed:
            now = utcnow()
            snap.items = raw_items
            snap.enriched_at = now
            snap.updated_at = now
            # Repairs stick even when the re-validation below rejects the summary
            await self._session.commit()
            logger.info("Order %s: enriched %d snapshot item(s) from catalog", order_id, changed)

        missing: list[str] = []
        for idx, item in enumerate(raw_items):
            missing.extend(item_field_errors(idx, item, require_image_prefix=True))
        if missing:
            raise ValidationError("Snapshot incomplete for summary", fields=missing)

        items = [_canonical(item) for item in raw_items]
        lines = [to_line(item) for item in items]
        totals = compute_totals(lines)
        mixed = await self.classify(items)

        # v1 shows the full cart under every shipment rather than a per-line allocation
        shipments = [
            Shipment(
                idx=idx,
                outcome=MIXED_FFL if mixed else part.outcome,
                order_number=part.order_number,
                lines=lines,
                totals=compute_totals(lines),
            )
            for idx, part in enumerate(minted.parts)
        ]

        return SummaryView(
            order_id=order_id,
            order_number=minted.main,
            main_order_number=minted.main,
            multi_shipment=len(minted.parts) > 1,
            lines=lines,
            shipments=shipments,
            customer=snap.customer or {},
            totals=totals,
            status=snap.status or DEFAULT_STATUS,
            txn_id=snap.transaction_id or "",
        )
