"""Order-number minting.

A minted set is derived from one base sequence number and the order's
shipping-outcome buckets::

    base      = next counter value, zero-padded to 7 digits (``test`` + 3 digits in test mode)
    receiver  = I (in-house, ships to us first) | F (drop-ship to FFL) | C (drop-ship to customer)
    suffix    = 0 when the order has one bucket, otherwise A, B, C ... in bucket order

    one bucket:   main = 0000123C0, parts = [DS>Customer → 0000123C0]
    two buckets:  main = 0000123FA, parts = [DS>FFL → 0000123FA, DS>Customer → 0000123CB]

Minting happens at most once per order id; later calls return the stored set.
"""


import logging
import re
from collections.abc import Iterable
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.domain.snapshot import MintedOrderNumber
from app.repositories.snapshot import MintedNumberRepository, SequenceRepository
from app.schemas.snapshot import MintedOrderNumberSet, MintedPart

logger = logging.getLogger(__name__)


class ShippingOutcome(str, Enum):
    IH_CUSTOMER = "IH>Customer"
    IH_FFL = "IH>FFL"
    DS_CUSTOMER = "DS>Customer"
    DS_FFL = "DS>FFL"


# Summary-only label for a cart that mixes FFL and non-FFL items
MIXED_FFL = "Mixed>FFL"

_ALIASES: dict[str, ShippingOutcome] = {
    "ih>customer": ShippingOutcome.IH_CUSTOMER,
    "in-house-to-customer": ShippingOutcome.IH_CUSTOMER,
    "ih>ffl": ShippingOutcome.IH_FFL,
    "in-house-to-ffl": ShippingOutcome.IH_FFL,
    "ds>customer": ShippingOutcome.DS_CUSTOMER,
    "drop-ship-to-customer": ShippingOutcome.DS_CUSTOMER,
    "ds>ffl": ShippingOutcome.DS_FFL,
    "drop-ship-to-ffl": ShippingOutcome.DS_FFL,
}

_RECEIVER_CODES: dict[ShippingOutcome, str] = {
    ShippingOutcome.IH_CUSTOMER: "I",
    ShippingOutcome.IH_FFL: "I",
    ShippingOutcome.DS_FFL: "F",
    ShippingOutcome.DS_CUSTOMER: "C",
}

SINGLE_PART_SUFFIX = "0"

_SCOPE_LIVE = "orders"
_SCOPE_TEST = "test-orders"


def normalize_outcomes(tokens: Iterable[str], *, field: str = "shippingOutcomes") -> list[ShippingOutcome]:
    """Map raw tokens onto the closed vocabulary, dropping duplicates (first occurrence wins)."""
    outcomes: list[ShippingOutcome] = []
    bad: list[str] = []
    for idx, token in enumerate(tokens):
        key = re.sub(r"\s+", "", str(token or "")).lower()
        outcome = _ALIASES.get(key)
        if outcome is None:
            bad.append(f"{field}[{idx}]")
        elif outcome not in outcomes:
            outcomes.append(outcome)
    if bad:
        raise ValidationError("Unknown shipping outcome", fields=bad)
    if not outcomes:
        raise ValidationError("At least one shipping outcome is required", fields=[field])
    return outcomes


def receiver_code(outcome: ShippingOutcome) -> str:
    return _RECEIVER_CODES[outcome]


def format_base(number: int, *, test: bool = False) -> str:
    if test:
        return f"{settings.order_number_test_prefix}{number:0{settings.order_number_test_width}d}"
    return f"{number:0{settings.order_number_width}d}"


def build_number_set(
    base_number: int, outcomes: list[ShippingOutcome], *, test: bool = False
) -> MintedOrderNumberSet:
    """Deterministic number set for *base_number* and the ordered outcome buckets."""
    if not outcomes:
        raise ValueError("cannot mint an order number without shipping outcomes")
    base = format_base(base_number, test=test)
    multiple = len(outcomes) > 1
    parts = [
        MintedPart(
            outcome=outcome.value,
            order_number=f"{base}{receiver_code(outcome)}"
            f"{chr(ord('A') + idx) if multiple else SINGLE_PART_SUFFIX}",
        )
        for idx, outcome in enumerate(outcomes)
    ]
    return MintedOrderNumberSet(main=parts[0].order_number, parts=parts)


def _to_set(row: MintedOrderNumber) -> MintedOrderNumberSet:
    return MintedOrderNumberSet(main=row.main, parts=[MintedPart(**p) for p in row.parts])


class OrderNumberMinter:
    """Mint-once service shared by checkout and the snapshot writer."""

    def __init__(self, session: AsyncSession):
        self._minted = MintedNumberRepository(session)
        self._sequences = SequenceRepository(session)

    async def get(self, order_id: str) -> MintedOrderNumberSet | None:
        row = await self._minted.get_by_id(order_id)
        return _to_set(row) if row else None

    async def mint_once(
        self, order_id: str, outcomes: list[ShippingOutcome]
    ) -> MintedOrderNumberSet:
        existing = await self.get(order_id)
        if existing is not None:
            return existing

        test = settings.order_number_test_mode
        base_number = await self._sequences.next_value(_SCOPE_TEST if test else _SCOPE_LIVE)
        number_set = build_number_set(base_number, outcomes, test=test)
        row, created = await self._minted.insert_if_absent(
            MintedOrderNumber(
                order_id=order_id,
                base_number=base_number,
                main=number_set.main,
                parts=[p.model_dump() for p in number_set.parts],
            )
        )
        if created:
            logger.info("Minted order number %s for order %s", row.main, order_id)
        else:
            # A concurrent writer won; its base number is kept and ours is skipped
            logger.info("Reused concurrently minted number %s for order %s", row.main, order_id)
        return _to_set(row)
