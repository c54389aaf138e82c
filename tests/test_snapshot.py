import asyncio
import itertools
from decimal import Decimal

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.domain.snapshot import OrderSnapshot
from app.schemas.snapshot import SnapshotWriteRequest, SummaryLine
from app.services.snapshot import OrderSnapshotService, compute_totals
from tests.conftest import make_product

GOOD_ITEM = {
    "sku": "SKU-1",
    "upc": "764503022616",
    "mpn": "PA195S201",
    "name": "GLOCK 19",
    "qty": 1,
    "price": 549.99,
    "imageUrl": "/images/764503022616.jpg",
}


def _request(items=None, outcomes=("DS>FFL",), **extra):
    body = {"items": items if items is not None else [GOOD_ITEM], "shippingOutcomes": list(outcomes)}
    body.update(extra)
    return SnapshotWriteRequest.model_validate(body)


async def _legacy_snapshot(session, order_id, items, outcomes=("DS>FFL",)):
    session.add(
        OrderSnapshot(
            order_id=order_id,
            customer={"email": "buyer@example.com"},
            items=items,
            shipping_outcomes=list(outcomes),
            status="processing",
            transaction_id="txn-1",
        )
    )
    await session.commit()


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------

async def test_write_twice_yields_identical_minted_set(session):
    svc = OrderSnapshotService(session)

    first = await svc.write_snapshot("order-1", _request(outcomes=["DS>FFL", "DS>Customer"]))
    second = await svc.write_snapshot("order-1", _request(outcomes=["DS>FFL", "DS>Customer"]))

    assert first.minted.model_dump() == second.minted.model_dump()
    assert first.order_number == first.minted.main == "0000001FA"


async def test_concurrent_writes_share_one_minted_set(file_session_factory):
    async def write():
        async with file_session_factory() as s:
            result = await OrderSnapshotService(s).write_snapshot(
                "order-race", _request(outcomes=["DS>FFL", "DS>Customer"])
            )
            await s.commit()
            return result

    first, second = await asyncio.gather(write(), write())

    assert first.minted.model_dump() == second.minted.model_dump()
    async with file_session_factory() as s:
        snap = await s.get(OrderSnapshot, "order-race")
    assert snap.minted == first.minted.model_dump(by_alias=True)


async def test_write_reports_every_missing_field_by_path(session):
    svc = OrderSnapshotService(session)
    items = [
        GOOD_ITEM,
        {"sku": "SKU-2", "name": "Holster", "qty": 0, "price": -1},
    ]

    with pytest.raises(ValidationError) as exc:
        await svc.write_snapshot("order-2", _request(items=items))

    assert exc.value.fields == [
        "items[1].upc",
        "items[1].mpn",
        "items[1].qty",
        "items[1].price",
        "items[1].imageUrl",
    ]


async def test_write_rejects_empty_items(session):
    with pytest.raises(ValidationError) as exc:
        await OrderSnapshotService(session).write_snapshot("order-3", _request(items=[]))
    assert exc.value.fields == ["items"]


async def test_write_rejects_malformed_order_id(session):
    with pytest.raises(ValidationError) as exc:
        await OrderSnapshotService(session).write_snapshot("bad id!", _request())
    assert exc.value.fields == ["orderId"]


async def test_write_accepts_legacy_item_keys(session):
    legacy = {
        "SKU": "SKU-1",
        "UPC": "764503022616",
        "manufacturerPartNumber": "PA195S201",
        "title": "GLOCK 19",
        "quantity": "2",
        "unitPrice": "549.99",
        "image": "/images/764503022616.jpg",
    }
    svc = OrderSnapshotService(session)
    await svc.write_snapshot("order-4", _request(items=[legacy]))

    snap = await session.get(OrderSnapshot, "order-4")
    assert snap.items[0]["upc"] == "764503022616"
    assert snap.items[0]["qty"] == 2
    assert snap.items[0]["imageUrl"] == "/images/764503022616.jpg"


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

async def test_summary_for_unknown_order_is_not_found(session):
    with pytest.raises(NotFoundError):
        await OrderSnapshotService(session).read_summary("never-written")


async def test_summary_missing_upc_lists_exactly_that_field(session):
    item = dict(GOOD_ITEM)
    del item["upc"]
    await _legacy_snapshot(session, "order-5", [item])

    with pytest.raises(ValidationError) as exc:
        await OrderSnapshotService(session).read_summary("order-5")

    assert exc.value.fields == ["items[0].upc"]


async def test_enrichment_fills_placeholders_but_keeps_authentic_name(session):
    await make_product(session, name="Glock G19 Gen5 (catalog)", mpn="G19-GEN5")
    item = dict(GOOD_ITEM, upc="UNKNOWN-1", mpn="G19-GEN5", imageUrl="/img/placeholder.png")
    await _legacy_snapshot(session, "order-6", [item])

    summary = await OrderSnapshotService(session).read_summary("order-6")

    line = summary.lines[0]
    assert line.upc == "764503022616"
    assert line.name == "GLOCK 19"
    assert line.image_url == "/images/764503022616.jpg"

    snap = await session.get(OrderSnapshot, "order-6")
    assert snap.enriched_at is not None
    assert snap.items[0]["upc"] == "764503022616"


async def test_read_without_placeholders_does_not_rewrite(session):
    await _legacy_snapshot(session, "order-7", [GOOD_ITEM])

    await OrderSnapshotService(session).read_summary("order-7")

    snap = await session.get(OrderSnapshot, "order-7")
    assert snap.enriched_at is None


async def test_catalog_failure_on_one_item_does_not_block_others(session):
    class FlakyCatalog:
        async def get_by_upc(self, upc):
            return None

        async def get_by_mpn_or_sku(self, identifier):
            if identifier == "BROKEN":
                raise RuntimeError("catalog down")
            await asyncio.sleep(0)
            return None

    items = [GOOD_ITEM, dict(GOOD_ITEM, name="Product name missing", mpn="BROKEN", sku="BROKEN")]
    await _legacy_snapshot(session, "order-8", items)

    summary = await OrderSnapshotService(session, FlakyCatalog()).read_summary("order-8")

    assert [line.name for line in summary.lines] == ["GLOCK 19", "Product name missing"]


async def test_summary_mints_unminted_legacy_snapshot(session):
    await _legacy_snapshot(session, "order-9", [GOOD_ITEM], outcomes=["ds>customer"])

    svc = OrderSnapshotService(session)
    first = await svc.read_summary("order-9")
    second = await svc.read_summary("order-9")

    assert first.order_number == second.order_number == "0000001C0"
    assert first.multi_shipment is False
    assert first.shipments[0].outcome == "DS>Customer"


async def test_summary_shape_for_split_order(session):
    await make_product(session)
    await make_product(
        session, sku="ACC-1", upc="000000000017", mpn="KIT-1", name="Cleaning kit",
        is_firearm=False, requires_ffl=False,
    )
    accessory = dict(
        GOOD_ITEM, sku="ACC-1", upc="000000000017", mpn="KIT-1", name="Cleaning kit",
        qty=2, price=10.005, imageUrl="/images/000000000017.jpg",
    )
    svc = OrderSnapshotService(session)
    written = await svc.write_snapshot(
        "order-10",
        _request(items=[GOOD_ITEM, accessory], outcomes=["DS>FFL", "DS>Customer"], txnId="txn-9"),
    )

    summary = await svc.read_summary("order-10")

    assert summary.order_number == summary.main_order_number == written.order_number
    assert summary.multi_shipment is True
    assert [s.order_number for s in summary.shipments] == [
        p.order_number for p in written.minted.parts
    ]
    assert {s.outcome for s in summary.shipments} == {"Mixed>FFL"}
    assert summary.totals.subtotal == Decimal("570.00")
    assert summary.totals.grand_total == Decimal("570.00")
    assert summary.txn_id == "txn-9"
    assert summary.status == "processing"


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------

def _line(price, qty):
    return SummaryLine(
        sku="S", upc="U", mpn="M", name="N", qty=qty, unit_price=Decimal(price),
        extended_price=(Decimal(price) * qty).quantize(Decimal("0.01")), image_url="/images/U.jpg",
    )


def test_totals_are_order_independent_and_two_decimals():
    lines = [_line("19.995", 1), _line("0.333", 3), _line("549.99", 2), _line("0.005", 1)]
    results = {compute_totals(list(p)).subtotal for p in itertools.permutations(lines)}

    assert len(results) == 1
    total = results.pop()
    assert total == total.quantize(Decimal("0.01"))
    assert compute_totals(lines).tax == Decimal("0.00")
