from app.domain.snapshot import OrderSnapshot
from tests.conftest import cart_item, firearm_item, make_dealer, make_past_order, make_product, make_user

PAYMENT = {"cardNumber": "4111111111111111", "expirationDate": "12/30", "cvv": "123"}
ADDRESS = {"street": "1 Main St", "city": "Austin", "state": "TX", "zip": "78701"}


def _checkout_body(user, *items):
    return {
        "userId": user.id,
        "cartItems": list(items),
        "paymentDetails": PAYMENT,
        "shippingAddress": ADDRESS,
        "customerInfo": {"firstName": "Pat", "lastName": "Buyer", "email": user.email},
    }


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["outboxRunning"] is False


async def test_checkout_submits_to_distributor_after_response(client, session, collaborators):
    user = await make_user(session)

    resp = await client.post("/api/v1/checkout", json=_checkout_body(user, cart_item(quantity=2)))

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["status"] == "Paid"
    assert body["orderNumber"] == "0000001C0"
    assert body["hold"] is None
    assert len(collaborators.distributor.submitted) == 1

    order = (await client.get(f"/api/v1/orders/{body['orderId']}")).json()["data"]
    assert order["status"] == "Processing"
    assert order["distributorOrderNumber"] == "DIST-1"
    assert order["externalDealId"] == "deal-1"


async def test_checkout_hold_then_verify_ffl(client, session, collaborators):
    user = await make_user(session)
    dealer = await make_dealer(session)
    await session.commit()

    resp = await client.post("/api/v1/checkout", json=_checkout_body(user, firearm_item()))
    body = resp.json()
    assert body["status"] == "Pending FFL"
    assert body["hold"] == {"type": "FFL", "reason": "No verified FFL on file"}
    assert collaborators.distributor.submitted == []

    resp = await client.post(
        f"/api/v1/orders/{body['orderId']}/attach-ffl",
        json={"fflDealerId": dealer.id, "verify": True},
    )
    assert resp.status_code == 200
    order = resp.json()["data"]
    assert order["status"] == "Ready to Fulfill"
    assert order["fflStatus"] == "Verified"
    assert order["holdReason"] is None
    assert collaborators.crm.stages == [("deal-1", "Ready to Fulfill")]

    resp = await client.post(
        f"/api/v1/orders/{body['orderId']}/attach-ffl",
        json={"fflDealerId": dealer.id, "verify": True},
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"


async def test_payment_decline_is_402(client, session, collaborators):
    user = await make_user(session)
    collaborators.payments.approve = False

    resp = await client.post("/api/v1/checkout", json=_checkout_body(user, cart_item()))

    assert resp.status_code == 402
    assert resp.json()["error"] == {"code": "PAYMENT_FAILED", "message": "Card declined"}
    listed = (await client.get("/api/v1/orders")).json()
    assert listed["meta"]["total"] == 0


async def test_checkout_unknown_user_is_404(client):
    class Ghost:
        id = "ghost"
        email = "ghost@example.com"

    resp = await client.post("/api/v1/checkout", json=_checkout_body(Ghost, cart_item()))
    assert resp.status_code == 404


async def test_snapshot_round_trip(client):
    item = {
        "sku": "SKU-1", "upc": "764503022616", "mpn": "PA195S201", "name": "GLOCK 19",
        "qty": 1, "price": 549.99, "imageUrl": "/images/764503022616.jpg",
    }
    resp = await client.post(
        "/api/v1/orders/web-1001/snapshot",
        json={"items": [item], "shippingOutcomes": ["drop-ship-to-ffl"], "txnId": "txn-7"},
    )
    assert resp.status_code == 200
    written = resp.json()
    assert written == {
        "ok": True,
        "orderId": "web-1001",
        "orderNumber": "0000001F0",
        "minted": {"main": "0000001F0", "parts": [{"outcome": "DS>FFL", "orderNumber": "0000001F0"}]},
    }

    summary = (await client.get("/api/v1/orders/web-1001/summary")).json()
    assert summary["orderNumber"] == "0000001F0"
    assert summary["multiShipment"] is False
    assert summary["totals"] == {"subtotal": 549.99, "tax": 0.0, "shipping": 0.0, "grandTotal": 549.99}
    assert summary["lines"][0]["extendedPrice"] == 549.99
    assert summary["txnId"] == "txn-7"


async def test_snapshot_validation_and_missing_summary(client):
    resp = await client.post(
        "/api/v1/orders/web-1002/snapshot",
        json={"items": [{"sku": "SKU-1"}], "shippingOutcomes": ["DS>FFL"]},
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["fields"] == [
        "items[0].upc", "items[0].mpn", "items[0].name",
        "items[0].qty", "items[0].price", "items[0].imageUrl",
    ]

    resp = await client.get("/api/v1/orders/web-1002/summary")
    assert resp.status_code == 404


async def test_numeric_upc_is_accepted(client):
    item = {
        "sku": "SKU-1", "upc": 764503022616, "mpn": "PA195S201", "name": "GLOCK 19",
        "qty": 1, "price": 549.99, "imageUrl": "/images/764503022616.jpg",
    }
    resp = await client.post(
        "/api/v1/orders/web-1003/snapshot",
        json={"items": [item], "shippingOutcomes": ["DS>FFL"]},
    )
    assert resp.status_code == 200

    summary = (await client.get("/api/v1/orders/web-1003/summary")).json()
    assert summary["lines"][0]["upc"] == "764503022616"


async def test_summary_keeps_repairs_when_another_item_is_incomplete(client, session, session_factory):
    await make_product(session, mpn="G19-GEN5")
    repairable = {
        "sku": "SKU-1", "upc": "UNKNOWN-1", "mpn": "G19-GEN5", "name": "GLOCK 19",
        "qty": 1, "price": 549.99, "imageUrl": "/images/764503022616.jpg",
    }
    unrepairable = dict(repairable, sku="ACC-9", mpn="ACC-9", upc="")
    session.add(
        OrderSnapshot(
            order_id="web-1004",
            items=[repairable, unrepairable],
            shipping_outcomes=["DS>FFL"],
        )
    )
    await session.commit()

    resp = await client.get("/api/v1/orders/web-1004/summary")
    assert resp.status_code == 422
    assert resp.json()["error"]["fields"] == ["items[1].upc"]

    async with session_factory() as s:
        snap = await s.get(OrderSnapshot, "web-1004")
    assert snap.items[0]["upc"] == "764503022616"
    assert snap.items[1]["upc"] == ""
    assert snap.enriched_at is not None


async def test_override_hold_requires_admin(client, session):
    user = await make_user(session, verified_ffl=True)
    admin = await make_user(session, email="admin@example.com", is_admin=True)
    await make_past_order(session, user, firearm_qty=4)
    last = (await client.post("/api/v1/checkout", json=_checkout_body(user, firearm_item()))).json()
    assert last["status"] == "Hold - Multi-Firearm"

    resp = await client.post(
        f"/api/v1/orders/{last['orderId']}/override-hold",
        json={"reason": "ok", "adminUserId": admin.id},
    )
    assert resp.status_code == 422  # reason too short

    resp = await client.post(
        f"/api/v1/orders/{last['orderId']}/override-hold",
        json={"reason": "Approved by compliance", "adminUserId": user.id},
    )
    assert resp.status_code == 403

    resp = await client.post(
        f"/api/v1/orders/{last['orderId']}/override-hold",
        json={"reason": "Approved by compliance", "adminUserId": admin.id},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "Ready to Fulfill"

    held = (await client.get("/api/v1/orders", params={"status": "Hold - Multi-Firearm"})).json()
    assert held["meta"]["total"] == 0


async def test_compliance_config_and_dry_run(client, session):
    user = await make_user(session, verified_ffl=True)

    current = (await client.get("/api/v1/compliance/config")).json()["data"]
    assert current["firearmLimit"] == 5 and current["windowDays"] == 30

    resp = await client.put(
        "/api/v1/compliance/config", json={"firearmLimit": 2, "modifiedBy": "admin-1"}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["firearmLimit"] == 2

    check = await client.post(
        "/api/v1/compliance/check",
        json={"userId": user.id, "cartItems": [firearm_item(quantity=2)]},
    )
    result = check.json()["data"]
    assert result["requiresHold"] is True
    assert result["holdType"] == "Multi-Firearm"
    assert result["limitQuantity"] == 2

    history = (await client.get("/api/v1/compliance/config/history")).json()["data"]
    assert len(history) == 1
