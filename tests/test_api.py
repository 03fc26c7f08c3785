import pytest

from fakes import VALID_SIGNATURE, make_token, stripe_event

pytestmark = pytest.mark.asyncio


def _checkout_body(reference_data, **overrides):
    body = {
        "items": [{"productId": "widget", "quantity": 2, "unitPrice": 2500}],
        "shippingAddress": {"line1": "1 High Street", "city": "London", "postcode": "SW1A 1AA", "country": "GB"},
        "shippingRateId": reference_data["shipping_rate_id"],
    }
    body.update(overrides)
    return body


async def test_health_uses_envelope(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Success", "data": {"status": "healthy"}, "error": None}
    assert resp.headers.get("X-Request-ID")


async def test_requests_without_token_are_unauthorized(client):
    resp = await client.get("/v1/orders")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"


async def test_expired_token_is_unauthorized(client):
    token = make_token("user-1", expires_in=-10)
    resp = await client.get("/v1/orders", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token has expired"


async def test_checkout_flow_over_http(client, auth_headers, reference_data, publisher):
    headers = auth_headers()

    summary = await client.post(
        "/v1/checkout/summary",
        json={
            "items": [{"productId": "widget", "quantity": 2, "unitPrice": 2500}],
            "shippingRateId": reference_data["shipping_rate_id"],
            "country": "GB",
            "couponCode": "SAVE10",
        },
        headers=headers,
    )
    assert summary.status_code == 200
    assert summary.json()["data"]["totalAmount"] == 6000

    started = await client.post("/v1/checkout/initiate", json=_checkout_body(reference_data), headers=headers)
    assert started.status_code == 201
    data = started.json()["data"]
    assert data["totalAmount"] == 6500
    assert data["clientSecret"] == "pi_1_secret"

    confirmed = await client.post(
        "/v1/checkout/confirm",
        json={"orderId": data["orderId"], "paymentIntentId": data["paymentIntentId"]},
        headers=headers,
    )
    assert confirmed.status_code == 200
    order = confirmed.json()["data"]
    assert order["status"] == "CONFIRMED"
    assert order["paymentStatus"] == "PAID"
    assert order["confirmedAt"].endswith("Z")

    invoice = await client.get(f"/v1/invoices/order/{data['orderId']}", headers=headers)
    assert invoice.status_code == 200
    invoice_id = invoice.json()["data"]["id"]

    download = await client.get(f"/v1/invoices/{invoice_id}/download", headers=headers)
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/html")
    assert "attachment" in download.headers["content-disposition"]
    assert invoice.json()["data"]["invoiceNumber"] in download.headers["content-disposition"]


async def test_validation_errors_are_400(client, auth_headers, reference_data):
    resp = await client.post(
        "/v1/checkout/initiate",
        json=_checkout_body(reference_data, items=[{"productId": "widget", "quantity": 0, "unitPrice": 2500}]),
        headers=auth_headers(),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION"


async def test_order_listing_is_paginated(client, auth_headers, reference_data):
    headers = auth_headers()
    for _ in range(3):
        created = await client.post("/v1/orders", json=_checkout_body(reference_data), headers=headers)
        assert created.status_code == 201

    resp = await client.get("/v1/orders", params={"page": 2, "size": 2}, headers=headers)
    assert resp.status_code == 200
    page = resp.json()["data"]
    assert page["total"] == 3
    assert page["pages"] == 2
    assert len(page["items"]) == 1

    other = await client.get("/v1/orders", headers=auth_headers("user-2"))
    assert other.json()["data"]["total"] == 0


async def test_foreign_order_is_forbidden(client, auth_headers, reference_data):
    created = await client.post("/v1/orders", json=_checkout_body(reference_data), headers=auth_headers())
    order_id = created.json()["data"]["id"]

    resp = await client.get(f"/v1/orders/{order_id}", headers=auth_headers("user-2"))
    assert resp.status_code == 403
    missing = await client.get("/v1/orders/does-not-exist", headers=auth_headers())
    assert missing.status_code == 404

    cancelled = await client.delete(f"/v1/orders/{order_id}", headers=auth_headers())
    assert cancelled.json()["data"]["status"] == "CANCELLED"
    again = await client.delete(f"/v1/orders/{order_id}", headers=auth_headers())
    assert again.status_code == 422


async def test_webhook_endpoint(client, auth_headers, reference_data, publisher):
    started = await client.post("/v1/checkout/initiate", json=_checkout_body(reference_data), headers=auth_headers())
    data = started.json()["data"]
    body = stripe_event("payment_intent.succeeded", {"id": data["paymentIntentId"], "status": "succeeded"})

    rejected = await client.post("/v1/webhooks/stripe", content=body, headers={"Stripe-Signature": "bogus"})
    assert rejected.status_code == 400

    accepted = await client.post("/v1/webhooks/stripe", content=body, headers={"Stripe-Signature": VALID_SIGNATURE})
    assert accepted.status_code == 200
    assert accepted.json() == {"received": True}

    order = await client.get(f"/v1/orders/{data['orderId']}", headers=auth_headers())
    assert order.json()["data"]["status"] == "CONFIRMED"
    assert order.json()["data"]["payments"][0]["status"] == "SUCCEEDED"


async def test_admin_routes(client, auth_headers, reference_data):
    customer = auth_headers()
    admin = auth_headers("admin-1", "ADMIN")

    denied = await client.post("/v1/coupons", json={"code": "X5", "type": "FIXED", "value": 500}, headers=customer)
    assert denied.status_code == 403

    created = await client.post("/v1/coupons", json={"code": "x5", "type": "FIXED", "value": 500}, headers=admin)
    assert created.status_code == 201
    assert created.json()["data"]["code"] == "X5"

    duplicate = await client.post("/v1/coupons", json={"code": "X5", "type": "FIXED", "value": 100}, headers=admin)
    assert duplicate.status_code == 409

    rules = await client.get("/v1/tax-rules", params={"country": "GB", "isActive": True}, headers=admin)
    assert rules.json()["data"]["total"] == 1
    assert rules.json()["data"]["items"][0]["rate"] == 20.0

    deleted = await client.delete(f"/v1/tax-rules/{reference_data['tax_rule_id']}", headers=admin)
    assert deleted.json() == {"success": True, "message": "Tax rule deleted", "data": None, "error": None}


async def test_tax_calculate_is_open_to_customers(client, auth_headers, reference_data):
    resp = await client.post(
        "/v1/tax-rules/calculate",
        json={"amount": 1000, "country": "GB"},
        headers=auth_headers(),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["taxAmount"] == 200


async def test_shipping_rates_require_country(client, auth_headers, reference_data):
    missing = await client.get("/v1/shipping/rates", headers=auth_headers())
    assert missing.status_code == 400
    assert missing.json()["error"]["field"] == "country"

    rates = await client.get("/v1/shipping/rates", params={"country": "gb", "orderAmount": 20000}, headers=auth_headers())
    assert rates.status_code == 200
    assert [(r["name"], r["effectiveCost"]) for r in rates.json()["data"]] == [("Standard", 0)]

    below = await client.get("/v1/shipping/rates", params={"country": "GB", "orderAmount": 9999}, headers=auth_headers())
    assert [(r["name"], r["effectiveCost"]) for r in below.json()["data"]] == [("Standard", 500)]


async def test_shipping_rate_admin_over_http(client, auth_headers, reference_data):
    body = {"name": "Express", "method": "express", "price": 1500, "freeThreshold": 30000, "countries": ["gb"]}
    forbidden = await client.post("/v1/shipping/rates", json=body, headers=auth_headers())
    assert forbidden.status_code == 403

    admin = auth_headers("admin-1", "ADMIN")
    created = await client.post("/v1/shipping/rates", json=body, headers=admin)
    assert created.status_code == 201
    rate = created.json()["data"]
    assert (rate["countries"], rate["freeThreshold"]) == (["GB"], 30000)

    patched = await client.patch(f"/v1/shipping/rates/{rate['id']}", json={"price": 1750}, headers=admin)
    assert patched.status_code == 200
    assert patched.json()["data"]["price"] == 1750

    listed = await client.get("/v1/shipping/rates", params={"country": "GB", "orderAmount": 20000}, headers=admin)
    costs = {r["name"]: r["effectiveCost"] for r in listed.json()["data"]}
    assert costs == {"Standard": 0, "Express": 1750}


async def test_refund_over_http(client, auth_headers, reference_data):
    started = await client.post("/v1/checkout/initiate", json=_checkout_body(reference_data), headers=auth_headers())
    data = started.json()["data"]
    await client.post(
        "/v1/webhooks/stripe",
        content=stripe_event("payment_intent.succeeded", {"id": data["paymentIntentId"]}),
        headers={"Stripe-Signature": VALID_SIGNATURE},
    )

    customer_try = await client.post(
        "/v1/refunds", json={"paymentId": data["paymentId"], "amount": 100}, headers=auth_headers()
    )
    assert customer_try.status_code == 403

    too_much = await client.post(
        "/v1/refunds",
        json={"paymentId": data["paymentId"], "amount": 6501},
        headers=auth_headers("admin-1", "ADMIN"),
    )
    assert too_much.status_code == 422

    refund = await client.post(
        "/v1/refunds",
        json={"paymentId": data["paymentId"], "amount": 6500, "reason": "return"},
        headers=auth_headers("admin-1", "ADMIN"),
    )
    assert refund.status_code == 201
    assert refund.json()["data"]["status"] == "PENDING"

    mine = await client.get(f"/v1/refunds/payment/{data['paymentId']}", headers=auth_headers())
    assert [r["amount"] for r in mine.json()["data"]] == [6500]


async def test_shipment_tracking_over_http(client, auth_headers, reference_data):
    started = await client.post("/v1/checkout/initiate", json=_checkout_body(reference_data), headers=auth_headers())
    data = started.json()["data"]
    await client.post(
        "/v1/checkout/confirm",
        json={"orderId": data["orderId"], "paymentIntentId": data["paymentIntentId"]},
        headers=auth_headers(),
    )
    admin = auth_headers("admin-1", "ADMIN")

    created = await client.post("/v1/shipping", json={"orderId": data["orderId"], "carrier": "DPD"}, headers=admin)
    assert created.status_code == 201
    shipment_id = created.json()["data"]["id"]

    skipped = await client.patch(f"/v1/shipping/{shipment_id}", json={"status": "DELIVERED"}, headers=admin)
    assert skipped.status_code == 422

    shipped = await client.patch(
        f"/v1/shipping/{shipment_id}",
        json={"status": "SHIPPED", "trackingNumber": "15501234567890"},
        headers=admin,
    )
    assert shipped.json()["data"]["shippedAt"].endswith("Z")

    mine = await client.get(f"/v1/shipping/{shipment_id}", headers=auth_headers())
    assert mine.json()["data"]["trackingNumber"] == "15501234567890"
    by_order = await client.get(f"/v1/shipping/order/{data['orderId']}", headers=auth_headers())
    assert [s["id"] for s in by_order.json()["data"]] == [shipment_id]
