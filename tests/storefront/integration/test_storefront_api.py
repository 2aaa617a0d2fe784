"""Integration tests for the Storefront API via TestClient."""

import pytest
from fastapi.testclient import TestClient
from storefront.api.app import create_app

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
USER = {"X-User-Id": "user-001"}
OTHER = {"X-User-Id": "user-002"}

ADDRESS = {
    "full_name": "Sam Rivera",
    "street": "123 Elm Street",
    "city": "Springfield",
    "postal_code": "62701",
    "country": "US",
}

ORDER_BODY = {
    "shipping_address": ADDRESS,
    "billing_address": ADDRESS,
    "payment_method": "card",
    "shipping_method": "standard",
}


@pytest.fixture()
def client():
    return TestClient(create_app())


def _product(client, **overrides):
    body = {"name": "Lamp", "sku": "LAMP-1", "price": 10.0, "stock": 5}
    body.update(overrides)
    response = client.post("/products", json=body, headers=ADMIN)
    assert response.status_code == 201
    return response.json()["id"]


def _add(client, product_id, quantity=1, headers=USER, **extra):
    return client.post("/cart/items", json={"product_id": product_id, "quantity": quantity, **extra}, headers=headers)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestProductsAPI:
    def test_register_requires_admin(self, client):
        response = client.post("/products", json={"name": "X", "sku": "X", "price": 1.0}, headers=USER)
        assert response.status_code == 403

    def test_read_product(self, client):
        product_id = _product(client)
        response = client.get(f"/products/{product_id}")
        assert response.status_code == 200
        assert response.json()["stock"] == 5

    def test_unknown_product(self, client):
        assert client.get("/products/nope").status_code == 404

    def test_restock(self, client):
        product_id = _product(client)
        response = client.post(f"/products/{product_id}/stock", json={"delta": 3}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["stock"] == 8

    def test_stock_cannot_go_negative(self, client):
        product_id = _product(client, stock=1)
        response = client.post(f"/products/{product_id}/stock", json={"delta": -2}, headers=ADMIN)
        assert response.status_code == 400


class TestCartAPI:
    def test_empty_cart_view(self, client):
        response = client.get("/cart", headers=USER)
        assert response.status_code == 200
        body = response.json()
        assert body["id"] is None
        assert body["items"] == []
        assert body["totals"]["grand_total"] == 0.0

    def test_guest_needs_session(self, client):
        assert client.get("/cart").status_code == 400

    def test_add_update_remove(self, client):
        product_id = _product(client)

        body = _add(client, product_id, quantity=2).json()
        assert body["totals"]["subtotal"] == 20.0
        item_id = body["items"][0]["id"]

        body = client.patch(f"/cart/items/{item_id}", json={"quantity": 3}, headers=USER).json()
        assert body["items"][0]["quantity"] == 3

        body = client.patch(f"/cart/items/{item_id}", json={"saved_for_later": True}, headers=USER).json()
        assert body["items"][0]["saved_for_later"] is True
        assert body["totals"]["subtotal"] == 0.0

        body = client.delete(f"/cart/items/{item_id}", headers=USER).json()
        assert body["items"] == []

    def test_guest_cart(self, client):
        product_id = _product(client)
        response = _add(client, product_id, headers={}, session_id="sess-1")
        assert response.status_code == 200

        body = client.get("/cart", params={"session_id": "sess-1"}).json()
        assert len(body["items"]) == 1
        assert body["session_id"] == "sess-1"

    def test_add_beyond_stock(self, client):
        product_id = _product(client, stock=1)
        response = _add(client, product_id, quantity=2)
        assert response.status_code == 409

    def test_add_unknown_product(self, client):
        assert _add(client, "nope").status_code == 404

    def test_update_missing_item(self, client):
        _add(client, _product(client))
        response = client.patch("/cart/items/missing", json={"quantity": 1}, headers=USER)
        assert response.status_code == 404

    def test_clear(self, client):
        _add(client, _product(client))
        body = client.delete("/cart", headers=USER).json()
        assert body["items"] == []
        assert body["id"] is not None

    def test_coupons(self, client):
        _add(client, _product(client, price=50.0), quantity=2)
        response = client.post("/coupons", json={"code": "SAVE10", "kind": "percentage", "value": 10}, headers=ADMIN)
        assert response.status_code == 201

        body = client.post("/cart/coupons", json={"code": "save10"}, headers=USER).json()
        assert body["totals"]["discount_total"] == 10.0
        assert body["totals"]["grand_total"] == 90.0

        again = client.post("/cart/coupons", json={"code": "SAVE10"}, headers=USER)
        assert again.status_code == 400

        body = client.delete("/cart/coupons/SAVE10", headers=USER).json()
        assert body["totals"]["grand_total"] == 100.0


class TestOrdersAPI:
    def test_checkout_flow(self, client):
        p = _product(client, name="P", sku="P-1", price=10.0, stock=5)
        q = _product(client, name="Q", sku="Q-1", price=20.0, stock=1)
        _add(client, p, quantity=2)
        _add(client, q, quantity=1)

        response = client.post("/orders", json=ORDER_BODY, headers=USER)

        assert response.status_code == 201
        order = response.json()
        assert order["status"] == "pending"
        assert order["totals"]["grand_total"] == 40.0
        assert order["order_number"].startswith("ORD-")
        assert client.get(f"/products/{p}").json()["stock"] == 3
        assert client.get(f"/products/{q}").json()["stock"] == 0
        assert client.get("/cart", headers=USER).json()["items"] == []

    def test_short_stock_is_a_conflict(self, client):
        p = _product(client, name="P", sku="P-1", stock=5)
        q = _product(client, name="Q", sku="Q-1", stock=1)
        _add(client, p, quantity=2)
        _add(client, q, quantity=1)
        client.post(f"/products/{q}/stock", json={"delta": -1}, headers=ADMIN)

        response = client.post("/orders", json=ORDER_BODY, headers=USER)

        assert response.status_code == 409
        assert "Q" in response.json()["error"]["stock"][0]
        assert client.get(f"/products/{p}").json()["stock"] == 5

    def test_empty_cart(self, client):
        assert client.post("/orders", json=ORDER_BODY, headers=USER).status_code == 400

    def test_guest_checkout_requires_email(self, client):
        product_id = _product(client)
        _add(client, product_id, headers={}, session_id="sess-9")

        missing = client.post("/orders", json={**ORDER_BODY, "session_id": "sess-9"})
        assert missing.status_code == 400

        placed = client.post("/orders", json={**ORDER_BODY, "session_id": "sess-9", "email": "g@example.com"})
        assert placed.status_code == 201
        assert placed.json()["user_id"] is None

    def test_idempotency_key(self, client):
        product_id = _product(client)
        _add(client, product_id)
        headers = {**USER, "Idempotency-Key": "abc"}

        first = client.post("/orders", json=ORDER_BODY, headers=headers)
        second = client.post("/orders", json=ORDER_BODY, headers=headers)

        assert first.status_code == second.status_code == 201
        assert first.json()["id"] == second.json()["id"]
        assert client.get(f"/products/{product_id}").json()["stock"] == 4

    def test_read_order_ownership(self, client):
        _add(client, _product(client))
        order_id = client.post("/orders", json=ORDER_BODY, headers=USER).json()["id"]

        assert client.get(f"/orders/{order_id}", headers=USER).status_code == 200
        assert client.get(f"/orders/{order_id}", headers=ADMIN).status_code == 200
        assert client.get(f"/orders/{order_id}", headers=OTHER).status_code == 403
        assert client.get("/orders/missing", headers=ADMIN).status_code == 404

    def test_status_update_is_admin_only(self, client):
        _add(client, _product(client))
        order_id = client.post("/orders", json=ORDER_BODY, headers=USER).json()["id"]

        denied = client.patch(f"/orders/{order_id}/status", json={"status": "shipped"}, headers=USER)
        assert denied.status_code == 403

        response = client.patch(f"/orders/{order_id}/status", json={"status": "shipped"}, headers=ADMIN)
        assert response.status_code == 200
        history = response.json()["status_history"]
        assert [h["status"] for h in history] == ["pending", "shipped"]
        assert history[-1]["note"] == "Status updated to shipped"

        invalid = client.patch(f"/orders/{order_id}/status", json={"status": "bogus"}, headers=ADMIN)
        assert invalid.status_code == 400

    def test_cancel(self, client):
        product_id = _product(client)
        _add(client, product_id, quantity=2)
        order_id = client.post("/orders", json=ORDER_BODY, headers=USER).json()["id"]

        assert client.post(f"/orders/{order_id}/cancel", json={}, headers=OTHER).status_code == 403

        response = client.post(f"/orders/{order_id}/cancel", json={"reason": "Changed my mind"}, headers=USER)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert client.get(f"/products/{product_id}").json()["stock"] == 5

        again = client.post(f"/orders/{order_id}/cancel", headers=USER)
        assert again.status_code == 409
        assert client.get(f"/products/{product_id}").json()["stock"] == 5

    def test_cannot_cancel_shipped(self, client):
        _add(client, _product(client))
        order_id = client.post("/orders", json=ORDER_BODY, headers=USER).json()["id"]
        client.patch(f"/orders/{order_id}/status", json={"status": "shipped"}, headers=ADMIN)

        response = client.post(f"/orders/{order_id}/cancel", headers=USER)

        assert response.status_code == 409
        assert response.json()["error"]["status"] == ["This order cannot be cancelled"]

    def test_admin_can_mark_shipped_order_cancelled(self, client):
        product_id = _product(client)
        _add(client, product_id)
        order_id = client.post("/orders", json=ORDER_BODY, headers=USER).json()["id"]
        client.patch(f"/orders/{order_id}/status", json={"status": "shipped"}, headers=ADMIN)

        response = client.patch(f"/orders/{order_id}/status", json={"status": "cancelled"}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["status_history"][-1]["note"] == "Status updated to cancelled"
        assert client.get(f"/products/{product_id}").json()["stock"] == 4
