"""
HTTP surface tests.

Verifies:
- Domain errors map to 400 / 404 / 409 JSON bodies
- Create endpoints answer 201 with the created resource
- List endpoints use the items + pagination envelope
- CORS headers only for configured origins
"""

from datetime import datetime, timedelta, timezone

import pytest


# =============================================================================
# SYSTEM
# =============================================================================


class TestHealth:

    def test_health_ok(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "healthy"

    def test_cors_header_for_allowed_origin(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_no_cors_header_for_unknown_origin(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductRoutes:

    def test_create_with_opening_stock_alias(self, client, db_session):
        resp = client.post(
            "/api/products",
            json={"name": "Lamp", "sku": "LAMP-1", "price": "25.00", "cost": "12.50", "stock": 8},
        )
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert product["stock"] == 8
        assert product["cost_price"] == "12.50"

    def test_create_requires_name_and_price(self, client, db_session):
        resp = client.post("/api/products", json={"sku": "X"})
        assert resp.status_code == 400
        assert "Missing required fields" in resp.get_json()["error"]

    def test_duplicate_sku_conflicts(self, client, db_session, product):
        resp = client.post("/api/products", json={"name": "Copy", "price": "1.00", "sku": product.sku})
        assert resp.status_code == 409

    def test_stock_not_writable_on_update(self, client, db_session, product, stock_of):
        resp = client.put(f"/api/products/{product.id}", json={"stock": 100})
        assert resp.status_code == 400
        assert stock_of(product.id) == 5

    def test_list_envelope(self, client, db_session, make_product):
        for _ in range(3):
            make_product()
        resp = client.get("/api/products?limit=2")
        body = resp.get_json()
        assert resp.status_code == 200
        assert len(body["items"]) == 2
        assert body["pagination"] == {"total": 3, "limit": 2, "offset": 0, "page": 1, "pages": 2}

    def test_missing_product(self, client, db_session):
        resp = client.get("/api/products/9999")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Product not found"}

    def test_average_cost_restock(self, client, db_session, make_product):
        # 10 @ 5.00 on hand, 10 @ 7.00 incoming -> 6.00, 100% margin kept
        p = make_product(price="10.00", cost_price="5.00", stock=10)

        resp = client.post(f"/api/products/{p.id}/stock/average-cost", json={"quantity": 10, "cost_price": "7.00"})

        assert resp.status_code == 200
        product = resp.get_json()["product"]
        assert product["stock"] == 20
        assert product["cost"] == "6.00"
        assert product["price"] == "12.00"

    @pytest.mark.parametrize(
        "body",
        [
            {"quantity": 0, "cost_price": "7.00"},
            {"quantity": -2, "cost_price": "7.00"},
            {"quantity": 5},
            {"quantity": 5, "cost_price": "0"},
            {"cost_price": "7.00"},
        ],
    )
    def test_average_cost_restock_rejects_bad_input(self, client, db_session, product, stock_of, body):
        resp = client.post(f"/api/products/{product.id}/stock/average-cost", json=body)
        assert resp.status_code == 400
        assert stock_of(product.id) == 5

    def test_average_cost_restock_missing_product(self, client, db_session):
        resp = client.post("/api/products/9999/stock/average-cost", json={"quantity": 5, "cost_price": 7})
        assert resp.status_code == 404


# =============================================================================
# ORDERS
# =============================================================================


def _order_payload(customer, product, quantity=3, total="30.00"):
    return {
        "customer_id": customer.id,
        "total_amount": total,
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price": "10.00"}],
    }


class TestOrderRoutes:

    def test_create_order_takes_stock(self, client, db_session, customer, product, stock_of):
        resp = client.post("/api/orders", json=_order_payload(customer, product))

        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["status"] == "pending"
        assert order["total_amount"] == "30.00"
        assert order["remaining"] == "30.00"
        assert order["item_count"] == 1
        assert stock_of(product.id) == 2

    def test_insufficient_stock_is_409_and_writes_nothing(self, client, db_session, customer, product, stock_of):
        resp = client.post("/api/orders", json=_order_payload(customer, product, quantity=6, total="60.00"))

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["details"] == {"product_id": product.id, "requested": 6, "available": 5}
        assert stock_of(product.id) == 5
        assert client.get("/api/orders").get_json()["pagination"]["total"] == 0

    def test_unknown_customer_is_404(self, client, db_session, product):
        resp = client.post("/api/orders", json={
            "customer_id": 9999,
            "total_amount": "10.00",
            "items": [{"product_id": product.id, "quantity": 1, "unit_price": "10.00"}],
        })
        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "items",
        [
            [],
            [{"product_id": 1, "quantity": 0, "unit_price": "1.00"}],
            [{"product_id": 1, "quantity": "1.5", "unit_price": "1.00"}],
        ],
    )
    def test_invalid_items_are_400(self, client, db_session, customer, items):
        resp = client.post("/api/orders", json={"customer_id": customer.id, "total_amount": "1.00", "items": items})
        assert resp.status_code == 400

    def test_delete_with_remaining_balance_is_409(self, client, db_session, customer, product):
        order_id = client.post("/api/orders", json=_order_payload(customer, product)).get_json()["order"]["id"]
        client.post("/api/payments", json={
            "order_id": order_id, "amount": "5.00", "payment_method": "cash", "status": "completed",
        })

        resp = client.delete(f"/api/orders/{order_id}")

        assert resp.status_code == 409
        assert "Remaining balance: $25.00" in resp.get_json()["error"]

    def test_invalid_transition_is_409(self, client, db_session, customer, product):
        order_id = client.post("/api/orders", json=_order_payload(customer, product)).get_json()["order"]["id"]
        assert client.post(f"/api/orders/{order_id}/cancel").status_code == 200

        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "pending"})
        assert resp.status_code == 409


# =============================================================================
# PAYMENTS
# =============================================================================


class TestPaymentRoutes:

    def test_payment_completes_order(self, client, db_session, customer, product):
        order_id = client.post("/api/orders", json=_order_payload(customer, product)).get_json()["order"]["id"]

        resp = client.post("/api/payments", json={
            "order_id": order_id, "amount": "30.00", "payment_method": "card", "status": "completed",
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["payment"]["amount"] == "30.00"
        assert body["summary"]["owner_status"] == "completed"
        assert body["summary"]["status_changed"] is True
        assert body["summary"]["remaining"] == "0.00"

        again = client.post("/api/payments", json={
            "order_id": order_id, "amount": "1.00", "payment_method": "card", "status": "completed",
        })
        assert again.status_code == 409

    def test_payment_requires_exactly_one_owner(self, client, db_session):
        resp = client.post("/api/payments", json={"amount": "1.00", "payment_method": "cash"})
        assert resp.status_code == 400

    def test_delete_then_restore(self, client, db_session, customer, product):
        order_id = client.post("/api/orders", json=_order_payload(customer, product)).get_json()["order"]["id"]
        payment_id = client.post("/api/payments", json={
            "order_id": order_id, "amount": "10.00", "payment_method": "cash", "status": "completed",
        }).get_json()["payment"]["id"]

        assert client.delete(f"/api/payments/{payment_id}").status_code == 200
        assert client.get(f"/api/payments/{payment_id}").status_code == 404

        resp = client.post(f"/api/payments/{payment_id}/restore")
        assert resp.status_code == 200
        assert resp.get_json()["summary"]["total_paid"] == "10.00"


# =============================================================================
# PURCHASE ORDERS
# =============================================================================


class TestPurchaseOrderRoutes:

    def test_create_receive_and_pay(self, client, db_session, supplier, make_product, stock_of):
        p = make_product(cost_price="0.00", stock=0)

        created = client.post("/api/purchase-orders", json={
            "supplier_id": supplier.id,
            "items": [{"product_id": p.id, "quantity": 4, "unit_cost": "6.00"}],
        })
        assert created.status_code == 201
        po = created.get_json()["purchase_order"]
        assert po["total_amount"] == "24.00"

        received = client.post(f"/api/purchase-orders/{po['id']}/receive")
        assert received.status_code == 200
        assert stock_of(p.id) == 4

        paid = client.post(f"/api/purchase-orders/{po['id']}/payment", json={"payment_amount": "24.00"})
        assert paid.status_code == 200
        body = paid.get_json()
        assert body["purchase_order"]["balance"] == "0.00"
        assert body["purchase_order"]["status"] == "completed"

    def test_unknown_supplier_is_404(self, client, db_session, product):
        resp = client.post("/api/purchase-orders", json={
            "supplier_id": 9999,
            "items": [{"product_id": product.id, "quantity": 1, "unit_cost": "1.00"}],
        })
        assert resp.status_code == 404


class TestListFilters:

    def test_order_date_range(self, client, db_session, customer, product):
        client.post("/api/orders", json=_order_payload(customer, product, quantity=1, total="10.00"))
        today = datetime.now(timezone.utc).date()
        yesterday = (today - timedelta(days=1)).isoformat()
        tomorrow = (today + timedelta(days=1)).isoformat()

        around_now = client.get(f"/api/orders?date_from={yesterday}&date_to={tomorrow}").get_json()
        assert around_now["pagination"]["total"] == 1

        future = client.get("/api/orders?date_from=2999-01-01").get_json()
        assert future["pagination"]["total"] == 0

    def test_bad_date_is_400(self, client, db_session):
        resp = client.get("/api/purchase-orders?date_to=soon")
        assert resp.status_code == 400

    def test_unknown_purchase_order_status_is_400(self, client, db_session):
        resp = client.get("/api/purchase-orders?status=shipped")
        assert resp.status_code == 400
