"""
HTTP boundary tests.

Verifies:
- Missing actor identity returns 401
- Barber role denied privileged ledger operations (403)
- Typed ledger errors surface as {error, code, details}
"""

import pytest


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/sales/cart"),
            ("POST", "/api/sales/1/refund"),
            ("POST", "/api/inventory/1/movements"),
            ("POST", "/api/inventory/reconcile"),
            ("GET", "/api/invoices"),
            ("POST", "/api/snapshots"),
            ("GET", "/api/payment-methods"),
        ],
    )
    def test_requires_actor(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_actor_id(self, client, db_session):
        resp = client.get("/api/products", headers={"X-Actor-Id": "abc"})
        assert resp.status_code == 401


# =============================================================================
# BARBER DENIED PRIVILEGED OPERATIONS: 403
# =============================================================================


class TestBarberDenied:
    @pytest.mark.parametrize(
        "path,body",
        [
            ("/api/inventory/1/movements", {"kind": "ENTRY", "quantity": 1, "reason": "x"}),
            ("/api/inventory/1/count", {"real_stock": 1}),
            ("/api/inventory/reconcile", {"mode": "fix"}),
            ("/api/snapshots", {}),
            ("/api/products", {"code": "X", "name": "X", "price_cents": 100}),
        ],
    )
    def test_privileged_post(self, client, db_session, barber_headers, path, body):
        resp = client.post(path, json=body, headers=barber_headers)
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "FORBIDDEN"


class TestHealth:
    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"


class TestCartRoutes:
    def test_settle_and_refund(self, client, db_session, make_product, barber_headers):
        product = make_product(initial_stock=3, price_cents=4000)

        resp = client.post("/api/sales/cart", json={
            "lines": [{"type": "product", "id": product.id, "quantity": 2, "price": 4000, "payment_method": "card"}],
            "barber_id": 7,
        }, headers=barber_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["total_cents"] == 8000
        assert body["payment_breakdown"] == {"card": 8000}
        sale_id = body["sale_records"][0]["id"]

        resp = client.post(f"/api/sales/{sale_id}/refund", json={"reason": "devuelto"}, headers=barber_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["status"] == "REFUNDED"

        resp = client.post(f"/api/sales/{sale_id}/refund", json={"reason": "otra vez"}, headers=barber_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ALREADY_REFUNDED"

    def test_insufficient_stock_payload(self, client, db_session, make_product, barber_headers):
        product = make_product(initial_stock=1)

        resp = client.post("/api/sales/cart", json={
            "lines": [{"type": "product", "id": product.id, "quantity": 2, "price": 100, "payment_method": "cash"}],
        }, headers=barber_headers)

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["items"][0]["available"] == 1

    def test_invalid_payment_method(self, client, db_session, make_product, barber_headers):
        product = make_product()
        resp = client.post("/api/sales/cart", json={
            "lines": [{"type": "product", "id": product.id, "quantity": 1, "price": 100, "payment_method": "bitcoin"}],
        }, headers=barber_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_PAYMENT_METHOD"


class TestInventoryRoutes:
    def test_movement_count_and_reconcile(self, client, db_session, make_product, admin_headers):
        product = make_product(initial_stock=2)

        resp = client.post(f"/api/inventory/{product.id}/movements", json={
            "kind": "entry", "quantity": 4, "reason": "compra", "cost_cents": 8000, "payment_method": "cash",
        }, headers=admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["product"]["expected_stock"] == 6
        assert body["movement"]["kind"] == "ENTRY"
        assert body["movement"]["quantity"] == 4
        assert body["movement"]["reason"] == "compra"

        resp = client.post(f"/api/inventory/{product.id}/count", json={"real_stock": 5}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["product"]["difference"] == -1

        resp = client.post("/api/inventory/reconcile", json={"mode": "fix"}, headers=admin_headers)
        assert resp.status_code == 200
        report = resp.get_json()
        assert report["fixed_count"] == 0
        assert report["count_variances"][0]["difference"] == -1

        resp = client.get("/api/inventory/version", headers=admin_headers)
        assert resp.get_json()["version"] > 0

    def test_exit_past_zero(self, client, db_session, make_product, admin_headers):
        product = make_product(initial_stock=1)
        resp = client.post(f"/api/inventory/{product.id}/movements", json={
            "kind": "EXIT", "quantity": 2, "reason": "merma",
        }, headers=admin_headers)
        assert resp.status_code == 409

    def test_unknown_product(self, client, db_session, admin_headers):
        resp = client.get("/api/inventory/999999/available", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "PRODUCT_NOT_FOUND"


class TestInvoiceRoutes:
    def test_list_invoices(self, client, db_session, make_service, barber_headers):
        service = make_service(price_cents=30000)
        client.post("/api/sales/cart", json={
            "lines": [{"type": "service", "id": service.id, "quantity": 1, "price": 30000, "payment_method": "nequi"}],
            "client_data": {"name": "Ana"},
        }, headers=barber_headers)

        resp = client.get("/api/invoices?search=ana", headers=barber_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 1
        assert body["items"][0]["kind"] == "FORMAL"

    def test_bad_date_range(self, client, db_session, barber_headers):
        resp = client.get("/api/invoices?start=yesterday", headers=barber_headers)
        assert resp.status_code == 400


class TestCatalogRoutes:
    def test_create_product_rejects_float_price(self, client, db_session, admin_headers):
        resp = client.post("/api/products", json={"code": "P1", "name": "Cera", "price_cents": 10.5},
                           headers=admin_headers)
        assert resp.status_code == 400

    def test_payment_methods_listing(self, client, db_session, barber_headers):
        resp = client.get("/api/payment-methods", headers=barber_headers)
        body = resp.get_json()
        assert "cheque" not in body["enabled"]
        assert {m["id"] for m in body["items"]} >= {"cash", "card", "nequi", "cheque"}


class TestReportRoutes:
    def test_sales_report_and_stats(self, client, db_session, make_service, barber_headers):
        service = make_service(price_cents=30000)
        client.post("/api/sales/cart", json={
            "lines": [{"type": "service", "id": service.id, "quantity": 1, "price": 30000, "payment_method": "cash"}],
        }, headers=barber_headers)

        resp = client.get("/api/reports/sales?group_by=month", headers=barber_headers)
        assert resp.status_code == 200
        assert resp.get_json()["summary"]["gross_sales_cents"] == 30000

        resp = client.get("/api/reports/sales/stats", headers=barber_headers)
        assert resp.get_json()["line_count"] == 1

        resp = client.get("/api/reports/invoices/stats", headers=barber_headers)
        assert resp.get_json()["total_invoices"] == 1

    def test_bad_group_by(self, client, db_session, barber_headers):
        resp = client.get("/api/reports/sales?group_by=year", headers=barber_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_requires_actor(self, client, db_session):
        assert client.get("/api/reports/sales").status_code == 401
