"""Route-level tests for the JSON API.

Tests cover: app creation, authentication and roles, the response envelope,
catalog and price quotes, the quotation -> order -> invoice -> tax invoice
flow, follow-ups, customer history, the storefront and webhooks.
"""

import dataclasses
import datetime

import pytest

from conftest import CUSTOMER_PASSWORD, TEST_PASSWORD
from extensions import db
from models import AdminUser, AuditLog, Communication, Invoice, Order, Quotation
from utils import utc_now


def client_for(app, admin_id):
    """Test client with an admin session for *admin_id*."""
    c = app.test_client()
    with c.session_transaction() as sess:
        sess["admin_user_id"] = admin_id
    return c


def create_quotation(client, sample_data, quantity=50):
    resp = client.post(
        "/api/quotations",
        json={
            "customer_id": sample_data["customer_id"],
            "items": [{"product_id": sample_data["product_id"], "quantity": quantity}],
            "shipping_address_id": sample_data["address_id"],
        },
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def accepted_quotation_id(client, sample_data, quantity=50):
    quotation_id = create_quotation(client, sample_data, quantity)["id"]
    for status in ("SENT", "ACCEPTED"):
        resp = client.patch(f"/api/quotations/{quotation_id}/status", json={"status": status})
        assert resp.status_code == 200, resp.get_json()
    return quotation_id


def create_order(client, sample_data, quantity=50):
    quotation_id = accepted_quotation_id(client, sample_data, quantity)
    resp = client.post(f"/api/quotations/{quotation_id}/convert")
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


# ---------------------------------------------------------------------------
# App creation
# ---------------------------------------------------------------------------


class TestAppCreation:
    def test_create_app(self, app):
        assert app is not None
        assert app.config["TESTING"] is True

    def test_admin_user_created(self, app):
        with app.app_context():
            admin = AdminUser.query.filter_by(username="admin").first()
            assert admin is not None
            assert admin.role == "admin"

    def test_configs_loaded(self, app):
        assert app.config["COMMERCE_CONFIG"].ppn_rate == "0.11"
        assert app.config["LOCALE_CONFIG"].utc_offset_hours == 7
        assert app.config["WHATSAPP_CONFIG"].enabled is False

    def test_security_headers(self, client):
        resp = client.get("/api/products")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        body = resp.get_json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"

    def test_cli_commands_registered(self, app):
        assert "expire-quotations" in app.cli.commands
        assert "create-admin" in app.cli.commands

    def test_cli_expire_quotations(self, app):
        result = app.test_cli_runner().invoke(args=["expire-quotations"])
        assert result.exit_code == 0
        assert "Expired 0 quotation(s)." in result.output

    def test_cli_create_admin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(
            args=["create-admin", "rina", "--role", "finance", "--password", "finance-pass"]
        )
        assert result.exit_code == 0, result.output
        with app.app_context():
            assert AdminUser.query.filter_by(username="rina").one().role == "finance"
        result = runner.invoke(args=["create-admin", "rina", "--password", "x"])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuthRoutes:
    def test_admin_login_success(self, client):
        resp = client.post(
            "/api/auth/admin/login", json={"username": "admin", "password": TEST_PASSWORD}
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["username"] == "admin"
        me = client.get("/api/auth/admin/me")
        assert me.status_code == 200
        assert me.get_json()["data"]["role"] == "admin"

    def test_admin_login_is_audited(self, app, client):
        client.post("/api/auth/admin/login", json={"username": "admin", "password": TEST_PASSWORD})
        with app.app_context():
            assert AuditLog.query.filter_by(action="login").count() == 1

    def test_admin_login_failure(self, client):
        resp = client.post(
            "/api/auth/admin/login", json={"username": "admin", "password": "wrong"}
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "UNAUTHORIZED"

    def test_admin_login_missing_fields(self, client):
        resp = client.post("/api/auth/admin/login", json={"username": "admin"})
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "password" in error["details"]["fields"]

    def test_protected_route_requires_login(self, client):
        resp = client.get("/api/orders")
        assert resp.status_code == 401

    def test_logout(self, logged_in_client):
        assert logged_in_client.post("/api/auth/admin/logout").status_code == 200
        assert logged_in_client.get("/api/auth/admin/me").status_code == 401

    def test_role_without_permission_is_forbidden(self, app, sample_data):
        sales = client_for(app, sample_data["sales_id"])
        resp = sales.get("/api/orders")
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"
        assert sales.get("/api/quotations").status_code == 200

    def test_warehouse_cannot_invoice(self, app, logged_in_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        warehouse = client_for(app, sample_data["warehouse_id"])
        assert warehouse.get(f"/api/orders/{order['id']}").status_code == 200
        resp = warehouse.post(f"/api/orders/{order['id']}/invoice", json={})
        assert resp.status_code == 403

    def test_customer_register_and_me(self, client):
        resp = client.post(
            "/api/auth/customer/register",
            json={
                "name": "CV Maju",
                "email": "Owner@Maju.co.id",
                "password": "long-enough",
                "customer_type": "B2B",
                "company_name": "CV Maju",
                "npwp": "01.234.567.8-901.000",
            },
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["email"] == "owner@maju.co.id"
        me = client.get("/api/auth/customer/me")
        assert me.status_code == 200
        assert me.get_json()["data"]["customer_type"] == "B2B"

    def test_customer_register_short_password(self, client):
        resp = client.post(
            "/api/auth/customer/register",
            json={"name": "X", "email": "x@example.com", "password": "short"},
        )
        assert resp.status_code == 400

    def test_customer_register_duplicate_email(self, client, sample_data):
        resp = client.post(
            "/api/auth/customer/register",
            json={"name": "Dup", "email": "budi@example.com", "password": "long-enough"},
        )
        assert resp.status_code == 400

    def test_customer_login(self, client, sample_data):
        resp = client.post(
            "/api/auth/customer/login",
            json={"email": "buyer@stjaya.co.id", "password": CUSTOMER_PASSWORD},
        )
        assert resp.status_code == 200
        assert client.get("/api/store/cart").status_code == 200

    def test_customer_login_failure(self, client, sample_data):
        resp = client.post(
            "/api/auth/customer/login",
            json={"email": "buyer@stjaya.co.id", "password": "nope"},
        )
        assert resp.status_code == 401

    def test_admin_session_is_not_a_customer_session(self, logged_in_client):
        assert logged_in_client.get("/api/store/cart").status_code == 401


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestProductRoutes:
    def test_public_listing(self, client, sample_data):
        resp = client.get("/api/products")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        skus = [p["sku"] for p in body["data"]]
        assert skus == ["LTX-200", "NIT-100"]

    def test_listing_filters(self, client, sample_data):
        resp = client.get("/api/products?featured=true")
        assert [p["sku"] for p in resp.get_json()["data"]] == ["NIT-100"]
        resp = client.get("/api/products?q=latex")
        assert [p["sku"] for p in resp.get_json()["data"]] == ["LTX-200"]

    def test_product_detail_has_tiers(self, client, sample_data):
        resp = client.get(f"/api/products/{sample_data['product_id']}")
        tiers = resp.get_json()["data"]["pricing_tiers"]
        assert [t["min_quantity"] for t in tiers] == [10, 50, 100]

    def test_price_quote(self, client, sample_data):
        resp = client.get(f"/api/products/{sample_data['product_id']}/price?quantity=50")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["unit_price"] == 9000
        assert data["subtotal"] == 450000
        assert data["tax_amount"] == 49500
        assert data["total_amount"] == 499500

    def test_price_quote_below_first_tier(self, client, sample_data):
        resp = client.get(f"/api/products/{sample_data['product_id']}/price?quantity=3")
        assert resp.get_json()["data"]["unit_price"] == 10000

    def test_price_quote_rejects_zero(self, client, sample_data):
        resp = client.get(f"/api/products/{sample_data['product_id']}/price?quantity=0")
        assert resp.status_code == 400

    def test_create_product(self, logged_in_client, sample_data):
        resp = logged_in_client.post(
            "/api/products",
            json={
                "sku": "VIN-1",
                "name": "Vinyl Glove",
                "base_price": 7000,
                "stock": 100,
                "brand_id": sample_data["brand_id"],
                "pricing_tiers": [{"min_quantity": 20, "price_per_unit": 6500}],
            },
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["brand"]["slug"] == "safegrip"
        assert data["pricing_tiers"][0]["max_quantity"] is None

    def test_create_product_requires_login(self, client):
        resp = client.post("/api/products", json={"sku": "X", "name": "X", "base_price": 1})
        assert resp.status_code == 401

    def test_create_product_invalid_body(self, logged_in_client):
        resp = logged_in_client.post("/api/products", json={"sku": "X", "base_price": -1})
        assert resp.status_code == 400
        fields = resp.get_json()["error"]["details"]["fields"]
        assert "name" in fields and "base_price" in fields

    def test_overlapping_tiers_rejected(self, logged_in_client, sample_data):
        resp = logged_in_client.patch(
            f"/api/products/{sample_data['product_id']}",
            json={
                "pricing_tiers": [
                    {"min_quantity": 1, "max_quantity": 20, "price_per_unit": 9000},
                    {"min_quantity": 10, "price_per_unit": 8000},
                ]
            },
        )
        assert resp.status_code == 400

    def test_stock_adjustment(self, logged_in_client, sample_data):
        url = f"/api/products/{sample_data['other_product_id']}/stock"
        resp = logged_in_client.post(url, json={"delta": 10, "reason": "restock"})
        assert resp.get_json()["data"]["stock"] == 15
        resp = logged_in_client.post(url, json={"delta": -50})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "PRECONDITION_FAILED"

    def test_low_stock(self, logged_in_client, sample_data):
        resp = logged_in_client.get("/api/products/low-stock")
        assert [p["sku"] for p in resp.get_json()["data"]] == ["LTX-200"]

    def test_brands_and_categories(self, logged_in_client, sample_data):
        resp = logged_in_client.post("/api/brands", json={"name": "Ansell Pro"})
        assert resp.status_code == 201
        assert resp.get_json()["data"]["slug"] == "ansell-pro"
        names = [b["name"] for b in logged_in_client.get("/api/brands").get_json()["data"]]
        assert "Ansell Pro" in names
        cats = logged_in_client.get("/api/categories").get_json()["data"]
        assert [c["slug"] for c in cats] == ["nitrile"]


# ---------------------------------------------------------------------------
# Quotations and orders
# ---------------------------------------------------------------------------


class TestQuotationRoutes:
    def test_create_quotation(self, logged_in_client, sample_data):
        data = create_quotation(logged_in_client, sample_data)
        assert data["status"] == "DRAFT"
        assert data["subtotal"] == 450000
        assert data["items"][0]["unit_price"] == 9000
        assert data["shipping_address"]["city"] == "Bekasi"
        assert data["status_history"][0]["to_status"] == "DRAFT"

    def test_create_quotation_without_items(self, logged_in_client, sample_data):
        resp = logged_in_client.post(
            "/api/quotations", json={"customer_id": sample_data["customer_id"], "items": []}
        )
        assert resp.status_code == 400

    def test_invalid_status_transition(self, logged_in_client, sample_data):
        quotation_id = create_quotation(logged_in_client, sample_data)["id"]
        resp = logged_in_client.patch(
            f"/api/quotations/{quotation_id}/status", json={"status": "ACCEPTED"}
        )
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_TRANSITION"

    def test_unknown_status_value(self, logged_in_client, sample_data):
        quotation_id = create_quotation(logged_in_client, sample_data)["id"]
        resp = logged_in_client.patch(
            f"/api/quotations/{quotation_id}/status", json={"status": "LOST"}
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"

    def test_convert(self, app, logged_in_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        assert order["status"] == "NEW"
        assert order["total_amount"] == 499500
        assert order["items"][0]["quantity"] == 50
        with app.app_context():
            quotation = db.session.get(Quotation, order["quotation_id"])
            assert quotation.status == "CONVERTED"
            assert quotation.converted_order_id == order["id"]

    def test_convert_twice(self, app, logged_in_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        resp = logged_in_client.post(f"/api/quotations/{order['quotation_id']}/convert")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "ALREADY_CONVERTED"
        with app.app_context():
            assert Order.query.count() == 1

    def test_convert_missing_quotation(self, logged_in_client):
        resp = logged_in_client.post("/api/quotations/9999/convert")
        assert resp.status_code == 404

    def test_list_filters_by_status(self, logged_in_client, sample_data):
        create_quotation(logged_in_client, sample_data)
        accepted_quotation_id(logged_in_client, sample_data)
        resp = logged_in_client.get("/api/quotations?status=ACCEPTED")
        assert len(resp.get_json()["data"]) == 1
        assert logged_in_client.get("/api/quotations?status=NOPE").status_code == 400

    def test_expire_endpoint(self, logged_in_client, sample_data):
        resp = logged_in_client.post("/api/quotations/expire")
        assert resp.get_json()["data"] == {"expired": 0}


class TestOrderRoutes:
    def test_status_flow(self, logged_in_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        url = f"/api/orders/{order['id']}/status"
        assert logged_in_client.patch(url, json={"status": "PROCESSING"}).status_code == 200

        resp = logged_in_client.patch(url, json={"status": "SHIPPED"})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "PRECONDITION_FAILED"

        resp = logged_in_client.patch(
            url, json={"status": "SHIPPED", "tracking_number": "JNE0001"}
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["tracking_number"] == "JNE0001"
        assert data["shipped_at"] is not None

        resp = logged_in_client.patch(url, json={"status": "DELIVERED"})
        data = resp.get_json()["data"]
        assert data["status"] == "DELIVERED"
        assert [h["to_status"] for h in data["status_history"]] == [
            "NEW", "PROCESSING", "SHIPPED", "DELIVERED",
        ]

    def test_invalid_transition(self, logged_in_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        resp = logged_in_client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "DELIVERED"}
        )
        assert resp.status_code == 400
        details = resp.get_json()["error"]["details"]
        assert details["from"] == "NEW"
        assert details["to"] == "DELIVERED"

    def test_tracking_endpoint_ships(self, logged_in_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        logged_in_client.patch(f"/api/orders/{order['id']}/status", json={"status": "PROCESSING"})
        resp = logged_in_client.post(
            f"/api/orders/{order['id']}/tracking", json={"tracking_number": "SICEPAT-77"}
        )
        assert resp.get_json()["data"]["status"] == "SHIPPED"

    def test_shipping_notification_logged_when_enabled(self, app, logged_in_client, sample_data, monkeypatch):
        app.config["WHATSAPP_CONFIG"] = dataclasses.replace(
            app.config["WHATSAPP_CONFIG"], enabled=True, phone_number_id="1", access_token="t"
        )

        class Resp:
            def raise_for_status(self):
                pass

            def json(self):
                return {"messages": [{"id": "wamid.SHIP"}]}

        monkeypatch.setattr("services.notifications.requests.post", lambda *a, **kw: Resp())
        order = create_order(logged_in_client, sample_data)
        logged_in_client.patch(f"/api/orders/{order['id']}/status", json={"status": "PROCESSING"})
        logged_in_client.patch(
            f"/api/orders/{order['id']}/status",
            json={"status": "SHIPPED", "tracking_number": "JNE9"},
        )
        with app.app_context():
            entry = Communication.query.filter_by(order_id=order["id"]).one()
            assert entry.external_id == "wamid.SHIP"
            assert "JNE9" in entry.content


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


class TestInvoiceRoutes:
    def _invoice(self, client, sample_data, **body):
        order = create_order(client, sample_data)
        resp = client.post(f"/api/orders/{order['id']}/invoice", json=body)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]

    def test_generate_invoice(self, logged_in_client, sample_data):
        data = self._invoice(logged_in_client, sample_data)
        assert data["invoice_number"] == f"INV-{utc_now().year}-000001"
        assert data["subtotal"] == 450000
        assert data["tax_amount"] == 49500
        assert data["total_amount"] == 499500
        assert data["status"] == "PENDING"
        assert len(data["items"]) == 1

    def test_invoice_twice(self, logged_in_client, sample_data):
        data = self._invoice(logged_in_client, sample_data)
        resp = logged_in_client.post(f"/api/orders/{data['order_id']}/invoice", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "ALREADY_INVOICED"

    def test_explicit_due_date(self, logged_in_client, sample_data):
        due = (datetime.date.today() + datetime.timedelta(days=60)).isoformat()
        data = self._invoice(logged_in_client, sample_data, due_date=due)
        assert data["due_date"] == due

    def test_payment_flow(self, app, logged_in_client, sample_data):
        invoice = self._invoice(logged_in_client, sample_data)
        url = f"/api/invoices/{invoice['id']}/payment"
        resp = logged_in_client.post(url, json={"payment_method": "bank_transfer", "notes": "BCA"})
        assert resp.status_code == 200
        paid = resp.get_json()["data"]
        assert paid["status"] == "PAID"

        resp = logged_in_client.post(url, json={"payment_method": "cash"})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "ALREADY_PAID"
        with app.app_context():
            assert db.session.get(Invoice, invoice["id"]).payment_method == "bank_transfer"

    def test_cancelled_invoice_cannot_be_paid(self, logged_in_client, sample_data):
        invoice = self._invoice(logged_in_client, sample_data)
        assert logged_in_client.post(f"/api/invoices/{invoice['id']}/cancel").status_code == 200
        resp = logged_in_client.post(
            f"/api/invoices/{invoice['id']}/payment", json={"payment_method": "cash"}
        )
        assert resp.get_json()["error"]["code"] == "INVOICE_CANCELLED"

    def test_cancel_records_acting_admin(self, app, sample_data):
        admin = client_for(app, sample_data["admin_id"])
        invoice = self._invoice(admin, sample_data)
        assert admin.post(f"/api/invoices/{invoice['id']}/cancel").status_code == 200
        with app.app_context():
            row = AuditLog.query.filter_by(entity_type="invoice", entity_id=invoice["id"]).one()
            assert row.action == "cancel"
            assert row.admin_user_id == sample_data["admin_id"]

    def test_tax_invoice(self, logged_in_client, sample_data):
        invoice = self._invoice(logged_in_client, sample_data)
        url = f"/api/invoices/{invoice['id']}/tax-invoice"
        assert logged_in_client.post(url).status_code == 400

        logged_in_client.post(
            f"/api/invoices/{invoice['id']}/payment", json={"payment_method": "bank_transfer"}
        )
        resp = logged_in_client.post(url)
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["ppn_amount"] == 49500
        assert data["total_with_ppn"] == 499500
        assert data["company"]["npwp"] == "012345678901000"
        assert data["tax_invoice_number"].startswith("010.000-")

        resp = logged_in_client.post(url)
        assert resp.get_json()["error"]["code"] == "ALREADY_ISSUED"

    def test_list_tax_invoice_requests(self, logged_in_client, customer_client, sample_data):
        invoice = self._invoice(logged_in_client, sample_data)
        resp = customer_client.post(f"/api/store/invoices/{invoice['id']}/tax-invoice-request")
        assert resp.status_code == 200
        resp = logged_in_client.get("/api/invoices?tax_invoice_requested=true")
        assert [i["id"] for i in resp.get_json()["data"]] == [invoice["id"]]


# ---------------------------------------------------------------------------
# Follow-ups and customer communication
# ---------------------------------------------------------------------------


class TestFollowUpRoutes:
    def _schedule(self, client, sample_data, when):
        return client.post(
            "/api/follow-ups",
            json={
                "customer_id": sample_data["customer_id"],
                "type": "QUOTATION_FOLLOW_UP",
                "scheduled_at": when.isoformat(),
            },
        )

    def test_requires_known_type_parameter(self, logged_in_client):
        resp = logged_in_client.get("/api/follow-ups")
        assert resp.status_code == 400
        assert "today" in resp.get_json()["error"]["message"]
        assert logged_in_client.get("/api/follow-ups?type=weekly").status_code == 400

    def test_overdue_listing(self, logged_in_client, sample_data):
        resp = self._schedule(logged_in_client, sample_data, utc_now() - datetime.timedelta(hours=3))
        assert resp.status_code == 201
        created = resp.get_json()["data"]
        assert created["type"] == "QUOTATION_FOLLOW_UP"
        resp = logged_in_client.get("/api/follow-ups?type=overdue")
        assert [f["id"] for f in resp.get_json()["data"]] == [created["id"]]

    def test_other_admins_follow_ups_hidden_by_default(self, app, logged_in_client, sample_data):
        sales = client_for(app, sample_data["sales_id"])
        self._schedule(sales, sample_data, utc_now() - datetime.timedelta(hours=1))
        assert logged_in_client.get("/api/follow-ups?type=overdue").get_json()["data"] == []
        resp = logged_in_client.get("/api/follow-ups?type=overdue&include_all_admins=true")
        assert len(resp.get_json()["data"]) == 1

    def test_complete(self, logged_in_client, sample_data):
        created = self._schedule(logged_in_client, sample_data, utc_now()).get_json()["data"]
        url = f"/api/follow-ups/{created['id']}/complete"
        resp = logged_in_client.post(url, json={"notes": "Customer will order next week"})
        assert resp.get_json()["data"]["status"] == "COMPLETED"
        resp = logged_in_client.post(url, json={})
        assert resp.get_json()["error"]["code"] == "ALREADY_RESOLVED"

    def test_invalid_body(self, logged_in_client, sample_data):
        resp = logged_in_client.post(
            "/api/follow-ups",
            json={"customer_id": sample_data["customer_id"], "type": "LUNCH", "scheduled_at": "soon"},
        )
        assert resp.status_code == 400
        fields = resp.get_json()["error"]["details"]["fields"]
        assert "type" in fields and "scheduled_at" in fields


class TestCustomerRoutes:
    def test_create_and_list(self, logged_in_client, sample_data):
        resp = logged_in_client.post(
            "/api/customers", json={"name": "Toko Aman", "email": "aman@example.com"}
        )
        assert resp.status_code == 201
        resp = logged_in_client.get("/api/customers?q=aman")
        assert [c["email"] for c in resp.get_json()["data"]] == ["aman@example.com"]

    def test_set_company(self, logged_in_client, sample_data):
        url = f"/api/customers/{sample_data['customer_id']}/company"
        resp = logged_in_client.put(url, json={"name": "PT STJ", "npwp": "12-345"})
        assert resp.status_code == 400
        resp = logged_in_client.put(url, json={"name": "PT STJ", "npwp": "01.234.567.8-901.000"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["npwp"] == "012345678901000"

    def test_company_only_for_b2b(self, logged_in_client, sample_data):
        resp = logged_in_client.put(
            f"/api/customers/{sample_data['retail_id']}/company", json={"name": "Toko"}
        )
        assert resp.status_code == 400

    def test_create_requires_name(self, logged_in_client):
        resp = logged_in_client.post("/api/customers", json={"email": "x@example.com"})
        assert resp.status_code == 400

    def test_history(self, logged_in_client, sample_data):
        resp = logged_in_client.post(
            "/api/communications",
            json={
                "customer_id": sample_data["customer_id"],
                "type": "PHONE",
                "direction": "OUTBOUND",
                "content": "Discussed bulk discount",
            },
        )
        assert resp.status_code == 201
        resp = logged_in_client.get(f"/api/customers/{sample_data['customer_id']}/history")
        data = resp.get_json()["data"]
        assert data["communications"][0]["content"] == "Discussed bulk discount"
        assert data["next_follow_up"] is None

    def test_template_message_failure_is_recorded(self, logged_in_client, sample_data):
        resp = logged_in_client.post(
            f"/api/customers/{sample_data['customer_id']}/messages",
            json={"template": "order_shipped", "parameters": ["ORD-1", "JNE1"]},
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["status"] == "FAILED"

    def test_template_message_wrong_parameter_count(self, logged_in_client, sample_data):
        resp = logged_in_client.post(
            f"/api/customers/{sample_data['customer_id']}/messages",
            json={"template": "order_shipped", "parameters": ["ORD-1"]},
        )
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class TestReportRoutes:
    def test_sales_report(self, logged_in_client, sample_data):
        create_order(logged_in_client, sample_data)
        resp = logged_in_client.get(f"/api/reports/sales?category_id={sample_data['category_id']}")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["summary"] == {
            "total_sales": 499500,
            "total_orders": 1,
            "average_order_value": 499500,
        }
        assert data["orders"][0]["company_name"] == "PT Sarung Tangan Jaya"

        resp = logged_in_client.get("/api/reports/sales?customer=nobody")
        assert resp.get_json()["data"]["orders"] == []
        resp = logged_in_client.get("/api/reports/sales?date_from=10-03-2026")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"

    def test_payment_report(self, logged_in_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        logged_in_client.post(f"/api/orders/{order['id']}/invoice", json={})
        resp = logged_in_client.get("/api/reports/payments?status=PENDING")
        data = resp.get_json()["data"]
        assert data["summary"]["total_pending"] == 499500
        assert data["invoices"][0]["order_number"] == order["order_number"]
        assert logged_in_client.get("/api/reports/payments?status=LATE").status_code == 400

    def test_analytics(self, logged_in_client, sample_data):
        create_order(logged_in_client, sample_data)
        resp = logged_in_client.get("/api/reports/analytics?period=7d")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["overview"]["total_revenue"] == 499500
        assert data["conversion"]["conversion_rate"] == 100.0
        assert data["products"]["top"][0]["sku"] == "NIT-100"
        assert logged_in_client.get("/api/reports/analytics?period=2w").status_code == 400
        assert logged_in_client.get("/api/reports/analytics?limit=0").status_code == 400

    def test_report_permissions(self, app, client, sample_data):
        assert client.get("/api/reports/sales").status_code == 401
        warehouse = client_for(app, sample_data["warehouse_id"])
        assert warehouse.get("/api/reports/sales").status_code == 403
        assert warehouse.get("/api/reports/follow-ups").status_code == 403
        sales = client_for(app, sample_data["sales_id"])
        assert sales.get("/api/reports/analytics").status_code == 200
        assert sales.get("/api/reports/communications").status_code == 200

    def test_outreach_metrics_scoped_to_admin(self, app, logged_in_client, sample_data):
        logged_in_client.post(
            "/api/follow-ups",
            json={
                "customer_id": sample_data["customer_id"],
                "type": "GENERAL",
                "scheduled_at": (utc_now() - datetime.timedelta(hours=3)).isoformat(),
            },
        )
        mine = logged_in_client.get("/api/reports/follow-ups").get_json()["data"]
        assert (mine["pending"], mine["overdue"]) == (1, 1)
        sales = client_for(app, sample_data["sales_id"])
        assert sales.get("/api/reports/follow-ups").get_json()["data"]["pending"] == 0
        everyone = sales.get("/api/reports/follow-ups?include_all_admins=true").get_json()["data"]
        assert everyone["pending"] == 1

        resp = logged_in_client.get("/api/reports/communications?include_all_admins=true")
        data = resp.get_json()["data"]
        assert data["total_communications"] == 0
        assert data["follow_up_effectiveness"]["total_follow_ups"] == 1


# ---------------------------------------------------------------------------
# Storefront
# ---------------------------------------------------------------------------


class TestStoreRoutes:
    def test_requires_customer_login(self, client):
        assert client.get("/api/store/cart").status_code == 401

    def test_cart_and_quotation_request(self, app, customer_client, sample_data):
        resp = customer_client.post(
            "/api/store/cart/items",
            json={"product_id": sample_data["product_id"], "quantity": 50},
        )
        assert resp.status_code == 201
        cart = resp.get_json()["data"]
        assert cart["subtotal"] == 450000
        assert cart["tax_amount"] == 49500

        resp = customer_client.post(
            "/api/store/quotations", json={"shipping_address_id": sample_data["address_id"]}
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["total_amount"] == 499500
        assert customer_client.get("/api/store/cart").get_json()["data"]["items"] == []

    def test_empty_cart_request(self, customer_client):
        resp = customer_client.post("/api/store/quotations", json={})
        assert resp.status_code == 400

    def test_update_and_remove_cart_item(self, customer_client, sample_data):
        cart = customer_client.post(
            "/api/store/cart/items",
            json={"product_id": sample_data["other_product_id"], "quantity": 1},
        ).get_json()["data"]
        item_id = cart["items"][0]["id"]
        resp = customer_client.patch(f"/api/store/cart/items/{item_id}", json={"quantity": 4})
        assert resp.get_json()["data"]["subtotal"] == 20000
        resp = customer_client.delete(f"/api/store/cart/items/{item_id}")
        assert resp.get_json()["data"]["items"] == []

    def test_respond_to_quotation(self, logged_in_client, customer_client, sample_data):
        quotation_id = create_quotation(logged_in_client, sample_data)["id"]
        logged_in_client.patch(f"/api/quotations/{quotation_id}/status", json={"status": "SENT"})
        resp = customer_client.post(
            f"/api/store/quotations/{quotation_id}/respond", json={"accept": True}
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "ACCEPTED"

    def test_cannot_see_other_customers_documents(self, app, logged_in_client, sample_data):
        quotation_id = create_quotation(logged_in_client, sample_data)["id"]
        retail = app.test_client()
        with retail.session_transaction() as sess:
            sess["customer_id"] = sample_data["retail_id"]
        assert retail.get(f"/api/store/quotations/{quotation_id}").status_code == 404
        assert retail.get("/api/store/quotations").get_json()["data"] == []

    def test_orders_and_invoices_visible(self, logged_in_client, customer_client, sample_data):
        order = create_order(logged_in_client, sample_data)
        logged_in_client.post(f"/api/orders/{order['id']}/invoice", json={})
        orders = customer_client.get("/api/store/orders").get_json()["data"]
        assert [o["id"] for o in orders] == [order["id"]]
        invoices = customer_client.get("/api/store/invoices").get_json()["data"]
        assert invoices[0]["order_id"] == order["id"]

    def test_add_address(self, customer_client):
        resp = customer_client.post(
            "/api/store/addresses", json={"address": "Jl. Gudang 2", "city": "Cikarang"}
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["city"] == "Cikarang"
        assert customer_client.post("/api/store/addresses", json={}).status_code == 400


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class TestWebhookRoutes:
    @pytest.fixture
    def verify_app(self, app):
        app.config["WHATSAPP_CONFIG"] = dataclasses.replace(
            app.config["WHATSAPP_CONFIG"], verify_token="s3cret"
        )
        return app

    def test_verification_handshake(self, verify_app):
        c = verify_app.test_client()
        resp = c.get(
            "/api/webhooks/whatsapp?hub.mode=subscribe&hub.verify_token=s3cret&hub.challenge=42"
        )
        assert resp.status_code == 200
        assert resp.data == b"42"

    def test_verification_wrong_token(self, verify_app):
        c = verify_app.test_client()
        resp = c.get(
            "/api/webhooks/whatsapp?hub.mode=subscribe&hub.verify_token=nope&hub.challenge=42"
        )
        assert resp.status_code == 403

    def test_inbound_message(self, app, client, sample_data):
        payload = {
            "entry": [
                {
                    "changes": [
                        {
                            "value": {
                                "messages": [
                                    {"from": "6281234567890", "id": "wamid.1", "text": {"body": "Halo"}}
                                ]
                            }
                        }
                    ]
                }
            ]
        }
        resp = client.post("/api/webhooks/whatsapp", json=payload)
        assert resp.get_json()["data"] == {"stored": 1}
        with app.app_context():
            assert Communication.query.filter_by(direction="INBOUND").count() == 1

    def test_inbound_message_from_formatted_number(self, app, client, sample_data):
        payload = {
            "entry": [
                {
                    "changes": [
                        {"value": {"messages": [{"from": "6285711112222", "id": "wamid.2", "text": {"body": "Halo"}}]}}
                    ]
                }
            ]
        }
        resp = client.post("/api/webhooks/whatsapp", json=payload)
        assert resp.get_json()["data"] == {"stored": 1}
        with app.app_context():
            assert Communication.query.one().customer_id == sample_data["retail_id"]

    def test_malformed_payload_is_not_a_server_error(self, client, sample_data):
        resp = client.post(
            "/api/webhooks/whatsapp",
            json={
                "entry": [
                    {"changes": [{"value": {"messages": [{"from": "6281234567890", "text": "hi"}]}}]},
                    "x",
                ]
            },
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"stored": 1}
        resp = client.post("/api/webhooks/whatsapp", json=["entry"])
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"
