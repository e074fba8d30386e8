# Overview: Pytest coverage for the HTTP API: identity, status mapping, reports and downloads.

from datetime import datetime

import pytest

from bizledger.decorators import SYNC_BRIDGE_KEY

A_HEADERS = {"X-Tenant-Id": "tenant-a", "X-User-Email": "owner@tenant-a.test"}
B_HEADERS = {"X-Tenant-Id": "tenant-b", "X-User-Email": "owner@tenant-b.test"}
ITEMS = [{"name": "Consulting", "quantity": 1, "unit_price_minor": 100_000}]


@pytest.fixture
def api(app, client, db_session, bridge, monkeypatch):
    """Test client whose sync bridge talks to the fake platform."""
    monkeypatch.setitem(app.extensions, SYNC_BRIDGE_KEY, bridge)
    return client


def _create_invoice(api, headers=A_HEADERS, **overrides):
    body = {"items": ITEMS}
    body.update(overrides)
    response = api.post("/api/invoices", json=body, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["invoice"]


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"

    def test_cors_headers(self, client, db_session):
        response = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "X-Tenant-Id" in response.headers["Access-Control-Allow-Headers"]

    def test_unknown_origin_gets_no_cors_headers(self, client, db_session):
        response = client.get("/api/health", headers={"Origin": "https://evil.example.test"})
        assert "Access-Control-Allow-Origin" not in response.headers


class TestIdentity:
    def test_header_identity(self, api):
        response = api.get("/api/accounting/dashboard", headers=A_HEADERS)
        assert response.status_code == 200
        principal = response.get_json()["principal"]
        assert principal["tenant_id"] == "tenant-a"
        assert principal["source"] == "session"

    def test_anonymous_gets_demo_fallback(self, api, app):
        response = api.get("/api/accounting/dashboard")
        assert response.status_code == 200
        assert response.get_json()["principal"]["tenant_id"] == app.config["DEMO_FALLBACK_TENANT_ID"]

    def test_anonymous_rejected_without_fallback(self, api, app, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_DEMO_FALLBACK", False)
        response = api.get("/api/accounting/dashboard")
        assert response.status_code == 401
        assert "error" in response.get_json()


class TestInvoiceRoutes:
    def test_create_and_fetch(self, api):
        invoice = _create_invoice(api, customer_name="Nile Traders")
        assert invoice["total_minor"] == 118_000
        assert invoice["status"] == "DRAFT"

        response = api.get(f"/api/invoices/{invoice['id']}", headers=A_HEADERS)
        assert response.status_code == 200
        assert response.get_json()["invoice"]["integrity_warnings"] == []

    def test_missing_items_is_bad_request(self, api):
        response = api.post("/api/invoices", json={"customer_name": "X"}, headers=A_HEADERS)
        assert response.status_code == 400

    def test_non_object_body_is_bad_request(self, api):
        response = api.post("/api/invoices", json=[1, 2], headers=A_HEADERS)
        assert response.status_code == 400

    def test_foreign_invoice_is_not_found(self, api):
        invoice = _create_invoice(api, headers=B_HEADERS)
        response = api.get(f"/api/invoices/{invoice['id']}", headers=A_HEADERS)
        assert response.status_code == 404

    def test_illegal_transition_is_conflict(self, api):
        invoice = _create_invoice(api)
        assert api.post(f"/api/invoices/{invoice['id']}/cancel", headers=A_HEADERS).status_code == 200
        response = api.post(f"/api/invoices/{invoice['id']}/send", headers=A_HEADERS)
        assert response.status_code == 409
        assert response.get_json()["details"]["status"] == "CANCELLED"

    def test_stale_version_is_conflict(self, api):
        invoice = _create_invoice(api)
        version = invoice["version_id"]
        first = api.patch(
            f"/api/invoices/{invoice['id']}",
            json={"notes": "one", "expected_version": version},
            headers=A_HEADERS,
        )
        assert first.status_code == 200
        second = api.patch(
            f"/api/invoices/{invoice['id']}",
            json={"notes": "two", "expected_version": version},
            headers=A_HEADERS,
        )
        assert second.status_code == 409

    def test_pay_and_list_by_status(self, api):
        invoice = _create_invoice(api)
        api.post(f"/api/invoices/{invoice['id']}/send", headers=A_HEADERS)
        response = api.post(
            f"/api/invoices/{invoice['id']}/pay",
            json={"payment_method": "bank_transfer"},
            headers=A_HEADERS,
        )
        assert response.get_json()["invoice"]["status"] == "PAID"

        listed = api.get("/api/invoices?status=PAID", headers=A_HEADERS).get_json()["invoices"]
        assert [inv["id"] for inv in listed] == [invoice["id"]]

    def test_invoice_from_sale(self, api, make_sale):
        sale = make_sale("tenant-a", 12_000)
        response = api.post(f"/api/invoices/from-sale/{sale.id}", headers=A_HEADERS)
        assert response.status_code == 201
        assert response.get_json()["invoice"]["source_sale_id"] == sale.id

    def test_bad_date_argument(self, api):
        response = api.get("/api/invoices?start=03/01/2026", headers=A_HEADERS)
        assert response.status_code == 400


class TestExpenseAndCustomerRoutes:
    def test_expense_lifecycle(self, api):
        response = api.post(
            "/api/expenses",
            json={"amount_minor": 5_000, "description": "Fuel", "paid_at": "2026-03-03T08:00:00"},
            headers=A_HEADERS,
        )
        assert response.status_code == 201
        expense = response.get_json()["expense"]

        response = api.patch(f"/api/expenses/{expense['id']}", json={"amount_minor": 6_000}, headers=A_HEADERS)
        assert response.get_json()["expense"]["amount_minor"] == 6_000

        listed = api.get("/api/expenses?start=2026-03-01&end=2026-03-31", headers=A_HEADERS).get_json()
        assert len(listed["expenses"]) == 1

    def test_expense_without_amount(self, api):
        response = api.post("/api/expenses", json={"description": "Fuel"}, headers=A_HEADERS)
        assert response.status_code == 400

    def test_categories(self, api):
        assert api.post("/api/expenses/categories", json={"name": "Rent"}, headers=A_HEADERS).status_code == 201
        assert api.post("/api/expenses/categories", json={"name": "Rent"}, headers=A_HEADERS).status_code == 409
        categories = api.get("/api/expenses/categories", headers=A_HEADERS).get_json()["categories"]
        assert [c["name"] for c in categories] == ["Rent"]

    def test_customers(self, api):
        response = api.post("/api/customers", json={"name": "Nile Traders"}, headers=A_HEADERS)
        assert response.status_code == 201
        customer = response.get_json()["customer"]

        api.patch(f"/api/customers/{customer['id']}", json={"enabled": False}, headers=A_HEADERS)
        assert api.get("/api/customers", headers=A_HEADERS).get_json()["customers"] == []
        hidden = api.get("/api/customers?include_disabled=true", headers=A_HEADERS).get_json()["customers"]
        assert len(hidden) == 1


class TestReportRoutes:
    @pytest.fixture
    def books(self, api, make_sale):
        make_sale("tenant-a", occurred_at=datetime(2026, 3, 2, 10, 0), lines=[("Sugar", "2", 5_000)])
        invoice = _create_invoice(api, issue_date="2026-03-05", due_date="2026-03-20", customer_name="Nile Traders")
        api.post(f"/api/invoices/{invoice['id']}/send", headers=A_HEADERS)
        return invoice

    def test_dashboard_window(self, api, books):
        stats = api.get(
            "/api/accounting/dashboard?start=2026-03-01&end=2026-03-31", headers=A_HEADERS
        ).get_json()["stats"]
        assert stats["total_revenue"] == 10_000 + 118_000
        assert stats["invoice_count"] == 1

    def test_series(self, api, books):
        body = api.get(
            "/api/reports/series?start=2026-03-01&end=2026-03-31&granularity=month", headers=A_HEADERS
        ).get_json()
        assert body["granularity"] == "month"
        assert body["series"][0]["revenue"] == 128_000

    def test_series_bad_granularity(self, api, books):
        response = api.get("/api/reports/series?granularity=hour", headers=A_HEADERS)
        assert response.status_code == 400

    def test_financial_and_tax(self, api, books):
        financial = api.get("/api/reports/financial", headers=A_HEADERS).get_json()
        assert financial["balance_sheet"]["accounts_receivable"] == 118_000
        tax = api.get("/api/reports/tax", headers=A_HEADERS).get_json()
        assert tax["vat"]["vat_collected"] == 18_000 + 1_800

    def test_top_views(self, api, books):
        products = api.get("/api/reports/top-products?limit=1", headers=A_HEADERS).get_json()["products"]
        assert [p["name"] for p in products] == ["Consulting"]
        customers = api.get("/api/reports/top-customers", headers=A_HEADERS).get_json()["customers"]
        assert customers[0]["name"] == "Nile Traders"

    def test_limit_out_of_range(self, api, books):
        assert api.get("/api/reports/top-products?limit=0", headers=A_HEADERS).status_code == 400

    @pytest.mark.parametrize("fmt,mimetype,extension", [
        ("csv", "text/csv", "csv"),
        ("excel", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
        ("pdf", "application/pdf", "pdf"),
    ])
    def test_export(self, api, books, fmt, mimetype, extension):
        response = api.get(
            f"/api/reports/export?format={fmt}&start=2026-03-01&end=2026-03-31", headers=A_HEADERS
        )
        assert response.status_code == 200
        assert response.mimetype == mimetype
        disposition = response.headers["Content-Disposition"]
        assert f"financial-report-2026-03-01-2026-03-31.{extension}" in disposition

    def test_export_unknown_format(self, api, books):
        assert api.get("/api/reports/export?format=odt", headers=A_HEADERS).status_code == 400


class TestSyncRoutes:
    def test_status_and_trigger(self, api, fake_platform):
        api.post("/api/customers", json={"name": "Nile Traders"}, headers=A_HEADERS)

        status = api.get("/api/sync/status", headers=A_HEADERS).get_json()
        assert status["platforms"] == ["quickfile"]
        assert status["entities"]["customer"]["synced_count"] == 1

        fake_platform.mode = "error"
        response = api.post("/api/sync/trigger", headers=A_HEADERS)
        assert response.status_code == 200
        assert response.get_json()["summary"]["customer"]["failed"] == 1

    def test_platform_down_does_not_fail_writes(self, api, fake_platform):
        fake_platform.mode = "timeout"
        response = api.post("/api/expenses", json={"amount_minor": 100, "description": "Fuel"}, headers=A_HEADERS)
        assert response.status_code == 201
