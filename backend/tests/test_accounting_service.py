# Overview: Pytest coverage for the accounting facade: local-first writes and best-effort sync.

import json
from datetime import date, datetime

import pytest
from structlog.testing import capture_logs

from bizledger.errors import ConstraintViolation
from bizledger.models import Customer, Expense, SyncRecord
from bizledger.services.accounting_service import AccountingService

TODAY = date(2026, 4, 1)
ITEMS = [{"name": "Consulting", "quantity": 1, "unit_price_minor": 100_000}]


class CrashingBridge:
    """Bridge whose every push blows up with a non-domain error."""

    platform_names = ["quickfile"]

    def _crash(self, principal, entity):
        raise RuntimeError("bridge bug")

    push_customer = push_invoice = push_expense = _crash


@pytest.fixture
def service(db_session, principal_a, bridge):
    return AccountingService(principal_a, bridge, today=TODAY)


class TestLocalFirstWrites:
    def test_crashing_bridge_never_blocks_a_write(self, db_session, principal_a):
        service = AccountingService(principal_a, CrashingBridge(), today=TODAY)

        with capture_logs() as logs:
            expense = service.create_expense(amount_minor=5_000, description="Fuel")

        assert expense["amount_minor"] == 5_000
        assert db_session.query(Expense).count() == 1
        assert "sync.push_crashed" in [entry["event"] for entry in logs]

    def test_platform_outage_never_blocks_a_write(self, service, db_session, fake_platform):
        fake_platform.mode = "timeout"
        customer = service.create_customer(name="Nile Traders")
        assert db_session.query(Customer).filter_by(id=customer["id"]).count() == 1
        assert db_session.query(SyncRecord).one().status == "FAILED"

    def test_local_errors_still_propagate(self, service, fake_platform):
        service.create_invoice(items=ITEMS, invoice_number="A-1")
        with pytest.raises(ConstraintViolation):
            service.create_invoice(items=ITEMS, invoice_number="A-1")
        # Only the successful write reached the platform
        assert len(fake_platform.calls("POST")) == 1

    def test_new_customer_is_pushed_before_its_invoice(self, service, fake_platform):
        service.create_invoice(items=ITEMS, customer_name="Nile Traders")

        paths = [r.url.path for r in fake_platform.requests]
        assert paths == ["/api/contacts", "/api/documents"]
        invoice_payload = json.loads(fake_platform.requests[1].content)
        assert invoice_payload["customerId"] == "1001"

    def test_invoice_defaults_follow_config(self, service):
        invoice = service.create_invoice(items=ITEMS)
        assert invoice["currency_code"] == "UGX"
        assert invoice["vat_rate_bps"] == 1800
        assert invoice["total_minor"] == 118_000

    def test_lifecycle_pushes_updates(self, service, fake_platform):
        invoice = service.create_invoice(items=ITEMS)
        service.send_invoice(invoice["id"])
        paid = service.mark_paid(invoice["id"], paid_at="2026-03-20T10:00:00Z")

        assert paid["status"] == "PAID"
        assert [r.method for r in fake_platform.requests] == ["POST", "PUT", "PUT"]

    def test_category_creation_is_not_synced(self, service, fake_platform):
        category = service.create_expense_category(name="Utilities")
        assert category["name"] == "Utilities"
        assert fake_platform.requests == []


class TestReads:
    def test_dashboard_stats(self, service, make_sale):
        make_sale("tenant-a", 10_000, occurred_at=datetime(2026, 3, 10, 12, 0))
        stats = service.get_dashboard_stats(date(2026, 3, 1), date(2026, 3, 31))
        assert stats["total_revenue"] == 10_000
        assert stats["currency_code"] == "UGX"

    def test_invoice_shows_derived_overdue(self, service):
        invoice = service.create_invoice(items=ITEMS, issue_date="2026-03-01", due_date="2026-03-15")
        service.send_invoice(invoice["id"])
        loaded = service.get_invoice(invoice["id"])
        assert loaded["status"] == "OVERDUE"
        assert loaded["stored_status"] == "SENT"
        assert loaded["integrity_warnings"] == []

    def test_reads_never_touch_the_platform(self, service, fake_platform, make_sale):
        make_sale("tenant-a", 10_000)
        service.get_dashboard_stats()
        service.get_financial_reports()
        service.get_tax_report()
        service.get_report_series(date(2026, 3, 1), date(2026, 3, 31), "week")
        service.get_top_products()
        service.get_top_customers()
        service.export("csv")
        assert fake_platform.requests == []

    def test_reports_carry_currency(self, service):
        assert service.get_financial_reports()["currency_code"] == "UGX"
        assert service.get_tax_report()["currency_code"] == "UGX"

    def test_sync_status_and_trigger(self, service):
        service.create_customer(name="Nile Traders")
        status = service.sync_status()
        assert status["platforms"] == ["quickfile"]
        assert status["entities"]["customer"]["synced_count"] == 1

        summary = service.trigger_sync()
        assert summary["customer"]["ok"] == 1

    def test_default_bridge_without_credentials(self, db_session, principal_a):
        service = AccountingService(principal_a, today=TODAY)
        assert service.sync_status()["platforms"] == []
        service.create_customer(name="Offline Co")
        assert service.sync_status()["entities"]["customer"]["pending_count"] == 1
