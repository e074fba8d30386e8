# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that one tenant can never read or write another
tenant's facts through the shared store.

These tests create facts for two tenants, then verify that:
1. Lists and aggregates only ever include the caller's rows
2. Direct lookups of a foreign id answer NotFound (existence is not revealed)
3. Writes against a foreign id are rejected and leave the row untouched
4. A missing principal is rejected before any query runs

Test Coverage:
- Invoices: Cross-tenant read/write/transition blocked
- Expenses: Cross-tenant read/write blocked
- Customers: Cross-tenant read/write blocked
- Sales: Cross-tenant read blocked
- Aggregates: Snapshot never mixes tenants
"""

from datetime import date

import pytest
from structlog.testing import capture_logs

from bizledger.errors import NoIdentity, NotFound
from bizledger.models import Invoice
from bizledger.services import (
    customer_service,
    expense_service,
    invoice_service,
    reporting_service,
    sales_fact_service,
)
from bizledger.services.identity_service import Principal
from bizledger.services.tenant_service import get_owned, require_principal, scoped_query

ITEMS = [{"name": "Consulting", "quantity": 1, "unit_price_minor": 10_000}]


@pytest.fixture
def invoice_b(db_session, principal_b):
    invoice, _ = invoice_service.create_invoice(principal_b, items=ITEMS, customer_name="B Customer")
    return invoice


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_principal(self, principal_a):
        assert require_principal(principal_a) == "tenant-a"

    @pytest.mark.parametrize("principal", [None, Principal(tenant_id="", email=None)])
    def test_missing_principal_rejected(self, db_session, principal):
        with pytest.raises(NoIdentity):
            require_principal(principal)
        with pytest.raises(NoIdentity):
            scoped_query(Invoice, principal)

    def test_scoped_query_filters(self, db_session, principal_a, invoice_b):
        invoice_service.create_invoice(principal_a, items=ITEMS)
        assert scoped_query(Invoice, principal_a).count() == 1
        assert scoped_query(Invoice, principal_a).first().tenant_id == "tenant-a"

    def test_cross_tenant_lookup_logged(self, db_session, principal_a, invoice_b):
        with capture_logs() as logs:
            with pytest.raises(NotFound):
                get_owned(Invoice, principal_a, invoice_b.id, "Invoice")
        assert "tenant.cross_tenant_access_denied" in [entry["event"] for entry in logs]


class TestInvoiceIsolation:
    def test_list_excludes_foreign_invoices(self, db_session, principal_a, invoice_b):
        assert invoice_service.list_invoices(principal_a) == []

    def test_foreign_invoice_not_found(self, db_session, principal_a, invoice_b):
        with pytest.raises(NotFound):
            invoice_service.get_invoice(principal_a, invoice_b.id)

    def test_foreign_invoice_cannot_be_edited(self, db_session, principal_a, principal_b, invoice_b):
        with pytest.raises(NotFound):
            invoice_service.update_invoice(principal_a, invoice_b.id, notes="hijacked")
        assert invoice_service.get_invoice(principal_b, invoice_b.id).notes is None

    @pytest.mark.parametrize("transition", ["send_invoice", "mark_paid", "cancel_invoice"])
    def test_foreign_invoice_cannot_transition(self, db_session, principal_a, principal_b, invoice_b, transition):
        with pytest.raises(NotFound):
            getattr(invoice_service, transition)(principal_a, invoice_b.id)
        assert invoice_service.get_invoice(principal_b, invoice_b.id).status == "DRAFT"

    def test_foreign_customer_id_rejected(self, db_session, principal_a, principal_b):
        customer_b = customer_service.create_customer(principal_b, name="B Customer")
        with pytest.raises(NotFound):
            invoice_service.create_invoice(principal_a, items=ITEMS, customer_id=customer_b.id)

    def test_same_customer_name_is_separate_per_tenant(self, db_session, principal_a, invoice_b):
        _, created = invoice_service.create_invoice(principal_a, items=ITEMS, customer_name="B Customer")
        assert created is not None
        assert created.tenant_id == "tenant-a"


class TestExpenseAndCustomerIsolation:
    def test_foreign_expense(self, db_session, principal_a, principal_b):
        expense = expense_service.create_expense(principal_b, amount_minor=100, description="B rent")
        assert expense_service.list_expenses(principal_a) == []
        with pytest.raises(NotFound):
            expense_service.get_expense(principal_a, expense.id)
        with pytest.raises(NotFound):
            expense_service.update_expense(principal_a, expense.id, amount_minor=1)

    def test_foreign_customer(self, db_session, principal_a, principal_b):
        customer = customer_service.create_customer(principal_b, name="B Only")
        assert customer_service.list_customers(principal_a) == []
        with pytest.raises(NotFound):
            customer_service.update_customer(principal_a, customer.id, name="Renamed")
        assert customer_service.get_customer(principal_b, customer.id).name == "B Only"


class TestSalesAndAggregates:
    def test_foreign_sale_not_found(self, db_session, principal_a, make_sale):
        sale = make_sale("tenant-b", 5_000)
        assert sales_fact_service.list_sales(principal_a) == []
        with pytest.raises(NotFound):
            sales_fact_service.get_sale(principal_a, sale.id)

    def test_snapshot_never_mixes_tenants(self, db_session, principal_a, principal_b, make_sale):
        make_sale("tenant-a", 1_000)
        make_sale("tenant-b", 50_000)
        expense_service.create_expense(principal_b, amount_minor=7_000, description="B fuel")
        invoice, _ = invoice_service.create_invoice(principal_b, items=ITEMS)
        invoice_service.send_invoice(principal_b, invoice.id)

        window_a = reporting_service.fetch_window(principal_a)
        snapshot_a = reporting_service.build_snapshot(window_a, today=date(2026, 4, 1))
        assert snapshot_a.total_revenue == 1_000
        assert snapshot_a.total_expenses == 0
        assert snapshot_a.invoice_count == 0

    def test_fetch_without_principal(self, db_session):
        with pytest.raises(NoIdentity):
            reporting_service.fetch_window(None)
