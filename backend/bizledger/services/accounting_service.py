# Overview: Composition root for accounting reads and writes; local store first, then best-effort sync.

"""
Hybrid accounting facade

Reads go to the fact store and the aggregator only; they never wait on an
external platform. Writes commit locally first (errors propagate to the
caller), then hand the committed entity to the sync bridge. Anything the
bridge throws is logged as sync.push_crashed and dropped: the local write
has already succeeded and stays authoritative.
"""

from __future__ import annotations

from datetime import date

import structlog
from flask import current_app

from ..extensions import db
from ..time_utils import today as utc_today
from . import (
    customer_service,
    expense_service,
    export_service,
    invoice_service,
    reporting_service,
    tax_service,
)
from .sync_service import SyncBridge
from .tenant_service import require_principal

logger = structlog.get_logger(__name__)


class AccountingService:
    def __init__(self, principal, bridge: SyncBridge | None = None, *, today: date | None = None):
        require_principal(principal)
        self.principal = principal
        self.bridge = bridge if bridge is not None else SyncBridge.from_config(current_app.config)
        self._today = today

    @property
    def today(self) -> date:
        return self._today or utc_today()

    @property
    def rates(self) -> reporting_service.TaxRates:
        return reporting_service.TaxRates.from_config(current_app.config)

    @property
    def currency_code(self) -> str:
        return current_app.config.get("DEFAULT_CURRENCY", "UGX")

    # ------------------------------------------------------------------
    # Sync plumbing
    # ------------------------------------------------------------------

    def _push(self, entity_type: str, entity) -> list:
        push = getattr(self.bridge, f"push_{entity_type}")
        try:
            return push(self.principal, entity)
        except Exception as exc:
            db.session.rollback()
            # The local write is committed; a crashing bridge must not undo the response
            logger.error(
                "sync.push_crashed",
                tenant_id=self.principal.tenant_id,
                entity_type=entity_type,
                local_id=getattr(entity, "id", None),
                error=repr(exc),
            )
            return []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _window(self, start: date | None = None, end: date | None = None) -> reporting_service.FactWindow:
        return reporting_service.fetch_window(self.principal, start, end)

    def get_dashboard_stats(self, start: date | None = None, end: date | None = None) -> dict:
        window = self._window(start, end)
        snapshot = reporting_service.build_snapshot(window, today=self.today, rates=self.rates)
        payload = snapshot.to_dict()
        payload["currency_code"] = self.currency_code
        return payload

    def get_invoices(self, start: date | None = None, end: date | None = None, status: str | None = None) -> list:
        invoices = invoice_service.list_invoices(self.principal, start, end, status, as_of=self.today)
        return [self._invoice_dict(invoice) for invoice in invoices]

    def _invoice_dict(self, invoice) -> dict:
        return invoice.to_dict(
            effective_status=tax_service.effective_status(
                invoice.status, invoice.due_date, self.today
            )
        )

    def get_invoice(self, invoice_id: int) -> dict:
        invoice = invoice_service.get_invoice(self.principal, invoice_id)
        payload = self._invoice_dict(invoice)
        payload["integrity_warnings"] = [
            warning.to_dict() for warning in invoice_service.verify_invoice_totals(invoice)
        ]
        return payload

    def invoice_integrity(self, invoice_id: int) -> list:
        invoice = invoice_service.get_invoice(self.principal, invoice_id)
        return invoice_service.verify_invoice_totals(invoice)

    def get_expenses(self, start: date | None = None, end: date | None = None) -> list:
        return [expense.to_dict() for expense in expense_service.list_expenses(self.principal, start, end)]

    def get_expense_categories(self) -> list:
        return [category.to_dict() for category in expense_service.list_expense_categories(self.principal)]

    def get_customers(self, include_disabled: bool = False) -> list:
        return [customer.to_dict() for customer in customer_service.list_customers(self.principal, include_disabled)]

    def get_financial_reports(self, start: date | None = None, end: date | None = None) -> dict:
        report = reporting_service.build_financial_reports(self._window(start, end), rates=self.rates)
        report["currency_code"] = self.currency_code
        return report

    def get_report_series(self, start: date | None = None, end: date | None = None, granularity: str = "day") -> list:
        return reporting_service.build_report_series(self._window(start, end), granularity, today=self.today)

    def get_tax_report(self, start: date | None = None, end: date | None = None) -> dict:
        report = reporting_service.build_tax_report(self._window(start, end), rates=self.rates)
        report["currency_code"] = self.currency_code
        return report

    def get_top_products(self, start: date | None = None, end: date | None = None, limit: int = 5) -> list:
        return reporting_service.top_products(self._window(start, end), limit)

    def get_top_customers(self, start: date | None = None, end: date | None = None, limit: int = 5) -> list:
        return reporting_service.top_customers(self._window(start, end), limit)

    def export(self, fmt: str = "csv", start: date | None = None, end: date | None = None) -> tuple[bytes, str, str]:
        return export_service.export_window(
            self._window(start, end), fmt, currency_code=self.currency_code, today=self.today
        )

    def sync_status(self) -> dict:
        return {
            "platforms": self.bridge.platform_names,
            "entities": self.bridge.status(self.principal),
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _after_invoice_write(self, invoice) -> dict:
        self._push("invoice", invoice)
        return self._invoice_dict(invoice)

    def create_invoice(self, **fields) -> dict:
        fields.setdefault("currency_code", self.currency_code)
        fields.setdefault("vat_rate_bps", self.rates.vat_bps)
        invoice, created_customer = invoice_service.create_invoice(self.principal, **fields)
        if created_customer is not None:
            self._push("customer", created_customer)
        return self._after_invoice_write(invoice)

    def update_invoice(self, invoice_id: int, **changes) -> dict:
        return self._after_invoice_write(invoice_service.update_invoice(self.principal, invoice_id, **changes))

    def send_invoice(self, invoice_id: int, expected_version: int | None = None) -> dict:
        return self._after_invoice_write(
            invoice_service.send_invoice(self.principal, invoice_id, expected_version=expected_version)
        )

    def mark_paid(self, invoice_id: int, **payment) -> dict:
        return self._after_invoice_write(invoice_service.mark_paid(self.principal, invoice_id, **payment))

    def cancel_invoice(self, invoice_id: int, expected_version: int | None = None) -> dict:
        return self._after_invoice_write(
            invoice_service.cancel_invoice(self.principal, invoice_id, expected_version=expected_version)
        )

    def create_invoice_from_sale(self, sale_id: int) -> dict:
        invoice, created_customer = invoice_service.create_invoice_from_sale(
            self.principal, sale_id, vat_rate_bps=self.rates.vat_bps
        )
        if created_customer is not None:
            self._push("customer", created_customer)
        return self._after_invoice_write(invoice)

    def create_expense(self, **fields) -> dict:
        fields.setdefault("currency_code", self.currency_code)
        expense = expense_service.create_expense(self.principal, **fields)
        self._push("expense", expense)
        return expense.to_dict()

    def update_expense(self, expense_id: int, **changes) -> dict:
        expense = expense_service.update_expense(self.principal, expense_id, **changes)
        self._push("expense", expense)
        return expense.to_dict()

    def create_customer(self, **fields) -> dict:
        customer = customer_service.create_customer(
            self.principal, default_currency=self.currency_code, **fields
        )
        self._push("customer", customer)
        return customer.to_dict()

    def update_customer(self, customer_id: int, **changes) -> dict:
        customer = customer_service.update_customer(self.principal, customer_id, **changes)
        self._push("customer", customer)
        return customer.to_dict()

    def create_expense_category(self, **fields) -> dict:
        return expense_service.create_expense_category(self.principal, **fields).to_dict()

    def trigger_sync(self) -> dict:
        return self.bridge.trigger_sync(self.principal)
