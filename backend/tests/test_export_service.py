# Overview: Pytest coverage for CSV, Excel and PDF report downloads.

import csv
import io
from datetime import date, datetime

import pytest
from openpyxl import load_workbook

from bizledger.errors import ValidationError
from bizledger.services import export_service
from bizledger.services.reporting_service import ExpenseRow, FactWindow, InvoiceRow, SaleRow

TODAY = date(2026, 4, 1)


@pytest.fixture
def window():
    return FactWindow(
        start=date(2026, 3, 1),
        end=date(2026, 3, 31),
        sales=(SaleRow(id=1, receipt_number="R-00001", total=25_000, occurred_at=datetime(2026, 3, 2, 9, 0)),),
        invoices=(
            InvoiceRow(
                id=7, invoice_number="INV-000007", customer_id=3, customer_name="Nile & Sons <Ltd>",
                issue_date=date(2026, 3, 5), due_date=date(2026, 3, 20), status="SENT",
                subtotal=10_000, discount=0, tax=1_800, total=11_800, source_sale_id=None,
            ),
        ),
        expenses=(ExpenseRow(id=4, amount=4_000, description="Rent", category="Premises", paid_at=datetime(2026, 3, 3, 8, 0)),),
    )


class TestRows:
    def test_row_order_and_signs(self, window):
        rows = export_service.export_rows(window, "UGX", TODAY)
        assert rows == [
            ("Invoice", "2026-03-05", "INV-000007 Nile & Sons <Ltd>", "11800", "OVERDUE"),
            ("Expense", "2026-03-03", "Rent", "-4000", "PAID"),
            ("Sale", "2026-03-02", "Sale R-00001", "25000", "PAID"),
        ]

    def test_two_decimal_currency(self, window):
        rows = export_service.export_rows(window, "USD", TODAY)
        assert rows[0][3] == "118.00"
        assert rows[1][3] == "-40.00"


class TestFormats:
    def test_csv(self, window):
        content, mimetype, filename = export_service.export_window(window, "csv", currency_code="UGX", today=TODAY)
        assert mimetype == "text/csv"
        assert filename == "financial-report-2026-03-01-2026-03-31.csv"
        parsed = list(csv.reader(io.StringIO(content.decode("utf-8"))))
        assert parsed[0] == list(export_service.HEADER)
        assert len(parsed) == 4

    def test_excel(self, window):
        content, mimetype, filename = export_service.export_window(window, "EXCEL", currency_code="UGX", today=TODAY)
        assert filename.endswith(".xlsx")
        assert "spreadsheetml" in mimetype
        sheet = load_workbook(io.BytesIO(content)).active
        assert sheet["A1"].value.startswith("Financial report")
        assert [cell.value for cell in sheet[2]] == list(export_service.HEADER)
        assert sheet["D4"].value == -4000.0

    def test_pdf_escapes_markup(self, window):
        content, mimetype, filename = export_service.export_window(window, "pdf", currency_code="UGX", today=TODAY)
        assert mimetype == "application/pdf"
        assert content.startswith(b"%PDF")

    def test_empty_pdf(self):
        content, _, filename = export_service.export_window(
            FactWindow(start=None, end=None), "pdf", currency_code="UGX", today=TODAY
        )
        assert content.startswith(b"%PDF")
        assert filename == "financial-report-all-2026-04-01.pdf"

    def test_unknown_format(self, window):
        with pytest.raises(ValidationError):
            export_service.export_window(window, "docx", currency_code="UGX", today=TODAY)
