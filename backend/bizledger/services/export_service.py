# Overview: Renders a window of financial facts as CSV, Excel or PDF downloads.

from __future__ import annotations

import csv
import io
from datetime import date
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..errors import ValidationError
from . import tax_service
from .reporting_service import FactWindow

HEADER = ("Type", "Date", "Description", "Amount", "Status")

FORMATS = {
    "csv": ("text/csv", "csv"),
    "excel": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
    "pdf": ("application/pdf", "pdf"),
}


def export_rows(window: FactWindow, currency_code: str, today: date) -> list[tuple]:
    """
    One row per invoice, expense and sale; amounts in major units.

    Expenses are negative so the Amount column sums to net cash movement.
    """
    rows = []
    for inv in window.invoices:
        rows.append((
            "Invoice",
            inv.issue_date.isoformat(),
            f"{inv.invoice_number} {inv.customer_name or ''}".strip(),
            str(tax_service.to_major(inv.total, currency_code)),
            tax_service.effective_status(inv.status, inv.due_date, today),
        ))
    for expense in window.expenses:
        rows.append((
            "Expense",
            expense.paid_at.date().isoformat(),
            expense.description,
            str(tax_service.to_major(-expense.amount, currency_code)),
            "PAID",
        ))
    for sale in window.sales:
        rows.append((
            "Sale",
            sale.occurred_at.date().isoformat(),
            f"Sale {sale.receipt_number or sale.id}",
            str(tax_service.to_major(sale.total, currency_code)),
            "PAID",
        ))
    return rows


def render_csv(rows: list[tuple]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADER)
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def render_excel(rows: list[tuple], title: str) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Transactions"
    ws.append([title])
    ws["A1"].font = Font(bold=True, size=14)
    ws.append(list(HEADER))
    for cell in ws[2]:
        cell.font = Font(bold=True)
    for row in rows:
        kind, day, description, amount, status = row
        ws.append([kind, day, description, float(amount), status])

    for column, width in zip("ABCDE", (12, 12, 40, 16, 12)):
        ws.column_dimensions[column].width = width

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def render_pdf(rows: list[tuple], title: str, currency_code: str) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), topMargin=0.5*inch, bottomMargin=0.5*inch)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("Title", parent=styles["Heading1"], fontSize=18, textColor=colors.HexColor("#0f172a"))
    cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=9)

    elements = [Paragraph(escape(title), title_style), Spacer(1, 12)]

    data = [list(HEADER[:3]) + [f"Amount ({currency_code})", HEADER[4]]]
    for kind, day, description, amount, status in rows:
        data.append([kind, day, Paragraph(escape(description), cell_style), amount, status])
    if not rows:
        data.append(["", "", "No transactions in this period", "", ""])

    table = Table(data, colWidths=[1.0*inch, 1.1*inch, 4.6*inch, 1.6*inch, 1.1*inch], repeatRows=1)
    table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#64748b")),
        ("LINEBELOW", (0, 0), (-1, 0), 1, colors.HexColor("#e2e8f0")),
        ("ALIGN", (3, 0), (3, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    elements.append(table)

    doc.build(elements)
    return buffer.getvalue()


def export_window(window: FactWindow, fmt: str, *, currency_code: str, today: date) -> tuple[bytes, str, str]:
    """Returns (content, mimetype, filename)."""
    fmt = (fmt or "csv").lower()
    if fmt not in FORMATS:
        raise ValidationError("format must be csv, excel, or pdf")

    rows = export_rows(window, currency_code, today)
    start = window.start.isoformat() if window.start else "all"
    end = window.end.isoformat() if window.end else today.isoformat()
    title = f"Financial report {start} to {end}"
    mimetype, extension = FORMATS[fmt]
    filename = f"financial-report-{start}-{end}.{extension}"

    if fmt == "csv":
        content = render_csv(rows)
    elif fmt == "excel":
        content = render_excel(rows, title)
    else:
        content = render_pdf(rows, title, currency_code)
    return content, mimetype, filename
