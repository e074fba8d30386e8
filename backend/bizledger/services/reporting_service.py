# Overview: Aggregates sales, invoices and expenses into snapshots, statements and report series.

"""
Aggregator

Stateless: every call re-derives its figures from the store. Nothing is
cached across requests, so two concurrent reads can never disagree because
of a stale cache.

REVENUE RULE (authoritative):
    revenue = sum(sale.total) + sum(invoice.total for SENT/PAID invoices)
Draft and cancelled invoices are unrealized and excluded. Invoices generated
from a POS sale (source_sale_id set) document revenue the sale already
counts, so they are excluded too.
"""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

import structlog
from flask import current_app

from ..errors import ValidationError
from . import expense_service, invoice_service, sales_fact_service, tax_service
from .tenant_service import require_principal

logger = structlog.get_logger(__name__)

GRANULARITIES = ("day", "week", "month")
RECENT_TRANSACTION_LIMIT = 10


@dataclass(frozen=True)
class SaleRow:
    id: int
    receipt_number: str | None
    total: int
    occurred_at: datetime
    lines: tuple = ()  # (product_name, quantity, line_total)


@dataclass(frozen=True)
class InvoiceRow:
    id: int
    invoice_number: str
    customer_id: int | None
    customer_name: str | None
    issue_date: date
    due_date: date
    status: str
    subtotal: int
    discount: int
    tax: int
    total: int
    source_sale_id: int | None
    items: tuple = ()  # (name, quantity, line_total)

    @property
    def counts_as_revenue(self) -> bool:
        return self.source_sale_id is None and tax_service.counts_as_revenue(self.status)


@dataclass(frozen=True)
class ExpenseRow:
    id: int
    amount: int
    description: str
    category: str | None
    paid_at: datetime


@dataclass(frozen=True)
class FactWindow:
    """Immutable facts for one tenant and one inclusive date window."""
    start: date | None
    end: date | None
    sales: tuple = ()
    invoices: tuple = ()
    expenses: tuple = ()

    @property
    def counted_invoices(self) -> list[InvoiceRow]:
        return [inv for inv in self.invoices if inv.counts_as_revenue]


@dataclass(frozen=True)
class TaxRates:
    vat_bps: int = tax_service.DEFAULT_VAT_RATE_BPS
    income_bps: int = tax_service.DEFAULT_INCOME_TAX_RATE_BPS
    withholding_bps: int = tax_service.DEFAULT_WITHHOLDING_RATE_BPS

    @classmethod
    def from_config(cls, config) -> "TaxRates":
        return cls(
            vat_bps=config.get("VAT_RATE_BPS", tax_service.DEFAULT_VAT_RATE_BPS),
            income_bps=config.get("INCOME_TAX_RATE_BPS", tax_service.DEFAULT_INCOME_TAX_RATE_BPS),
            withholding_bps=config.get("WITHHOLDING_TAX_RATE_BPS", tax_service.DEFAULT_WITHHOLDING_RATE_BPS),
        )

    def to_dict(self) -> dict:
        return {
            "vat_bps": self.vat_bps,
            "income_bps": self.income_bps,
            "withholding_bps": self.withholding_bps,
        }


@dataclass(frozen=True)
class FinancialSnapshot:
    total_revenue: int
    total_expenses: int
    net_profit: int
    vat_collected: int
    secondary_tax: tax_service.FiscalBreakdown
    invoice_count: int
    overdue_count: int
    sales_count: int
    recent_transactions: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_revenue": self.total_revenue,
            "total_expenses": self.total_expenses,
            "net_profit": self.net_profit,
            "vat_collected": self.vat_collected,
            "secondary_tax": self.secondary_tax.to_dict(),
            "invoice_count": self.invoice_count,
            "overdue_count": self.overdue_count,
            "sales_count": self.sales_count,
            "recent_transactions": list(self.recent_transactions),
        }


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def _sale_row(sale) -> SaleRow:
    return SaleRow(
        id=sale.id,
        receipt_number=sale.receipt_number,
        total=sale.total_minor,
        occurred_at=sale.occurred_at,
        lines=tuple(
            (line.product_name, line.quantity, line.line_total_minor) for line in sale.lines
        ),
    )


def _invoice_row(invoice) -> InvoiceRow:
    return InvoiceRow(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        customer_id=invoice.customer_id,
        customer_name=invoice.customer.name if invoice.customer else None,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        status=invoice.status,
        subtotal=invoice.subtotal_minor,
        discount=invoice.discount_minor,
        tax=invoice.tax_minor,
        total=invoice.total_minor,
        source_sale_id=invoice.source_sale_id,
        items=tuple((item.name, item.quantity, item.line_total_minor) for item in invoice.items),
    )


def _expense_row(expense) -> ExpenseRow:
    return ExpenseRow(
        id=expense.id,
        amount=expense.amount_minor,
        description=expense.description,
        category=expense.category,
        paid_at=expense.paid_at,
    )


def _load_sales(principal, start, end) -> tuple:
    return tuple(_sale_row(s) for s in sales_fact_service.list_sales(principal, start, end))


def _load_invoices(principal, start, end) -> tuple:
    return tuple(_invoice_row(i) for i in invoice_service.list_invoices(principal, start, end))


def _load_expenses(principal, start, end) -> tuple:
    return tuple(_expense_row(e) for e in expense_service.list_expenses(principal, start, end))


def fetch_window(principal, start: date | None = None, end: date | None = None, *, workers: int | None = None) -> FactWindow:
    """
    Load the three fact families for one tenant and window.

    The queries are independent, so they run concurrently, each worker in its
    own application context (and therefore its own session). Rows are turned
    into frozen values inside the worker before its session closes.
    """
    require_principal(principal)
    if start and end and start > end:
        raise ValidationError("start must not be after end")

    if workers is None:
        workers = current_app.config.get("FACT_FETCH_WORKERS", 3)
    loaders = (_load_sales, _load_invoices, _load_expenses)

    if workers <= 1:
        sales, invoices, expenses = (loader(principal, start, end) for loader in loaders)
    else:
        app = current_app._get_current_object()

        def _run(loader):
            with app.app_context():
                return loader(principal, start, end)

        with ThreadPoolExecutor(max_workers=min(workers, len(loaders))) as pool:
            futures = [pool.submit(_run, loader) for loader in loaders]
            sales, invoices, expenses = (future.result() for future in futures)

    logger.debug(
        "aggregator.window_fetched",
        tenant_id=principal.tenant_id,
        sales=len(sales),
        invoices=len(invoices),
        expenses=len(expenses),
    )
    return FactWindow(start=start, end=end, sales=sales, invoices=invoices, expenses=expenses)


# ---------------------------------------------------------------------------
# Aggregation (pure over a FactWindow)
# ---------------------------------------------------------------------------

def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _sales_total(window: FactWindow) -> int:
    return sum(sale.total for sale in window.sales)


def _vat_collected(window: FactWindow, rates: TaxRates) -> int:
    # POS totals carry no stored VAT breakdown; treat them as net amounts
    invoice_vat = sum(inv.tax for inv in window.counted_invoices)
    return invoice_vat + tax_service.apply_vat(_sales_total(window), rates.vat_bps).vat


def total_revenue(window: FactWindow) -> int:
    return _sales_total(window) + sum(inv.total for inv in window.counted_invoices)


def total_expenses(window: FactWindow) -> int:
    return sum(expense.amount for expense in window.expenses)


def recent_transactions(window: FactWindow, today: date, limit: int = RECENT_TRANSACTION_LIMIT) -> list[dict]:
    entries = []
    for sale in window.sales:
        entries.append((sale.occurred_at, {
            "type": "sale",
            "id": sale.id,
            "description": f"Sale {sale.receipt_number or sale.occurred_at.date().isoformat()}",
            "amount": sale.total,
            "date": sale.occurred_at.isoformat(),
            "status": "paid",
        }))
    for inv in window.invoices:
        entries.append((_as_datetime(inv.issue_date), {
            "type": "invoice",
            "id": inv.id,
            "description": f"Invoice {inv.invoice_number}",
            "amount": inv.total,
            "date": inv.issue_date.isoformat(),
            "status": tax_service.effective_status(inv.status, inv.due_date, today).lower(),
        }))
    for expense in window.expenses:
        entries.append((expense.paid_at, {
            "type": "expense",
            "id": expense.id,
            "description": expense.description,
            "amount": -expense.amount,
            "date": expense.paid_at.isoformat(),
            "status": "paid",
        }))

    entries.sort(key=lambda entry: entry[0], reverse=True)
    return [payload for _, payload in entries[:limit]]


def build_snapshot(window: FactWindow, *, today: date, rates: TaxRates | None = None) -> FinancialSnapshot:
    rates = rates or TaxRates()
    revenue = total_revenue(window)
    expenses = total_expenses(window)

    overdue = sum(
        1 for inv in window.invoices
        if tax_service.effective_status(inv.status, inv.due_date, today) == tax_service.OVERDUE
    )

    return FinancialSnapshot(
        total_revenue=revenue,
        total_expenses=expenses,
        net_profit=revenue - expenses,
        vat_collected=_vat_collected(window, rates),
        secondary_tax=tax_service.apply_secondary_fiscal_tax(
            revenue, rates.vat_bps, rates.income_bps, rates.withholding_bps
        ),
        invoice_count=len(window.invoices),
        overdue_count=overdue,
        sales_count=len(window.sales),
        recent_transactions=recent_transactions(window, today),
    )


def period_key(day: date, granularity: str) -> str:
    if granularity == "day":
        return day.isoformat()
    if granularity == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == "month":
        return f"{day.year:04d}-{day.month:02d}"
    raise ValidationError("granularity must be day, week, or month")


def period_keys(start: date, end: date, granularity: str) -> list[str]:
    """Every bucket touching [start, end], in order, without gaps."""
    keys = []
    seen = set()
    current = start
    while current <= end:
        key = period_key(current, granularity)
        if key not in seen:
            seen.add(key)
            keys.append(key)
        current += timedelta(days=1)
    return keys


def _window_extent(window: FactWindow, today: date) -> tuple[date, date]:
    dates = [sale.occurred_at.date() for sale in window.sales]
    dates += [inv.issue_date for inv in window.invoices]
    dates += [expense.paid_at.date() for expense in window.expenses]
    start = window.start or (min(dates) if dates else today)
    end = window.end or (max(dates) if dates else today)
    return start, end


def build_report_series(window: FactWindow, granularity: str = "day", *, today: date) -> list[dict]:
    """
    Bucket the window into equal periods.

    Empty periods produce explicit zero rows so charts stay continuous, and
    the bucket revenues always add up to total_revenue for the same window.
    """
    if granularity not in GRANULARITIES:
        raise ValidationError("granularity must be day, week, or month")

    start, end = _window_extent(window, today)
    keys = period_keys(start, end, granularity)
    rows = {key: {"period": key, "revenue": 0, "expenses": 0, "profit": 0, "invoice_count": 0} for key in keys}

    def _bucket(day: date):
        if day < start or day > end:
            return None
        return rows[period_key(day, granularity)]

    for sale in window.sales:
        row = _bucket(sale.occurred_at.date())
        if row is not None:
            row["revenue"] += sale.total
    for inv in window.invoices:
        row = _bucket(inv.issue_date)
        if row is None:
            continue
        row["invoice_count"] += 1
        if inv.counts_as_revenue:
            row["revenue"] += inv.total
    for expense in window.expenses:
        row = _bucket(expense.paid_at.date())
        if row is not None:
            row["expenses"] += expense.amount

    series = []
    for key in keys:
        row = rows[key]
        row["profit"] = row["revenue"] - row["expenses"]
        series.append(row)
    return series


def build_financial_reports(window: FactWindow, *, rates: TaxRates | None = None) -> dict:
    rates = rates or TaxRates()
    counted = window.counted_invoices

    cash_received = _sales_total(window) + sum(inv.total for inv in counted if inv.status == tax_service.PAID)
    receivables = sum(inv.total for inv in counted if inv.status == tax_service.SENT)
    revenue = cash_received + receivables
    expenses = total_expenses(window)
    net_profit = revenue - expenses
    gross_margin = (net_profit / revenue * 100.0) if revenue else 0.0

    vat_payable = _vat_collected(window, rates) - tax_service.apply_vat(expenses, rates.vat_bps).vat
    cash_position = cash_received - expenses
    assets = cash_position + receivables
    liabilities = max(vat_payable, 0)

    return {
        "start": window.start.isoformat() if window.start else None,
        "end": window.end.isoformat() if window.end else None,
        "profit_loss": {
            "revenue": revenue,
            "expenses": expenses,
            "net_profit": net_profit,
            "gross_margin_pct": round(gross_margin, 2),
        },
        "balance_sheet": {
            "cash": cash_position,
            "accounts_receivable": receivables,
            "assets": assets,
            "liabilities": liabilities,
            "equity": assets - liabilities,
        },
        "cash_flow": {
            "operating": cash_position,
            "investing": 0,
            "financing": 0,
            "net_cash_flow": cash_position,
        },
    }


def build_tax_report(window: FactWindow, *, rates: TaxRates | None = None) -> dict:
    """VAT position plus the parallel fiscal-receipting figures, reported separately."""
    rates = rates or TaxRates()
    revenue = total_revenue(window)
    expenses = total_expenses(window)

    vat_collected = _vat_collected(window, rates)
    vat_on_expenses = tax_service.apply_vat(expenses, rates.vat_bps).vat
    net_vat = vat_collected - vat_on_expenses
    fiscal = tax_service.apply_secondary_fiscal_tax(
        revenue, rates.vat_bps, rates.income_bps, rates.withholding_bps
    )

    return {
        "start": window.start.isoformat() if window.start else None,
        "end": window.end.isoformat() if window.end else None,
        "vat": {
            "taxable_sales": revenue,
            "vat_collected": vat_collected,
            "vat_on_expenses": vat_on_expenses,
            "net_vat_payable": net_vat,
            "rate_bps": rates.vat_bps,
        },
        "fiscal": {
            "base": revenue,
            **fiscal.to_dict(),
            "rates": rates.to_dict(),
        },
        "total_liability": net_vat + fiscal.income_tax + fiscal.withholding,
    }


def _rank(entries: dict, limit: int) -> list[dict]:
    ranked = sorted(
        entries.values(),
        key=lambda entry: (entry["revenue"], entry["last_activity"]),
        reverse=True,
    )
    return [
        {**entry, "last_activity": entry["last_activity"].isoformat()}
        for entry in ranked[:limit]
    ]


def top_products(window: FactWindow, limit: int = 5) -> list[dict]:
    """Descending revenue; ties go to the most recently active product."""
    entries: dict[str, dict] = {}

    def _add(name, quantity, amount, when: datetime):
        entry = entries.setdefault(name, {"name": name, "revenue": 0, "quantity": 0, "last_activity": when})
        entry["revenue"] += amount
        entry["quantity"] += quantity
        entry["last_activity"] = max(entry["last_activity"], when)

    for sale in window.sales:
        for name, quantity, amount in sale.lines:
            _add(name, quantity, amount, sale.occurred_at)
    for inv in window.counted_invoices:
        for name, quantity, amount in inv.items:
            _add(name, quantity, amount, _as_datetime(inv.issue_date))

    ranked = _rank(entries, limit)
    for entry in ranked:
        entry["quantity"] = str(entry["quantity"])
    return ranked


def top_customers(window: FactWindow, limit: int = 5) -> list[dict]:
    entries: dict[int, dict] = {}
    counts = defaultdict(int)
    for inv in window.counted_invoices:
        if inv.customer_id is None:
            continue
        when = _as_datetime(inv.issue_date)
        entry = entries.setdefault(inv.customer_id, {
            "customer_id": inv.customer_id,
            "name": inv.customer_name,
            "revenue": 0,
            "last_activity": when,
        })
        entry["revenue"] += inv.total
        entry["last_activity"] = max(entry["last_activity"], when)
        counts[inv.customer_id] += 1

    ranked = _rank(entries, limit)
    for entry in ranked:
        entry["invoice_count"] = counts[entry["customer_id"]]
    return ranked
