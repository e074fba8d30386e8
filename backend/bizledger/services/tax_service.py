# Overview: Pure tax rules (VAT, fiscal-receipting figures) and invoice arithmetic. No I/O.

"""
Tax Engine

INVARIANTS (authoritative):
- All money is integer minor units of one currency; rates are basis points.
- VAT is rounded half-up to the minor unit.
- Invoice total = subtotal - discount + VAT(subtotal - discount). Nothing else
  is added: the secondary fiscal figures (fiscal VAT, income tax,
  withholding) are reporting values computed off the same base and never
  change an invoice total.
- OVERDUE is a read-time view of SENT + past due date, never stored.
- Functions here never raise for well-typed input; range validation happens
  at the service boundary before values reach this module.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable


DEFAULT_VAT_RATE_BPS = 1800
DEFAULT_INCOME_TAX_RATE_BPS = 3000
DEFAULT_WITHHOLDING_RATE_BPS = 600

BPS_DENOMINATOR = Decimal(10_000)

# ISO 4217 minor-unit exponents for the currencies the suite sells in.
CURRENCY_EXPONENTS = {
    "UGX": 0,
    "RWF": 0,
    "KES": 2,
    "TZS": 2,
    "USD": 2,
    "GBP": 2,
    "EUR": 2,
}

DRAFT = "DRAFT"
SENT = "SENT"
PAID = "PAID"
OVERDUE = "OVERDUE"
CANCELLED = "CANCELLED"

STORED_STATUSES = (DRAFT, SENT, PAID, CANCELLED)
REVENUE_STATUSES = frozenset({SENT, PAID})

_TRANSITIONS = {
    DRAFT: frozenset({SENT, PAID, CANCELLED}),
    SENT: frozenset({PAID, CANCELLED}),
    PAID: frozenset(),
    CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class VatBreakdown:
    net: int
    vat: int
    gross: int


@dataclass(frozen=True)
class FiscalBreakdown:
    fiscal_vat: int
    income_tax: int
    withholding: int

    def to_dict(self) -> dict:
        return {
            "fiscal_vat": self.fiscal_vat,
            "income_tax": self.income_tax,
            "withholding": self.withholding,
        }


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: int
    discount: int
    tax: int
    total: int


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of minor units to an integer, half away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def apply_rate(amount_minor: int, rate_bps: int) -> int:
    return round_half_up(Decimal(amount_minor) * Decimal(rate_bps) / BPS_DENOMINATOR)


def apply_vat(amount_minor: int, rate_bps: int = DEFAULT_VAT_RATE_BPS) -> VatBreakdown:
    vat = apply_rate(amount_minor, rate_bps)
    return VatBreakdown(net=amount_minor, vat=vat, gross=amount_minor + vat)


def apply_secondary_fiscal_tax(
    amount_minor: int,
    vat_rate_bps: int = DEFAULT_VAT_RATE_BPS,
    income_rate_bps: int = DEFAULT_INCOME_TAX_RATE_BPS,
    withholding_rate_bps: int = DEFAULT_WITHHOLDING_RATE_BPS,
) -> FiscalBreakdown:
    """Each figure is computed independently off the same base amount."""
    return FiscalBreakdown(
        fiscal_vat=apply_rate(amount_minor, vat_rate_bps),
        income_tax=apply_rate(amount_minor, income_rate_bps),
        withholding=apply_rate(amount_minor, withholding_rate_bps),
    )


def compute_line_total(quantity, unit_price_minor: int) -> int:
    return round_half_up(Decimal(str(quantity)) * Decimal(unit_price_minor))


def compute_invoice_totals(
    lines: Iterable[tuple],
    discount_minor: int = 0,
    rate_bps: int = DEFAULT_VAT_RATE_BPS,
) -> InvoiceTotals:
    """
    Derive invoice totals from (quantity, unit_price_minor) pairs.

    Deterministic and idempotent: the same items and discount always yield
    the same totals.
    """
    subtotal = sum(compute_line_total(qty, price) for qty, price in lines)
    tax = apply_vat(subtotal - discount_minor, rate_bps).vat
    return InvoiceTotals(
        subtotal=subtotal,
        discount=discount_minor,
        tax=tax,
        total=subtotal - discount_minor + tax,
    )


def minor_unit_exponent(currency_code: str | None) -> int:
    return CURRENCY_EXPONENTS.get((currency_code or "").upper(), 2)


def to_major(amount_minor: int, currency_code: str | None) -> Decimal:
    exponent = minor_unit_exponent(currency_code)
    return (Decimal(amount_minor) / (Decimal(10) ** exponent)).quantize(
        Decimal(1).scaleb(-exponent)
    )


def to_minor(amount, currency_code: str | None) -> int:
    """Convert a major-unit amount (Decimal, int or numeric string) to minor units."""
    exponent = minor_unit_exponent(currency_code)
    return round_half_up(Decimal(str(amount)) * (Decimal(10) ** exponent))


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, frozenset())


def effective_status(status: str, due_date: date | None, today: date) -> str:
    if status == SENT and due_date is not None and due_date < today:
        return OVERDUE
    return status


def counts_as_revenue(status: str) -> bool:
    """Draft and cancelled invoices are unrealized; only SENT/PAID count."""
    return status in REVENUE_STATUSES
