# Overview: Pytest coverage for the pure tax engine and invoice arithmetic.

from datetime import date
from decimal import Decimal

import pytest

from bizledger.services import tax_service
from bizledger.services.tax_service import (
    CANCELLED,
    DRAFT,
    OVERDUE,
    PAID,
    SENT,
)


class TestVat:
    def test_standard_rate(self):
        breakdown = tax_service.apply_vat(100_000)
        assert breakdown.net == 100_000
        assert breakdown.vat == 18_000
        assert breakdown.gross == 118_000

    def test_rounds_half_up_to_minor_unit(self):
        # 18% of 25 = 4.5 -> 5
        assert tax_service.apply_vat(25).vat == 5
        # 18% of 24 = 4.32 -> 4
        assert tax_service.apply_vat(24).vat == 4

    def test_custom_rate(self):
        assert tax_service.apply_vat(10_000, rate_bps=1600).vat == 1_600

    def test_zero_amount(self):
        assert tax_service.apply_vat(0) == tax_service.VatBreakdown(net=0, vat=0, gross=0)


class TestSecondaryFiscalTax:
    def test_each_figure_uses_the_same_base(self):
        fiscal = tax_service.apply_secondary_fiscal_tax(1_000_000)
        assert fiscal.fiscal_vat == 180_000
        assert fiscal.income_tax == 300_000
        assert fiscal.withholding == 60_000

    def test_to_dict(self):
        fiscal = tax_service.apply_secondary_fiscal_tax(100, 1000, 2000, 500)
        assert fiscal.to_dict() == {"fiscal_vat": 10, "income_tax": 20, "withholding": 5}


class TestInvoiceTotals:
    def test_total_invariant(self):
        totals = tax_service.compute_invoice_totals([(2, 5_000), (1, 10_000)], 1_000)
        assert totals.subtotal == 20_000
        assert totals.discount == 1_000
        assert totals.tax == 3_420
        assert totals.total == totals.subtotal - totals.discount + totals.tax

    def test_fractional_quantity_rounds_line_half_up(self):
        assert tax_service.compute_line_total(Decimal("1.5"), 333) == 500  # 499.5 -> 500
        assert tax_service.compute_line_total("0.25", 10) == 3  # 2.5 -> 3

    def test_recomputation_is_idempotent(self):
        lines = [(Decimal("3"), 1_250), (Decimal("0.5"), 999)]
        first = tax_service.compute_invoice_totals(lines, 200)
        second = tax_service.compute_invoice_totals(lines, 200)
        assert first == second

    def test_secondary_tax_never_changes_invoice_total(self):
        totals = tax_service.compute_invoice_totals([(1, 100_000)])
        assert totals.total == 118_000


class TestCurrency:
    @pytest.mark.parametrize("code,exponent", [("UGX", 0), ("RWF", 0), ("KES", 2), ("USD", 2), ("XYZ", 2), (None, 2)])
    def test_minor_unit_exponent(self, code, exponent):
        assert tax_service.minor_unit_exponent(code) == exponent

    def test_to_major(self):
        assert tax_service.to_major(12_345, "USD") == Decimal("123.45")
        assert tax_service.to_major(12_345, "UGX") == Decimal("12345")
        assert tax_service.to_major(-500, "KES") == Decimal("-5.00")

    def test_to_minor_rounds_half_up(self):
        assert tax_service.to_minor("10.005", "USD") == 1001
        assert tax_service.to_minor(Decimal("99.5"), "UGX") == 100


class TestStatusMachine:
    @pytest.mark.parametrize("current,target", [
        (DRAFT, SENT), (SENT, PAID), (DRAFT, CANCELLED), (SENT, CANCELLED), (DRAFT, PAID),
    ])
    def test_allowed(self, current, target):
        assert tax_service.can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (PAID, DRAFT), (PAID, CANCELLED), (CANCELLED, SENT), (SENT, DRAFT), (DRAFT, OVERDUE),
    ])
    def test_rejected(self, current, target):
        assert not tax_service.can_transition(current, target)

    def test_overdue_is_derived_from_sent_past_due(self):
        today = date(2026, 5, 1)
        assert tax_service.effective_status(SENT, date(2026, 4, 30), today) == OVERDUE
        assert tax_service.effective_status(SENT, date(2026, 5, 1), today) == SENT
        assert tax_service.effective_status(DRAFT, date(2026, 1, 1), today) == DRAFT
        assert tax_service.effective_status(PAID, date(2026, 1, 1), today) == PAID

    def test_revenue_statuses(self):
        assert tax_service.counts_as_revenue(SENT)
        assert tax_service.counts_as_revenue(PAID)
        assert not tax_service.counts_as_revenue(DRAFT)
        assert not tax_service.counts_as_revenue(CANCELLED)
