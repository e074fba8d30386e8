# Overview: Service-layer operations for invoices; encapsulates totals, lifecycle and database work.

"""
Invoice Service - document lifecycle with derived totals

WHY: Totals are never trusted from the client. They are recomputed from the
items and discount through the tax engine on every create and every item
update, and re-verified on read (mismatches are reported, never silently
corrected).

Lifecycle: DRAFT -> SENT -> PAID, DRAFT -> PAID (cash invoice),
DRAFT|SENT -> CANCELLED. OVERDUE is derived at read time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

import structlog
from sqlalchemy import and_, func, not_

from ..errors import ConstraintViolation, DataIntegrityWarning, ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceItem
from ..time_utils import parse_iso_date, parse_iso_datetime, today, utcnow
from . import customer_service, tax_service
from .concurrency import atomic, check_version, lock_for_update, read_with_retry, run_with_retry
from .sales_fact_service import get_sale
from .tenant_service import get_owned, require_principal, scoped_query

logger = structlog.get_logger(__name__)

DEFAULT_PAYMENT_TERMS_DAYS = 30
WALK_IN_CUSTOMER = "Walk-in Customer"
# Matches the scale of invoice_items.quantity
QUANTITY_PLACES = 3


@dataclass(frozen=True)
class InvoiceItemInput:
    """Validated line item, constructed fresh per operation."""
    name: str
    quantity: Decimal
    unit_price_minor: int
    description: str | None = None

    @property
    def line_total_minor(self) -> int:
        return tax_service.compute_line_total(self.quantity, self.unit_price_minor)


def parse_items(raw_items) -> list[InvoiceItemInput]:
    """
    Validate raw item dicts at the store boundary.

    Negative quantities or prices never reach the tax engine.
    """
    if not raw_items:
        raise ValidationError("An invoice needs at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, InvoiceItemInput):
            items.append(raw)
            continue

        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError(f"items[{index}].name is required")

        try:
            quantity = Decimal(str(raw.get("quantity", 1)))
        except InvalidOperation:
            raise ValidationError(f"items[{index}].quantity must be a number")
        if not quantity.is_finite() or quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be greater than zero")
        if quantity.normalize().as_tuple().exponent < -QUANTITY_PLACES:
            raise ValidationError(
                f"items[{index}].quantity allows at most {QUANTITY_PLACES} decimal places"
            )

        price = raw.get("unit_price_minor")
        if isinstance(price, bool) or not isinstance(price, int):
            raise ValidationError(f"items[{index}].unit_price_minor must be an integer")
        if price < 0:
            raise ValidationError(f"items[{index}].unit_price_minor must not be negative")

        items.append(
            InvoiceItemInput(
                name=name,
                quantity=quantity,
                unit_price_minor=price,
                description=raw.get("description"),
            )
        )
    return items


def _coerce_date(value, field: str) -> date | None:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def _coerce_datetime(value, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _validate_discount(discount_minor, subtotal: int) -> int:
    if isinstance(discount_minor, bool) or not isinstance(discount_minor, int):
        raise ValidationError("discount_minor must be an integer")
    if discount_minor < 0:
        raise ValidationError("discount_minor must not be negative")
    if discount_minor > subtotal:
        raise ValidationError("discount_minor cannot exceed the subtotal")
    return discount_minor


def _apply_items(invoice: Invoice, items: list[InvoiceItemInput], discount_minor: int) -> None:
    """Replace items and recompute every derived figure on the invoice."""
    invoice.items = [
        InvoiceItem(
            position=position,
            name=item.name,
            description=item.description,
            quantity=item.quantity,
            unit_price_minor=item.unit_price_minor,
            line_total_minor=item.line_total_minor,
            tax_rate_bps=invoice.vat_rate_bps,
        )
        for position, item in enumerate(items)
    ]
    totals = tax_service.compute_invoice_totals(
        ((item.quantity, item.unit_price_minor) for item in items),
        discount_minor,
        invoice.vat_rate_bps,
    )
    invoice.subtotal_minor = totals.subtotal
    invoice.discount_minor = totals.discount
    invoice.tax_minor = totals.tax
    invoice.total_minor = totals.total


def recompute_totals(invoice: Invoice) -> tax_service.InvoiceTotals:
    """Re-derive totals from stored items (no write)."""
    return tax_service.compute_invoice_totals(
        ((item.quantity, item.unit_price_minor) for item in invoice.items),
        invoice.discount_minor or 0,
        invoice.vat_rate_bps,
    )


def verify_invoice_totals(invoice: Invoice) -> list[DataIntegrityWarning]:
    """
    Compare stored totals with recomputation.

    Returns one warning per disagreeing field; each is logged. The stored row
    is left untouched so the discrepancy stays auditable.
    """
    totals = recompute_totals(invoice)
    warnings = []
    for field, recomputed in (
        ("subtotal_minor", totals.subtotal),
        ("tax_minor", totals.tax),
        ("total_minor", totals.total),
    ):
        stored = getattr(invoice, field)
        if stored != recomputed:
            warnings.append(
                DataIntegrityWarning(
                    invoice_id=invoice.id,
                    field=field,
                    stored=stored,
                    recomputed=recomputed,
                )
            )

    for warning in warnings:
        logger.warning(
            "invoice.integrity_mismatch",
            tenant_id=invoice.tenant_id,
            **warning.to_dict(),
        )
    return warnings


def _status_clause(status: str, as_of: date):
    past_due = and_(Invoice.due_date.isnot(None), Invoice.due_date < as_of)
    if status == tax_service.OVERDUE:
        return and_(Invoice.status == tax_service.SENT, past_due)
    if status == tax_service.SENT:
        return and_(Invoice.status == tax_service.SENT, not_(past_due))
    return Invoice.status == status


def list_invoices(
    principal,
    start: date | None = None,
    end: date | None = None,
    status: str | None = None,
    as_of: date | None = None,
) -> list[Invoice]:
    """Status filters on the effective status, so OVERDUE and SENT never overlap."""
    as_of = as_of or today()

    def _op():
        query = scoped_query(Invoice, principal)
        if start:
            query = query.filter(Invoice.issue_date >= start)
        if end:
            query = query.filter(Invoice.issue_date <= end)
        if status:
            query = query.filter(_status_clause(status.upper(), as_of))
        return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()

    return read_with_retry(_op)


def get_invoice(principal, invoice_id: int) -> Invoice:
    return get_owned(Invoice, principal, invoice_id, "Invoice")


def next_invoice_number(principal, prefix: str = "INV") -> str:
    """Next free per-tenant number, e.g. INV-000042."""
    count = scoped_query(Invoice, principal).with_entities(func.count(Invoice.id)).scalar() or 0
    candidate = count + 1
    while True:
        number = f"{prefix}-{candidate:06d}"
        exists = scoped_query(Invoice, principal).filter(Invoice.invoice_number == number).first()
        if exists is None:
            return number
        candidate += 1


def create_invoice(
    principal,
    *,
    items,
    issue_date=None,
    due_date=None,
    invoice_number: str | None = None,
    customer_id: int | None = None,
    customer_name: str | None = None,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    customer_address: str | None = None,
    discount_minor: int = 0,
    currency_code: str = "UGX",
    vat_rate_bps: int = tax_service.DEFAULT_VAT_RATE_BPS,
    notes: str | None = None,
    status: str = tax_service.DRAFT,
    source_sale_id: int | None = None,
):
    """
    Create invoice, items and (if named but unknown) its customer atomically.

    Returns (invoice, created_customer_or_None).
    """
    tenant_id = require_principal(principal)
    parsed_items = parse_items(items)
    subtotal = sum(item.line_total_minor for item in parsed_items)
    discount_minor = _validate_discount(discount_minor or 0, subtotal)

    issue = _coerce_date(issue_date, "issue_date") or today()
    due = _coerce_date(due_date, "due_date") or issue + timedelta(days=DEFAULT_PAYMENT_TERMS_DAYS)
    if due < issue:
        raise ValidationError("due_date cannot be before issue_date")

    status = (status or tax_service.DRAFT).upper()
    if status not in (tax_service.DRAFT, tax_service.SENT, tax_service.PAID):
        raise ValidationError("New invoices must be DRAFT, SENT or PAID")

    if customer_id is not None:
        customer_service.get_customer(principal, customer_id)

    def _op():
        with atomic():
            number = (invoice_number or "").strip() or next_invoice_number(principal)
            duplicate = scoped_query(Invoice, principal).filter(Invoice.invoice_number == number).first()
            if duplicate is not None:
                raise ConstraintViolation(
                    f"Invoice number {number} already exists",
                    details={"invoice_number": number},
                )

            created_customer = None
            resolved_customer_id = customer_id
            if resolved_customer_id is None and customer_name:
                customer, created = customer_service.upsert_customer_by_name(
                    principal,
                    customer_name,
                    default_currency=currency_code,
                    email=customer_email,
                    phone=customer_phone,
                    address=customer_address,
                )
                resolved_customer_id = customer.id
                if created:
                    created_customer = customer

            invoice = Invoice(
                tenant_id=tenant_id,
                invoice_number=number,
                customer_id=resolved_customer_id,
                issue_date=issue,
                due_date=due,
                status=status,
                currency_code=(currency_code or "UGX").upper(),
                vat_rate_bps=vat_rate_bps,
                notes=notes,
                source_sale_id=source_sale_id,
            )
            _apply_items(invoice, parsed_items, discount_minor)
            if status == tax_service.PAID:
                invoice.paid_at = utcnow()
                invoice.paid_amount_minor = invoice.total_minor
            db.session.add(invoice)
        return invoice, created_customer

    invoice, created_customer = run_with_retry(_op)
    logger.info(
        "invoice.created",
        tenant_id=tenant_id,
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        total_minor=invoice.total_minor,
        status=invoice.status,
    )
    return invoice, created_customer


def update_invoice(
    principal,
    invoice_id: int,
    *,
    expected_version: int | None = None,
    items=None,
    discount_minor: int | None = None,
    issue_date=None,
    due_date=None,
    notes: str | None = None,
) -> Invoice:
    """
    Edit a DRAFT invoice. Any item or discount change re-derives totals.
    """
    parsed_items = parse_items(items) if items is not None else None

    def _op():
        with atomic():
            invoice = get_invoice(principal, invoice_id)
            lock_for_update(db.session.query(Invoice).filter_by(id=invoice.id)).first()
            check_version(invoice, expected_version, "Invoice")

            if invoice.status != tax_service.DRAFT:
                raise ConstraintViolation(
                    f"Only DRAFT invoices can be edited (status is {invoice.status})"
                )

            new_items = parsed_items
            if new_items is None:
                new_items = [
                    InvoiceItemInput(
                        name=item.name,
                        quantity=Decimal(str(item.quantity)),
                        unit_price_minor=item.unit_price_minor,
                        description=item.description,
                    )
                    for item in invoice.items
                ]
            subtotal = sum(item.line_total_minor for item in new_items)
            discount = invoice.discount_minor if discount_minor is None else discount_minor
            discount = _validate_discount(discount, subtotal)

            issue = _coerce_date(issue_date, "issue_date") or invoice.issue_date
            due = _coerce_date(due_date, "due_date") or invoice.due_date
            if due < issue:
                raise ValidationError("due_date cannot be before issue_date")

            invoice.issue_date = issue
            invoice.due_date = due
            if notes is not None:
                invoice.notes = notes
            _apply_items(invoice, new_items, discount)
            # Bump even when the figures are unchanged so concurrent editors see the write
            invoice.updated_at = utcnow()
        return invoice

    return run_with_retry(_op)


def _transition(principal, invoice_id: int, target: str, expected_version: int | None, mutate=None) -> Invoice:
    def _op():
        with atomic():
            invoice = get_invoice(principal, invoice_id)
            check_version(invoice, expected_version, "Invoice")

            if invoice.status == target:
                return invoice

            if not tax_service.can_transition(invoice.status, target):
                raise ConstraintViolation(
                    f"Cannot move invoice from {invoice.status} to {target}",
                    details={"status": invoice.status, "target": target},
                )
            invoice.status = target
            if mutate:
                mutate(invoice)
        return invoice

    invoice = run_with_retry(_op)
    logger.info(
        "invoice.status_changed",
        tenant_id=invoice.tenant_id,
        invoice_id=invoice.id,
        status=invoice.status,
    )
    return invoice


def send_invoice(principal, invoice_id: int, *, expected_version: int | None = None) -> Invoice:
    return _transition(principal, invoice_id, tax_service.SENT, expected_version)


def mark_paid(
    principal,
    invoice_id: int,
    *,
    paid_at=None,
    amount_minor: int | None = None,
    payment_method: str = "cash",
    expected_version: int | None = None,
) -> Invoice:
    if amount_minor is not None:
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor < 0:
            raise ValidationError("amount_minor must be a non-negative integer")

    paid_dt = _coerce_datetime(paid_at, "paid_at")

    def _mutate(invoice: Invoice) -> None:
        amount = invoice.total_minor if amount_minor is None else amount_minor
        if amount < invoice.total_minor:
            raise ValidationError("Partial payments are not supported; pay the full total")
        invoice.paid_at = paid_dt or utcnow()
        invoice.paid_amount_minor = amount
        invoice.payment_method = (payment_method or "cash").strip().lower()

    return _transition(principal, invoice_id, tax_service.PAID, expected_version, mutate=_mutate)


def cancel_invoice(principal, invoice_id: int, *, expected_version: int | None = None) -> Invoice:
    return _transition(principal, invoice_id, tax_service.CANCELLED, expected_version)


def create_invoice_from_sale(principal, sale_id: int, *, vat_rate_bps: int = tax_service.DEFAULT_VAT_RATE_BPS):
    """
    Issue a PAID invoice documenting a completed POS sale.

    The sale already counts as revenue, so the generated invoice is linked via
    source_sale_id and excluded from revenue aggregation.
    """
    sale = get_sale(principal, sale_id)

    already = scoped_query(Invoice, principal).filter(Invoice.source_sale_id == sale.id).first()
    if already is not None:
        raise ConstraintViolation(
            f"Sale {sale.id} already has invoice {already.invoice_number}",
            details={"invoice_id": already.id},
        )

    if sale.lines:
        items = [
            InvoiceItemInput(
                name=line.product_name,
                quantity=Decimal(str(line.quantity)),
                unit_price_minor=line.unit_price_minor,
            )
            for line in sale.lines
        ]
    else:
        items = [
            InvoiceItemInput(
                name=f"Sale {sale.receipt_number or sale.id}",
                quantity=Decimal(1),
                unit_price_minor=sale.total_minor,
            )
        ]

    issue = sale.occurred_at.date()
    return create_invoice(
        principal,
        items=items,
        issue_date=issue,
        due_date=issue + timedelta(days=DEFAULT_PAYMENT_TERMS_DAYS),
        customer_name=WALK_IN_CUSTOMER,
        currency_code=sale.currency_code,
        vat_rate_bps=vat_rate_bps,
        notes=f"Generated from sale {sale.receipt_number or sale.id}",
        status=tax_service.PAID,
        source_sale_id=sale.id,
    )
