# Overview: Service-layer operations for expenses and expense categories.

from __future__ import annotations

from datetime import date, datetime

import structlog

from ..errors import ValidationError
from ..extensions import db
from ..models import Expense, ExpenseCategory
from ..time_utils import parse_iso_datetime, utcnow, window_bounds
from .concurrency import atomic, check_version, read_with_retry, run_with_retry
from .tenant_service import get_owned, require_principal, scoped_query

logger = structlog.get_logger(__name__)

PAYMENT_METHODS = {"cash", "bank_transfer", "mobile_money", "card", "cheque", "other"}


def _coerce_paid_at(value) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        parsed = parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError("paid_at must be an ISO-8601 date or datetime")
    if parsed is None:
        raise ValidationError("paid_at must be an ISO-8601 date or datetime")
    return parsed


def _validate_amount(amount_minor) -> int:
    if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
        raise ValidationError("amount_minor must be an integer number of minor units")
    if amount_minor < 0:
        raise ValidationError("amount_minor must not be negative")
    return amount_minor


def _validate_payment_method(method: str | None) -> str:
    method = (method or "cash").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(sorted(PAYMENT_METHODS))}")
    return method


def list_expenses(principal, start: date | None = None, end: date | None = None) -> list[Expense]:
    start_dt, end_dt = window_bounds(start, end)

    def _op():
        query = scoped_query(Expense, principal)
        if start_dt:
            query = query.filter(Expense.paid_at >= start_dt)
        if end_dt:
            query = query.filter(Expense.paid_at <= end_dt)
        return query.order_by(Expense.paid_at.desc(), Expense.id.desc()).all()

    return read_with_retry(_op)


def get_expense(principal, expense_id: int) -> Expense:
    return get_owned(Expense, principal, expense_id, "Expense")


def create_expense(
    principal,
    *,
    amount_minor: int,
    description: str,
    category: str | None = None,
    paid_at=None,
    payment_method: str | None = None,
    reference: str | None = None,
    currency_code: str = "UGX",
) -> Expense:
    tenant_id = require_principal(principal)
    amount_minor = _validate_amount(amount_minor)
    description = (description or "").strip()
    if not description:
        raise ValidationError("description is required")
    paid_at = _coerce_paid_at(paid_at)
    payment_method = _validate_payment_method(payment_method)

    def _op():
        with atomic():
            expense = Expense(
                tenant_id=tenant_id,
                amount_minor=amount_minor,
                currency_code=(currency_code or "UGX").upper(),
                description=description,
                category=(category or "").strip() or None,
                paid_at=paid_at,
                payment_method=payment_method,
                reference=reference,
            )
            db.session.add(expense)
        return expense

    expense = run_with_retry(_op)
    logger.info("expense.created", tenant_id=tenant_id, expense_id=expense.id, amount_minor=amount_minor)
    return expense


def update_expense(principal, expense_id: int, *, expected_version: int | None = None, **changes) -> Expense:
    allowed = {"amount_minor", "description", "category", "paid_at", "payment_method", "reference"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Unknown expense fields: {', '.join(sorted(unknown))}")

    if "amount_minor" in changes:
        changes["amount_minor"] = _validate_amount(changes["amount_minor"])
    if "paid_at" in changes:
        changes["paid_at"] = _coerce_paid_at(changes["paid_at"])
    if "payment_method" in changes:
        changes["payment_method"] = _validate_payment_method(changes["payment_method"])
    if "description" in changes and not (changes["description"] or "").strip():
        raise ValidationError("description is required")

    def _op():
        with atomic():
            expense = get_expense(principal, expense_id)
            check_version(expense, expected_version, "Expense")
            for key, value in changes.items():
                setattr(expense, key, value)
        return expense

    return run_with_retry(_op)


def list_expense_categories(principal) -> list[ExpenseCategory]:
    return read_with_retry(
        lambda: scoped_query(ExpenseCategory, principal).order_by(ExpenseCategory.name.asc()).all()
    )


def create_expense_category(principal, *, name: str, description: str | None = None) -> ExpenseCategory:
    tenant_id = require_principal(principal)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        with atomic():
            category = ExpenseCategory(tenant_id=tenant_id, name=name, description=description)
            db.session.add(category)
        return category

    return run_with_retry(_op)
