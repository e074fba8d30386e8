# Overview: Service-layer operations for customers; tenant-scoped reads and versioned writes.

from __future__ import annotations

import structlog

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer
from .concurrency import atomic, check_version, read_with_retry, run_with_retry
from .tenant_service import get_owned, require_principal, scoped_query

logger = structlog.get_logger(__name__)

WRITABLE_FIELDS = {"name", "email", "phone", "address", "website", "currency_code", "enabled"}


def _clean_fields(fields: dict) -> dict:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown customer fields: {', '.join(sorted(unknown))}")

    cleaned = {}
    for key, value in fields.items():
        if isinstance(value, str):
            value = value.strip()
        cleaned[key] = value

    if "name" in cleaned and not cleaned["name"]:
        raise ValidationError("name is required")
    if cleaned.get("currency_code"):
        cleaned["currency_code"] = _normalize_currency(cleaned["currency_code"])
    return cleaned


def _normalize_currency(code: str) -> str:
    code = str(code).strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("currency_code must be a 3-letter ISO code")
    return code


def list_customers(principal, include_disabled: bool = False) -> list[Customer]:
    def _op():
        query = scoped_query(Customer, principal)
        if not include_disabled:
            query = query.filter(Customer.enabled.is_(True))
        return query.order_by(Customer.created_at.desc(), Customer.id.desc()).all()
    return read_with_retry(_op)


def get_customer(principal, customer_id: int) -> Customer:
    return get_owned(Customer, principal, customer_id, "Customer")


def find_by_name(principal, name: str) -> Customer | None:
    return scoped_query(Customer, principal).filter(Customer.name == name.strip()).first()


def _new_customer(tenant_id: str, fields: dict, default_currency: str) -> Customer:
    customer = Customer(
        tenant_id=tenant_id,
        name=fields["name"],
        email=fields.get("email"),
        phone=fields.get("phone"),
        address=fields.get("address"),
        website=fields.get("website"),
        currency_code=fields.get("currency_code") or default_currency,
        enabled=fields.get("enabled", True),
    )
    db.session.add(customer)
    return customer


def create_customer(principal, *, default_currency: str = "UGX", **fields) -> Customer:
    tenant_id = require_principal(principal)
    cleaned = _clean_fields(fields)
    if not cleaned.get("name"):
        raise ValidationError("name is required")

    def _op():
        with atomic():
            customer = _new_customer(tenant_id, cleaned, default_currency)
        return customer

    customer = run_with_retry(_op)
    logger.info("customer.created", tenant_id=tenant_id, customer_id=customer.id)
    return customer


def upsert_customer_by_name(principal, name: str, *, default_currency: str = "UGX", **fields) -> tuple[Customer, bool]:
    """
    Find a customer by name or stage a new one in the current transaction.

    Does not commit: the caller's unit of work (e.g. invoice creation) owns
    the transaction. Returns (customer, created).
    """
    tenant_id = require_principal(principal)
    cleaned = _clean_fields({"name": name, **fields})

    existing = find_by_name(principal, cleaned["name"])
    if existing is not None:
        return existing, False

    customer = _new_customer(tenant_id, cleaned, default_currency)
    db.session.flush()
    return customer, True


def update_customer(principal, customer_id: int, *, expected_version: int | None = None, **changes) -> Customer:
    cleaned = _clean_fields(changes)

    def _op():
        with atomic():
            customer = get_customer(principal, customer_id)
            check_version(customer, expected_version, "Customer")
            for key, value in cleaned.items():
                setattr(customer, key, value)
        return customer

    return run_with_retry(_op)
