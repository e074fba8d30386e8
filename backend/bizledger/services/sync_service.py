# Overview: Best-effort propagation of local accounting records to external platforms.

"""
Sync Bridge

The local store is authoritative. Every push is attempted once per configured
platform and its outcome recorded in sync_records; nothing here raises into
the caller. Records are written in their own transaction, after the caller's
local commit, so a failed push can never roll back a local write.

Idempotency: an existing SyncRecord with an external_id turns the push into
an update of that external entity instead of a second create.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from ..errors import BizLedgerError, ExternalPlatformError
from ..extensions import db
from ..integrations.accounting_platform import AccountingPlatformClient, platforms_from_config
from ..models import Customer, Expense, Invoice, SyncRecord
from ..time_utils import to_iso_date, to_utc_z, utcnow
from . import tax_service
from .concurrency import atomic
from .tenant_service import require_principal, scoped_query

logger = structlog.get_logger(__name__)

ENTITY_TYPES = ("customer", "invoice", "expense")

SYNCED = "SYNCED"
FAILED = "FAILED"
PENDING = "PENDING"

NO_PLATFORM_CONFIGURED = "no_platform_configured"


class SyncOutcome(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    platform: str | None = None
    external_id: str | None = None
    reason: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, platform: str, external_id: str) -> "SyncResult":
        return cls(SyncOutcome.OK, platform=platform, external_id=external_id)

    @classmethod
    def skipped(cls, reason: str, platform: str | None = None) -> "SyncResult":
        return cls(SyncOutcome.SKIPPED, platform=platform, reason=reason)

    @classmethod
    def failed(cls, platform: str, error: str) -> "SyncResult":
        return cls(SyncOutcome.FAILED, platform=platform, error=error)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "platform": self.platform,
            "external_id": self.external_id,
            "reason": self.reason,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

def _major(amount_minor: int, currency: str) -> str:
    return str(tax_service.to_major(amount_minor or 0, currency))


def customer_payload(customer: Customer) -> dict:
    return {
        "type": "customer",
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "address": customer.address,
        "website": customer.website,
        "currency_code": customer.currency_code,
        "enabled": bool(customer.enabled),
        "reference": f"customer-{customer.id}",
    }


def invoice_payload(invoice: Invoice, customer_external_id: str | None = None) -> dict:
    currency = invoice.currency_code
    return {
        "type": "invoice",
        "document_number": invoice.invoice_number,
        "status": invoice.status.lower(),
        "issued_at": to_iso_date(invoice.issue_date),
        "due_at": to_iso_date(invoice.due_date),
        "currency_code": currency,
        "customerId": customer_external_id,
        "subtotal": _major(invoice.subtotal_minor, currency),
        "discount": _major(invoice.discount_minor, currency),
        "tax": _major(invoice.tax_minor, currency),
        "amount": _major(invoice.total_minor, currency),
        "notes": invoice.notes,
        "items": [
            {
                "name": item.name,
                "description": item.description,
                "quantity": str(item.quantity),
                "price": _major(item.unit_price_minor, currency),
                "total": _major(item.line_total_minor, currency),
            }
            for item in invoice.items
        ],
    }


def expense_payload(expense: Expense) -> dict:
    return {
        "type": "expense",
        "paid_at": to_utc_z(expense.paid_at),
        "amount": _major(expense.amount_minor, expense.currency_code),
        "currency_code": expense.currency_code,
        "description": expense.description,
        "category": expense.category,
        "payment_method": expense.payment_method,
        "reference": expense.reference or f"expense-{expense.id}",
    }


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def find_record(tenant_id: str, platform: str, entity_type: str, local_id: int) -> SyncRecord | None:
    return (
        db.session.query(SyncRecord)
        .filter_by(tenant_id=tenant_id, platform=platform, entity_type=entity_type, local_id=local_id)
        .first()
    )


def _record(tenant_id: str, platform: str, entity_type: str, local_id: int, result: SyncResult) -> None:
    with atomic():
        record = find_record(tenant_id, platform, entity_type, local_id)
        if record is None:
            record = SyncRecord(
                tenant_id=tenant_id,
                platform=platform,
                entity_type=entity_type,
                local_id=local_id,
            )
            db.session.add(record)
        record.last_attempt_at = utcnow()
        if result.outcome is SyncOutcome.OK:
            record.external_id = result.external_id
            record.status = SYNCED
            record.last_error = None
        else:
            # Keep any earlier external_id so the next push still updates
            record.status = FAILED
            record.last_error = result.error


def sync_status(principal, platform_names: list[str]) -> dict:
    """
    Per entity type: synced = SYNCED on every configured platform,
    failed = FAILED on at least one, pending = everything else.
    """
    tenant_id = require_principal(principal)
    models = {"customer": Customer, "invoice": Invoice, "expense": Expense}
    status = {}

    for entity_type in ENTITY_TYPES:
        local_ids = [row[0] for row in scoped_query(models[entity_type], principal).with_entities(models[entity_type].id)]
        records = (
            db.session.query(SyncRecord)
            .filter_by(tenant_id=tenant_id, entity_type=entity_type)
            .all()
        )
        by_entity: dict[int, dict[str, str]] = {}
        for record in records:
            if record.platform in platform_names:
                by_entity.setdefault(record.local_id, {})[record.platform] = record.status

        synced = failed = 0
        for local_id in local_ids:
            states = by_entity.get(local_id, {})
            if platform_names and all(states.get(name) == SYNCED for name in platform_names):
                synced += 1
            elif FAILED in states.values():
                failed += 1

        status[entity_type] = {
            "synced_count": synced,
            "pending_count": len(local_ids) - synced - failed,
            "failed_count": failed,
        }
    return status


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------

class SyncBridge:
    """Pushes local entities to every configured platform client."""

    def __init__(self, clients: list[AccountingPlatformClient] | None = None):
        self.clients = list(clients or [])

    @classmethod
    def from_config(cls, config, transport=None) -> "SyncBridge":
        return cls([AccountingPlatformClient(platform, transport=transport) for platform in platforms_from_config(config)])

    @property
    def platform_names(self) -> list[str]:
        return [client.name for client in self.clients]

    def close(self) -> None:
        for client in self.clients:
            client.close()

    def _push(self, principal, entity_type: str, local_id: int, build_payload) -> list[SyncResult]:
        tenant_id = require_principal(principal)
        if not self.clients:
            logger.debug("sync.skipped", tenant_id=tenant_id, entity_type=entity_type, reason=NO_PLATFORM_CONFIGURED)
            return [SyncResult.skipped(NO_PLATFORM_CONFIGURED)]

        results = []
        for client in self.clients:
            record = find_record(tenant_id, client.name, entity_type, local_id)
            external_id = record.external_id if record is not None else None
            try:
                payload = build_payload(client.name)
                if external_id:
                    external_id = client.update(entity_type, external_id, payload)
                else:
                    external_id = client.create(entity_type, payload)
                result = SyncResult.ok(client.name, external_id)
                logger.info(
                    "sync.pushed",
                    tenant_id=tenant_id,
                    platform=client.name,
                    entity_type=entity_type,
                    local_id=local_id,
                    external_id=external_id,
                )
            except ExternalPlatformError as exc:
                result = SyncResult.failed(client.name, str(exc))
                logger.warning(
                    "sync.failed",
                    tenant_id=tenant_id,
                    platform=client.name,
                    entity_type=entity_type,
                    local_id=local_id,
                    error=str(exc),
                    status_code=exc.status_code,
                )

            try:
                _record(tenant_id, client.name, entity_type, local_id, result)
            except BizLedgerError as exc:
                logger.error(
                    "sync.record_failed",
                    tenant_id=tenant_id,
                    platform=client.name,
                    entity_type=entity_type,
                    local_id=local_id,
                    error=str(exc),
                )
            results.append(result)
        return results

    def push_customer(self, principal, customer: Customer) -> list[SyncResult]:
        return self._push(principal, "customer", customer.id, lambda platform: customer_payload(customer))

    def push_invoice(self, principal, invoice: Invoice) -> list[SyncResult]:
        tenant_id = require_principal(principal)

        def _payload(platform: str) -> dict:
            customer_external_id = None
            if invoice.customer_id is not None:
                mapping = find_record(tenant_id, platform, "customer", invoice.customer_id)
                if mapping is not None:
                    customer_external_id = mapping.external_id
            return invoice_payload(invoice, customer_external_id)

        return self._push(principal, "invoice", invoice.id, _payload)

    def push_expense(self, principal, expense: Expense) -> list[SyncResult]:
        return self._push(principal, "expense", expense.id, lambda platform: expense_payload(expense))

    def status(self, principal) -> dict:
        return sync_status(principal, self.platform_names)

    def trigger_sync(self, principal) -> dict:
        """
        Push every customer, invoice and expense of the tenant once.

        Customers go first so invoice payloads can carry their mapping.
        """
        tenant_id = require_principal(principal)
        summary = {entity_type: {outcome.value: 0 for outcome in SyncOutcome} for entity_type in ENTITY_TYPES}
        pushers = (
            ("customer", Customer, self.push_customer),
            ("invoice", Invoice, self.push_invoice),
            ("expense", Expense, self.push_expense),
        )
        for entity_type, model, push in pushers:
            for entity in scoped_query(model, principal).order_by(model.id.asc()).all():
                for result in push(principal, entity):
                    summary[entity_type][result.outcome.value] += 1

        logger.info("sync.triggered", tenant_id=tenant_id, summary=summary)
        return summary
