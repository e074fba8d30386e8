"""
Multi-Tenant Service: Principal Validation and Scoping Helpers

WHY: Centralize tenant scoping for every fact-store query. The primary store
is shared by all tenants, so tenant_id is a mandatory filter on every read and
every write, never an optional one.

SECURITY INVARIANTS:
1. Every service call receives a resolved Principal as an explicit argument
2. A missing Principal (or one without tenant_id) is rejected with NoIdentity
3. Queries filter by principal.tenant_id
4. Lookups of another tenant's row answer NotFound (existence is not revealed)

USAGE:
    from bizledger.services.tenant_service import scoped_query, get_owned

    invoices = scoped_query(Invoice, principal).filter_by(status="SENT").all()
    invoice = get_owned(Invoice, principal, invoice_id, "Invoice")
"""

from __future__ import annotations

import structlog

from ..errors import NoIdentity, NotFound
from ..extensions import db

logger = structlog.get_logger(__name__)


def require_principal(principal) -> str:
    """
    Return the tenant id of a resolved principal.

    SECURITY: Raises NoIdentity rather than silently running an unscoped
    query.
    """
    tenant_id = getattr(principal, "tenant_id", None) if principal is not None else None
    if not tenant_id:
        raise NoIdentity("Tenant context not established")
    return tenant_id


def scoped_query(model, principal):
    """
    Base query for a tenant-owned model (must have a tenant_id column).

    Usage:
        expenses = scoped_query(Expense, principal).order_by(Expense.paid_at).all()
    """
    tenant_id = require_principal(principal)
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def get_owned(model, principal, entity_id: int, label: str):
    """
    Load one row owned by the principal's tenant.

    Raises NotFound if it doesn't exist or belongs to another tenant.
    """
    tenant_id = require_principal(principal)
    entity = db.session.query(model).filter_by(id=entity_id).first()

    if entity is None:
        raise NotFound(f"{label} not found")

    if entity.tenant_id != tenant_id:
        # Cross-tenant probe: log it, answer as if it doesn't exist
        logger.warning(
            "tenant.cross_tenant_access_denied",
            entity=label,
            entity_id=entity_id,
            tenant_id=tenant_id,
        )
        raise NotFound(f"{label} not found")

    return entity
