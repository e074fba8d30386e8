# Overview: Resolves the tenant principal for a request, with a logged fallback chain.

"""
Identity Resolver

Resolution order (each step only if the previous produced nothing):
1. Authenticated session claims                 -> source="session"
2. Demo flag set: first tenant profile row      -> source="demo_profile"
3. First sale fact row (profile provisioning
   lagged behind the first POS sale)            -> source="sales_fact"
4. Fixed demo tenant id, if ALLOW_DEMO_FALLBACK -> source="fallback"
   otherwise NoIdentity.

Every step emits its own log event so silent degradation is diagnosable.
Pure lookup: nothing is created.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NoIdentity
from ..extensions import db
from ..models import SaleFact, TenantProfile

logger = structlog.get_logger(__name__)

SOURCE_SESSION = "session"
SOURCE_DEMO_PROFILE = "demo_profile"
SOURCE_SALES_FACT = "sales_fact"
SOURCE_FALLBACK = "fallback"

SessionProvider = Callable[[], Optional[dict]]


@dataclass(frozen=True)
class Principal:
    """Tenant identity for one request. Never persisted."""
    tenant_id: str
    email: str | None = None
    is_demo: bool = False
    source: str = SOURCE_SESSION

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "email": self.email,
            "is_demo": self.is_demo,
            "source": self.source,
        }


def header_session_provider() -> dict | None:
    """
    Default identity-subsystem adapter.

    Reads claims forwarded by the authenticating gateway. Returns None when
    the request carries no tenant claim.
    """
    if not has_request_context():
        return None
    tenant_id = (request.headers.get("X-Tenant-Id") or "").strip()
    if not tenant_id:
        return None
    return {
        "tenant_id": tenant_id,
        "email": request.headers.get("X-User-Email"),
    }


def demo_mode_requested() -> bool:
    if not has_request_context():
        return False
    flag = request.headers.get("X-Demo-Mode") or request.cookies.get("demo_mode") or ""
    return flag.strip().lower() == "true"


def _principal_from_claims(claims: dict | None) -> Principal | None:
    if not claims:
        return None
    tenant_id = claims.get("tenant_id")
    if not tenant_id:
        return None
    return Principal(
        tenant_id=str(tenant_id),
        email=claims.get("email"),
        is_demo=bool(claims.get("is_demo", False)),
        source=SOURCE_SESSION,
    )


def _first_profile() -> TenantProfile | None:
    try:
        return db.session.query(TenantProfile).order_by(TenantProfile.id.asc()).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("identity.lookup_failed", step=SOURCE_DEMO_PROFILE, error=str(exc))
        return None


def _first_sale_tenant() -> str | None:
    try:
        row = db.session.query(SaleFact.tenant_id).order_by(SaleFact.id.asc()).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("identity.lookup_failed", step=SOURCE_SALES_FACT, error=str(exc))
        return None
    return row.tenant_id if row else None


def resolve(
    session_provider: SessionProvider | None = None,
    *,
    demo_mode: bool = False,
    allow_fallback: bool | None = None,
    fallback_tenant_id: str | None = None,
    fallback_email: str | None = None,
) -> Principal:
    """
    Produce exactly one Principal for the current request context.

    Raises NoIdentity only when every step fails and the demo fallback is
    disabled.
    """
    config = current_app.config
    if allow_fallback is None:
        allow_fallback = config.get("ALLOW_DEMO_FALLBACK", True)
    fallback_tenant_id = fallback_tenant_id or config.get("DEMO_FALLBACK_TENANT_ID")
    fallback_email = fallback_email or config.get("DEMO_FALLBACK_EMAIL")

    provider = session_provider or header_session_provider
    try:
        claims = provider()
    except Exception as exc:
        # Identity subsystem down is treated like "no session"
        logger.warning("identity.session_provider_failed", error=str(exc))
        claims = None

    principal = _principal_from_claims(claims)
    if principal is not None:
        logger.debug("identity.session", tenant_id=principal.tenant_id)
        return principal

    if demo_mode:
        profile = _first_profile()
        if profile is not None:
            logger.info("identity.demo_profile", tenant_id=profile.tenant_id)
            return Principal(
                tenant_id=profile.tenant_id,
                email=profile.email,
                is_demo=True,
                source=SOURCE_DEMO_PROFILE,
            )

    sale_tenant = _first_sale_tenant()
    if sale_tenant:
        logger.warning("identity.sales_fact", tenant_id=sale_tenant, demo_mode=demo_mode)
        return Principal(
            tenant_id=sale_tenant,
            email=fallback_email if demo_mode else None,
            is_demo=demo_mode,
            source=SOURCE_SALES_FACT,
        )

    if allow_fallback and fallback_tenant_id:
        logger.warning("identity.fallback", tenant_id=fallback_tenant_id, demo_mode=demo_mode)
        return Principal(
            tenant_id=fallback_tenant_id,
            email=fallback_email,
            is_demo=True,
            source=SOURCE_FALLBACK,
        )

    logger.error("identity.unresolved", demo_mode=demo_mode)
    raise NoIdentity("No identity could be resolved for this request")
