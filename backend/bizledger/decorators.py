# Overview: Request decorators and shared helpers for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import (
    BizLedgerError,
    ConstraintViolation,
    NoIdentity,
    NotFound,
    StoreUnavailable,
    ValidationError,
)
from .services import identity_service
from .services.accounting_service import AccountingService
from .time_utils import parse_iso_date

SESSION_PROVIDER_KEY = "bizledger.session_provider"
SYNC_BRIDGE_KEY = "bizledger.sync_bridge"

ERROR_STATUS = (
    (ValidationError, 400),
    (NoIdentity, 401),
    (NotFound, 404),
    (ConstraintViolation, 409),
    (StoreUnavailable, 503),
)


def require_principal(f):
    """
    Resolve the tenant principal once per request.

    MULTI-TENANT: Sets g.principal. Routes never read the session themselves;
    they pass g.principal to the accounting facade.

    Returns 401 only when no identity could be resolved at all (the demo
    fallback is disabled and every lookup came back empty).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        provider = current_app.extensions.get(SESSION_PROVIDER_KEY, identity_service.header_session_provider)
        try:
            g.principal = identity_service.resolve(
                provider,
                demo_mode=identity_service.demo_mode_requested(),
            )
        except NoIdentity as exc:
            return jsonify({"error": str(exc)}), 401

        return f(*args, **kwargs)

    return decorated_function


def accounting() -> AccountingService:
    """Facade bound to the current request's principal."""
    return AccountingService(g.principal, bridge=current_app.extensions.get(SYNC_BRIDGE_KEY))


def error_response(exc: BizLedgerError):
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            body = {"error": str(exc)}
            if exc.details:
                body["details"] = exc.details
            return jsonify(body), status
    current_app.logger.exception("Unmapped domain error")
    return jsonify({"error": "Internal server error"}), 500


def date_arg(name: str):
    """Optional YYYY-MM-DD query argument."""
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def pick(data: dict, allowed) -> dict:
    """Keep only the keys a service call accepts."""
    return {key: data[key] for key in allowed if key in data}
