from flask import Blueprint, current_app, g, jsonify

from ..decorators import accounting, date_arg, error_response, require_principal
from ..errors import BizLedgerError

accounting_bp = Blueprint("accounting", __name__, url_prefix="/api/accounting")


@accounting_bp.get("/dashboard")
@require_principal
def dashboard():
    """Financial snapshot for the resolved tenant, optionally windowed by ?start=&end=."""
    try:
        stats = accounting().get_dashboard_stats(date_arg("start"), date_arg("end"))
        return jsonify({"stats": stats, "principal": g.principal.to_dict()}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500
