from flask import Blueprint, current_app, jsonify

from ..decorators import accounting, error_response, require_principal
from ..errors import BizLedgerError

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@require_principal
def sync_status():
    try:
        return jsonify(accounting().sync_status()), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to read sync status")
        return jsonify({"error": "Internal server error"}), 500


@sync_bp.post("/trigger")
@require_principal
def trigger_sync():
    """
    User-initiated full push. Platform failures are recorded per entity and
    reported in the summary; they never fail the request.
    """
    try:
        return jsonify({"summary": accounting().trigger_sync()}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to trigger sync")
        return jsonify({"error": "Internal server error"}), 500
