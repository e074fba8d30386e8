from flask import Blueprint, current_app, jsonify, request

from ..decorators import accounting, error_response, json_body, pick, require_principal
from ..errors import BizLedgerError
from ..services.customer_service import WRITABLE_FIELDS

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_principal
def list_customers():
    include_disabled = request.args.get("include_disabled", "false").lower() == "true"
    try:
        return jsonify({"customers": accounting().get_customers(include_disabled)}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("")
@require_principal
def create_customer():
    try:
        customer = accounting().create_customer(**pick(json_body(), sorted(WRITABLE_FIELDS)))
        return jsonify({"customer": customer}), 201
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.patch("/<int:customer_id>")
@require_principal
def update_customer(customer_id: int):
    try:
        data = json_body()
        customer = accounting().update_customer(
            customer_id,
            **pick(data, ["expected_version"] + sorted(WRITABLE_FIELDS)),
        )
        return jsonify({"customer": customer}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500
