from flask import Blueprint, current_app, jsonify

from ..decorators import accounting, date_arg, error_response, json_body, pick, require_principal
from ..errors import BizLedgerError

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

EXPENSE_FIELDS = ("amount_minor", "description", "category", "paid_at", "payment_method", "reference")


@expenses_bp.get("")
@require_principal
def list_expenses():
    try:
        expenses = accounting().get_expenses(date_arg("start"), date_arg("end"))
        return jsonify({"expenses": expenses}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("")
@require_principal
def create_expense():
    try:
        data = json_body()
        fields = pick(data, EXPENSE_FIELDS + ("currency_code",))
        fields.setdefault("amount_minor", None)
        fields.setdefault("description", None)
        expense = accounting().create_expense(**fields)
        return jsonify({"expense": expense}), 201
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.patch("/<int:expense_id>")
@require_principal
def update_expense(expense_id: int):
    try:
        data = json_body()
        expense = accounting().update_expense(expense_id, **pick(data, ("expected_version",) + EXPENSE_FIELDS))
        return jsonify({"expense": expense}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/categories")
@require_principal
def list_categories():
    try:
        return jsonify({"categories": accounting().get_expense_categories()}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list expense categories")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("/categories")
@require_principal
def create_category():
    try:
        data = json_body()
        category = accounting().create_expense_category(name=data.get("name"), description=data.get("description"))
        return jsonify({"category": category}), 201
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense category")
        return jsonify({"error": "Internal server error"}), 500
