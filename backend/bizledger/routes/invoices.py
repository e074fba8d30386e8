from flask import Blueprint, current_app, jsonify, request

from ..decorators import accounting, date_arg, error_response, json_body, pick, require_principal
from ..errors import BizLedgerError

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

CREATE_FIELDS = (
    "items",
    "issue_date",
    "due_date",
    "invoice_number",
    "customer_id",
    "customer_name",
    "customer_email",
    "customer_phone",
    "customer_address",
    "discount_minor",
    "currency_code",
    "notes",
    "status",
)
UPDATE_FIELDS = ("expected_version", "items", "discount_minor", "issue_date", "due_date", "notes")
PAY_FIELDS = ("expected_version", "paid_at", "amount_minor", "payment_method")


@invoices_bp.get("")
@require_principal
def list_invoices():
    try:
        invoices = accounting().get_invoices(date_arg("start"), date_arg("end"), request.args.get("status"))
        return jsonify({"invoices": invoices}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("")
@require_principal
def create_invoice():
    try:
        fields = pick(json_body(), CREATE_FIELDS)
        fields.setdefault("items", None)
        invoice = accounting().create_invoice(**fields)
        return jsonify({"invoice": invoice}), 201
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_principal
def get_invoice(invoice_id: int):
    try:
        return jsonify({"invoice": accounting().get_invoice(invoice_id)}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.patch("/<int:invoice_id>")
@require_principal
def update_invoice(invoice_id: int):
    try:
        invoice = accounting().update_invoice(invoice_id, **pick(json_body(), UPDATE_FIELDS))
        return jsonify({"invoice": invoice}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/send")
@require_principal
def send_invoice(invoice_id: int):
    try:
        data = json_body()
        invoice = accounting().send_invoice(invoice_id, expected_version=data.get("expected_version"))
        return jsonify({"invoice": invoice}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to send invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/pay")
@require_principal
def pay_invoice(invoice_id: int):
    try:
        invoice = accounting().mark_paid(invoice_id, **pick(json_body(), PAY_FIELDS))
        return jsonify({"invoice": invoice}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record invoice payment")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_principal
def cancel_invoice(invoice_id: int):
    try:
        data = json_body()
        invoice = accounting().cancel_invoice(invoice_id, expected_version=data.get("expected_version"))
        return jsonify({"invoice": invoice}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/from-sale/<int:sale_id>")
@require_principal
def invoice_from_sale(sale_id: int):
    try:
        return jsonify({"invoice": accounting().create_invoice_from_sale(sale_id)}), 201
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice from sale")
        return jsonify({"error": "Internal server error"}), 500
