import io

from flask import Blueprint, current_app, jsonify, request, send_file

from ..decorators import accounting, date_arg, error_response, require_principal
from ..errors import BizLedgerError, ValidationError

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _limit_arg(default: int = 5) -> int:
    limit = request.args.get("limit", default, type=int)
    if limit is None or limit < 1 or limit > 100:
        raise ValidationError("limit must be between 1 and 100")
    return limit


@reports_bp.get("/financial")
@require_principal
def financial_report():
    try:
        report = accounting().get_financial_reports(date_arg("start"), date_arg("end"))
        return jsonify(report), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build financial report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/series")
@require_principal
def report_series():
    granularity = request.args.get("granularity", "day")
    try:
        series = accounting().get_report_series(date_arg("start"), date_arg("end"), granularity)
        return jsonify({"granularity": granularity, "series": series}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build report series")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/tax")
@require_principal
def tax_report():
    try:
        return jsonify(accounting().get_tax_report(date_arg("start"), date_arg("end"))), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build tax report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-products")
@require_principal
def top_products():
    try:
        products = accounting().get_top_products(date_arg("start"), date_arg("end"), _limit_arg())
        return jsonify({"products": products}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build top products")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-customers")
@require_principal
def top_customers():
    try:
        customers = accounting().get_top_customers(date_arg("start"), date_arg("end"), _limit_arg())
        return jsonify({"customers": customers}), 200
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build top customers")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/export")
@require_principal
def export_report():
    fmt = request.args.get("format", "csv")
    try:
        content, mimetype, filename = accounting().export(fmt, date_arg("start"), date_arg("end"))
        return send_file(
            io.BytesIO(content),
            mimetype=mimetype,
            as_attachment=True,
            download_name=filename,
        )
    except BizLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to export report")
        return jsonify({"error": "Internal server error"}), 500
