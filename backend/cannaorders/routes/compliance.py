# Overview: Flask API routes for compliance logs, purchase limits, daily reports, sales analytics and outbox retries.

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context, require_staff
from ..services import analytics_service, compliance_service
from ..services.errors import OrderServiceError
from ..services.tenant_service import require_dispensary_in_org
from ..time_utils import parse_iso_date, parse_iso_datetime, utc_today, utcnow


compliance_bp = Blueprint("compliance", __name__, url_prefix="/api/compliance")


@compliance_bp.get("/logs")
@require_context
@require_staff
def list_logs_route():
    """
    Compliance log entries for a dispensary.

    Query: dispensary_id (required), from / to (ISO-8601, default last 24h),
    event_type (optional)
    """
    dispensary_id = request.args.get("dispensary_id", type=int)
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        end = parse_iso_datetime(request.args.get("to")) or utcnow()
        start = parse_iso_datetime(request.args.get("from")) or end - timedelta(days=1)
    except ValueError:
        return jsonify({"error": "from/to must be ISO-8601 datetimes"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        logs = compliance_service.get_compliance_logs(
            dispensary_id, start, end, request.args.get("event_type")
        )
        return jsonify({"logs": [log.to_dict() for log in logs]}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@compliance_bp.post("/purchase-limit")
@require_context
def purchase_limit_route():
    """Body: dispensary_id, requested_units"""
    data = request.get_json(silent=True) or {}
    dispensary_id = data.get("dispensary_id")
    requested_units = data.get("requested_units")
    if not dispensary_id or requested_units is None:
        return jsonify({"error": "dispensary_id and requested_units required"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        result = compliance_service.check_purchase_limit(dispensary_id, g.user_id, int(requested_units))
        return jsonify(result), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except (TypeError, ValueError):
        return jsonify({"error": "requested_units must be an integer"}), 400


@compliance_bp.post("/daily-report")
@require_context
@require_staff
def daily_report_route():
    """Body: dispensary_id, date (YYYY-MM-DD, default today UTC)"""
    data = request.get_json(silent=True) or {}
    dispensary_id = data.get("dispensary_id")
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        report_date = parse_iso_date(data.get("date")) or utc_today()
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        report = compliance_service.generate_daily_report(dispensary_id, report_date)
        return jsonify({"report": report.to_dict()}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate daily sales report")
        return jsonify({"error": "Internal server error"}), 500


@compliance_bp.post("/outbox/flush")
@require_context
@require_staff
def flush_outbox_route():
    try:
        report = compliance_service.flush_outbox()
        return jsonify(report.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to flush compliance outbox")
        return jsonify({"error": "Internal server error"}), 500


def _analytics_window():
    """from / to as ISO-8601 datetimes, default the last 30 days."""
    end = parse_iso_datetime(request.args.get("to")) or utcnow()
    start = parse_iso_datetime(request.args.get("from")) or end - timedelta(days=30)
    return start, end


@compliance_bp.get("/analytics/sales")
@require_context
@require_staff
def sales_analytics_route():
    """
    Stored daily reports for a dispensary.

    Query: dispensary_id (required), from / to (YYYY-MM-DD, default last 30 days)
    """
    dispensary_id = request.args.get("dispensary_id", type=int)
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        end = parse_iso_date(request.args.get("to")) or utc_today()
        start = parse_iso_date(request.args.get("from")) or end - timedelta(days=30)
    except ValueError:
        return jsonify({"error": "from/to must be YYYY-MM-DD"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        reports = analytics_service.get_sales_analytics(dispensary_id, start, end)
        return jsonify({"reports": [r.to_dict() for r in reports]}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@compliance_bp.get("/analytics/top-products")
@require_context
@require_staff
def top_products_route():
    """Query: dispensary_id (required), from / to (ISO-8601), limit (default 10)"""
    dispensary_id = request.args.get("dispensary_id", type=int)
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        start, end = _analytics_window()
    except ValueError:
        return jsonify({"error": "from/to must be ISO-8601 datetimes"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        products = analytics_service.get_top_products(
            dispensary_id, start, end, limit=request.args.get("limit", 10, type=int)
        )
        return jsonify({"products": products}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@compliance_bp.get("/analytics/revenue")
@require_context
@require_staff
def revenue_route():
    """Query: dispensary_id (required), period (day|week|month, default day), from / to (ISO-8601)"""
    dispensary_id = request.args.get("dispensary_id", type=int)
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        start, end = _analytics_window()
    except ValueError:
        return jsonify({"error": "from/to must be ISO-8601 datetimes"}), 400

    period = request.args.get("period", "day")
    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        rows = analytics_service.get_revenue_by_period(dispensary_id, period, start, end)
        return jsonify({"period": period, "rows": rows}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
