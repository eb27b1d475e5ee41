# backend/cannaorders/routes/system.py
"""
System health endpoint.

Reports database connectivity and the compliance outbox backlog, since a
growing backlog means regulatory records are not reaching the sink.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Order
from ..services import compliance_service

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"orders": order_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_compliance_health() -> dict:
    try:
        pending = compliance_service.count_outbox("pending")
        failed = compliance_service.count_outbox("failed")
    except Exception:
        current_app.logger.exception("Compliance outbox health check failed")
        return {"status": "unhealthy", "error": "Database error"}
    return {
        "status": "degraded" if failed else "healthy",
        "details": {"pending": pending, "failed": failed},
    }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    compliance = check_compliance_health()
    checks = {"database": database, "compliance_outbox": compliance}

    if database["status"] != "healthy":
        overall = "unhealthy"
    elif compliance["status"] != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    status_code = 503 if overall == "unhealthy" else 200
    return jsonify({"status": overall, "checks": checks}), status_code
