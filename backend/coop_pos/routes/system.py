# backend/coop_pos/routes/system.py
"""
System health endpoint.

Reports database reachability and the state of the notification worker.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db, notifications
from ..models import Product, Member, Transaction
from coop_pos.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a few cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "members": db.session.query(Member).count(),
            "transactions": db.session.query(Transaction).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status = database["status"]
    body = {
        "status": status,
        "checked_at": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "notifications": {"status": "enabled" if notifications.enabled else "disabled"},
        },
    }
    return jsonify(body), 200 if status == "healthy" else 503
