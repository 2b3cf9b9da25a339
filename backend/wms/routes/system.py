# backend/wms/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Warehouse, Product, Transaction

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Count the core tables and time the round trip."""
    start_time = time.time()
    try:
        details = {
            "warehouses": db.session.query(Warehouse).count(),
            "products": db.session.query(Product).count(),
            "transactions": db.session.query(Transaction).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "database": database,
    }), 200 if healthy else 503
