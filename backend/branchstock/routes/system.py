# backend/branchstock/routes/system.py
"""
System health and version endpoints.
"""

import platform
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Branch, Product, BranchStock, StockMovement
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        product_count = db.session.query(Product).count()
        stock_rows = db.session.query(BranchStock).count()
        movement_count = db.session.query(StockMovement).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "products": product_count,
                "stock_rows": stock_rows,
                "movements": movement_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/version")
def version():
    return {
        "name": "branchstock",
        "version": current_app.config.get("APP_VERSION", "1.0.0"),
        "python": platform.python_version(),
        "policies": {
            "allow_negative_stock": current_app.config["ALLOW_NEGATIVE_STOCK"],
            "enforce_transfer_quantity_limits": current_app.config["ENFORCE_TRANSFER_QUANTITY_LIMITS"],
            "sale_cancellation_mode": current_app.config["SALE_CANCELLATION_MODE"],
        },
    }
