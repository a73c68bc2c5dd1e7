# backend/pos_terminal/routes/system.py
"""
System health endpoint.

Checks the two things a terminal needs to take a sale: the local cart
database and the remote shop API.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import CartEntry
from ..services.remote_api import RemoteAPIError, remote_api_from_config
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity by counting stored carts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        cart_count = db.session.query(CartEntry).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stored_carts": cart_count,
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


def check_remote_api_health() -> dict:
    """
    Check that the shop API answers at all.

    Any HTTP response (including 401 for the anonymous probe) counts as
    reachable; only transport failures count as down.
    """
    start_time = time.time()
    with remote_api_from_config(current_app.config) as api:
        try:
            api.get_me()
        except RemoteAPIError as e:
            if e.status_code is None:
                elapsed_ms = (time.time() - start_time) * 1000
                current_app.logger.warning("Shop API health check failed: %s", e)
                return {
                    "status": "degraded",
                    "latency_ms": round(elapsed_ms, 2),
                    "warning": "Shop API unreachable",
                }

    elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": "healthy",
        "latency_ms": round(elapsed_ms, 2),
        "details": {"base_url": api.base_url},
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy, or degraded (shop API down; stored carts still usable)
    - 503: cart database unusable
    """
    start_time = time.time()

    database_health = check_database_health()
    remote_health = check_remote_api_health()

    all_checks = [database_health, remote_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "remote_api": remote_health,
        }
    }

    return response, http_status
