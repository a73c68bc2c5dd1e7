# Overview: Flask API routes for the sales dashboard; parses input and returns JSON responses.

# backend/pos_terminal/routes/dashboard.py
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import reporting_service
from ..services.remote_api import AuthenticationError, RemoteAPIError
from ..services.reporting_service import ReportError


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    """
    Sales analytics for a date range.

    Query params:
    - range: today | week | month | previous_month | custom (default month)
    - start, end: YYYY-MM-DD, required for custom
    """
    try:
        report = reporting_service.build_dashboard(
            g.remote_api,
            preset=request.args.get("range", reporting_service.RANGE_MONTH),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except AuthenticationError:
        return jsonify({"error": "Invalid or expired token"}), 401
    except RemoteAPIError as e:
        current_app.logger.warning("Failed to build dashboard: %s", e)
        return jsonify({"error": "Failed to load sales", "message": str(e)}), 502
    return jsonify(report), 200


@dashboard_bp.get("/stats")
@require_auth
def stats_route():
    try:
        stats = g.remote_api.dashboard_stats()
    except AuthenticationError:
        return jsonify({"error": "Invalid or expired token"}), 401
    except RemoteAPIError as e:
        current_app.logger.warning("Failed to load dashboard stats: %s", e)
        return jsonify({"error": "Failed to load stats", "message": str(e)}), 502
    return jsonify(stats or {}), 200
