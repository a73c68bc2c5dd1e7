# Overview: Flask API routes for operator login; parses input and returns JSON responses.

# backend/pos_terminal/routes/auth.py
"""
Operator authentication routes.

Credentials are checked by the shop API; this service only relays the token
and resolves who the operator is. The token is held by the client and sent
back as "Authorization: Bearer <token>".
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import session_service
from ..services.remote_api import AuthenticationError, RemoteAPIError, remote_api_from_config
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate against the shop API.

    Returns {"token": ..., "user": {...}} on success, 401 on bad credentials.
    """
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    with remote_api_from_config(current_app.config) as api:
        try:
            token, operator = session_service.login(api, username, password)
        except AuthenticationError:
            return jsonify({"error": "Invalid credentials"}), 401
        except RemoteAPIError as e:
            if e.status_code is not None and e.status_code < 500:
                return jsonify({"error": str(e)}), e.status_code
            current_app.logger.warning("Login failed for %s: %s", username, e)
            return jsonify({"error": "Shop API unavailable"}), 502

    current_app.logger.info("Operator %s logged in", operator.username)
    return jsonify({"token": token, "user": operator.to_dict()}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.operator.to_dict()}), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """The shop API has no revocation endpoint; the client drops the token."""
    return jsonify({"message": "Logged out"}), 200
