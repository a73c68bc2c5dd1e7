# Overview: Request decorators for API routes (operator authentication, role gating).

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.remote_api import AuthenticationError, RemoteAPIError, remote_api_from_config
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'operator') and hasattr(g, 'remote_api')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a shop API token and resolve the operator behind it.

    Sets the following Flask g attributes:
    - g.remote_api: RemoteAPI client bound to the caller's token
    - g.operator: OperatorContext (id, username, display_name, role)

    Returns 401 if the header is missing or the shop API rejects the token,
    502 if the shop API cannot be reached.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        api = remote_api_from_config(current_app.config, token)
        try:
            operator = session_service.resolve_operator(api)
        except AuthenticationError:
            api.close()
            return jsonify({"error": "Invalid or expired token"}), 401
        except RemoteAPIError as e:
            api.close()
            current_app.logger.warning("Operator lookup failed: %s", e)
            return jsonify({"error": "Shop API unavailable"}), 502

        g.remote_api = api
        g.operator = operator
        try:
            return f(*args, **kwargs)
        finally:
            api.close()

    return decorated_function


def require_role(role: str):
    """Require the authenticated operator to hold a role (case-insensitive)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.operator.role.upper() != role.upper():
                return jsonify({
                    "error": "Permission denied",
                    "required_role": role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
