# Overview: Flask API routes for inventory admin; parses input and returns JSON responses.

# backend/pos_terminal/routes/inventory.py
"""
Inventory admin routes (admin operators only).

Writes are validated locally and forwarded to the shop API. Remote 4xx
answers (duplicate barcode, unknown category, ...) are passed through with
their status; everything else becomes 502.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..services import inventory_service
from ..services.remote_api import AuthenticationError, RemoteAPIError
from ..services.session_service import ROLE_ADMIN
from ..validation import ValidationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _remote_failure(e: RemoteAPIError, action: str):
    if isinstance(e, AuthenticationError):
        return jsonify({"error": "Invalid or expired token"}), 401
    if e.status_code is not None and 400 <= e.status_code < 500:
        return jsonify({"error": str(e)}), e.status_code
    current_app.logger.warning("Failed to %s: %s", action, e)
    return jsonify({"error": f"Failed to {action}"}), 502


@inventory_bp.get("/products")
@require_auth
@require_role(ROLE_ADMIN)
def list_products_route():
    """
    Query params:
    - search: matches name or barcode
    - category_id: exact category
    """
    category_id = request.args.get("category_id", type=int)
    try:
        products = inventory_service.list_products(
            g.remote_api,
            search=request.args.get("search"),
            category_id=category_id,
        )
    except RemoteAPIError as e:
        return _remote_failure(e, "list products")
    return jsonify({"products": products, "count": len(products)}), 200


@inventory_bp.post("/products")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    try:
        product = inventory_service.create_product(g.remote_api, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RemoteAPIError as e:
        return _remote_failure(e, "create product")
    current_app.logger.info("Product created by %s: %s", g.operator.username, (product or {}).get("id"))
    return jsonify({"product": product}), 201


@inventory_bp.put("/products/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    try:
        product = inventory_service.update_product(g.remote_api, product_id, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RemoteAPIError as e:
        return _remote_failure(e, "update product")
    return jsonify({"product": product}), 200


@inventory_bp.delete("/products/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    try:
        inventory_service.delete_product(g.remote_api, product_id)
    except RemoteAPIError as e:
        return _remote_failure(e, "delete product")
    current_app.logger.info("Product %s deleted by %s", product_id, g.operator.username)
    return "", 204


@inventory_bp.get("/categories")
@require_auth
@require_role(ROLE_ADMIN)
def list_categories_route():
    try:
        categories = inventory_service.list_categories(g.remote_api)
    except RemoteAPIError as e:
        return _remote_failure(e, "list categories")
    return jsonify({"categories": categories}), 200


@inventory_bp.post("/categories")
@require_auth
@require_role(ROLE_ADMIN)
def create_category_route():
    try:
        category = inventory_service.create_category(g.remote_api, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RemoteAPIError as e:
        return _remote_failure(e, "create category")
    return jsonify({"category": category}), 201
