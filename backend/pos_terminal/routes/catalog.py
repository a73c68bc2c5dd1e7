# Overview: Flask API routes for the sales-screen catalog; parses input and returns JSON responses.

# backend/pos_terminal/routes/catalog.py
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import catalog_service
from ..services.cart_service import CartConflictError
from ..services.remote_api import RemoteAPIError
from .cart import current_cart, remote_error_response


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("")
@require_auth
def catalog_route():
    """
    Products offered for sale with stock shown net of the operator's cart.

    Query params:
    - search: case-insensitive name filter
    - unit: all | kg | unidad

    Every fetch replaces the cart's product snapshots with the fresh ones.
    """
    try:
        snapshot = catalog_service.fetch_snapshot(g.remote_api)
    except RemoteAPIError as e:
        return remote_error_response(e, "load catalog")

    cart = current_cart()
    try:
        cart.resync(snapshot)
    except CartConflictError as e:
        # Stored cart moved on mid-request; the next fetch resyncs it
        current_app.logger.warning("Skipped cart resync for %s: %s", cart.key, e)

    view = catalog_service.catalog_view(
        snapshot,
        cart,
        search=request.args.get("search"),
        unit=request.args.get("unit"),
    )
    return jsonify(view), 200
