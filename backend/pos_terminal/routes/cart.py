# Overview: Flask API routes for the sales-entry cart; parses input and returns JSON responses.

# backend/pos_terminal/routes/cart.py
"""
Cart and checkout routes.

Every route works on the authenticated operator's own cart, rehydrated from
durable storage at the start of the request and persisted after each
successful mutation. While a sale is in flight every mutation answers 409.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import catalog_service, checkout_service
from ..services.cart_service import Cart, CartConflictError, CartError
from ..services.cart_store import SQLCartStore
from ..services.change_service import calculate_change
from ..services.remote_api import AuthenticationError, RemoteAPIError, StockConflictError
from ..validation import ValidationError, parse_amount, parse_decimal


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def current_cart() -> Cart:
    """The operator's cart as last persisted."""
    return Cart.load(
        g.operator,
        SQLCartStore(),
        cash_method=current_app.config["CASH_PAYMENT_METHOD"],
        key_prefix=current_app.config["CART_KEY_PREFIX"],
    )


def cart_response(cart: Cart, status: int = 200, **extra):
    body = {"cart": cart.to_dict(), "change": _change(cart).to_dict()}
    body.update(extra)
    return jsonify(body), status


def _change(cart: Cart):
    return calculate_change(
        cart.total(),
        cart.payment.tendered,
        cart.payment.method,
        current_app.config["CASH_PAYMENT_METHOD"],
    )


def cart_error_response(e: CartError):
    # Conflicts: a sale is in flight, or the stored cart moved on since load
    status = 409 if isinstance(e, CartConflictError) else 400
    return jsonify({"error": str(e), "details": e.details}), status


def remote_error_response(e: RemoteAPIError, action: str):
    if isinstance(e, StockConflictError):
        return jsonify({"error": "Stock conflict", "message": str(e)}), 409
    if isinstance(e, AuthenticationError):
        return jsonify({"error": "Invalid or expired token"}), 401
    if e.status_code == 404:
        return jsonify({"error": "Not found", "message": str(e)}), 404
    current_app.logger.warning("Shop API call failed while trying to %s: %s", action, e)
    return jsonify({"error": f"Failed to {action}", "message": str(e)}), 502


@cart_bp.get("")
@require_auth
def get_cart_route():
    """Current cart, total and change-due report."""
    return cart_response(current_cart())


@cart_bp.post("/lines")
@require_auth
def add_line_route():
    """
    Add a product (BY_UNIT: +1; BY_WEIGHT: open a line awaiting an amount).

    The product is fetched from the shop API so the stock ceiling is checked
    against the latest snapshot.
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id required"}), 400

    try:
        product = catalog_service.fetch_product(g.remote_api, product_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RemoteAPIError as e:
        return remote_error_response(e, "load product")

    if not product.is_active:
        return jsonify({"error": "Product is not active"}), 400

    cart = current_cart()
    try:
        cart.add_product(product)
    except CartError as e:
        return cart_error_response(e)
    return cart_response(cart, 201)


@cart_bp.post("/lines/<int:product_id>/increment")
@require_auth
def increment_line_route(product_id: int):
    cart = current_cart()
    try:
        cart.increment(product_id)
    except CartError as e:
        return cart_error_response(e)
    return cart_response(cart)


@cart_bp.post("/lines/<int:product_id>/decrement")
@require_auth
def decrement_line_route(product_id: int):
    cart = current_cart()
    try:
        cart.decrement(product_id)
    except CartError as e:
        return cart_error_response(e)
    return cart_response(cart)


@cart_bp.put("/lines/<int:product_id>")
@require_auth
def update_line_route(product_id: int):
    """
    Set a line absolutely.

    Body: {"quantity": 2.5} for BY_UNIT, {"amount": "10.000"} for BY_WEIGHT.
    """
    data = request.get_json(silent=True) or {}
    cart = current_cart()
    try:
        if "amount" in data:
            cart.set_amount(product_id, data["amount"])
        elif "quantity" in data:
            cart.set_quantity(product_id, parse_decimal(data["quantity"], "quantity", allow_negative=True))
        else:
            return jsonify({"error": "quantity or amount required"}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CartError as e:
        return cart_error_response(e)
    return cart_response(cart)


@cart_bp.delete("/lines/<int:product_id>")
@require_auth
def remove_line_route(product_id: int):
    cart = current_cart()
    try:
        removed = cart.remove_line(product_id)
    except CartError as e:
        return cart_error_response(e)
    if not removed:
        return jsonify({"error": "Product is not in the cart"}), 404
    return cart_response(cart)


@cart_bp.put("/payment")
@require_auth
def select_payment_route():
    """
    Choose the payment method and (for cash) the amount tendered.

    Body: {"method": "efectivo", "tendered": "50.000"}
    """
    data = request.get_json(silent=True) or {}
    cart = current_cart()
    try:
        cart.select_payment(
            data.get("method"),
            data.get("tendered"),
            allowed_methods=current_app.config["PAYMENT_METHODS"],
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CartError as e:
        return cart_error_response(e)
    return cart_response(cart)


@cart_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Submit the cart as one sale to the shop API.

    On success the cart is emptied and the refreshed catalog is returned.
    On failure the cart is left exactly as it was.
    """
    data = request.get_json(silent=True) or {}
    cart = current_cart()

    try:
        discount = parse_amount(data["discount"], "discount") if data.get("discount") not in (None, "") else None
        result = checkout_service.submit_sale(
            cart,
            g.remote_api,
            cash_method=current_app.config["CASH_PAYMENT_METHOD"],
            customer_name=data.get("customer_name"),
            customer_email=data.get("customer_email"),
            discount=discount,
            notes=data.get("notes"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CartError as e:
        return cart_error_response(e)
    except RemoteAPIError as e:
        return remote_error_response(e, "register sale")
    except Exception:
        current_app.logger.exception("Failed to submit sale")
        return jsonify({"error": "Internal server error"}), 500

    body = result.to_dict()
    body["cart"] = cart.to_dict()
    if result.catalog_refreshed and result.snapshot is not None:
        body["catalog"] = catalog_service.catalog_view(result.snapshot, cart)
    return jsonify(body), 201
