# Overview: Sale submission; serializes the cart into one create-sale call to the shop API.

"""
Checkout Service

WHY: A sale is committed by exactly one request to the shop API. The terminal
never submits partially and never compensates client-side: either the shop
API accepts the whole sale, or the cart stays exactly as it was.

FLOW:
1. Validate locally (non-empty cart, every BY_WEIGHT line has an amount).
   Failures raise CheckoutValidationError and make NO network call.
2. Mark the stored cart SUBMITTING and commit that before the sale goes out.
   While it is set every other request for the same cart is refused, and a
   second checkout gets CheckoutInProgressError.
3. POST the sale. On failure the cart goes back to OPEN, untouched, and the
   error propagates.
4. On success: clear the cart and its storage entry, reset tendered cash,
   then refresh the catalog snapshot. A failed refresh is tolerated; the sale
   is still committed.

NOTE: No idempotency key is sent. A retry after a response was lost in
transit can create a duplicate sale on the shop API.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal

from .cart_service import Cart, CartSubmittingError
from .catalog_service import StockLedgerSnapshot, fetch_snapshot
from .change_service import ChangeReport, calculate_change
from .pricing_service import ZERO, CartError, adjusted_unit_price
from .remote_api import RemoteAPI, RemoteAPIError

logger = logging.getLogger(__name__)


class CheckoutValidationError(CartError):
    """Cart cannot be submitted as-is (checked before any network call)."""


class CheckoutInProgressError(CartSubmittingError):
    """A submission for this cart is already in flight."""


@contextmanager
def submission_guard(cart: Cart):
    """
    Hold the cart in SUBMITTING for the duration of the block.

    The status is committed on the cart_entries row, so it holds across
    requests and worker processes. The row goes back to OPEN on the way out
    unless the sale already cleared it.
    """
    try:
        cart.begin_submit()
    except CartSubmittingError as exc:
        raise CheckoutInProgressError(str(exc)) from exc
    try:
        yield
    finally:
        cart.end_submit()


@dataclass
class CheckoutResult:
    sale: dict
    change: ChangeReport
    snapshot: StockLedgerSnapshot | None
    catalog_refreshed: bool

    def to_dict(self) -> dict:
        return {
            "sale": self.sale,
            "change": self.change.to_dict(),
            "catalog_refreshed": self.catalog_refreshed,
        }


def validate_for_checkout(cart: Cart) -> None:
    if cart.is_empty:
        raise CheckoutValidationError("Cart is empty")

    for line in cart.lines:
        if not line.product.by_weight:
            continue
        if line.amount is None or line.amount <= ZERO:
            raise CheckoutValidationError(
                f"Enter a valid amount for {line.product.name}",
                details={"product_id": line.product_id},
            )
        if line.quantity <= ZERO:
            raise CheckoutValidationError(
                f"Amount for {line.product.name} is too small to weigh",
                details={"product_id": line.product_id},
            )


def build_sale_items(cart: Cart) -> list[dict]:
    """
    One sale item per line: {product_id, quantity, price}.

    BY_UNIT: quantity and nominal unit price as-is.
    BY_WEIGHT: the rounded weight, priced at amount / rounded weight, so the
    server-side quantity * price reproduces the amount actually charged.
    """
    items = []
    for line in cart.lines:
        if line.product.by_weight:
            price = adjusted_unit_price(line.amount, line.quantity)
        else:
            price = line.product.unit_price
        items.append({
            "product_id": line.product_id,
            "quantity": line.quantity,
            "price": price,
        })
    return items


def build_sale_request(
    cart: Cart,
    *,
    customer_name: str | None = None,
    customer_email: str | None = None,
    discount: Decimal | None = None,
    notes: str | None = None,
) -> dict:
    request = {
        "payment_method": cart.payment.method,
        "items": build_sale_items(cart),
    }
    optional = {
        "customer_name": customer_name,
        "customer_email": customer_email,
        "discount": discount,
        "notes": notes,
    }
    request.update({k: v for k, v in optional.items() if v not in (None, "")})
    return request


def submit_sale(
    cart: Cart,
    api: RemoteAPI,
    *,
    snapshot: StockLedgerSnapshot | None = None,
    cash_method: str = "efectivo",
    customer_name: str | None = None,
    customer_email: str | None = None,
    discount: Decimal | None = None,
    notes: str | None = None,
) -> CheckoutResult:
    """
    Submit the cart as one sale.

    Raises:
        CheckoutValidationError: local precondition failed (no network call)
        CheckoutInProgressError: a submission is already in flight
        StockConflictError / RemoteAPIError: shop API rejected the sale; cart unchanged
    """
    validate_for_checkout(cart)

    with submission_guard(cart):
        payload = build_sale_request(
            cart,
            customer_name=customer_name,
            customer_email=customer_email,
            discount=discount,
            notes=notes,
        )
        change = calculate_change(cart.total(), cart.payment.tendered, cart.payment.method, cash_method)

        sale = api.create_sale(payload)

        logger.info(
            "Sale committed for %s: %d items, total %s",
            cart.key, len(payload["items"]), change.total,
        )
        cart.clear()

    try:
        snapshot = fetch_snapshot(api, snapshot)
        refreshed = True
    except RemoteAPIError as exc:
        logger.warning("Catalog refresh after sale failed: %s", exc)
        refreshed = False

    return CheckoutResult(
        sale=sale or {},
        change=change,
        snapshot=snapshot,
        catalog_refreshed=refreshed,
    )
