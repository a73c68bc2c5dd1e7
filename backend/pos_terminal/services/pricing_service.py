# Overview: Pricing resolver for cart lines; pure functions over Decimal.

"""
Pricing Resolver

Maps (product pricing mode, operator input) -> (quantity, unit price,
subtotal), enforcing the stock ceiling and the rounding policy.

ROUNDING POLICY:
- Money rounds to the currency minor unit (0.01), half-up.
- Quantities (units or kg) round to 3 decimal places, half-up.
- Every comparison against stock happens on rounded values so an amount
  exactly at the limit (unit_price * stock) is accepted.

BY_WEIGHT lines are charged the amount the operator typed, verbatim. The
derived kg figure is informational and is what gets reserved against stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from .catalog_service import Product

MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.001")

ZERO = Decimal(0)


class CartError(Exception):
    """Raised for local cart validation errors (no network call involved)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class StockExceededError(CartError):
    """The requested quantity or amount exceeds the product's stock ceiling."""
    def __init__(
        self,
        product: Product,
        max_quantity: Decimal,
        max_amount: Decimal | None = None,
    ):
        self.product_id = product.id
        self.max_quantity = max_quantity
        self.max_amount = max_amount

        if product.by_weight:
            message = f"Max available for {product.name}: {max_quantity} kg (${max_amount})"
        else:
            message = f"Max available for {product.name}: {max_quantity}"

        details = {
            "product_id": product.id,
            "max_quantity": str(max_quantity),
        }
        if max_amount is not None:
            details["max_amount"] = str(max_amount)
        super().__init__(message, details)


@dataclass(frozen=True)
class PricedLine:
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    # BY_WEIGHT only: the money amount the operator entered
    amount: Decimal | None = None


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def round_quantity(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def stock_ceiling(product: Product) -> Decimal:
    return round_quantity(product.available_stock)


def max_amount_for(product: Product) -> Decimal:
    """Largest money amount a BY_WEIGHT line may carry."""
    return round_money(product.available_stock * product.unit_price)


def price_unit_line(product: Product, quantity: Decimal) -> PricedLine | None:
    """
    Price a BY_UNIT line at an absolute quantity.

    Returns None when the quantity is zero or negative (the line goes away).
    Raises StockExceededError above the stock ceiling.
    """
    if product.by_weight:
        raise CartError(f"{product.name} is sold by weight; enter an amount instead")

    quantity = round_quantity(quantity)
    if quantity <= ZERO:
        return None

    ceiling = stock_ceiling(product)
    if quantity > ceiling:
        raise StockExceededError(product, max_quantity=ceiling)

    return PricedLine(
        quantity=quantity,
        unit_price=product.unit_price,
        subtotal=round_money(quantity * product.unit_price),
    )


def apply_unit_delta(product: Product, current: Decimal, delta: Decimal) -> PricedLine | None:
    """Increment/decrement a BY_UNIT line (+1 / -1 from the till controls)."""
    return price_unit_line(product, current + delta)


def derive_weight(product: Product, amount: Decimal) -> Decimal:
    if product.unit_price <= ZERO:
        raise CartError(f"{product.name} has no price per kg")
    return round_quantity(amount / product.unit_price)


def price_weight_line(product: Product, amount: Decimal) -> PricedLine | None:
    """
    Price a BY_WEIGHT line from the money amount entered.

    Returns None for a zero amount (the line goes away). Raises
    StockExceededError, carrying the maximum permissible amount, when the
    derived weight exceeds the stock ceiling.
    """
    if not product.by_weight:
        raise CartError(f"{product.name} is sold by unit; enter a quantity instead")

    if amount < ZERO:
        raise CartError("Amount must be >= 0")
    if amount == ZERO:
        return None

    weight = derive_weight(product, amount)
    ceiling = stock_ceiling(product)
    if weight > ceiling:
        raise StockExceededError(product, max_quantity=ceiling, max_amount=max_amount_for(product))

    return PricedLine(
        quantity=weight,
        unit_price=product.unit_price,
        subtotal=amount,
        amount=amount,
    )


def adjusted_unit_price(amount: Decimal, quantity: Decimal) -> Decimal:
    """
    Unit price sent with a BY_WEIGHT sale item.

    The nominal per-kg price times the rounded weight would drift from what
    the customer paid; amount / rounded weight reproduces it on the server.

    NOTE: rounding to cents leaves up to quantity x 0.005 of drift. That is
    within one cent up to 2 kg; bulk weights can be a few cents off.
    """
    if quantity <= ZERO:
        raise CartError("Cannot price a line with no quantity")
    return round_money(amount / quantity)
