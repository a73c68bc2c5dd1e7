# Overview: Sale cart state machine; lines, totals, payment selection and persistence.

"""
Cart Service

STATES: EMPTY -> NON_EMPTY -> (SUBMITTING) -> EMPTY on a committed sale,
or back to NON_EMPTY (unchanged) when the submission fails.

RULES:
- One line per product id, kept in the order products were added.
- BY_UNIT lines hold a quantity; BY_WEIGHT lines hold the money amount typed
  by the operator plus the weight derived from it.
- A line whose quantity/amount reaches zero is removed.
- Every mutation is validated first (pricing_service) and only then applied,
  so a rejected update leaves the cart exactly as it was.
- total() is always derived from the lines; nothing is cached.
- After each successful mutation the cart is written to durable storage under
  cart_key(operator). Rehydrated carts are NOT re-validated against stock
  until the catalog is next fetched.
- SUBMITTING lives on the stored row, not on the request: while a sale is in
  flight every other request sees a read-only cart. Each save carries the
  revision it was loaded at, so a request that read the cart before a sale
  cannot write the sold lines back afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from ..validation import ValidationError, parse_amount
from .catalog_service import Product, StockLedgerSnapshot, normalize_product
from .pricing_service import (
    ZERO,
    CartError,
    StockExceededError,
    apply_unit_delta,
    price_unit_line,
    price_weight_line,
    round_money,
)
from .session_service import DEFAULT_CART_KEY_PREFIX, OperatorContext, cart_key

logger = logging.getLogger(__name__)

__all__ = [
    "Cart",
    "CartConflictError",
    "CartError",
    "CartLine",
    "CartStore",
    "CartSubmittingError",
    "PaymentSelection",
    "StockExceededError",
    "StoredCart",
]

STATE_EMPTY = "EMPTY"
STATE_NON_EMPTY = "NON_EMPTY"
STATE_SUBMITTING = "SUBMITTING"

STORAGE_VERSION = 1

ONE = Decimal(1)


class CartConflictError(CartError):
    """The stored cart changed after this request loaded it."""


class CartSubmittingError(CartConflictError):
    """A sale for this cart is in flight; the cart is read-only until it settles."""

    def __init__(self, message: str = "Sale is being submitted; wait for it to finish", details: dict | None = None):
        super().__init__(message, details=details)


@dataclass
class StoredCart:
    payload: dict
    revision: int = 0
    submitting: bool = False


class CartStore(Protocol):
    def load(self, key: str) -> StoredCart | None: ...
    def save(self, key: str, operator: OperatorContext | None, payload: dict, *, revision: int = 0) -> int: ...
    def delete(self, key: str) -> bool: ...
    def begin_submit(self, key: str, revision: int) -> None: ...
    def end_submit(self, key: str) -> None: ...


@dataclass
class CartLine:
    product: Product
    # BY_UNIT: units sold. BY_WEIGHT: kg derived from amount (3 dp).
    quantity: Decimal = ZERO
    # BY_WEIGHT only
    amount: Decimal | None = None

    @property
    def product_id(self) -> int:
        return self.product.id

    @property
    def subtotal(self) -> Decimal:
        if self.product.by_weight:
            # Charged verbatim, never recomputed from the derived weight
            return self.amount or ZERO
        return round_money(self.quantity * self.product.unit_price)

    def to_dict(self) -> dict:
        return {
            "product": self.product.to_dict(),
            "product_id": self.product.id,
            "pricing_mode": self.product.pricing_mode,
            "quantity": str(self.quantity),
            "amount": str(self.amount) if self.amount is not None else None,
            "unit_price": str(self.product.unit_price),
            "subtotal": str(self.subtotal),
        }

    def to_storage(self) -> dict:
        return {
            "product": self.product.to_dict(),
            "quantity": str(self.quantity),
            "amount": str(self.amount) if self.amount is not None else None,
        }


@dataclass
class PaymentSelection:
    method: str
    tendered: Decimal = ZERO

    def to_dict(self) -> dict:
        return {"method": self.method, "tendered": str(self.tendered)}


def _line_from_storage(entry: dict) -> CartLine:
    # Carts saved by the browser client use "producto"/"cantidad"/"montoCop"
    raw_product = entry.get("product") or entry.get("producto")
    product = normalize_product(raw_product)
    quantity = entry.get("quantity", entry.get("kilosVendidos", entry.get("cantidad")))
    amount = entry.get("amount", entry.get("montoCop"))
    return CartLine(
        product=product,
        quantity=Decimal(str(quantity)) if quantity not in (None, "") else ZERO,
        amount=Decimal(str(amount)) if amount not in (None, "") else None,
    )


class Cart:
    """
    One operator's sale in progress.

    The operator context is passed in explicitly; the store is optional so
    the cart can be used (and tested) without persistence.
    """

    def __init__(
        self,
        operator: OperatorContext | None = None,
        store: CartStore | None = None,
        *,
        cash_method: str = "efectivo",
        key_prefix: str = DEFAULT_CART_KEY_PREFIX,
    ):
        self.operator = operator
        self.store = store
        self.key_prefix = key_prefix
        self._lines: dict[int, CartLine] = {}
        self.payment = PaymentSelection(method=cash_method)
        self._submitting = False
        # Stored revision this copy was loaded at (0 = never stored)
        self._revision = 0

    # -------------------------------------------------------------------------
    # LOADING / PERSISTENCE
    # -------------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        operator: OperatorContext,
        store: CartStore,
        *,
        cash_method: str = "efectivo",
        key_prefix: str = DEFAULT_CART_KEY_PREFIX,
    ) -> "Cart":
        """Rehydrate the operator's cart from storage (empty if none)."""
        cart = cls(operator, store, cash_method=cash_method, key_prefix=key_prefix)
        stored = store.load(cart.key) if cart.key else None
        if stored is not None:
            cart._restore(stored.payload)
            cart._revision = stored.revision
            cart._submitting = stored.submitting
        return cart

    @property
    def key(self) -> str | None:
        if self.operator is None:
            return None
        return cart_key(self.operator, self.key_prefix)

    def _restore(self, payload: dict) -> None:
        for entry in payload.get("lines") or []:
            try:
                line = _line_from_storage(entry)
            except (ValidationError, ArithmeticError, AttributeError, TypeError) as exc:
                logger.warning("Dropping unreadable cart line for %s: %s", self.key, exc)
                continue
            self._lines[line.product_id] = line

        payment = payload.get("payment") or {}
        if payment.get("method"):
            self.payment.method = payment["method"]
        try:
            self.payment.tendered = Decimal(str(payment.get("tendered") or 0))
        except ArithmeticError:
            self.payment.tendered = ZERO

    def to_storage(self) -> dict:
        return {
            "version": STORAGE_VERSION,
            "lines": [line.to_storage() for line in self._lines.values()],
            "payment": self.payment.to_dict(),
        }

    def persist(self) -> None:
        """
        Mirror the current state to durable storage (no-op without a store).

        Raises CartConflictError when the stored row moved on since this copy
        was loaded, and CartSubmittingError while a sale is in flight.
        """
        if self.store is not None and self.key:
            self._revision = self.store.save(
                self.key, self.operator, self.to_storage(), revision=self._revision
            )

    def _committed(self, *, reset_tendered: bool = True) -> None:
        # Any change to the lines invalidates the cash typed for the old total
        if reset_tendered:
            self.payment.tendered = ZERO
        self.persist()

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    @property
    def state(self) -> str:
        if self._submitting:
            return STATE_SUBMITTING
        return STATE_NON_EMPTY if self._lines else STATE_EMPTY

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def line(self, product_id: int) -> CartLine | None:
        return self._lines.get(product_id)

    def __contains__(self, product_id: int) -> bool:
        return product_id in self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines.values()), ZERO)

    def committed_quantity(self, product_id: int) -> Decimal:
        line = self._lines.get(product_id)
        return line.quantity if line is not None else ZERO

    def to_dict(self) -> dict:
        return {
            "storage_key": self.key,
            "state": self.state,
            "lines": [line.to_dict() for line in self._lines.values()],
            "line_count": len(self._lines),
            "total": str(self.total()),
            "payment": self.payment.to_dict(),
        }

    # -------------------------------------------------------------------------
    # MUTATIONS
    # -------------------------------------------------------------------------

    def _ensure_editable(self) -> None:
        if self._submitting:
            raise CartSubmittingError()

    def _require_line(self, product_id: int) -> CartLine:
        line = self._lines.get(product_id)
        if line is None:
            raise CartError("Product is not in the cart", details={"product_id": product_id})
        return line

    def add_product(self, product: Product) -> CartLine:
        """
        Add a product from the catalog.

        BY_UNIT: new line with quantity 1, or +1 on the existing line.
        BY_WEIGHT: new line waiting for an amount; an existing line is left
        as-is (the operator re-enters the amount instead).
        """
        self._ensure_editable()
        line = self._lines.get(product.id)

        if product.by_weight:
            if line is not None:
                return line
            if product.available_stock <= ZERO:
                raise StockExceededError(product, max_quantity=ZERO, max_amount=ZERO)
            line = CartLine(product=product, quantity=ZERO, amount=None)
            self._lines[product.id] = line
            self._committed()
            return line

        current = line.quantity if line is not None else ZERO
        # Checked against the snapshot carried by the incoming product
        priced = apply_unit_delta(product, current, ONE)
        if line is None:
            line = CartLine(product=product)
            self._lines[product.id] = line
        else:
            line.product = product
        line.quantity = priced.quantity
        self._committed()
        return line

    def increment(self, product_id: int) -> CartLine:
        self._ensure_editable()
        line = self._require_line(product_id)
        if line.product.by_weight:
            raise CartError(f"Enter an amount for {line.product.name}; it is sold by weight")

        priced = apply_unit_delta(line.product, line.quantity, ONE)
        line.quantity = priced.quantity
        self._committed()
        return line

    def decrement(self, product_id: int) -> CartLine | None:
        """-1 on a BY_UNIT line; a BY_WEIGHT line (or a line at 1) is removed."""
        self._ensure_editable()
        line = self._require_line(product_id)
        if line.product.by_weight:
            self.remove_line(product_id)
            return None

        priced = apply_unit_delta(line.product, line.quantity, -ONE)
        if priced is None:
            self.remove_line(product_id)
            return None
        line.quantity = priced.quantity
        self._committed()
        return line

    def set_quantity(self, product_id: int, quantity: Decimal) -> CartLine | None:
        """Absolute quantity for a BY_UNIT line; zero or less removes it."""
        self._ensure_editable()
        line = self._require_line(product_id)
        priced = price_unit_line(line.product, quantity)
        if priced is None:
            self.remove_line(product_id)
            return None
        line.quantity = priced.quantity
        self._committed()
        return line

    def set_amount(self, product_id: int, raw_amount) -> CartLine | None:
        """
        Money amount for a BY_WEIGHT line (thousands-separated strings OK).

        A rejected amount keeps the previous valid amount/weight; zero or
        empty removes the line.
        """
        self._ensure_editable()
        line = self._require_line(product_id)
        amount = parse_amount(raw_amount)
        priced = price_weight_line(line.product, amount)
        if priced is None:
            self.remove_line(product_id)
            return None
        line.amount = priced.amount
        line.quantity = priced.quantity
        self._committed()
        return line

    def remove_line(self, product_id: int) -> bool:
        self._ensure_editable()
        if self._lines.pop(product_id, None) is None:
            return False
        self._committed()
        return True

    def clear(self) -> None:
        """Empty the cart and drop its storage entry (after a committed sale)."""
        self._lines.clear()
        self.payment.tendered = ZERO
        if self.store is not None and self.key:
            self.store.delete(self.key)
        self._revision = 0

    def select_payment(
        self,
        method: str | None = None,
        tendered=None,
        *,
        allowed_methods: tuple[str, ...] | list[str] | None = None,
    ) -> PaymentSelection:
        self._ensure_editable()
        if method is not None:
            if allowed_methods is not None and method not in allowed_methods:
                raise ValidationError(
                    f"Invalid payment method: {method}. Must be one of {list(allowed_methods)}"
                )
            self.payment.method = method
        if tendered is not None:
            self.payment.tendered = parse_amount(tendered, "tendered")
        self._committed(reset_tendered=False)
        return self.payment

    def resync(self, snapshot: StockLedgerSnapshot) -> int:
        """
        Replace line product snapshots with freshly fetched ones.

        Lines are not re-validated: a line can now exceed stock and will be
        rejected by the shop API on submission. Returns lines refreshed.
        """
        refreshed = 0
        for product_id, line in self._lines.items():
            fresh = snapshot.get(product_id)
            if fresh is not None and fresh != line.product:
                line.product = fresh
                refreshed += 1
        if refreshed and not self._submitting:
            self.persist()
        return refreshed

    # -------------------------------------------------------------------------
    # SUBMISSION GUARD (checkout_service drives these)
    # -------------------------------------------------------------------------

    def begin_submit(self) -> None:
        """
        Mark the cart SUBMITTING, on the stored row first so concurrent
        requests for the same key see it. Raises CartSubmittingError if a
        sale is already in flight.
        """
        if self._submitting:
            raise CartSubmittingError("A sale for this cart is already being submitted")
        if self.store is not None and self.key:
            self.store.begin_submit(self.key, self._revision)
        self._submitting = True

    def end_submit(self) -> None:
        """Back to editable. No-op on the store once the sale cleared the row."""
        if self._submitting and self.store is not None and self.key:
            self.store.end_submit(self.key)
        self._submitting = False
