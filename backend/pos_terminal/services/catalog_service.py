# Overview: Catalog normalization and the stock ledger snapshot used by the cart.

"""
Catalog Service

WHY: The shop API (and carts persisted by older clients) report products under
several alias field names ("name"/"nombre", "price"/"precio", ...). Everything
is mapped onto the canonical Product here, once, at the fetch boundary; the
cart and pricing code never branch on alias names.

The StockLedgerSnapshot is the most recently fetched authoritative stock per
product. It is never decremented; the cart's own lines are subtracted on read
to give the "shadow" stock shown on the sales screen.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Protocol

from ..time_utils import utcnow, to_utc_z
from ..validation import ValidationError, parse_decimal
from .remote_api import RemoteAPI

logger = logging.getLogger(__name__)


# =============================================================================
# PRICING MODES (CONSTANTS)
# =============================================================================

PRICING_BY_UNIT = "BY_UNIT"
PRICING_BY_WEIGHT = "BY_WEIGHT"

VALID_PRICING_MODES = [PRICING_BY_UNIT, PRICING_BY_WEIGHT]

UNIT_KG = "kg"
UNIT_UNIT = "unidad"

# 1 kg = 2.20462 lb (shown next to per-kg prices at the till)
LB_PER_KG = Decimal("2.20462")

# Alias field names accepted from the shop API, first match wins
_ALIASES = {
    "name": ("name", "nombre"),
    "unit_price": ("unit_price", "price", "precio"),
    "available_stock": ("available_stock", "stock", "cantidad"),
    "unit_label": ("unit_label", "unidad_medida", "unit", "unit_of_measure"),
    "description": ("description", "descripcion"),
    "cost": ("cost", "costo"),
}

_LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:[.,]\d+)?)")


@dataclass(frozen=True)
class Product:
    """Read-only product snapshot as seen by the sales screen."""
    id: int
    name: str
    unit_price: Decimal
    pricing_mode: str = PRICING_BY_UNIT
    available_stock: Decimal = Decimal(0)
    unit_label: str = UNIT_UNIT
    description: str | None = None
    image_ref: str | None = None
    category_id: int | None = None
    cost: Decimal | None = None
    barcode: str | None = None
    is_active: bool = True

    @property
    def by_weight(self) -> bool:
        return self.pricing_mode == PRICING_BY_WEIGHT

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "unit_price": str(self.unit_price),
            "pricing_mode": self.pricing_mode,
            "available_stock": str(self.available_stock),
            "unit_label": self.unit_label,
            "image_ref": self.image_ref,
            "category_id": self.category_id,
            "cost": str(self.cost) if self.cost is not None else None,
            "barcode": self.barcode,
            "is_active": self.is_active,
        }


def _first(raw: dict, canonical: str) -> Any:
    for key in _ALIASES[canonical]:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _parse_stock(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, str):
        # Legacy shape: "15 unidades"
        match = _LEADING_NUMBER.match(value)
        if not match:
            raise ValidationError(f"stock is not a number: {value!r}")
        value = match.group(1).replace(",", ".")
    stock = parse_decimal(value, "stock", allow_negative=True)
    return stock if stock > 0 else Decimal(0)


def _image_ref(raw: dict) -> str | None:
    if raw.get("image_ref"):
        return raw["image_ref"]
    if raw.get("image_url"):
        return raw["image_url"]
    if raw.get("image_base64"):
        return f"data:image/jpeg;base64,{raw['image_base64']}"
    return raw.get("imagen") or None


def normalize_product(raw: dict) -> Product:
    """
    Map any accepted external product shape onto Product.

    Raises ValidationError for rows that cannot be priced (no id, no name,
    negative or missing price).
    """
    if not isinstance(raw, dict):
        raise ValidationError("Product must be an object")

    try:
        product_id = int(raw["id"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Product id is missing or not an integer")

    name = _first(raw, "name")
    if not name or not str(name).strip():
        raise ValidationError(f"Product {product_id} has no name")

    price_raw = _first(raw, "unit_price")
    if price_raw is None:
        raise ValidationError(f"Product {product_id} has no price")
    unit_price = parse_decimal(price_raw, "price")

    unit_label = str(_first(raw, "unit_label") or UNIT_UNIT).strip().lower()
    pricing_mode = raw.get("pricing_mode")
    if pricing_mode not in VALID_PRICING_MODES:
        pricing_mode = PRICING_BY_WEIGHT if unit_label == UNIT_KG else PRICING_BY_UNIT
    if pricing_mode == PRICING_BY_WEIGHT:
        unit_label = UNIT_KG

    cost_raw = _first(raw, "cost")
    category_id = raw.get("category_id")

    return Product(
        id=product_id,
        name=str(name).strip(),
        unit_price=unit_price,
        pricing_mode=pricing_mode,
        available_stock=_parse_stock(_first(raw, "available_stock")),
        unit_label=unit_label,
        description=_first(raw, "description"),
        image_ref=_image_ref(raw),
        category_id=int(category_id) if category_id not in (None, "") else None,
        cost=parse_decimal(cost_raw, "cost") if cost_raw not in (None, "") else None,
        barcode=raw.get("barcode") or None,
        is_active=bool(raw.get("is_active", True)),
    )


def normalize_products(rows: Iterable[dict]) -> list[Product]:
    """Normalize a list response, skipping rows that cannot be priced."""
    products = []
    for row in rows or []:
        try:
            products.append(normalize_product(row))
        except ValidationError as exc:
            logger.warning("Skipping malformed product row: %s", exc)
    return products


def price_per_lb(product: Product) -> Decimal | None:
    if not product.by_weight:
        return None
    return (product.unit_price / LB_PER_KG).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# =============================================================================
# STOCK LEDGER SNAPSHOT
# =============================================================================

class CartHoldings(Protocol):
    def committed_quantity(self, product_id: int) -> Decimal: ...


@dataclass
class StockLedgerSnapshot:
    """Latest fetched products, by id. Replaced wholesale on every refresh."""
    products: dict[int, Product] = field(default_factory=dict)
    fetched_at: Any = None

    def replace(self, products: Iterable[Product]) -> None:
        self.products = {p.id: p for p in products}
        self.fetched_at = utcnow()

    def get(self, product_id: int) -> Product | None:
        return self.products.get(product_id)

    def __len__(self) -> int:
        return len(self.products)

    def available_shadow(self, product_id: int, cart: CartHoldings | None = None) -> Decimal:
        """
        Snapshot stock minus what the cart already holds for this product.

        There is at most one line per product, so this is never double
        counted: the ceiling check itself runs against the snapshot value.
        """
        product = self.products.get(product_id)
        if product is None:
            return Decimal(0)
        held = cart.committed_quantity(product_id) if cart is not None else Decimal(0)
        return product.available_stock - held


def fetch_snapshot(api: RemoteAPI, snapshot: StockLedgerSnapshot | None = None) -> StockLedgerSnapshot:
    """Fetch active products from the shop API into a (new or given) snapshot."""
    snapshot = snapshot if snapshot is not None else StockLedgerSnapshot()
    snapshot.replace(normalize_products(api.list_products(is_active=True)))
    return snapshot


def fetch_product(api: RemoteAPI, product_id: int) -> Product:
    return normalize_product(api.get_product(product_id))


def catalog_view(
    snapshot: StockLedgerSnapshot,
    cart: CartHoldings | None = None,
    *,
    search: str | None = None,
    unit: str | None = None,
) -> dict:
    """
    Products offered on the sales screen: active, in stock, optionally
    filtered by name and unit ("all", "kg", "unidad").
    """
    query = (search or "").strip().lower()
    unit = (unit or "all").strip().lower()
    if unit in ("todos", ""):
        unit = "all"

    items = []
    for product in snapshot.products.values():
        if not product.is_active or product.available_stock <= 0:
            continue
        if query and query not in product.name.lower():
            continue
        if unit != "all" and product.unit_label != unit:
            continue

        shadow = snapshot.available_shadow(product.id, cart)
        per_lb = price_per_lb(product)
        item = product.to_dict()
        item.update({
            "available_shadow": str(shadow),
            "price_per_lb": str(per_lb) if per_lb is not None else None,
            "can_add": shadow > 0,
        })
        items.append(item)

    items.sort(key=lambda i: i["name"].lower())
    return {
        "products": items,
        "count": len(items),
        "fetched_at": to_utc_z(snapshot.fetched_at),
    }
