# Overview: Inventory admin; validates product/category writes before forwarding them to the shop API.

"""
Inventory Service

Products and categories are persisted by the shop API. This layer only
validates input locally (so obviously bad writes never leave the terminal)
and shapes list responses for the inventory screen.
"""

from __future__ import annotations

from ..validation import PayloadPolicy, ValidationError, validate_payload
from .catalog_service import UNIT_KG, UNIT_UNIT
from .remote_api import RemoteAPI

UNCATEGORIZED = {"id": 0, "name": "Sin categoría", "description": ""}

VALID_UNITS = [UNIT_UNIT, UNIT_KG]

PRODUCT_POLICY = PayloadPolicy(
    writable_fields={
        "name": "str",
        "description": "str",
        "price": "decimal",
        "cost": "decimal",
        "stock": "decimal",
        "unidad_medida": "str",
        "barcode": "str",
        "category_id": "int",
        "image_url": "str",
        "is_active": "bool",
    },
    required_on_create=frozenset({"name", "price", "category_id"}),
    max_lengths={"name": 255, "barcode": 64},
)

CATEGORY_POLICY = PayloadPolicy(
    writable_fields={"name": "str", "description": "str"},
    required_on_create=frozenset({"name"}),
    max_lengths={"name": 120},
)


def enforce_rules_product(patch: dict) -> None:
    """Business rules beyond field types."""
    unit = patch.get("unidad_medida")
    if unit is not None:
        unit = unit.lower()
        if unit not in VALID_UNITS:
            raise ValidationError(f"unidad_medida must be one of {VALID_UNITS}")
        patch["unidad_medida"] = unit
    if patch.get("category_id") is not None and patch["category_id"] <= 0:
        raise ValidationError("category_id must be a positive integer")


def list_products(
    api: RemoteAPI,
    *,
    search: str | None = None,
    category_id: int | None = None,
) -> list[dict]:
    """
    All products (active or not), each with a category attached.

    search matches name or barcode, case-insensitively.
    """
    products = api.list_products()
    categories = {c.get("id"): c for c in api.list_categories()}
    query = (search or "").strip().lower()

    rows = []
    for product in products:
        name = str(product.get("name") or product.get("nombre") or "")
        barcode = str(product.get("barcode") or "")
        if query and query not in name.lower() and query not in barcode.lower():
            continue
        if category_id is not None and product.get("category_id") != category_id:
            continue

        row = dict(product)
        row["category"] = (
            product.get("category")
            or categories.get(product.get("category_id"))
            or dict(UNCATEGORIZED)
        )
        rows.append(row)
    return rows


def create_product(api: RemoteAPI, payload: dict) -> dict:
    patch = validate_payload(payload=payload, policy=PRODUCT_POLICY, partial=False)
    patch.setdefault("cost", 0)
    patch.setdefault("stock", 0)
    patch.setdefault("unidad_medida", UNIT_UNIT)
    enforce_rules_product(patch)
    return api.create_product(patch)


def update_product(api: RemoteAPI, product_id: int, payload: dict) -> dict:
    patch = validate_payload(payload=payload, policy=PRODUCT_POLICY, partial=True)
    if not patch:
        raise ValidationError("Nothing to update")
    enforce_rules_product(patch)
    return api.update_product(product_id, patch)


def delete_product(api: RemoteAPI, product_id: int) -> None:
    api.delete_product(product_id)


def list_categories(api: RemoteAPI) -> list[dict]:
    return api.list_categories()


def create_category(api: RemoteAPI, payload: dict) -> dict:
    patch = validate_payload(payload=payload, policy=CATEGORY_POLICY, partial=False)
    return api.create_category(patch)
