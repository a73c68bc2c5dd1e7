# Overview: Sales analytics for the dashboard; pure aggregation over sales fetched from the shop API.

from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from ..time_utils import parse_iso_date, parse_iso_datetime
from .pricing_service import ZERO, round_money
from .remote_api import RemoteAPI

logger = logging.getLogger(__name__)


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


# =============================================================================
# RANGE PRESETS (CONSTANTS)
# =============================================================================

RANGE_TODAY = "today"
RANGE_WEEK = "week"
RANGE_MONTH = "month"
RANGE_PREVIOUS_MONTH = "previous_month"
RANGE_CUSTOM = "custom"

VALID_RANGES = [RANGE_TODAY, RANGE_WEEK, RANGE_MONTH, RANGE_PREVIOUS_MONTH, RANGE_CUSTOM]

UNNAMED_PRODUCT = "Producto sin nombre"
TOP_PRODUCTS_LIMIT = 10


def _month_bounds(day: date) -> tuple[date, date]:
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def resolve_range(
    preset: str,
    *,
    today: date,
    start: str | None = None,
    end: str | None = None,
) -> tuple[date, date]:
    """Inclusive (start, end) dates for a dashboard range preset."""
    if preset == RANGE_TODAY:
        return today, today
    if preset == RANGE_WEEK:
        return today - timedelta(days=7), today
    if preset == RANGE_MONTH:
        return _month_bounds(today)
    if preset == RANGE_PREVIOUS_MONTH:
        first_this_month = today.replace(day=1)
        return _month_bounds(first_this_month - timedelta(days=1))
    if preset == RANGE_CUSTOM:
        try:
            start_d = parse_iso_date(start)
            end_d = parse_iso_date(end)
        except ValueError:
            raise ReportError("start and end must be YYYY-MM-DD dates")
        if start_d is None or end_d is None:
            raise ReportError("start and end are required for a custom range")
        if start_d > end_d:
            raise ReportError("start must be on or before end")
        return start_d, end_d
    raise ReportError(f"Invalid range: {preset}. Must be one of {VALID_RANGES}")


def _dec(value) -> Decimal:
    if value in (None, ""):
        return ZERO
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return ZERO


def normalize_sale(raw: dict) -> dict:
    created_at = raw.get("created_at")
    if isinstance(created_at, str):
        try:
            created_at = parse_iso_datetime(created_at)
        except ValueError:
            logger.warning("Sale %s has an unreadable created_at: %r", raw.get("id"), created_at)
            created_at = None
    elif not isinstance(created_at, datetime):
        created_at = None
    items = []
    for item in raw.get("items") or []:
        items.append({
            "product_name": item.get("product_name") or UNNAMED_PRODUCT,
            "quantity": _dec(item.get("quantity")),
            "subtotal": _dec(item.get("subtotal")),
        })
    return {
        "id": raw.get("id"),
        "created_at": created_at,
        "payment_method": str(raw.get("payment_method") or "").lower(),
        "total": _dec(raw.get("total")),
        "seller": (raw.get("user") or {}).get("full_name"),
        "items": items,
    }


def filter_in_range(sales: Iterable[dict], start: date, end: date) -> list[dict]:
    return [
        s for s in sales
        if isinstance(s["created_at"], datetime) and start <= s["created_at"].date() <= end
    ]


def payment_breakdown(sales: Iterable[dict]) -> list[dict]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for sale in sales:
        if sale["payment_method"]:
            totals[sale["payment_method"]] += sale["total"]

    grand = sum(totals.values(), ZERO)
    rows = []
    for method, total in sorted(totals.items(), key=lambda kv: kv[1], reverse=True):
        if total <= 0:
            continue
        share = (total / grand * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP) if grand else ZERO
        rows.append({"method": method, "total": str(total), "share_pct": str(share)})
    return rows


def summarize(sales: list[dict], today_sales: list[dict]) -> dict:
    total = sum((s["total"] for s in sales), ZERO)
    count = len(sales)
    methods = payment_breakdown(sales)
    return {
        "total": str(total),
        "sale_count": count,
        "average_ticket": str(round_money(total / count)) if count else "0",
        "today_total": str(sum((s["total"] for s in today_sales), ZERO)),
        "today_count": len(today_sales),
        "payment_methods": methods,
        "main_method": methods[0] if methods else None,
    }


def daily_series(sales: Iterable[dict], start: date, end: date) -> list[dict]:
    """One bucket per calendar day in [start, end], empty days included."""
    buckets: dict[date, dict] = {}
    day = start
    while day <= end:
        buckets[day] = {"date": day.isoformat(), "total": ZERO, "count": 0}
        day += timedelta(days=1)

    for sale in sales:
        bucket = buckets.get(sale["created_at"].date())
        if bucket is not None:
            bucket["total"] += sale["total"]
            bucket["count"] += 1

    return [{**b, "total": str(b["total"])} for b in buckets.values()]


def _aggregate_items(sales: Iterable[dict]) -> dict[str, dict]:
    agg: dict[str, dict] = {}
    for sale in sales:
        for item in sale["items"]:
            name = item["product_name"]
            key = name.lower()
            row = agg.setdefault(key, {"name": name, "quantity": ZERO, "total": ZERO, "unit_price": None})
            row["quantity"] += item["quantity"]
            row["total"] += item["subtotal"]
            if row["unit_price"] is None and item["quantity"]:
                row["unit_price"] = item["subtotal"] / item["quantity"]
    return agg


def top_products(sales: Iterable[dict], limit: int = TOP_PRODUCTS_LIMIT) -> list[dict]:
    rows = sorted(_aggregate_items(sales).values(), key=lambda r: r["quantity"], reverse=True)
    return [
        {"name": r["name"], "quantity": str(r["quantity"]), "total": str(r["total"])}
        for r in rows[:limit]
    ]


def profit_rows(sales: Iterable[dict], products: Iterable[dict]) -> list[dict]:
    """
    Profit per product name: (catalog price - catalog cost) * quantity sold.

    Falls back to the first observed selling price when the product is no
    longer in the catalog; profit is unknown (None) without a cost.
    """
    inventory: dict[str, dict] = {}
    for p in products:
        name = str(p.get("name") or p.get("nombre") or "").lower()
        price = p.get("price", p.get("precio"))
        cost = p.get("cost", p.get("costo"))
        inventory[name] = {
            "price": _dec(price) if price not in (None, "") else None,
            "cost": _dec(cost) if cost not in (None, "") else None,
        }

    rows = []
    for key, agg in _aggregate_items(sales).items():
        inv = inventory.get(key, {})
        price = inv.get("price") if inv.get("price") is not None else agg["unit_price"]
        cost = inv.get("cost")
        profit = None
        if price is not None and cost is not None:
            profit = round_money((price - cost) * agg["quantity"])
        rows.append({
            "name": agg["name"],
            "cost": cost,
            "price": round_money(price) if price is not None else None,
            "quantity": agg["quantity"],
            "total": agg["total"],
            "profit": profit,
        })

    # Highest profit first, unknown profit last
    rows.sort(key=lambda r: (r["profit"] is None, -(r["profit"] or ZERO)))
    return [
        {k: (str(v) if isinstance(v, Decimal) else v) for k, v in row.items()}
        for row in rows
    ]


def sales_detail(sales: Iterable[dict]) -> list[dict]:
    rows = []
    for sale in sorted(sales, key=lambda s: s["created_at"], reverse=True):
        rows.append({
            "id": sale["id"],
            "created_at": sale["created_at"].isoformat(timespec="minutes"),
            "seller": sale["seller"],
            "payment_method": sale["payment_method"],
            "items": ", ".join(f"{i['product_name']} x{i['quantity']}" for i in sale["items"]) or "-",
            "total": str(sale["total"]),
        })
    return rows


def build_dashboard(
    api: RemoteAPI,
    *,
    preset: str = RANGE_MONTH,
    start: str | None = None,
    end: str | None = None,
    today: date | None = None,
) -> dict:
    today = today or date.today()
    start_d, end_d = resolve_range(preset, today=today, start=start, end=end)

    raw_sales = api.list_sales(
        start_date=f"{start_d.isoformat()}T00:00:00",
        end_date=f"{end_d.isoformat()}T23:59:59",
    )
    raw_today = api.list_sales(today=True)
    products = api.list_products(limit=1000)

    sales = [normalize_sale(s) for s in raw_sales]
    sales = [s for s in sales if s["created_at"] is not None]
    if preset != RANGE_TODAY:
        sales = filter_in_range(sales, start_d, end_d)
    today_sales = [normalize_sale(s) for s in raw_today]

    return {
        "range": {"preset": preset, "start": start_d.isoformat(), "end": end_d.isoformat()},
        "summary": summarize(sales, today_sales),
        "daily": daily_series(sales, start_d, end_d),
        "top_products": top_products(sales),
        "profit": profit_rows(sales, products),
        "sales": sales_detail(sales),
    }
