# Overview: HTTP client for the remote shop API (auth, catalog, sales, dashboard).

"""
Remote shop API client.

WHY: All business state (products, categories, sales ledger, users) lives on
the shop API. This module is the only place that speaks HTTP to it; callers
get plain dicts back or a RemoteAPIError subclass.

ERROR MAPPING:
- 401                                  -> AuthenticationError
- 409, or 400 whose detail mentions stock -> StockConflictError
- any other non-2xx                    -> RemoteAPIError(status_code=...)
- transport failure / timeout          -> RemoteAPIError(status_code=None)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

import httpx


class RemoteAPIError(Exception):
    """Raised when a call to the shop API fails."""
    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


class AuthenticationError(RemoteAPIError):
    """Token missing, invalid or expired; or bad credentials on login."""


class StockConflictError(RemoteAPIError):
    """Authoritative stock no longer supports the requested sale."""


def _jsonable(value: Any) -> Any:
    # httpx's json= encoder knows nothing about Decimal
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, Mapping):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _query(params: Mapping[str, Any] | None) -> dict[str, str]:
    query: dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return "Unknown error"
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if detail:
            return detail if isinstance(detail, str) else str(detail)
    return "Request failed"


class RemoteAPI:
    """
    Thin wrapper over httpx.Client bound to one operator token.

    A new instance is built per request (see decorators.require_auth), so the
    token is never shared between operators.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def __enter__(self) -> "RemoteAPI":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            response = self.client.request(
                method,
                path,
                headers=self._headers(),
                params=_query(params),
                json=_jsonable(json) if json is not None else None,
            )
        except httpx.HTTPError as exc:
            raise RemoteAPIError(f"Shop API unreachable: {exc}") from exc

        if response.is_error:
            detail = _error_detail(response)
            status = response.status_code
            if status == 401:
                raise AuthenticationError(detail, status_code=status)
            if status == 409 or (status == 400 and "stock" in detail.lower()):
                raise StockConflictError(detail, status_code=status)
            raise RemoteAPIError(detail, status_code=status)

        # 204 No Content
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteAPIError("Shop API returned invalid JSON", status_code=response.status_code) from exc

    # -------------------------------------------------------------------------
    # AUTH
    # -------------------------------------------------------------------------

    def login(self, username: str, password: str) -> dict:
        return self._request("POST", "/auth/login", json={"username": username, "password": password})

    def get_me(self) -> dict:
        return self._request("GET", "/auth/me")

    # -------------------------------------------------------------------------
    # CATEGORIES
    # -------------------------------------------------------------------------

    def list_categories(self) -> list[dict]:
        return self._request("GET", "/categories") or []

    def create_category(self, category: dict) -> dict:
        return self._request("POST", "/categories", json=category)

    # -------------------------------------------------------------------------
    # PRODUCTS
    # -------------------------------------------------------------------------

    def list_products(
        self,
        *,
        skip: int | None = None,
        limit: int | None = None,
        search: str | None = None,
        category_id: int | None = None,
        is_active: bool | None = None,
    ) -> list[dict]:
        params = {
            "skip": skip,
            "limit": limit,
            "search": search,
            "category_id": category_id,
            "is_active": is_active,
        }
        return self._request("GET", "/products", params=params) or []

    def get_product(self, product_id: int) -> dict:
        return self._request("GET", f"/products/{product_id}")

    def create_product(self, product: dict) -> dict:
        return self._request("POST", "/products", json=product)

    def update_product(self, product_id: int, product: dict) -> dict:
        return self._request("PUT", f"/products/{product_id}", json=product)

    def delete_product(self, product_id: int) -> None:
        self._request("DELETE", f"/products/{product_id}")

    # -------------------------------------------------------------------------
    # SALES
    # -------------------------------------------------------------------------

    def list_sales(
        self,
        *,
        skip: int | None = None,
        limit: int | None = None,
        today: bool | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict]:
        params = {
            "skip": skip,
            "limit": limit,
            "today": today,
            "start_date": start_date,
            "end_date": end_date,
        }
        return self._request("GET", "/sales", params=params) or []

    def get_sale(self, sale_id: int) -> dict:
        return self._request("GET", f"/sales/{sale_id}")

    def create_sale(self, sale: dict) -> dict:
        return self._request("POST", "/sales", json=sale)

    # -------------------------------------------------------------------------
    # DASHBOARD
    # -------------------------------------------------------------------------

    def dashboard_stats(self) -> dict:
        return self._request("GET", "/dashboard/stats")


def remote_api_from_config(config: Mapping[str, Any], token: str | None = None) -> RemoteAPI:
    """Build a client from Flask config (base URL, timeout, optional test transport)."""
    return RemoteAPI(
        base_url=config["POS_API_BASE_URL"],
        token=token,
        timeout=config.get("POS_API_TIMEOUT", 15.0),
        transport=config.get("POS_API_TRANSPORT"),
    )
