"""
Pytest fixtures for POS terminal backend tests.

Provides an app bound to an in-memory cart database, a fake shop API mounted
through httpx.MockTransport (every request is recorded), and auth headers
for a cashier and an admin operator.
"""

import json
from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from pos_terminal import create_app
from pos_terminal.extensions import db
from pos_terminal.services.cart_service import CartConflictError, CartSubmittingError, StoredCart
from pos_terminal.services.catalog_service import normalize_product
from pos_terminal.services.remote_api import RemoteAPI
from pos_terminal.services.session_service import OperatorContext


SHOP_BASE_URL = "http://shop.test"

CASHIER_TOKEN = "tok-cashier"
ADMIN_TOKEN = "tok-admin"


def seed_products() -> dict:
    return {
        1: {
            "id": 1, "name": "Croquetas Dog Chow 2kg", "price": 45000, "stock": 10,
            "unidad_medida": "unidad", "category_id": 1, "barcode": "7702084000011",
            "cost": 38000, "is_active": True,
        },
        2: {
            "id": 2, "name": "Concentrado a granel", "price": 12000, "stock": 5.5,
            "unidad_medida": "kg", "category_id": 1, "barcode": None,
            "cost": 9000, "is_active": True,
        },
        3: {
            "id": 3, "name": "Arena para gato", "price": 30000, "stock": 0,
            "unidad_medida": "unidad", "category_id": 2, "barcode": "7707000000033",
            "cost": 21000, "is_active": True,
        },
        4: {
            "id": 4, "name": "Hueso masticable", "price": 8500, "stock": 3,
            "unidad_medida": "unidad", "category_id": None, "barcode": None,
            "cost": None, "is_active": False,
        },
    }


class FakeShopAPI:
    """
    In-process stand-in for the remote shop API.

    Behaves like the real service for the endpoints the terminal uses:
    bearer-token auth, product/category CRUD, sale creation with an
    authoritative stock check, sales listing and dashboard stats.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.users = {
            CASHIER_TOKEN: {"id": 7, "username": "maria", "full_name": "María Gómez", "role": "cashier", "is_active": True},
            ADMIN_TOKEN: {"id": 1, "username": "admin", "full_name": "Administrador", "role": "ADMIN", "is_active": True},
        }
        self.credentials = {"maria": ("Secret123", CASHIER_TOKEN), "admin": ("Admin123", ADMIN_TOKEN)}
        self.products = seed_products()
        self.categories = {
            1: {"id": 1, "name": "Alimento", "description": "Perros y gatos"},
            2: {"id": 2, "name": "Higiene", "description": ""},
        }
        self.sales: list[dict] = []
        # (method, path) -> (status, body) forced answers
        self.overrides: dict[tuple[str, str], tuple[int, dict]] = {}
        self.down = False
        # Called while a POST /sales is being handled, before it answers
        self.during_sale = None

    # -- helpers used by tests -------------------------------------------------

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def fail(self, method: str, path: str, status: int, detail: str):
        self.overrides[(method, path)] = (status, {"detail": detail})

    # -- transport -------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.during_sale is not None and (request.method, request.url.path) == ("POST", "/sales"):
            self.during_sale()
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        method, path = request.method, request.url.path
        forced = self.overrides.get((method, path))
        if forced is not None:
            return httpx.Response(forced[0], json=forced[1])

        if (method, path) == ("POST", "/auth/login"):
            return self._login(request)

        user = self._user(request)
        if user is None:
            return httpx.Response(401, json={"detail": "Could not validate credentials"})

        if path == "/auth/me":
            return httpx.Response(200, json=user)
        if path == "/categories":
            if method == "POST":
                return self._create_category(request)
            return httpx.Response(200, json=list(self.categories.values()))
        if path == "/products":
            if method == "POST":
                return self._create_product(request)
            return self._list_products(request)
        if path.startswith("/products/"):
            return self._product(request, int(path.rsplit("/", 1)[1]))
        if path == "/sales":
            if method == "POST":
                return self._create_sale(request, user)
            return httpx.Response(200, json=list(self.sales))
        if path == "/dashboard/stats":
            return httpx.Response(200, json={"total_sales": len(self.sales), "low_stock": 1})
        return httpx.Response(404, json={"detail": "Not Found"})

    def _user(self, request):
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        return self.users.get(header.split(" ", 1)[1])

    def _login(self, request):
        body = json.loads(request.content)
        password, token = self.credentials.get(body.get("username"), (None, None))
        if password is None or body.get("password") != password:
            return httpx.Response(401, json={"detail": "Incorrect username or password"})
        return httpx.Response(200, json={"access_token": token, "token_type": "bearer"})

    def _list_products(self, request):
        rows = list(self.products.values())
        if request.url.params.get("is_active") == "true":
            rows = [p for p in rows if p["is_active"]]
        return httpx.Response(200, json=rows)

    def _product(self, request, product_id):
        product = self.products.get(product_id)
        if product is None:
            return httpx.Response(404, json={"detail": "Product not found"})
        if request.method == "PUT":
            product.update(json.loads(request.content))
        elif request.method == "DELETE":
            del self.products[product_id]
            return httpx.Response(204)
        return httpx.Response(200, json=product)

    def _create_product(self, request):
        body = json.loads(request.content)
        if body.get("category_id") not in self.categories:
            return httpx.Response(400, json={"detail": "Category not found"})
        product_id = max(self.products, default=0) + 1
        product = {"id": product_id, "is_active": True, **body}
        self.products[product_id] = product
        return httpx.Response(201, json=product)

    def _create_category(self, request):
        body = json.loads(request.content)
        category_id = max(self.categories, default=0) + 1
        category = {"id": category_id, "description": "", **body}
        self.categories[category_id] = category
        return httpx.Response(201, json=category)

    def _create_sale(self, request, user):
        body = json.loads(request.content)
        total = Decimal(0)
        for item in body["items"]:
            product = self.products.get(item["product_id"])
            quantity = Decimal(str(item["quantity"]))
            if product is None:
                return httpx.Response(404, json={"detail": "Product not found"})
            if quantity > Decimal(str(product["stock"])):
                return httpx.Response(400, json={"detail": f"Insufficient stock for {product['name']}"})
            total += quantity * Decimal(str(item["price"]))
        for item in body["items"]:
            product = self.products[item["product_id"]]
            product["stock"] = float(Decimal(str(product["stock"])) - Decimal(str(item["quantity"])))

        sale = {
            "id": len(self.sales) + 1,
            "user_id": user["id"],
            "payment_method": body["payment_method"],
            "total": float(total),
            "created_at": datetime(2026, 10, 19, 10, 30).isoformat(),
            "items": body["items"],
        }
        self.sales.append(sale)
        return httpx.Response(201, json=sale)


class MemoryStore:
    """Dict-backed cart store for service tests that need no database."""

    def __init__(self):
        self.data = {}
        self.revisions = {}
        self.submitting = set()
        self.saves = 0

    def load(self, key):
        if key not in self.data:
            return None
        return StoredCart(
            payload=self.data[key],
            revision=self.revisions.get(key, 0),
            submitting=key in self.submitting,
        )

    def save(self, key, operator, payload, *, revision=0):
        if key in self.submitting:
            raise CartSubmittingError()
        if self.revisions.get(key, 0) != revision:
            raise CartConflictError("Cart was changed by another request; reload it")
        self.saves += 1
        self.data[key] = payload
        self.revisions[key] = revision + 1
        return revision + 1

    def delete(self, key):
        self.revisions.pop(key, None)
        self.submitting.discard(key)
        return self.data.pop(key, None) is not None

    def begin_submit(self, key, revision):
        if key in self.submitting:
            raise CartSubmittingError("A sale for this cart is already being submitted")
        if key not in self.data or self.revisions.get(key, 0) != revision:
            raise CartConflictError("Cart was changed by another request; reload it")
        self.submitting.add(key)

    def end_submit(self, key):
        self.submitting.discard(key)


@pytest.fixture
def shop():
    return FakeShopAPI()


@pytest.fixture
def api(shop):
    """RemoteAPI client bound to the cashier token."""
    client = RemoteAPI(SHOP_BASE_URL, token=CASHIER_TOKEN, transport=httpx.MockTransport(shop.handler))
    yield client
    client.close()


@pytest.fixture
def app(shop):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'POS_API_BASE_URL': SHOP_BASE_URL,
        'POS_API_TRANSPORT': httpx.MockTransport(shop.handler),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cashier_headers():
    return auth_headers(CASHIER_TOKEN)


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_TOKEN)


@pytest.fixture
def operator():
    return OperatorContext(id=7, username="maria", display_name="María Gómez", role="cashier")


@pytest.fixture
def make_product():
    """Build a Product from the shop API's raw shape (overrides win)."""
    def _make(**overrides):
        raw = {"id": 1, "name": "Croquetas", "price": 2000, "stock": 3, "unidad_medida": "unidad"}
        raw.update(overrides)
        return normalize_product(raw)
    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
