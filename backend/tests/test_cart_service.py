"""
Cart state machine tests (no database: an in-memory store stands in).

Verifies:
- Stock ceilings hold through increments and amount edits
- Rejected updates leave the cart unchanged
- Lines are removed when they reach zero
- Every mutation is persisted under the operator's key
- Rehydration accepts both the stored and the browser cart shapes
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from pos_terminal.services.cart_service import (
    STATE_EMPTY,
    STATE_NON_EMPTY,
    STATE_SUBMITTING,
    Cart,
    CartConflictError,
    CartError,
    CartSubmittingError,
    StockExceededError,
)
from pos_terminal.services.catalog_service import StockLedgerSnapshot
from pos_terminal.validation import ValidationError


def with_stock(product, available_stock):
    return replace(product, available_stock=available_stock)


@pytest.fixture
def cart(operator, store):
    return Cart(operator, store)


@pytest.fixture
def bulk_food(make_product):
    return make_product(id=2, name="Concentrado a granel", price=4000, stock=2, unidad_medida="kg")


class TestUnitLines:
    def test_three_adds_then_fourth_rejected(self, cart, make_product):
        product = make_product(id=1, price=2000, stock=3)
        for _ in range(3):
            cart.add_product(product)

        assert cart.line(1).quantity == Decimal(3)
        assert cart.total() == Decimal(6000)

        with pytest.raises(StockExceededError) as exc:
            cart.add_product(product)
        assert exc.value.max_quantity == Decimal("3.000")
        assert cart.line(1).quantity == Decimal(3)
        assert cart.total() == Decimal(6000)

    def test_increment_never_exceeds_stock(self, cart, make_product):
        cart.add_product(make_product(stock=2))
        cart.increment(1)
        for _ in range(5):
            with pytest.raises(StockExceededError):
                cart.increment(1)
        assert cart.line(1).quantity == Decimal(2)

    def test_decrement_at_one_removes_line(self, cart, make_product):
        cart.add_product(make_product())
        assert cart.decrement(1) is None
        assert 1 not in cart
        assert cart.state == STATE_EMPTY

    def test_set_quantity_absolute(self, cart, make_product):
        cart.add_product(make_product(stock=10))
        cart.set_quantity(1, Decimal("2.5"))
        assert cart.total() == Decimal("5000.00")

        with pytest.raises(StockExceededError):
            cart.set_quantity(1, Decimal(11))
        assert cart.line(1).quantity == Decimal("2.500")

        assert cart.set_quantity(1, Decimal(0)) is None
        assert cart.is_empty

    def test_lines_keep_insertion_order(self, cart, make_product):
        cart.add_product(make_product(id=5, name="B"))
        cart.add_product(make_product(id=3, name="A"))
        assert [line.product_id for line in cart.lines] == [5, 3]

    def test_unknown_line_is_an_error(self, cart):
        with pytest.raises(CartError):
            cart.increment(99)
        assert cart.remove_line(99) is False


class TestWeightLines:
    def test_add_opens_line_awaiting_amount(self, cart, bulk_food):
        line = cart.add_product(bulk_food)
        assert line.amount is None
        assert line.quantity == Decimal(0)
        assert cart.total() == Decimal(0)
        assert cart.state == STATE_NON_EMPTY

    def test_re_adding_leaves_line_alone(self, cart, bulk_food):
        cart.add_product(bulk_food)
        cart.set_amount(2, "6.000")
        cart.add_product(bulk_food)
        assert cart.line(2).amount == Decimal(6000)

    def test_amount_within_stock_then_rejected_amount_keeps_previous(self, cart, bulk_food):
        cart.add_product(bulk_food)
        line = cart.set_amount(2, "6.000")
        assert line.quantity == Decimal("1.500")
        assert line.subtotal == Decimal(6000)

        with pytest.raises(StockExceededError) as exc:
            cart.set_amount(2, "9.000")
        assert exc.value.max_amount == Decimal("8000.00")
        assert cart.line(2).amount == Decimal(6000)
        assert cart.line(2).quantity == Decimal("1.500")

    def test_rejected_first_amount_leaves_amount_unset(self, cart, bulk_food):
        cart.add_product(bulk_food)
        with pytest.raises(StockExceededError):
            cart.set_amount(2, 8004)
        assert cart.line(2).amount is None

    def test_zero_amount_removes_line(self, cart, bulk_food):
        cart.add_product(bulk_food)
        cart.set_amount(2, "6.000")
        assert cart.set_amount(2, "0") is None
        assert 2 not in cart

    def test_empty_amount_removes_line(self, cart, bulk_food):
        cart.add_product(bulk_food)
        assert cart.set_amount(2, "") is None
        assert cart.is_empty

    def test_increment_is_not_for_weight_lines(self, cart, bulk_food):
        cart.add_product(bulk_food)
        with pytest.raises(CartError):
            cart.increment(2)

    def test_decrement_removes_weight_line(self, cart, bulk_food):
        cart.add_product(bulk_food)
        assert cart.decrement(2) is None
        assert cart.is_empty

    def test_out_of_stock_weight_product_cannot_be_added(self, cart, bulk_food):
        with pytest.raises(StockExceededError):
            cart.add_product(with_stock(bulk_food, Decimal(0)))
        assert cart.is_empty


class TestTotals:
    def test_total_is_stable_between_calls(self, cart, make_product, bulk_food):
        cart.add_product(make_product(price="1999.99", stock=10))
        cart.increment(1)
        cart.add_product(bulk_food)
        cart.set_amount(2, "7.333")
        first = cart.total()
        assert cart.total() == first
        assert first == Decimal("3999.98") + Decimal(7333)


class TestPayment:
    def test_line_mutation_resets_tendered(self, cart, make_product):
        cart.add_product(make_product(stock=5))
        cart.select_payment("efectivo", "50.000")
        assert cart.payment.tendered == Decimal(50000)

        cart.increment(1)
        assert cart.payment.tendered == Decimal(0)

    def test_unknown_method_rejected(self, cart):
        with pytest.raises(ValidationError):
            cart.select_payment("bitcoin", allowed_methods=("efectivo", "nequi"))
        assert cart.payment.method == "efectivo"

    def test_switching_method_keeps_tendered(self, cart):
        cart.select_payment("efectivo", "20.000")
        cart.select_payment("nequi")
        assert cart.payment.method == "nequi"
        assert cart.payment.tendered == Decimal(20000)


class TestPersistence:
    def test_every_mutation_is_saved_under_operator_key(self, cart, store, make_product):
        cart.add_product(make_product(stock=5))
        cart.increment(1)
        assert store.saves == 2
        assert cart.key == "cart_maria"
        assert store.data["cart_maria"]["lines"][0]["quantity"] == "2.000"

    def test_rejected_mutation_is_not_saved(self, cart, store, make_product):
        cart.add_product(make_product(stock=1))
        with pytest.raises(StockExceededError):
            cart.increment(1)
        assert store.saves == 1

    def test_rehydrates_saved_cart(self, operator, store, make_product, bulk_food):
        cart = Cart(operator, store)
        cart.add_product(make_product(stock=5))
        cart.add_product(bulk_food)
        cart.set_amount(2, "6.000")
        cart.select_payment("nequi")

        again = Cart.load(operator, store)
        assert [line.product_id for line in again.lines] == [1, 2]
        assert again.line(2).amount == Decimal(6000)
        assert again.line(2).quantity == Decimal("1.500")
        assert again.line(2).product.by_weight
        assert again.payment.method == "nequi"
        assert again.total() == cart.total()

    def test_rehydrates_browser_shape(self, operator, store):
        store.data["cart_maria"] = {
            "lines": [
                {"producto": {"id": 9, "nombre": "Galletas", "precio": 3500, "cantidad": "12 unidades"}, "cantidad": 2},
                {"producto": {"id": 10, "nombre": "Alpiste", "precio": 8000, "unidad_medida": "kg", "stock": 4}, "montoCop": 4000, "kilosVendidos": 0.5},
                {"producto": {"nombre": "sin id"}, "cantidad": 1},
            ],
        }
        cart = Cart.load(operator, store)
        assert len(cart) == 2
        assert cart.line(9).quantity == Decimal(2)
        assert cart.line(10).amount == Decimal(4000)
        assert cart.total() == Decimal(11000)

    def test_separate_operators_have_separate_carts(self, store, make_product):
        from pos_terminal.services.session_service import OperatorContext

        ana = Cart(OperatorContext(id=8, username="ana", display_name="Ana", role="cashier"), store)
        luis = Cart(OperatorContext(id=9, username="luis", display_name="Luis", role="cashier"), store)
        ana.add_product(make_product())
        assert luis.is_empty
        assert set(store.data) == {"cart_ana"}

    def test_clear_drops_storage_entry(self, cart, store, make_product):
        cart.add_product(make_product())
        cart.clear()
        assert cart.is_empty
        assert "cart_maria" not in store.data


class TestResync:
    def test_replaces_snapshots_without_revalidating(self, cart, make_product):
        cart.add_product(make_product(stock=5))
        cart.increment(1)
        cart.increment(1)

        snapshot = StockLedgerSnapshot()
        snapshot.replace([make_product(stock=1)])
        assert cart.resync(snapshot) == 1
        assert cart.line(1).product.available_stock == Decimal(1)
        assert cart.line(1).quantity == Decimal(3)


class TestSubmittingState:
    def test_mutations_blocked_while_submitting(self, cart, make_product):
        cart.add_product(make_product(stock=5))
        cart.begin_submit()
        assert cart.state == STATE_SUBMITTING
        with pytest.raises(CartSubmittingError):
            cart.increment(1)
        cart.end_submit()
        cart.increment(1)

    def test_submitting_is_seen_by_a_freshly_loaded_copy(self, cart, operator, store, make_product):
        cart.add_product(make_product(stock=5))
        cart.begin_submit()

        other = Cart.load(operator, store)
        assert other.state == STATE_SUBMITTING
        with pytest.raises(CartSubmittingError):
            other.add_product(make_product(id=2, stock=5))
        with pytest.raises(CartSubmittingError):
            other.begin_submit()

        cart.end_submit()
        assert Cart.load(operator, store).state == STATE_NON_EMPTY

    def test_copy_loaded_before_submit_cannot_save_during_it(self, cart, operator, store, make_product):
        cart.add_product(make_product(stock=5))
        stale = Cart.load(operator, store)
        cart.begin_submit()

        with pytest.raises(CartSubmittingError):
            stale.increment(1)
        assert store.data["cart_maria"]["lines"][0]["quantity"] == "1.000"

    def test_sold_lines_are_not_written_back_after_clear(self, cart, operator, store, make_product):
        cart.add_product(make_product(stock=5))
        stale = Cart.load(operator, store)
        cart.begin_submit()
        cart.clear()
        cart.end_submit()

        with pytest.raises(CartConflictError):
            stale.increment(1)
        assert "cart_maria" not in store.data
        assert cart.line(1).quantity == Decimal(2)
