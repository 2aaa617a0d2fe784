"""Application tests for checkout: stock reservation, cart emptying and rollback."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from storefront.cart.cart import Cart
from storefront.cart.lookup import find_cart
from storefront.catalogue.stock import ProductStock
from storefront.checkout import placement
from storefront.errors import CheckoutRollbackError, EmptyCartError, InsufficientStockError, NotFoundError
from storefront.order.lifecycle import load_order
from storefront.order.order import Order
from storefront.shared.identity import Shopper


@pytest.fixture
def stocked_cart(shopper, make_product, add_to_cart):
    """P x2 at 10.00 (stock 5) and Q x1 at 20.00 (stock 1)."""
    p = make_product(name="P", price=10.0, stock=5)
    q = make_product(name="Q", price=20.0, stock=1)
    add_to_cart(shopper, p, quantity=2)
    add_to_cart(shopper, q, quantity=1)
    return p, q


def _set_stock(product_id, stock):
    ProductStock.adjust(product_id, stock - ProductStock.current(product_id), require_non_negative=True)


class TestSuccessfulCheckout:
    def test_reserves_stock_and_empties_cart(self, shopper, stocked_cart, checkout):
        p, q = stocked_cart

        order = checkout(shopper)

        assert order.totals.grand_total == 40.0
        assert ProductStock.current(p) == 3
        assert ProductStock.current(q) == 0

        cart = find_cart(shopper)
        assert len(cart.items) == 0
        assert cart.coupons == []
        assert cart.totals.grand_total == 0.0

    def test_order_is_persisted_pending(self, shopper, stocked_cart, checkout):
        order = checkout(shopper)

        stored = load_order(order.id)
        assert stored.status == "pending"
        assert [c.status for c in stored.history] == ["pending"]
        assert stored.history[0].note == "Order created"
        assert stored.user_id == "user-001"

    def test_lines_snapshot_product_name_and_cart_price(self, shopper, stocked_cart, checkout):
        p, _ = stocked_cart

        order = checkout(shopper)

        line = next(i for i in order.items if str(i.product_id) == p)
        assert line.name == "P"
        assert line.unit_price == 10.0
        assert line.quantity == 2
        assert line.subtotal == 20.0

    def test_totals_copied_from_cart_with_coupon(self, shopper, stocked_cart, make_coupon, checkout):
        from storefront.cart.coupons import ApplyCoupon

        make_coupon(code="TEN", kind="fixed", value=10)
        current_domain.process(ApplyCoupon(user_id=shopper.user_id, code="TEN"), asynchronous=False)
        cart_totals = find_cart(shopper).totals.to_dict()

        order = checkout(shopper)

        assert order.totals.to_dict() == cart_totals
        assert order.totals.grand_total == 30.0
        assert order.coupons[0]["code"] == "TEN"

    def test_saved_for_later_lines_are_not_ordered(self, shopper, make_product, add_to_cart, checkout):
        from storefront.cart.items import UpdateCartItem

        kept = make_product(stock=5)
        saved = make_product(stock=5)
        add_to_cart(shopper, kept)
        add_to_cart(shopper, saved)
        saved_item = next(str(i.id) for i in find_cart(shopper).items if str(i.product_id) == saved)
        current_domain.process(
            UpdateCartItem(user_id=shopper.user_id, item_id=saved_item, saved_for_later=True),
            asynchronous=False,
        )

        order = checkout(shopper)

        assert [str(i.product_id) for i in order.items] == [kept]
        assert ProductStock.current(saved) == 5

    def test_variants_of_one_product_share_stock(self, shopper, make_product, add_to_cart, checkout):
        product_id = make_product(stock=3)
        add_to_cart(shopper, product_id, quantity=2, variant_id="red")
        add_to_cart(shopper, product_id, quantity=1, variant_id="blue")

        order = checkout(shopper)

        assert len(order.items) == 2
        assert ProductStock.current(product_id) == 0

    def test_guest_checkout(self, guest, make_product, add_to_cart, checkout):
        add_to_cart(guest, make_product())

        order = checkout(guest, email="guest@example.com")

        assert order.is_guest
        assert order.email == "guest@example.com"


class TestRejectedCheckout:
    def test_short_stock_changes_nothing(self, shopper, stocked_cart, checkout):
        p, q = stocked_cart
        _set_stock(q, 0)

        with pytest.raises(InsufficientStockError) as exc:
            checkout(shopper)

        assert exc.value.product_id == q
        assert exc.value.product_name == "Q"
        assert ProductStock.current(p) == 5
        cart = find_cart(shopper)
        assert len(cart.items) == 2
        assert cart.totals.grand_total == 40.0

    def test_no_cart(self, shopper, checkout):
        with pytest.raises(EmptyCartError):
            checkout(shopper)

    def test_empty_cart(self, shopper, make_product, add_to_cart, checkout):
        from storefront.cart.items import ClearCart

        add_to_cart(shopper, make_product())
        current_domain.process(ClearCart(user_id=shopper.user_id), asynchronous=False)

        with pytest.raises(EmptyCartError):
            checkout(shopper)

    def test_guest_needs_email(self, guest, make_product, add_to_cart, checkout):
        product_id = make_product(stock=5)
        add_to_cart(guest, product_id)

        with pytest.raises(ValidationError):
            checkout(guest)
        assert ProductStock.current(product_id) == 5

    def test_invalid_address_reserves_nothing(self, shopper, stocked_cart, checkout):
        p, _ = stocked_cart
        with pytest.raises(ValidationError):
            checkout(shopper, shipping_address={"city": "Nowhere"})
        assert ProductStock.current(p) == 5

    def test_product_removed_from_catalogue(self, shopper, make_product, checkout):
        cart = Cart.create(user_id=shopper.user_id)
        cart.add_item(product_id="vanished", quantity=1, unit_price=5.0)
        current_domain.repository_for(Cart).add(cart)

        with pytest.raises(NotFoundError):
            checkout(shopper)

    def test_line_limit(self, shopper, make_product, add_to_cart, checkout, monkeypatch):
        monkeypatch.setattr(placement, "MAX_ORDER_LINES", 1)
        add_to_cart(shopper, make_product())
        add_to_cart(shopper, make_product())

        with pytest.raises(ValidationError):
            checkout(shopper)


class TestRollback:
    def test_reservation_race_releases_earlier_products(self, shopper, stocked_cart, checkout, monkeypatch):
        p, q = stocked_cart
        real_adjust = ProductStock.adjust

        def _adjust(product_id, delta, require_non_negative=True, reason="adjustment"):
            if product_id == q and delta < 0:
                # Another checkout took the last unit between check and reserve
                real_adjust(q, -1, require_non_negative=True)
            return real_adjust(product_id, delta, require_non_negative=require_non_negative, reason=reason)

        monkeypatch.setattr(ProductStock, "adjust", staticmethod(_adjust))

        with pytest.raises(InsufficientStockError):
            checkout(shopper)

        monkeypatch.undo()
        assert ProductStock.current(p) == 5
        assert ProductStock.current(q) == 0
        assert len(find_cart(shopper).items) == 2

    def test_persistence_failure_restores_stock(self, shopper, stocked_cart, checkout, monkeypatch):
        p, q = stocked_cart

        def _fail(order):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(placement, "_persist_order", _fail)

        with pytest.raises(RuntimeError, match="database unavailable"):
            checkout(shopper)

        monkeypatch.undo()
        assert ProductStock.current(p) == 5
        assert ProductStock.current(q) == 1
        assert len(find_cart(shopper).items) == 2

    def test_cart_failure_withdraws_order(self, shopper, stocked_cart, checkout, monkeypatch):
        p, q = stocked_cart
        placed = []
        real_place = Order.place

        def _place(*args, **kwargs):
            order = real_place(*args, **kwargs)
            placed.append(order.id)
            return order

        def _fail(self, order_id, pricing=None):
            raise RuntimeError("cart store unavailable")

        monkeypatch.setattr(Order, "place", _place)
        monkeypatch.setattr(Cart, "empty_after_checkout", _fail)

        with pytest.raises(RuntimeError, match="cart store unavailable"):
            checkout(shopper)

        monkeypatch.undo()
        order = load_order(placed[0])
        assert order.status == "cancelled"
        assert order.history[-1].note == placement.WITHDRAWN_NOTE
        assert ProductStock.current(p) == 5
        assert ProductStock.current(q) == 1

    def test_failed_undo_raises_rollback_error(self, shopper, stocked_cart, checkout, monkeypatch):
        def _fail_cart(self, order_id, pricing=None):
            raise RuntimeError("cart store unavailable")

        def _fail_withdraw(order_id):
            raise RuntimeError("event store unavailable")

        monkeypatch.setattr(Cart, "empty_after_checkout", _fail_cart)
        monkeypatch.setattr(placement, "_withdraw_order", _fail_withdraw)

        with pytest.raises(CheckoutRollbackError) as exc:
            checkout(shopper)

        assert isinstance(exc.value.original, RuntimeError)
        assert exc.value.__cause__ is exc.value.original
        assert [step for step, _ in exc.value.failures] == ["withdraw order"]


class TestIdempotentCheckout:
    def test_retry_returns_the_same_order(self, shopper, stocked_cart, checkout):
        p, _ = stocked_cart

        first = checkout(shopper, idempotency_key="key-1")
        second = checkout(shopper, idempotency_key="key-1")

        assert second.id == first.id
        assert ProductStock.current(p) == 3

    def test_different_keys_are_different_checkouts(self, shopper, stocked_cart, checkout):
        checkout(shopper, idempotency_key="key-1")
        with pytest.raises(EmptyCartError):
            checkout(shopper, idempotency_key="key-2")

    def test_keys_are_scoped_to_the_shopper(self, shopper, make_product, add_to_cart, checkout):
        other = Shopper.resolve(user_id="user-002")
        product_id = make_product(stock=5)
        add_to_cart(shopper, product_id)
        add_to_cart(other, product_id)

        mine = checkout(shopper, idempotency_key="same")
        theirs = checkout(other, idempotency_key="same")

        assert mine.id != theirs.id
        assert ProductStock.current(product_id) == 3

    def test_rolled_back_checkout_can_be_retried(self, shopper, stocked_cart, checkout, monkeypatch):
        p, _ = stocked_cart
        real_empty = Cart.empty_after_checkout
        calls = {"n": 0}

        def _flaky(self, order_id, pricing=None):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("cart store unavailable")
            return real_empty(self, order_id, pricing)

        monkeypatch.setattr(Cart, "empty_after_checkout", _flaky)

        with pytest.raises(RuntimeError):
            checkout(shopper, idempotency_key="retry")
        order = checkout(shopper, idempotency_key="retry")

        assert order.status == "pending"
        assert ProductStock.current(p) == 3
