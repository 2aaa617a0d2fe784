import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront
    from storefront.utils.db import drop_db, setup_db

    bed = DomainFixture(storefront)
    bed.setup()
    setup_db(storefront)
    yield bed
    drop_db(storefront)
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed, monkeypatch):
    for name in ("STOREFRONT_TAX_RATE", "STOREFRONT_SHIPPING_FEE", "STOREFRONT_FREE_SHIPPING_OVER"):
        monkeypatch.delenv(name, raising=False)

    with storefront_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture
def make_product():
    from protean import current_domain
    from storefront.catalogue.registration import RegisterProduct

    counter = {"n": 0}

    def _make(name="Widget", price=10.0, stock=5, sku=None, category=None):
        counter["n"] += 1
        command = RegisterProduct(
            name=name,
            sku=sku or f"SKU-{counter['n']:04d}",
            price=price,
            stock=stock,
            category=category,
        )
        return current_domain.process(command, asynchronous=False)

    return _make


@pytest.fixture
def add_to_cart():
    from protean import current_domain
    from storefront.cart.items import AddToCart

    def _add(shopper, product_id, quantity=1, variant_id=None):
        command = AddToCart(
            user_id=shopper.user_id,
            session_id=shopper.session_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
        )
        return current_domain.process(command, asynchronous=False)

    return _add


@pytest.fixture
def make_coupon():
    from protean import current_domain
    from storefront.cart.coupons import DefineCoupon

    def _make(code="SAVE10", kind="percentage", value=10.0, active=True):
        command = DefineCoupon(code=code, kind=kind, value=value, active=active)
        return current_domain.process(command, asynchronous=False)

    return _make


@pytest.fixture
def address():
    return {
        "full_name": "Sam Rivera",
        "street": "123 Elm Street",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
    }


@pytest.fixture
def shopper():
    from storefront.shared.identity import Shopper

    return Shopper.resolve(user_id="user-001")


@pytest.fixture
def guest():
    from storefront.shared.identity import Shopper

    return Shopper.resolve(session_id="sess-001")


@pytest.fixture
def checkout(address):
    from storefront.checkout.placement import place_order

    def _checkout(shopper, **overrides):
        kwargs = {
            "shipping_address": address,
            "billing_address": address,
            "payment_method": "card",
            "shipping_method": "standard",
        }
        kwargs.update(overrides)
        return place_order(shopper, **kwargs)

    return _checkout
