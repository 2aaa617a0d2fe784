"""Domain events for the Cart aggregate."""

from protean.fields import Boolean, Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Cart")
class CartItemAdded:
    """A product was added to the cart, or its existing line grew."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    unit_price = Float(required=True)
    grand_total = Float()


@storefront.event(part_of="Cart")
class CartItemUpdated:
    """A cart line's quantity or saved-for-later flag changed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    saved_for_later = Boolean(default=False)
    grand_total = Float()


@storefront.event(part_of="Cart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    grand_total = Float()


@storefront.event(part_of="Cart")
class CartCleared:
    """All lines and coupons were dropped from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)


@storefront.event(part_of="Cart")
class CartCouponApplied:
    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)
    discount_total = Float()
    grand_total = Float()


@storefront.event(part_of="Cart")
class CartCouponRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)
    grand_total = Float()


@storefront.event(part_of="Cart")
class CartCheckedOut:
    """The cart's contents became an order and the cart was emptied."""

    __version__ = 1

    cart_id = Identifier(required=True)
    order_id = Identifier(required=True)
