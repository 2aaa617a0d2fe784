"""Cart aggregate (CQRS): the shopper's working set of products before checkout.

A cart belongs to exactly one shopper: an authenticated user or a guest
session. It is created lazily on the first add-to-cart and is emptied, never
deleted, by checkout or an explicit clear.

Every mutation ends by recomputing the cached ``totals`` from the current
lines and coupon snapshots (see ``cart/pricing.py``).
"""

import json
from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from storefront.cart.events import (
    CartCheckedOut,
    CartCleared,
    CartCouponApplied,
    CartCouponRemoved,
    CartItemAdded,
    CartItemRemoved,
    CartItemUpdated,
)
from storefront.cart.pricing import CartTotals, Discount, PricingPolicy, compute_totals
from storefront.domain import storefront
from storefront.errors import NotFoundError


@storefront.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    saved_for_later = Boolean(default=False)
    added_at = DateTime()


@storefront.aggregate
class Cart:
    user_id = Identifier()  # Null for guest carts
    session_id = String(max_length=255)  # Guest cart identification
    items = HasMany(CartItem)
    applied_coupons = Text()  # JSON array of {code, kind, value} snapshots
    totals = ValueObject(CartTotals)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def cart_must_belong_to_exactly_one_shopper(self):
        if bool(self.user_id) == bool(self.session_id):
            raise ValidationError({"cart": ["A cart belongs to either a user or a guest session, not both or neither"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id=None, session_id=None, cart_id=None):
        now = datetime.now(UTC)
        identity = {"id": cart_id} if cart_id else {}
        return cls(
            user_id=user_id,
            session_id=None if user_id else session_id,
            applied_coupons=json.dumps([]),
            totals=CartTotals(),
            created_at=now,
            updated_at=now,
            **identity,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def coupons(self) -> list[dict]:
        return json.loads(self.applied_coupons) if self.applied_coupons else []

    def find_item(self, item_id):
        return next((i for i in self.items if str(i.id) == str(item_id)), None)

    def find_line(self, product_id, variant_id=None):
        return next(
            (
                i
                for i in self.items
                if str(i.product_id) == str(product_id) and (i.variant_id or None) == (variant_id or None)
            ),
            None,
        )

    @property
    def lines(self) -> list:
        """All lines in insertion order, whatever order the repository loaded them in."""
        return sorted(self.items, key=lambda i: i.added_at)

    def checkout_lines(self) -> list:
        """Lines that go into an order, in insertion order."""
        return [item for item in self.lines if not item.saved_for_later]

    # -------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------
    def _refresh_totals(self, pricing=None):
        pricing = pricing or PricingPolicy.from_env()
        computed = compute_totals(
            self.items,
            [Discount.from_snapshot(c) for c in self.coupons],
            tax_policy=pricing.tax,
            shipping_policy=pricing.shipping,
        )
        self.totals = CartTotals(**computed.as_dict())
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Line items
    # -------------------------------------------------------------------
    def add_item(self, product_id, quantity, unit_price, variant_id=None, pricing=None):
        """Add a product, or grow the line already holding the same product and variant.

        ``unit_price`` is captured only for new lines; an existing line keeps
        the price it was added at.
        """
        existing = self.find_line(product_id, variant_id)
        if existing:
            existing.quantity += quantity
            item = existing
        else:
            item = CartItem(
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                unit_price=unit_price,
                added_at=datetime.now(UTC),
            )
            self.add_items(item)

        self._refresh_totals(pricing)

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=str(item.id),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                quantity=item.quantity,
                unit_price=item.unit_price,
                grand_total=self.totals.grand_total,
            )
        )
        return item

    def update_item(self, item_id, quantity=None, saved_for_later=None, pricing=None):
        """Change a line's quantity and/or saved-for-later flag.

        A quantity of zero or less removes the line.
        """
        item = self.find_item(item_id)
        if item is None:
            raise NotFoundError("cart item", item_id)

        if quantity is not None and quantity <= 0:
            self.remove_item(item_id, pricing=pricing)
            return None

        previous_quantity = item.quantity
        if quantity is not None:
            item.quantity = quantity
        if saved_for_later is not None:
            item.saved_for_later = saved_for_later

        self._refresh_totals(pricing)

        self.raise_(
            CartItemUpdated(
                cart_id=str(self.id),
                item_id=str(item.id),
                previous_quantity=previous_quantity,
                new_quantity=item.quantity,
                saved_for_later=item.saved_for_later,
                grand_total=self.totals.grand_total,
            )
        )
        return item

    def remove_item(self, item_id, pricing=None):
        """Drop a line. Removing a line that is not in the cart changes nothing."""
        item = self.find_item(item_id)
        if item is None:
            return

        self.remove_items(item)
        self._refresh_totals(pricing)

        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
                item_id=str(item_id),
                product_id=str(item.product_id),
                grand_total=self.totals.grand_total,
            )
        )

    def _drop_contents(self, pricing=None):
        for item in list(self.items):
            self.remove_items(item)
        self.applied_coupons = json.dumps([])
        self._refresh_totals(pricing)

    def clear(self, pricing=None):
        self._drop_contents(pricing)
        self.raise_(CartCleared(cart_id=str(self.id)))

    def empty_after_checkout(self, order_id, pricing=None):
        self._drop_contents(pricing)
        self.raise_(CartCheckedOut(cart_id=str(self.id), order_id=str(order_id)))

    # -------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------
    def apply_coupon(self, code, kind, value, pricing=None):
        coupons = self.coupons
        if any(c["code"] == code for c in coupons):
            raise ValidationError({"coupon_code": [f"Coupon {code} is already applied"]})

        coupons.append({"code": code, "kind": kind, "value": value})
        self.applied_coupons = json.dumps(coupons)
        self._refresh_totals(pricing)

        self.raise_(
            CartCouponApplied(
                cart_id=str(self.id),
                coupon_code=code,
                discount_total=self.totals.discount_total,
                grand_total=self.totals.grand_total,
            )
        )

    def remove_coupon(self, code, pricing=None):
        coupons = self.coupons
        remaining = [c for c in coupons if c["code"] != code]
        if len(remaining) == len(coupons):
            raise NotFoundError("coupon", code)

        self.applied_coupons = json.dumps(remaining)
        self._refresh_totals(pricing)

        self.raise_(
            CartCouponRemoved(
                cart_id=str(self.id),
                coupon_code=code,
                grand_total=self.totals.grand_total,
            )
        )
