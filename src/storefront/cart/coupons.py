"""Coupons: discount definitions, their registration, and applying them to carts."""

from protean import handle, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.cart.lookup import require_cart
from storefront.cart.pricing import DiscountKind
from storefront.domain import storefront
from storefront.errors import NotFoundError
from storefront.shared.identity import Shopper


@storefront.aggregate
class Coupon:
    code = String(required=True, max_length=50, unique=True)
    kind = String(required=True, choices=DiscountKind)
    value = Float(required=True, min_value=0.0)
    active = Boolean(default=True)

    @invariant.post
    def percentage_cannot_exceed_hundred(self):
        if self.kind == DiscountKind.PERCENTAGE.value and self.value > 100:
            raise ValidationError({"value": ["A percentage coupon cannot exceed 100"]})

    @classmethod
    def define(cls, code, kind, value, active=True):
        return cls(code=code.strip().upper(), kind=kind, value=value, active=active)

    def snapshot(self) -> dict:
        return {"code": self.code, "kind": self.kind, "value": self.value}


def find_active_coupon(code) -> Coupon:
    normalized = (code or "").strip().upper()
    matches = current_domain.repository_for(Coupon)._dao.query.filter(code=normalized).all().items
    if not matches or not matches[0].active:
        raise NotFoundError("coupon", normalized)
    return matches[0]


@storefront.command(part_of="Coupon")
class DefineCoupon:
    code: String(required=True, max_length=50)
    kind: String(required=True, choices=DiscountKind)
    value: Float(required=True, min_value=0.0)
    active: Boolean(default=True)


@storefront.command(part_of="Cart")
class ApplyCoupon:
    user_id: Identifier()
    session_id: String(max_length=255)
    code: String(required=True, max_length=50)


@storefront.command(part_of="Cart")
class RemoveCoupon:
    user_id: Identifier()
    session_id: String(max_length=255)
    code: String(required=True, max_length=50)


@storefront.command_handler(part_of=Coupon)
class DefineCouponHandler:
    @handle(DefineCoupon)
    def define_coupon(self, command):
        coupon = Coupon.define(
            code=command.code,
            kind=command.kind,
            value=command.value,
            active=command.active,
        )
        current_domain.repository_for(Coupon).add(coupon)
        return str(coupon.id)


@storefront.command_handler(part_of=Cart)
class CartCouponsHandler:
    @handle(ApplyCoupon)
    def apply_coupon(self, command):
        shopper = Shopper.resolve(command.user_id, command.session_id)
        cart = require_cart(shopper)
        coupon = find_active_coupon(command.code)

        cart.apply_coupon(**coupon.snapshot())
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)

    @handle(RemoveCoupon)
    def remove_coupon(self, command):
        shopper = Shopper.resolve(command.user_id, command.session_id)
        cart = require_cart(shopper)

        cart.remove_coupon(command.code.strip().upper())
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)
