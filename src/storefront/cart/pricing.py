"""Cart totals: a pure computation over line items and discounts.

``compute_totals`` is the single source of every amount shown on a cart. The
Cart aggregate calls it after each mutation and overwrites its cached
``CartTotals``; nothing else writes those amounts.
"""

import os
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from protean.fields import Float

from storefront.domain import storefront

_CENT = Decimal("0.01")


def to_cents(amount) -> float:
    """Round half-up to two decimal places."""
    return float(Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP))


class DiscountKind(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class Discount:
    code: str
    kind: str
    value: float

    @classmethod
    def from_snapshot(cls, snapshot: dict):
        return cls(code=snapshot["code"], kind=snapshot["kind"], value=float(snapshot["value"]))

    def amount(self, subtotal: float) -> float:
        if DiscountKind(self.kind) == DiscountKind.PERCENTAGE:
            return subtotal * min(self.value, 100.0) / 100.0
        return min(self.value, subtotal)


@dataclass(frozen=True)
class TaxPolicy:
    """Flat tax rate applied to the discounted subtotal."""

    rate: float = 0.0

    def __call__(self, taxable_amount: float) -> float:
        return max(taxable_amount, 0.0) * self.rate


@dataclass(frozen=True)
class ShippingPolicy:
    """Flat shipping fee, waived when the subtotal reaches ``free_over``."""

    flat_fee: float = 0.0
    free_over: float | None = None

    def __call__(self, items, subtotal: float) -> float:
        if not items:
            return 0.0
        if self.free_over is not None and subtotal >= self.free_over:
            return 0.0
        return self.flat_fee


def _env_float(name, default=None):
    raw = os.environ.get(name)
    if raw in (None, ""):
        return default
    return float(raw)


@dataclass(frozen=True)
class PricingPolicy:
    tax: TaxPolicy = field(default_factory=TaxPolicy)
    shipping: ShippingPolicy = field(default_factory=ShippingPolicy)

    @classmethod
    def from_env(cls):
        return cls(
            tax=TaxPolicy(rate=_env_float("STOREFRONT_TAX_RATE", 0.0)),
            shipping=ShippingPolicy(
                flat_fee=_env_float("STOREFRONT_SHIPPING_FEE", 0.0),
                free_over=_env_float("STOREFRONT_FREE_SHIPPING_OVER"),
            ),
        )


@dataclass(frozen=True)
class Totals:
    subtotal: float = 0.0
    discount_total: float = 0.0
    tax_total: float = 0.0
    shipping_total: float = 0.0
    grand_total: float = 0.0

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount_total": self.discount_total,
            "tax_total": self.tax_total,
            "shipping_total": self.shipping_total,
            "grand_total": self.grand_total,
        }


def compute_totals(items, discounts=(), tax_policy=None, shipping_policy=None) -> Totals:
    """Compute cart totals from line items.

    Items flagged ``saved_for_later`` are ignored. ``discounts`` are
    ``Discount`` values evaluated against the subtotal of included items.
    The grand total never goes below zero.
    """
    tax_policy = tax_policy or TaxPolicy()
    shipping_policy = shipping_policy or ShippingPolicy()

    included = [item for item in items if not item.saved_for_later]

    subtotal = to_cents(sum(item.unit_price * item.quantity for item in included))
    discount_total = to_cents(sum(discount.amount(subtotal) for discount in discounts)) if included else 0.0
    tax_total = to_cents(tax_policy(subtotal - discount_total))
    shipping_total = to_cents(shipping_policy(included, subtotal))
    grand_total = to_cents(max(subtotal - discount_total + tax_total + shipping_total, 0.0))

    return Totals(
        subtotal=subtotal,
        discount_total=discount_total,
        tax_total=tax_total,
        shipping_total=shipping_total,
        grand_total=grand_total,
    )


@storefront.value_object(part_of="Cart")
class CartTotals:
    """Cached totals of a cart, always the output of ``compute_totals``."""

    subtotal = Float(default=0.0)
    discount_total = Float(default=0.0)
    tax_total = Float(default=0.0)
    shipping_total = Float(default=0.0)
    grand_total = Float(default=0.0)
