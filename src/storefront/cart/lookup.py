"""Locate a shopper's cart.

A cart's identity is derived from its owner (``Shopper.cart_id``), so finding
a cart is a plain repository read and two racing first adds write the same
aggregate instead of creating a second cart.
"""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.errors import NotFoundError


def find_cart(shopper):
    """Return the shopper's cart, or None when they have never added anything."""
    try:
        return current_domain.repository_for(Cart).get(shopper.cart_id)
    except ObjectNotFoundError:
        return None


def require_cart(shopper):
    cart = find_cart(shopper)
    if cart is None:
        raise NotFoundError("cart", shopper.key)
    return cart
