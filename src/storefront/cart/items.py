"""Cart line management: commands and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.cart.lookup import find_cart, require_cart
from storefront.catalogue.product import Product
from storefront.domain import storefront
from storefront.errors import InsufficientStockError, NotFoundError
from storefront.shared.identity import Shopper


@storefront.command(part_of="Cart")
class AddToCart:
    user_id: Identifier()
    session_id: String(max_length=255)
    product_id: Identifier(required=True)
    variant_id: Identifier()
    quantity: Integer(default=1, min_value=1)


@storefront.command(part_of="Cart")
class UpdateCartItem:
    user_id: Identifier()
    session_id: String(max_length=255)
    item_id: Identifier(required=True)
    quantity: Integer()
    saved_for_later: Boolean()


@storefront.command(part_of="Cart")
class RemoveFromCart:
    user_id: Identifier()
    session_id: String(max_length=255)
    item_id: Identifier(required=True)


@storefront.command(part_of="Cart")
class ClearCart:
    user_id: Identifier()
    session_id: String(max_length=255)


def _load_product(product_id):
    try:
        return current_domain.repository_for(Product).get(product_id)
    except ObjectNotFoundError as exc:
        raise NotFoundError("product", product_id) from exc


def _ensure_stock(product, quantity):
    if not product.has_stock_for(quantity):
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            available=product.stock,
            requested=quantity,
        )


@storefront.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        shopper = Shopper.resolve(command.user_id, command.session_id)
        product = _load_product(command.product_id)
        quantity = command.quantity or 1

        cart = find_cart(shopper) or Cart.create(
            user_id=shopper.user_id,
            session_id=shopper.session_id,
            cart_id=shopper.cart_id,
        )

        existing = cart.find_line(product.id, command.variant_id)
        _ensure_stock(product, quantity + (existing.quantity if existing else 0))

        cart.add_item(
            product_id=product.id,
            variant_id=command.variant_id,
            quantity=quantity,
            unit_price=product.price,
        )
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)

    @handle(UpdateCartItem)
    def update_cart_item(self, command):
        shopper = Shopper.resolve(command.user_id, command.session_id)
        cart = require_cart(shopper)

        item = cart.find_item(command.item_id)
        if item is None:
            raise NotFoundError("cart item", command.item_id)

        if command.quantity is not None and command.quantity > 0:
            _ensure_stock(_load_product(item.product_id), command.quantity)

        cart.update_item(
            item_id=command.item_id,
            quantity=command.quantity,
            saved_for_later=command.saved_for_later,
        )
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        shopper = Shopper.resolve(command.user_id, command.session_id)
        cart = require_cart(shopper)
        cart.remove_item(command.item_id)
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        shopper = Shopper.resolve(command.user_id, command.session_id)
        cart = require_cart(shopper)
        cart.clear()
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)
