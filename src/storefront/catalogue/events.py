"""Domain events for the Product aggregate."""

from protean.fields import Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Product")
class ProductRegistered:
    """A product became available to carts and checkout."""

    __version__ = 1

    product_id = Identifier(required=True)
    name = String(required=True)
    sku = String(required=True)
    price = Float(required=True)
    stock = Integer(required=True)


@storefront.event(part_of="Product")
class StockLevelChanged:
    """The available stock of a product moved (reservation, release or restock)."""

    __version__ = 1

    product_id = Identifier(required=True)
    previous_stock = Integer(required=True)
    new_stock = Integer(required=True)
    delta = Integer(required=True)
    reason = String(max_length=255)
