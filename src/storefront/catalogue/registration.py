"""Product registration: command and handler."""

from protean import handle
from protean.fields import Float, Integer, String
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product
from storefront.domain import storefront


@storefront.command(part_of="Product")
class RegisterProduct:
    name: String(required=True, max_length=255)
    sku: String(required=True, max_length=64)
    price: Float(required=True, min_value=0.0)
    stock: Integer(default=0, min_value=0)
    category: String(max_length=100)


@storefront.command_handler(part_of=Product)
class RegisterProductHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        product = Product.register(
            name=command.name,
            sku=command.sku,
            price=command.price,
            stock=command.stock or 0,
            category=command.category,
        )
        current_domain.repository_for(Product).add(product)
        return str(product.id)
