"""Product aggregate (CQRS): the storefront's view of a sellable product.

Carries what checkout needs from the catalogue: the current price, name and
SKU copied onto order lines, and the available stock counter that checkout
reserves against. Stock is never written directly by callers; it moves only
through ``ProductStock.adjust`` (see ``catalogue/stock.py``).
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Integer, String

from storefront.catalogue.events import ProductRegistered, StockLevelChanged
from storefront.domain import storefront


@storefront.aggregate
class Product:
    name = String(required=True, max_length=255)
    sku = String(required=True, max_length=64, unique=True)
    price = Float(required=True, min_value=0.0)
    stock = Integer(default=0, min_value=0)
    category = String(max_length=100)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, name, sku, price, stock=0, category=None):
        now = datetime.now(UTC)
        product = cls(
            name=name,
            sku=sku,
            price=price,
            stock=stock,
            category=category,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            ProductRegistered(
                product_id=str(product.id),
                name=name,
                sku=sku,
                price=price,
                stock=stock,
            )
        )
        return product

    def has_stock_for(self, quantity):
        return self.stock >= quantity

    def adjust_stock(self, delta, reason):
        """Move the stock counter by ``delta``. The counter never goes below zero."""
        new_stock = self.stock + delta
        if new_stock < 0:
            raise ValidationError({"stock": [f"Stock for {self.name} cannot go below zero"]})

        previous_stock = self.stock
        self.stock = new_stock
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockLevelChanged(
                product_id=str(self.id),
                previous_stock=previous_stock,
                new_stock=new_stock,
                delta=delta,
                reason=reason,
            )
        )
