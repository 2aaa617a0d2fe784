"""Atomic stock adjustment for products.

``ProductStock.adjust`` is the only path that writes ``Product.stock``. The
load, the non-negative check and the write happen inside one per-product
critical section, and the write is committed before the section ends, so
two concurrent reservations of the last unit cannot both succeed.

Adjustments run outside any command unit of work on purpose: a repository
``add`` without an active unit of work commits immediately.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product
from storefront.errors import NotFoundError
from storefront.utils.locks import product_locks
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ProductStock:
    """Read and conditionally adjust the available quantity of a product."""

    @staticmethod
    def load(product_id) -> Product:
        try:
            return current_domain.repository_for(Product).get(product_id)
        except ObjectNotFoundError as exc:
            raise NotFoundError("product", product_id) from exc

    @classmethod
    def current(cls, product_id) -> int:
        return cls.load(product_id).stock

    @classmethod
    def adjust(cls, product_id, delta: int, require_non_negative: bool = True, reason: str = "adjustment") -> bool:
        """Add ``delta`` (negative to reserve) to the product's stock.

        Returns False, leaving stock untouched, when ``require_non_negative``
        is set and the result would fall below zero. Raises ``NotFoundError``
        for an unknown product.
        """
        with product_locks.hold(product_id):
            product = cls.load(product_id)
            if require_non_negative and product.stock + delta < 0:
                logger.info(
                    "stock_adjustment_refused",
                    product_id=str(product_id),
                    available=product.stock,
                    delta=delta,
                )
                return False

            try:
                product.adjust_stock(delta, reason=reason)
            except ValidationError:
                # The field itself cannot hold a negative count
                logger.warning(
                    "stock_adjustment_clamped",
                    product_id=str(product_id),
                    available=product.stock,
                    delta=delta,
                )
                return False

            current_domain.repository_for(Product).add(product)

        logger.info(
            "stock_adjusted",
            product_id=str(product_id),
            delta=delta,
            stock=product.stock,
            reason=reason,
        )
        return True
