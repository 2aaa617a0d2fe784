"""Checkout receipts: remember which order an idempotency key produced."""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront


@storefront.aggregate
class CheckoutReceipt:
    key = Identifier(identifier=True)  # "<shopper key>:<idempotency key>"
    order_id = Identifier(required=True)
    order_number = String(max_length=32)
    voided = Boolean(default=False)
    created_at = DateTime()

    @classmethod
    def issue(cls, key, order):
        return cls(
            key=key,
            order_id=str(order.id),
            order_number=order.order_number,
            created_at=datetime.now(UTC),
        )

    def reissue(self, order):
        self.order_id = str(order.id)
        self.order_number = order.order_number
        self.voided = False
        self.created_at = datetime.now(UTC)

    def void(self):
        """The order this receipt points at was rolled back; a retry must place a new one."""
        self.voided = True


def receipt_key(shopper, idempotency_key):
    return f"{shopper.key}:{idempotency_key}"


def find_receipt(key):
    """Return the receipt stored under ``key``, voided or not, or None."""
    try:
        return current_domain.repository_for(CheckoutReceipt).get(key)
    except ObjectNotFoundError:
        return None
