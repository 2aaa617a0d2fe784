"""Error kinds raised by the Storefront domain.

Every kind extends a Protean exception so Protean's own handlers recognize
it, and carries a ``messages`` dict fit for the response body. Mapping kinds
to HTTP status codes is the API layer's job (see ``storefront.api.errors``).
"""

from protean.exceptions import (
    InvalidOperationError,
    ObjectNotFoundError,
    ProteanException,
    ValidationError,
)

__all__ = [
    "CheckoutRollbackError",
    "ConsistencyError",
    "EmptyCartError",
    "ForbiddenError",
    "InsufficientStockError",
    "InvalidTransitionError",
    "NotFoundError",
    "StockRestorationError",
    "ValidationError",
]


class NotFoundError(ObjectNotFoundError):
    """A cart, order or product does not exist."""

    def __init__(self, kind, identifier):
        self.kind = kind
        self.identifier = str(identifier)
        self.messages = {kind: [f"{kind.capitalize()} {identifier} not found"]}
        super().__init__(self.messages)


class EmptyCartError(ValidationError):
    def __init__(self, message="Cart is empty"):
        super().__init__({"cart": [message]})


class InsufficientStockError(InvalidOperationError):
    """Requested quantity exceeds what is in stock for one product."""

    def __init__(self, product_id, product_name, available, requested):
        self.product_id = str(product_id)
        self.product_name = product_name
        self.available = available
        self.requested = requested
        self.messages = {
            "stock": [
                f"Not enough stock for {product_name}: {available} available, {requested} requested",
            ]
        }
        super().__init__(self.messages)


class ForbiddenError(InvalidOperationError):
    """The requester neither owns the resource nor holds the admin role."""

    def __init__(self, message):
        self.messages = {"authorization": [message]}
        super().__init__(self.messages)


class InvalidTransitionError(InvalidOperationError):
    """An order status change that the lifecycle does not permit."""

    def __init__(self, current_status, requested_status, message=None):
        self.current_status = current_status
        self.requested_status = requested_status
        self.messages = {
            "status": [message or f"Cannot change order status from {current_status} to {requested_status}"]
        }
        super().__init__(self.messages)


class ConsistencyError(ProteanException):
    """Stock and order records may disagree and need operator attention."""

    def __init__(self, messages):
        self.messages = messages
        super().__init__(messages)


class CheckoutRollbackError(ConsistencyError):
    """Undoing a partially completed checkout failed.

    ``original`` is the failure that triggered the rollback; ``failures``
    lists ``(step, exception)`` pairs for every undo step that did not
    complete.
    """

    def __init__(self, original, failures):
        self.original = original
        self.failures = failures
        steps = ", ".join(step for step, _ in failures)
        super().__init__(
            {
                "checkout": [
                    f"Checkout failed ({type(original).__name__}) and could not be rolled back: {steps}",
                ]
            }
        )


class StockRestorationError(ConsistencyError):
    """An order was cancelled but some of its stock was not put back."""

    def __init__(self, order_id, failures):
        self.order_id = str(order_id)
        self.failures = failures
        products = ", ".join(str(product_id) for product_id, _ in failures)
        super().__init__({"stock": [f"Order {order_id} was cancelled but stock was not restored for: {products}"]})
