"""Storefront bounded context: Shopping Cart, Checkout and Order lifecycle.

Handles cart management with totals recomputed on every mutation, the
checkout flow that converts a cart into an order while reserving stock,
and the order status lifecycle (event-sourced).
"""

from protean.domain import Domain

from storefront.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

# Get logger for this module
logger = get_logger(__name__)

# Domain Composition Root
storefront = Domain(name="storefront")
