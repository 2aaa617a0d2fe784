"""Order lifecycle services: reading, status updates and cancellation.

These run outside command handlers because cancellation writes stock through
``ProductStock.adjust``, which must commit each adjustment on its own before
releasing the product lock. Changes to a single order are serialized with a
per-order lock, so an order can only be cancelled (and restocked) once.
"""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.catalogue.stock import ProductStock
from storefront.errors import ForbiddenError, NotFoundError, StockRestorationError
from storefront.order.order import Order, OrderStatus
from storefront.utils.locks import order_locks
from storefront.utils.logging import get_logger, log_context

logger = get_logger(__name__)


def load_order(order_id) -> Order:
    try:
        return current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError as exc:
        raise NotFoundError("order", order_id) from exc


def get_order(order_id, requested_by) -> Order:
    """Return an order to its owner or an admin.

    Guest orders have no owner and are readable by anyone holding the order id.
    """
    order = load_order(order_id)
    if requested_by.is_admin or order.is_guest or order.is_owned_by(requested_by.user_id):
        return order
    raise ForbiddenError("Not authorized to access this order")


def _authorize_cancellation(order, requested_by):
    if requested_by.is_admin or order.is_owned_by(requested_by.user_id):
        return
    raise ForbiddenError("Not authorized to cancel this order")


def restore_stock(order):
    """Put every line's quantity back. Raises once all products were attempted."""
    failures = []
    for product_id, quantity in order.restock_lines().items():
        try:
            ProductStock.adjust(
                product_id,
                quantity,
                require_non_negative=False,
                reason=f"order {order.order_number} cancelled",
            )
        except Exception as exc:
            logger.error(
                "stock_restoration_failed",
                order_id=str(order.id),
                product_id=product_id,
                quantity=quantity,
                error=str(exc),
            )
            failures.append((product_id, exc))

    if failures:
        raise StockRestorationError(order.id, failures)


def _cancel_and_restock(order, requested_by, reason=None):
    order.cancel(reason=reason, cancelled_by=requested_by.label)
    current_domain.repository_for(Order).add(order)

    logger.info(
        "order_cancelled",
        order_number=order.order_number,
        cancelled_by=requested_by.label,
    )
    restore_stock(order)


def cancel_order(order_id, requested_by, reason=None) -> Order:
    """Cancel a pending or processing order and return its stock to the shelf."""
    with log_context(order_id=str(order_id)), order_locks.hold(order_id):
        order = load_order(order_id)
        _authorize_cancellation(order, requested_by)
        _cancel_and_restock(order, requested_by, reason=reason)

    return order


def update_order_status(order_id, new_status, requested_by, note=None) -> Order:
    """Append a status change. Admin-only; the caller enforces the role.

    Moving a pending or processing order to ``cancelled`` cancels it, so its
    stock is restored exactly once. Later statuses move to ``cancelled`` as a
    plain status change; those goods have already left.
    """
    target = OrderStatus.parse(new_status)

    with log_context(order_id=str(order_id)), order_locks.hold(order_id):
        order = load_order(order_id)
        previous = order.status

        if target == OrderStatus.CANCELLED and order.is_cancellable:
            _cancel_and_restock(order, requested_by, reason=note or f"Status updated to {target.value}")
            return order

        order.update_status(target.value, note=note, updated_by=requested_by.label)
        current_domain.repository_for(Order).add(order)

    logger.info(
        "order_status_updated",
        order_id=str(order.id),
        previous_status=previous,
        status=order.status,
        updated_by=requested_by.label,
    )
    return order
