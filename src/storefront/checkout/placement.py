"""Checkout: turn a shopper's cart into an order while reserving stock.

Steps, in order:

1. Validate the cart (non-empty, guest email, line limit).
2. Check current stock for every product, quantities summed across variants.
3. Snapshot the lines and build the Order (totals copied from the cart).
4. Reserve stock per product with an atomic conditional decrement.
5. Persist the order, record the idempotency receipt, then empty the cart.

Each step that changes state registers an undo action. If a later step
fails, the undo actions run newest-first before the error surfaces, so a
failed checkout leaves stock and the cart as they were. An undo that itself
fails is reported as ``CheckoutRollbackError`` chained to the original error.

Checkouts for the same shopper are serialized, which also makes a retried
request with the same idempotency key return the first order.
"""

from functools import partial

from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.cart.lookup import find_cart
from storefront.catalogue.stock import ProductStock
from storefront.checkout.receipt import CheckoutReceipt, find_receipt, receipt_key
from storefront.errors import CheckoutRollbackError, EmptyCartError, InsufficientStockError, ValidationError
from storefront.order.lifecycle import load_order
from storefront.order.order import Order
from storefront.shared.identity import SYSTEM
from storefront.utils.locks import checkout_locks, order_locks
from storefront.utils.logging import get_logger, log_context

logger = get_logger(__name__)

MAX_ORDER_LINES = 100

WITHDRAWN_NOTE = "Checkout failed; order withdrawn by system"


def place_order(
    shopper,
    shipping_address,
    billing_address,
    payment_method,
    shipping_method,
    notes=None,
    email=None,
    idempotency_key=None,
    pricing=None,
) -> Order:
    """Create an order from the shopper's cart and return it."""
    with log_context(shopper=shopper.key), checkout_locks.hold(shopper.key):
        receipt = None
        key = None
        if idempotency_key:
            key = receipt_key(shopper, idempotency_key)
            receipt = find_receipt(key)
            if receipt is not None and not receipt.voided:
                logger.info("checkout_replayed", order_id=receipt.order_id)
                return load_order(receipt.order_id)

        return _checkout(
            shopper,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_method=payment_method,
            shipping_method=shipping_method,
            notes=notes,
            email=email,
            key=key,
            receipt=receipt,
            pricing=pricing,
        )


def _requested_quantities(lines) -> dict:
    requested: dict[str, int] = {}
    for line in lines:
        requested[str(line.product_id)] = requested.get(str(line.product_id), 0) + line.quantity
    return requested


def _validate(shopper, cart, email):
    lines = cart.checkout_lines() if cart else []
    if not lines:
        raise EmptyCartError()
    if shopper.is_guest and not email:
        raise ValidationError({"email": ["Email is required for guest checkout"]})
    if len(lines) > MAX_ORDER_LINES:
        raise ValidationError({"items": [f"An order cannot have more than {MAX_ORDER_LINES} lines"]})
    return lines


def _check_stock(requested) -> dict:
    products = {product_id: ProductStock.load(product_id) for product_id in requested}
    for product_id, quantity in requested.items():
        product = products[product_id]
        if not product.has_stock_for(quantity):
            raise InsufficientStockError(product_id, product.name, product.stock, quantity)
    return products


def _persist_order(order):
    current_domain.repository_for(Order).add(order)


def _withdraw_order(order_id):
    """Cancel an order whose checkout did not complete. Stock is released separately."""
    with order_locks.hold(order_id):
        order = load_order(order_id)
        order.cancel(reason=WITHDRAWN_NOTE, cancelled_by=SYSTEM.label)
        current_domain.repository_for(Order).add(order)


def _void_receipt(receipt):
    receipt.void()
    current_domain.repository_for(CheckoutReceipt).add(receipt)


def _roll_back(order, undo_steps, original):
    logger.warning(
        "checkout_rolling_back",
        order_id=str(order.id),
        steps=len(undo_steps),
        error=str(original),
        error_type=type(original).__name__,
    )

    failures = []
    for step, undo in reversed(undo_steps):
        try:
            undo()
        except Exception as exc:
            logger.error("checkout_undo_failed", order_id=str(order.id), step=step, error=str(exc))
            failures.append((step, exc))

    if failures:
        raise CheckoutRollbackError(original, failures) from original


def _checkout(
    shopper,
    shipping_address,
    billing_address,
    payment_method,
    shipping_method,
    notes,
    email,
    key,
    receipt,
    pricing,
) -> Order:
    cart = find_cart(shopper)
    lines = _validate(shopper, cart, email)

    requested = _requested_quantities(lines)
    products = _check_stock(requested)

    order = Order.place(
        lines=[
            {
                "product_id": str(line.product_id),
                "variant_id": str(line.variant_id) if line.variant_id else None,
                "name": products[str(line.product_id)].name,
                "sku": products[str(line.product_id)].sku,
                "unit_price": line.unit_price,
                "quantity": line.quantity,
            }
            for line in lines
        ],
        totals=cart.totals.to_dict(),
        shipping_address=shipping_address,
        billing_address=billing_address,
        payment_method=payment_method,
        shipping_method=shipping_method,
        user_id=shopper.user_id,
        session_id=shopper.session_id,
        email=email,
        notes=notes,
        applied_coupons=cart.coupons,
    )
    reason = f"order {order.order_number}"

    undo_steps = []
    try:
        for product_id, quantity in requested.items():
            if not ProductStock.adjust(product_id, -quantity, require_non_negative=True, reason=reason):
                product = products[product_id]
                raise InsufficientStockError(product_id, product.name, ProductStock.current(product_id), quantity)
            undo_steps.append(
                (
                    f"release stock of {product_id}",
                    partial(ProductStock.adjust, product_id, quantity, require_non_negative=False, reason=reason),
                )
            )

        _persist_order(order)
        undo_steps.append(("withdraw order", partial(_withdraw_order, order.id)))

        if key:
            if receipt is None:
                receipt = CheckoutReceipt.issue(key, order)
            else:
                receipt.reissue(order)
            current_domain.repository_for(CheckoutReceipt).add(receipt)
            undo_steps.append(("void receipt", partial(_void_receipt, receipt)))

        cart.empty_after_checkout(order.id, pricing)
        current_domain.repository_for(Cart).add(cart)
    except Exception as exc:
        _roll_back(order, undo_steps, exc)
        raise

    logger.info(
        "order_placed",
        order_id=str(order.id),
        order_number=order.order_number,
        lines=len(lines),
        grand_total=order.totals.grand_total,
    )
    return order
