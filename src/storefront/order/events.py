"""Domain events for the Order aggregate.

The Order is event sourced, so these events are its storage format as well
as its audit trail. List and address payloads travel as JSON text.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """A cart was converted into an order and its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier()
    session_id = String()
    email = String()
    items = Text(required=True)  # JSON array of line snapshots
    shipping_address = Text(required=True)  # JSON object
    billing_address = Text(required=True)  # JSON object
    payment_method = String(required=True)
    shipping_method = String(required=True)
    notes = Text()
    applied_coupons = Text()  # JSON array of {code, kind, value}
    subtotal = Float(required=True)
    discount_total = Float(default=0.0)
    tax_total = Float(default=0.0)
    shipping_total = Float(default=0.0)
    grand_total = Float(required=True)
    note = String()
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderStatusUpdated:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    status = String(required=True)
    note = String()
    updated_by = String()
    updated_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled; its reserved stock is due back on the shelf."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    cancelled_by = String()
    items = Text()  # JSON array of {product_id, quantity} to restock
    cancelled_at = DateTime(required=True)
