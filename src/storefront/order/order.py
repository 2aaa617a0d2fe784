"""Order aggregate (Event Sourced): an immutable record of a checkout.

The order is built once from a cart and afterwards changes only through a
status update or a cancellation. Each change is a domain event; the event
stream is the order's audit trail, and replaying it through the @apply
handlers below rebuilds both the status and the append-only status history.

State machine:
    pending → processing → shipped → delivered   (admin-driven, free-form)
    pending | processing → cancelled              (terminal, restocks)
    shipped | delivered | refunded → cancelled    (terminal, admin status update only)
    refunded is available to admins for non-cancelled orders
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import apply
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from storefront.domain import storefront
from storefront.errors import InvalidTransitionError
from storefront.order.events import OrderCancelled, OrderPlaced, OrderStatusUpdated


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError as exc:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError({"status": [f"Invalid status '{value}'. Allowed: {allowed}"]}) from exc


_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.PROCESSING}

DEFAULT_CANCEL_NOTE = "Order cancelled by user"
INITIAL_NOTE = "Order created"


def generate_order_number(now=None):
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class Address:
    """A shipping or billing address captured at checkout time."""

    full_name = String(max_length=255)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


@storefront.value_object(part_of="Order")
class OrderTotals:
    """The five cart totals, copied verbatim when the order is placed."""

    subtotal = Float(default=0.0)
    discount_total = Float(default=0.0)
    tax_total = Float(default=0.0)
    shipping_total = Float(default=0.0)
    grand_total = Float(default=0.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    """A frozen order line: name and SKU as they were when the order was placed."""

    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(required=True, max_length=255)
    sku = String(required=True, max_length=64)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    subtotal = Float(required=True, min_value=0.0)


@storefront.entity(part_of="Order")
class StatusChange:
    status = String(required=True, choices=OrderStatus)
    note = String(max_length=500)
    recorded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (Event Sourced)
# ---------------------------------------------------------------------------
@storefront.aggregate(is_event_sourced=True)
class Order:
    order_number = String(max_length=32)
    user_id = Identifier()  # Null for guest checkout
    session_id = String(max_length=255)
    email = String(max_length=255)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    payment_method = String(max_length=50)
    shipping_method = String(max_length=50)
    notes = Text()
    applied_coupons = Text()  # JSON array of {code, kind, value}
    totals = ValueObject(OrderTotals)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusChange)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=100)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        lines,
        totals,
        shipping_address,
        billing_address,
        payment_method,
        shipping_method,
        user_id=None,
        session_id=None,
        email=None,
        notes=None,
        applied_coupons=None,
    ):
        """Create an order from checkout data.

        Args:
            lines: dicts with product_id, variant_id, name, sku, unit_price
                and quantity.
            totals: dict with the five cart totals.
            shipping_address, billing_address: address dicts.
            applied_coupons: list of coupon snapshots from the cart.

        All state is set by the OrderPlaced @apply handler.
        """
        # Validate addresses before anything is recorded
        shipping = Address(**shipping_address)
        billing = Address(**billing_address)

        now = datetime.now(UTC)
        items = [
            {
                **line,
                "id": str(uuid4()),
                "subtotal": round(line["unit_price"] * line["quantity"], 2),
            }
            for line in lines
        ]

        order = cls._create_new()
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=generate_order_number(now),
                user_id=str(user_id) if user_id else None,
                session_id=session_id,
                email=email,
                items=json.dumps(items),
                shipping_address=json.dumps(shipping.to_dict()),
                billing_address=json.dumps(billing.to_dict()),
                payment_method=payment_method,
                shipping_method=shipping_method,
                notes=notes,
                applied_coupons=json.dumps(applied_coupons or []),
                subtotal=totals["subtotal"],
                discount_total=totals.get("discount_total", 0.0),
                tax_total=totals.get("tax_total", 0.0),
                shipping_total=totals.get("shipping_total", 0.0),
                grand_total=totals["grand_total"],
                note=INITIAL_NOTE,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def history(self) -> list:
        """Status changes in the order their events were applied, oldest first."""
        return list(self.status_history)

    @property
    def coupons(self) -> list[dict]:
        return json.loads(self.applied_coupons) if self.applied_coupons else []

    @property
    def is_guest(self) -> bool:
        return not self.user_id

    def is_owned_by(self, user_id) -> bool:
        return bool(self.user_id) and str(self.user_id) == str(user_id)

    def restock_lines(self) -> dict:
        """Quantities to put back per product, summed across variants."""
        quantities: dict[str, int] = {}
        for item in self.items:
            quantities[str(item.product_id)] = quantities.get(str(item.product_id), 0) + item.quantity
        return quantities

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    @property
    def is_cancellable(self) -> bool:
        """True while the goods have not left, so cancelling puts stock back."""
        return OrderStatus(self.status) in _CANCELLABLE_STATES

    def update_status(self, new_status, note=None, updated_by=None):
        """Record an admin status change.

        Any status may follow any other except that a cancelled order is frozen.
        Moving to ``cancelled`` here records the status only; pending and
        processing orders go through ``cancel`` so that their stock is restored.
        """
        target = OrderStatus.parse(new_status)
        current = OrderStatus(self.status)

        if current == OrderStatus.CANCELLED:
            raise InvalidTransitionError(current.value, target.value, "Cannot update a cancelled order")

        self.raise_(
            OrderStatusUpdated(
                order_id=str(self.id),
                previous_status=current.value,
                status=target.value,
                note=note or f"Status updated to {target.value}",
                updated_by=updated_by,
                updated_at=datetime.now(UTC),
            )
        )

    def cancel(self, reason=None, cancelled_by=None):
        current = OrderStatus(self.status)
        if current not in _CANCELLABLE_STATES:
            raise InvalidTransitionError(current.value, OrderStatus.CANCELLED.value, "This order cannot be cancelled")

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=current.value,
                reason=reason or DEFAULT_CANCEL_NOTE,
                cancelled_by=cancelled_by,
                items=json.dumps([{"product_id": pid, "quantity": qty} for pid, qty in self.restock_lines().items()]),
                cancelled_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # @apply methods: rebuild state during event replay
    # -------------------------------------------------------------------
    def _record_status(self, status, note, at):
        self.status = status
        self.updated_at = at
        self.add_status_history(StatusChange(status=status, note=note, recorded_at=at))

    @apply
    def _on_order_placed(self, event: OrderPlaced):
        self.id = event.order_id
        self.order_number = event.order_number
        self.user_id = event.user_id
        self.session_id = event.session_id
        self.email = event.email
        self.payment_method = event.payment_method
        self.shipping_method = event.shipping_method
        self.notes = event.notes
        self.applied_coupons = event.applied_coupons
        self.created_at = event.placed_at

        items_data = json.loads(event.items) if isinstance(event.items, str) else []
        self.items = [OrderItem(**item_data) for item_data in items_data]

        self.shipping_address = Address(**json.loads(event.shipping_address))
        self.billing_address = Address(**json.loads(event.billing_address))

        self.totals = OrderTotals(
            subtotal=event.subtotal,
            discount_total=event.discount_total or 0.0,
            tax_total=event.tax_total or 0.0,
            shipping_total=event.shipping_total or 0.0,
            grand_total=event.grand_total,
        )

        self._record_status(OrderStatus.PENDING.value, event.note or INITIAL_NOTE, event.placed_at)

    @apply
    def _on_status_updated(self, event: OrderStatusUpdated):
        self._record_status(event.status, event.note, event.updated_at)

    @apply
    def _on_order_cancelled(self, event: OrderCancelled):
        self.cancellation_reason = event.reason
        self.cancelled_by = event.cancelled_by
        self._record_status(OrderStatus.CANCELLED.value, event.reason, event.cancelled_at)
