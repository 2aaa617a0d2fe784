"""Pydantic request/response schemas for the Storefront API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# --- Request Schemas ---


class RegisterProductRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [{"name": "Trail Runner", "sku": "TR-42", "price": 89.99, "stock": 25, "category": "Shoes"}]
        }
    }

    name: str = Field(..., max_length=255)
    sku: str = Field(..., max_length=64)
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category: str | None = Field(None, max_length=100)


class AdjustStockRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"delta": 10}]}}

    delta: int
    reason: str | None = Field(None, max_length=255)


class DefineCouponRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"code": "SPRING10", "kind": "percentage", "value": 10}]}}

    code: str = Field(..., max_length=50)
    kind: str = Field(..., pattern="^(percentage|fixed)$")
    value: float = Field(..., ge=0)
    active: bool = True


class AddCartItemRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"product_id": "a1b2c3d4", "quantity": 2}]}}

    product_id: str
    variant_id: str | None = None
    quantity: int = Field(1, ge=1)
    session_id: str | None = Field(None, max_length=255)


class UpdateCartItemRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"quantity": 3}, {"saved_for_later": True}]}}

    quantity: int | None = None
    saved_for_later: bool | None = None
    session_id: str | None = Field(None, max_length=255)


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., max_length=50)
    session_id: str | None = Field(None, max_length=255)


class AddressPayload(BaseModel):
    full_name: str | None = Field(None, max_length=255)
    street: str = Field(..., max_length=255)
    city: str = Field(..., max_length=100)
    state: str | None = Field(None, max_length=100)
    postal_code: str = Field(..., max_length=20)
    country: str = Field(..., max_length=100)


class PlaceOrderRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "full_name": "Sam Rivera",
                        "street": "123 Elm Street",
                        "city": "Springfield",
                        "state": "IL",
                        "postal_code": "62701",
                        "country": "US",
                    },
                    "billing_address": {
                        "street": "123 Elm Street",
                        "city": "Springfield",
                        "postal_code": "62701",
                        "country": "US",
                    },
                    "payment_method": "card",
                    "shipping_method": "standard",
                }
            ]
        }
    }

    shipping_address: AddressPayload
    billing_address: AddressPayload
    payment_method: str = Field(..., max_length=50)
    shipping_method: str = Field(..., max_length=50)
    notes: str | None = None
    session_id: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=254)


class UpdateOrderStatusRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"status": "shipped", "note": "Left the warehouse"}]}}

    status: str = Field(..., max_length=20)
    note: str | None = Field(None, max_length=500)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


# --- Response Schemas ---


class IdResponse(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890"}]}}

    id: str


class ProductResponse(BaseModel):
    id: str
    name: str
    sku: str
    price: float
    stock: int
    category: str | None = None

    @classmethod
    def from_product(cls, product) -> ProductResponse:
        return cls(
            id=str(product.id),
            name=product.name,
            sku=product.sku,
            price=product.price,
            stock=product.stock,
            category=product.category,
        )


class TotalsResponse(BaseModel):
    subtotal: float = 0.0
    discount_total: float = 0.0
    tax_total: float = 0.0
    shipping_total: float = 0.0
    grand_total: float = 0.0


class CouponSnapshot(BaseModel):
    code: str
    kind: str
    value: float


class CartItemResponse(BaseModel):
    id: str
    product_id: str
    variant_id: str | None = None
    quantity: int
    unit_price: float
    saved_for_later: bool = False


class CartResponse(BaseModel):
    id: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    items: list[CartItemResponse] = []
    applied_coupons: list[CouponSnapshot] = []
    totals: TotalsResponse = TotalsResponse()

    @classmethod
    def from_cart(cls, cart) -> CartResponse:
        return cls(
            id=str(cart.id),
            user_id=str(cart.user_id) if cart.user_id else None,
            session_id=cart.session_id,
            items=[
                CartItemResponse(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    variant_id=str(item.variant_id) if item.variant_id else None,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    saved_for_later=bool(item.saved_for_later),
                )
                for item in cart.lines
            ],
            applied_coupons=[CouponSnapshot(**c) for c in cart.coupons],
            totals=TotalsResponse(**cart.totals.to_dict()),
        )

    @classmethod
    def empty(cls, shopper) -> CartResponse:
        return cls(user_id=shopper.user_id, session_id=shopper.session_id)


class OrderItemResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    name: str
    sku: str
    unit_price: float
    quantity: int
    subtotal: float


class StatusChangeResponse(BaseModel):
    status: str
    note: str | None = None
    recorded_at: datetime


class OrderResponse(BaseModel):
    id: str
    order_number: str
    user_id: str | None = None
    email: str | None = None
    status: str
    items: list[OrderItemResponse]
    shipping_address: AddressPayload
    billing_address: AddressPayload
    payment_method: str
    shipping_method: str
    notes: str | None = None
    applied_coupons: list[CouponSnapshot] = []
    totals: TotalsResponse
    status_history: list[StatusChangeResponse]
    created_at: datetime

    @classmethod
    def from_order(cls, order) -> OrderResponse:
        return cls(
            id=str(order.id),
            order_number=order.order_number,
            user_id=str(order.user_id) if order.user_id else None,
            email=order.email,
            status=order.status,
            items=[
                OrderItemResponse(
                    product_id=str(item.product_id),
                    variant_id=str(item.variant_id) if item.variant_id else None,
                    name=item.name,
                    sku=item.sku,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    subtotal=item.subtotal,
                )
                for item in order.items
            ],
            shipping_address=AddressPayload(**order.shipping_address.to_dict()),
            billing_address=AddressPayload(**order.billing_address.to_dict()),
            payment_method=order.payment_method,
            shipping_method=order.shipping_method,
            notes=order.notes,
            applied_coupons=[CouponSnapshot(**c) for c in order.coupons],
            totals=TotalsResponse(**order.totals.to_dict()),
            status_history=[
                StatusChangeResponse(status=change.status, note=change.note, recorded_at=change.recorded_at)
                for change in order.history
            ],
            created_at=order.created_at,
        )
