"""FastAPI endpoints for the Storefront domain.

Callers arrive already authenticated: the gateway forwards the user id and
role in ``X-User-Id`` / ``X-User-Role``. Guests identify their cart with a
``session_id``.
"""

from fastapi import APIRouter, Header
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    AddCartItemRequest,
    AdjustStockRequest,
    ApplyCouponRequest,
    CancelOrderRequest,
    CartResponse,
    DefineCouponRequest,
    IdResponse,
    OrderResponse,
    PlaceOrderRequest,
    ProductResponse,
    RegisterProductRequest,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
)
from storefront.cart.coupons import ApplyCoupon, DefineCoupon, RemoveCoupon
from storefront.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartItem
from storefront.cart.lookup import find_cart
from storefront.catalogue.registration import RegisterProduct
from storefront.catalogue.stock import ProductStock
from storefront.checkout.placement import place_order
from storefront.errors import ForbiddenError, ValidationError
from storefront.order.lifecycle import cancel_order, get_order, update_order_status
from storefront.shared.identity import Requester, Shopper

cart_router = APIRouter(prefix="/cart", tags=["cart"])
order_router = APIRouter(prefix="/orders", tags=["orders"])
product_router = APIRouter(prefix="/products", tags=["products"])
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


def _requester(user_id, role) -> Requester:
    return Requester(user_id=user_id or None, role=role or None)


def _require_admin(requester, action):
    if not requester.is_admin:
        raise ForbiddenError(f"Admin role required to {action}")


def _cart_response(shopper) -> CartResponse:
    cart = find_cart(shopper)
    return CartResponse.from_cart(cart) if cart else CartResponse.empty(shopper)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
@cart_router.get("", response_model=CartResponse)
async def get_cart(session_id: str | None = None, x_user_id: str | None = Header(None)) -> CartResponse:
    return _cart_response(Shopper.resolve(x_user_id, session_id))


@cart_router.post("/items", response_model=CartResponse)
async def add_cart_item(body: AddCartItemRequest, x_user_id: str | None = Header(None)) -> CartResponse:
    shopper = Shopper.resolve(x_user_id, body.session_id)
    command = AddToCart(
        user_id=shopper.user_id,
        session_id=shopper.session_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(shopper)


@cart_router.patch("/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: str,
    body: UpdateCartItemRequest,
    session_id: str | None = None,
    x_user_id: str | None = Header(None),
) -> CartResponse:
    shopper = Shopper.resolve(x_user_id, body.session_id or session_id)
    command = UpdateCartItem(
        user_id=shopper.user_id,
        session_id=shopper.session_id,
        item_id=item_id,
        quantity=body.quantity,
        saved_for_later=body.saved_for_later,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(shopper)


@cart_router.delete("/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: str, session_id: str | None = None, x_user_id: str | None = Header(None)
) -> CartResponse:
    shopper = Shopper.resolve(x_user_id, session_id)
    command = RemoveFromCart(user_id=shopper.user_id, session_id=shopper.session_id, item_id=item_id)
    current_domain.process(command, asynchronous=False)
    return _cart_response(shopper)


@cart_router.delete("", response_model=CartResponse)
async def clear_cart(session_id: str | None = None, x_user_id: str | None = Header(None)) -> CartResponse:
    shopper = Shopper.resolve(x_user_id, session_id)
    command = ClearCart(user_id=shopper.user_id, session_id=shopper.session_id)
    current_domain.process(command, asynchronous=False)
    return _cart_response(shopper)


@cart_router.post("/coupons", response_model=CartResponse)
async def apply_coupon(body: ApplyCouponRequest, x_user_id: str | None = Header(None)) -> CartResponse:
    shopper = Shopper.resolve(x_user_id, body.session_id)
    command = ApplyCoupon(user_id=shopper.user_id, session_id=shopper.session_id, code=body.code)
    current_domain.process(command, asynchronous=False)
    return _cart_response(shopper)


@cart_router.delete("/coupons/{code}", response_model=CartResponse)
async def remove_coupon(code: str, session_id: str | None = None, x_user_id: str | None = Header(None)) -> CartResponse:
    shopper = Shopper.resolve(x_user_id, session_id)
    command = RemoveCoupon(user_id=shopper.user_id, session_id=shopper.session_id, code=code)
    current_domain.process(command, asynchronous=False)
    return _cart_response(shopper)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(
    body: PlaceOrderRequest,
    x_user_id: str | None = Header(None),
    idempotency_key: str | None = Header(None),
) -> OrderResponse:
    shopper = Shopper.resolve(x_user_id, body.session_id)
    order = place_order(
        shopper,
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump(),
        payment_method=body.payment_method,
        shipping_method=body.shipping_method,
        notes=body.notes,
        email=body.email,
        idempotency_key=idempotency_key,
    )
    return OrderResponse.from_order(order)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def read_order(
    order_id: str, x_user_id: str | None = Header(None), x_user_role: str | None = Header(None)
) -> OrderResponse:
    order = get_order(order_id, _requester(x_user_id, x_user_role))
    return OrderResponse.from_order(order)


@order_router.patch("/{order_id}/status", response_model=OrderResponse)
async def change_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> OrderResponse:
    requester = _requester(x_user_id, x_user_role)
    _require_admin(requester, "update order status")
    order = update_order_status(order_id, body.status, requester, note=body.note)
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel(
    order_id: str,
    body: CancelOrderRequest | None = None,
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> OrderResponse:
    order = cancel_order(order_id, _requester(x_user_id, x_user_role), reason=body.reason if body else None)
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# Catalogue seeding
# ---------------------------------------------------------------------------
@product_router.post("", status_code=201, response_model=ProductResponse)
async def register_product(body: RegisterProductRequest, x_user_role: str | None = Header(None)) -> ProductResponse:
    _require_admin(_requester(None, x_user_role), "register products")
    command = RegisterProduct(
        name=body.name,
        sku=body.sku,
        price=body.price,
        stock=body.stock,
        category=body.category,
    )
    product_id = current_domain.process(command, asynchronous=False)
    return ProductResponse.from_product(ProductStock.load(product_id))


@product_router.get("/{product_id}", response_model=ProductResponse)
async def read_product(product_id: str) -> ProductResponse:
    return ProductResponse.from_product(ProductStock.load(product_id))


@product_router.post("/{product_id}/stock", response_model=ProductResponse)
async def adjust_stock(
    product_id: str, body: AdjustStockRequest, x_user_role: str | None = Header(None)
) -> ProductResponse:
    _require_admin(_requester(None, x_user_role), "adjust stock")
    if not ProductStock.adjust(product_id, body.delta, require_non_negative=True, reason=body.reason or "restock"):
        raise ValidationError({"stock": ["Stock cannot go below zero"]})
    return ProductResponse.from_product(ProductStock.load(product_id))


@coupon_router.post("", status_code=201, response_model=IdResponse)
async def define_coupon(body: DefineCouponRequest, x_user_role: str | None = Header(None)) -> IdResponse:
    _require_admin(_requester(None, x_user_role), "define coupons")
    command = DefineCoupon(code=body.code, kind=body.kind, value=body.value, active=body.active)
    coupon_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=coupon_id)
