"""FastAPI routes for the Ordering domain: carts and orders."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from ordering.api.schemas import (
    AddToCartRequest,
    CancelOrderRequest,
    CartResponse,
    CreateOrderRequest,
    MergeCartRequest,
    MergeCartResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    SaveCartResponse,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
    UpdatePaymentStatusRequest,
)
from ordering.domain import Storefront
from ordering.order.order import OrderStatus, PaymentStatus
from ordering.order.repository import OrderFilter
from shared.actor import ActorRef
from shared.web import current_actor, current_user, get_storefront, require_admin

# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
def get_cart(
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> CartResponse:
    return CartResponse.from_cart(storefront.carts.get(actor))


@cart_router.post("/items", response_model=CartResponse)
def add_to_cart(
    body: AddToCartRequest,
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> CartResponse:
    cart = storefront.carts.add_line(actor, body.product_id, body.quantity)
    return CartResponse.from_cart(cart)


@cart_router.put("/items/{product_id}", response_model=CartResponse)
def update_cart_item(
    product_id: str,
    body: UpdateCartItemRequest,
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> CartResponse:
    cart = storefront.carts.update_line(actor, product_id, body.quantity)
    return CartResponse.from_cart(cart)


@cart_router.delete("/items/{product_id}", response_model=CartResponse)
def remove_from_cart(
    product_id: str,
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> CartResponse:
    return CartResponse.from_cart(storefront.carts.remove_line(actor, product_id))


@cart_router.delete("", response_model=CartResponse)
def clear_cart(
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> CartResponse:
    return CartResponse.from_cart(storefront.carts.clear(actor))


@cart_router.post("/merge", response_model=MergeCartResponse)
def merge_cart(
    body: MergeCartRequest,
    user: ActorRef = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
) -> MergeCartResponse:
    """Fold an anonymous session's cart into the signed-in user's cart."""
    result = storefront.merger.merge(ActorRef.session(body.source_session_id), user)
    return MergeCartResponse.from_result(result)


@cart_router.post("/save", response_model=SaveCartResponse)
def save_cart(
    user: ActorRef = Depends(current_user),
    storefront: Storefront = Depends(get_storefront),
) -> SaveCartResponse:
    """Keep a copy of the signed-in user's cart that does not expire."""
    return SaveCartResponse.from_saved(storefront.carts.save_durable(user))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
def create_order(
    body: CreateOrderRequest,
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> OrderResponse:
    order = storefront.assembler.create_order(
        actor,
        shipping_address=body.shipping_address.to_address(),
        billing_address=body.billing_address.to_address() if body.billing_address else None,
        payment_method=body.payment_method,
        notes=body.notes,
        shipping_method=body.shipping_method,
    )
    return OrderResponse.from_order(order)


@order_router.get("", response_model=OrderListResponse)
def list_my_orders(
    status: OrderStatus | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> OrderListResponse:
    criteria = OrderFilter(owner=actor, status=status)
    return OrderListResponse.from_page(storefront.lifecycle.list_orders(criteria, page=page, limit=limit))


# --- Admin endpoints. Declared before /{order_id} so that "admin" is not read as an id. ---


@order_router.get("/admin/all", response_model=OrderListResponse, dependencies=[Depends(require_admin)])
def list_all_orders(
    status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    storefront: Storefront = Depends(get_storefront),
) -> OrderListResponse:
    criteria = OrderFilter(
        status=status,
        payment_status=payment_status,
        created_from=start_date,
        created_to=end_date,
    )
    return OrderListResponse.from_page(storefront.lifecycle.list_orders(criteria, page=page, limit=limit))


@order_router.get("/admin/stats", response_model=OrderStatsResponse, dependencies=[Depends(require_admin)])
def order_stats(storefront: Storefront = Depends(get_storefront)) -> OrderStatsResponse:
    return OrderStatsResponse.from_stats(storefront.lifecycle.stats())


@order_router.patch("/{order_id}/status", response_model=OrderResponse, dependencies=[Depends(require_admin)])
def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    storefront: Storefront = Depends(get_storefront),
) -> OrderResponse:
    order = storefront.lifecycle.update_status(order_id, body.status, body.note)
    return OrderResponse.from_order(order)


@order_router.patch("/{order_id}/payment", response_model=OrderResponse, dependencies=[Depends(require_admin)])
def update_payment_status(
    order_id: str,
    body: UpdatePaymentStatusRequest,
    storefront: Storefront = Depends(get_storefront),
) -> OrderResponse:
    order = storefront.lifecycle.update_payment_status(order_id, body.status, body.transaction_id)
    return OrderResponse.from_order(order)


# --- Customer endpoints ---


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> OrderResponse:
    return OrderResponse.from_order(storefront.lifecycle.get(order_id, actor))


@order_router.patch("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    body: CancelOrderRequest | None = None,
    actor: ActorRef = Depends(current_actor),
    storefront: Storefront = Depends(get_storefront),
) -> OrderResponse:
    reason = body.reason if body else ""
    order = storefront.lifecycle.cancel(order_id, reason, actor=actor)
    return OrderResponse.from_order(order)
