"""Pydantic request/response schemas for the Ordering API.

These are external contracts, kept separate from the cart and order models.
Money is rendered as decimal strings.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ordering.cart.cart import Cart
from ordering.cart.merge import MergeResult
from ordering.order.order import Address, Order, OrderStatus, PaymentMethod, PaymentStatus
from ordering.order.repository import OrderPage, OrderStats

_ADDRESS_EXAMPLE = {
    "first_name": "Jane",
    "last_name": "Doe",
    "street": "123 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
    "phone": "+1-555-0100",
}


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=30)

    def to_address(self) -> Address:
        return Address(**self.model_dump())


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"product_id": "prod-001", "quantity": 2}]}}

    product_id: str
    quantity: int = 1


class UpdateCartItemRequest(BaseModel):
    """A quantity of zero or less removes the line."""

    quantity: int


class MergeCartRequest(BaseModel):
    source_session_id: str


# ---------------------------------------------------------------------------
# Cart Response Schemas
# ---------------------------------------------------------------------------
class CartLineResponse(BaseModel):
    product_id: str
    display_name: str
    image_ref: str | None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class CartResponse(BaseModel):
    owner: str
    lines: list[CartLineResponse]
    total_items: int
    total_amount: Decimal
    last_updated: datetime
    expires_at: datetime

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartResponse":
        return cls(
            owner=cart.owner.key,
            lines=[
                CartLineResponse(
                    product_id=line.product_id,
                    display_name=line.display_name,
                    image_ref=line.image_ref,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in cart.lines
            ],
            total_items=cart.total_items,
            total_amount=cart.total_amount,
            last_updated=cart.last_updated,
            expires_at=cart.expires_at,
        )


class SaveCartResponse(BaseModel):
    saved: bool
    message: str
    cart: CartResponse | None = None

    @classmethod
    def from_saved(cls, cart: Cart | None) -> "SaveCartResponse":
        if cart is None:
            return cls(saved=False, message="Cart is empty")
        return cls(saved=True, message="Cart saved", cart=CartResponse.from_cart(cart))


class MergedLineResponse(BaseModel):
    product_id: str
    requested: int
    status: str
    reason: str | None = None


class MergeCartResponse(BaseModel):
    cart: CartResponse
    lines: list[MergedLineResponse]

    @classmethod
    def from_result(cls, result: MergeResult) -> "MergeCartResponse":
        return cls(
            cart=CartResponse.from_cart(result.cart),
            lines=[
                MergedLineResponse(
                    product_id=line.product_id,
                    requested=line.requested,
                    status=line.status.value,
                    reason=line.reason,
                )
                for line in result.lines
            ],
        )


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    payment_method: PaymentMethod
    shipping_method: str = Field("standard", max_length=50)
    notes: str | None = Field(None, max_length=500)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": _ADDRESS_EXAMPLE,
                    "payment_method": "credit_card",
                    "notes": "Leave at the front desk",
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    reason: str = Field("", max_length=500)


class UpdateOrderStatusRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"status": "shipped", "note": "Handed to carrier"}]}}

    status: OrderStatus
    note: str = Field("", max_length=500)


class UpdatePaymentStatusRequest(BaseModel):
    status: PaymentStatus
    transaction_id: str | None = None


# ---------------------------------------------------------------------------
# Order Response Schemas
# ---------------------------------------------------------------------------
class OrderLineResponse(BaseModel):
    product_id: str
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class StatusChangeResponse(BaseModel):
    status: str
    note: str
    at: datetime


class PaymentResponse(BaseModel):
    method: str
    status: str
    transaction_id: str | None
    paid_at: datetime | None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    owner: str
    status: str
    lines: list[OrderLineResponse]
    shipping_address: AddressSchema
    billing_address: AddressSchema
    payment: PaymentResponse
    shipping_method: str
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal
    notes: str | None
    status_history: list[StatusChangeResponse]
    created_at: datetime
    updated_at: datetime
    delivered_at: datetime | None
    cancelled_at: datetime | None
    cancel_reason: str | None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            owner=order.owner.key,
            status=order.status.value,
            lines=[OrderLineResponse(**line.model_dump()) for line in order.lines],
            shipping_address=AddressSchema(**order.shipping_address.model_dump()),
            billing_address=AddressSchema(**order.billing_address.model_dump()),
            payment=PaymentResponse(
                method=order.payment.method.value,
                status=order.payment.status.value,
                transaction_id=order.payment.transaction_id,
                paid_at=order.payment.paid_at,
            ),
            shipping_method=order.shipping.method,
            subtotal=order.subtotal,
            shipping_cost=order.shipping.cost,
            tax=order.tax,
            total=order.total,
            notes=order.notes,
            status_history=[
                StatusChangeResponse(status=change.status.value, note=change.note, at=change.at)
                for change in order.status_history
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
            delivered_at=order.delivered_at,
            cancelled_at=order.cancelled_at,
            cancel_reason=order.cancel_reason,
        )


class PaginationResponse(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: PaginationResponse

    @classmethod
    def from_page(cls, page: OrderPage) -> "OrderListResponse":
        return cls(
            orders=[OrderResponse.from_order(order) for order in page.orders],
            pagination=PaginationResponse(**page.pagination.model_dump()),
        )


class StatusStatsResponse(BaseModel):
    status: str
    count: int
    total_amount: Decimal


class OrderStatsResponse(BaseModel):
    by_status: list[StatusStatsResponse]
    total_orders: int
    total_revenue: Decimal

    @classmethod
    def from_stats(cls, stats: OrderStats) -> "OrderStatsResponse":
        return cls(
            by_status=[
                StatusStatsResponse(status=entry.status.value, count=entry.count, total_amount=entry.total_amount)
                for entry in stats.by_status
            ],
            total_orders=stats.total_orders,
            total_revenue=stats.total_revenue,
        )
