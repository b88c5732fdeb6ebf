"""Order aggregate: an immutable record of what was bought, with a mutable status.

State machine:
    PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED
    CANCELLED (from PENDING or CONFIRMED, via ``cancel``)

Lines and money fields are fixed at creation. Only the status, its history,
the payment status and the terminal timestamps change afterwards.
"""

import secrets
import time
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from shared.actor import ActorRef
from shared.exceptions import NotCancellable
from shared.money import to_money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    CASH_ON_DELIVERY = "cash_on_delivery"


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# States from which a customer may cancel
CANCELLABLE_STATES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    digits = ""
    while True:
        number, remainder = divmod(number, 36)
        digits = _BASE36[remainder] + digits
        if number == 0:
            return digits


def generate_order_number() -> str:
    """``ORD-<milliseconds in base36>-<3 random base36 chars>``, upper-cased."""
    timestamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(3))
    return f"ORD-{timestamp}-{suffix}".upper()


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
class Address(BaseModel):
    """A delivery or billing address captured at checkout time."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    zip_code: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=30)

    model_config = {"frozen": True}


class OrderLine(BaseModel):
    """Point-in-time copy of a purchased product."""

    product_id: str = Field(min_length=1)
    name: str
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    line_total: Decimal = Field(ge=0)

    model_config = {"frozen": True}

    @field_validator("unit_price", "line_total")
    @classmethod
    def _round_to_cents(cls, value: Decimal) -> Decimal:
        return to_money(value)

    @classmethod
    def priced(cls, product_id: str, name: str, quantity: int, unit_price: Decimal) -> "OrderLine":
        return cls(
            product_id=product_id,
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            line_total=to_money(unit_price) * quantity,
        )


class Payment(BaseModel):
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: str | None = None
    paid_at: datetime | None = None


class Shipping(BaseModel):
    cost: Decimal = Field(ge=0)
    method: str = "standard"

    model_config = {"frozen": True}


class StatusChange(BaseModel):
    status: OrderStatus
    note: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
class Order(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    order_number: str = Field(default_factory=generate_order_number)
    owner: ActorRef
    lines: tuple[OrderLine, ...] = Field(min_length=1, frozen=True)
    shipping_address: Address
    billing_address: Address
    payment: Payment
    subtotal: Decimal = Field(frozen=True)
    shipping: Shipping = Field(frozen=True)
    tax: Decimal = Field(frozen=True)
    total: Decimal = Field(frozen=True)
    notes: str | None = Field(default=None, max_length=500)
    status: OrderStatus = OrderStatus.PENDING
    status_history: list[StatusChange] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None

    model_config = {"validate_assignment": True}

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        owner: ActorRef,
        lines: list[OrderLine],
        shipping_address: Address,
        billing_address: Address | None,
        payment_method: PaymentMethod,
        shipping_cost: Decimal,
        tax: Decimal,
        shipping_method: str = "standard",
        notes: str | None = None,
    ) -> "Order":
        """Create a new pending order. ``subtotal`` and ``total`` are derived from the lines."""
        subtotal = to_money(sum((line.line_total for line in lines), Decimal("0")))
        shipping_cost = to_money(shipping_cost)
        tax = to_money(tax)
        now = datetime.now(UTC)

        return cls(
            owner=owner,
            lines=tuple(lines),
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            payment=Payment(method=payment_method),
            subtotal=subtotal,
            shipping=Shipping(cost=shipping_cost, method=shipping_method),
            tax=tax,
            total=subtotal + shipping_cost + tax,
            notes=notes,
            status_history=[StatusChange(status=OrderStatus.PENDING, note="Order placed", at=now)],
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATES

    def belongs_to(self, actor: ActorRef) -> bool:
        return self.owner == actor

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def update_status(self, new_status: OrderStatus, note: str = "") -> None:
        """Administrative status change. Any target status is accepted."""
        now = datetime.now(UTC)
        self.status = new_status
        self.status_history.append(StatusChange(status=new_status, note=note, at=now))
        self.updated_at = now

        if new_status == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif new_status == OrderStatus.CANCELLED:
            self.cancelled_at = now

    def cancel(self, reason: str = "") -> None:
        """Customer cancellation. Only allowed before the order is being processed."""
        if not self.is_cancellable:
            raise NotCancellable({"status": [f"Order in status {self.status.value} cannot be cancelled"]})

        self.update_status(OrderStatus.CANCELLED, note=reason)
        self.cancel_reason = reason

    def record_payment_status(self, status: PaymentStatus, transaction_id: str | None = None) -> None:
        now = datetime.now(UTC)
        self.payment = self.payment.model_copy(
            update={
                "status": status,
                "transaction_id": transaction_id or self.payment.transaction_id,
                "paid_at": now if status == PaymentStatus.COMPLETED else self.payment.paid_at,
            }
        )
        self.updated_at = now
