"""Cart snapshot and its line items.

A cart is a value: every mutation produces a new snapshot that replaces the
previous one in the store as a whole. Totals are never edited by hand; they are
derived by ``recompute_totals`` right before a snapshot is persisted.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from shared.actor import ActorRef
from shared.money import ZERO, to_money


class CartLine(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    display_name: str
    image_ref: str | None = None

    model_config = {"frozen": True}

    @field_validator("unit_price")
    @classmethod
    def _round_to_cents(cls, value: Decimal) -> Decimal:
        return to_money(value)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class Cart(BaseModel):
    owner: ActorRef
    lines: tuple[CartLine, ...] = ()
    total_items: int = 0
    total_amount: Decimal = ZERO
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: int = 0

    model_config = {"frozen": True}

    @classmethod
    def empty(cls, owner: ActorRef, ttl_seconds: int) -> "Cart":
        now = datetime.now(UTC)
        return cls(owner=owner, last_updated=now, expires_at=now + timedelta(seconds=ttl_seconds))

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def find_line(self, product_id: str) -> CartLine | None:
        return next((line for line in self.lines if line.product_id == product_id), None)

    def quantity_of(self, product_id: str) -> int:
        line = self.find_line(product_id)
        return line.quantity if line else 0

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    # -------------------------------------------------------------------
    # Line edits. Each returns a new cart with totals left stale.
    # -------------------------------------------------------------------
    def with_line_added(self, line: CartLine) -> "Cart":
        existing = self.find_line(line.product_id)
        if existing is None:
            return self.model_copy(update={"lines": (*self.lines, line)})

        merged = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
        return self._replace_line(merged)

    def with_quantity(self, product_id: str, quantity: int) -> "Cart":
        existing = self.find_line(product_id)
        if existing is None:
            return self
        if quantity <= 0:
            return self.without_line(product_id)
        return self._replace_line(existing.model_copy(update={"quantity": quantity}))

    def without_line(self, product_id: str) -> "Cart":
        return self.model_copy(update={"lines": tuple(line for line in self.lines if line.product_id != product_id)})

    def without_lines(self) -> "Cart":
        return self.model_copy(update={"lines": ()})

    def _replace_line(self, replacement: CartLine) -> "Cart":
        return self.model_copy(
            update={
                "lines": tuple(
                    replacement if line.product_id == replacement.product_id else line for line in self.lines
                )
            }
        )


def recompute_totals(cart: Cart) -> Cart:
    """Derive ``total_items`` and ``total_amount`` from the cart's lines."""
    total_items = sum(line.quantity for line in cart.lines)
    total_amount = to_money(sum((line.unit_price * line.quantity for line in cart.lines), ZERO))
    return cart.model_copy(update={"total_items": total_items, "total_amount": total_amount})
