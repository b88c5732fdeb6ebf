"""Product record and the read-only view handed to the cart and ordering contexts."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from shared.money import to_money


class ProductImage(BaseModel):
    url: str = Field(min_length=1)
    alt: str | None = None
    is_primary: bool = False


class Product(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(min_length=1, max_length=100)
    sku: str = Field(min_length=1, max_length=50)
    price: Decimal = Field(ge=0)
    discount_price: Decimal | None = Field(default=None, ge=0)
    is_active: bool = True
    images: list[ProductImage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("sku")
    @classmethod
    def _normalize_sku(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("price", "discount_price")
    @classmethod
    def _round_to_cents(cls, value: Decimal | None) -> Decimal | None:
        return to_money(value) if value is not None else None

    @model_validator(mode="after")
    def _discount_below_price(self) -> "Product":
        if self.discount_price and self.discount_price >= self.price:
            raise ValueError("Discount price must be lower than the price")
        return self

    @property
    def final_price(self) -> Decimal:
        """The price a customer pays today."""
        return self.discount_price or self.price

    @property
    def discount_percentage(self) -> int:
        if not self.discount_price or not self.price:
            return 0
        return int(((self.price - self.discount_price) / self.price * 100).to_integral_value())

    @property
    def image_ref(self) -> str | None:
        primary = next((image for image in self.images if image.is_primary), None)
        if primary is not None:
            return primary.url
        return self.images[0].url if self.images else None


class ProductView(BaseModel):
    """What the catalogue tells other contexts about a product.

    ``stock_hint`` is informational. Decisions about stock are always taken
    against the StockLedger.
    """

    id: str
    name: str
    final_price: Decimal
    is_active: bool
    stock_hint: int
    image_ref: str | None = None

    model_config = {"frozen": True}
