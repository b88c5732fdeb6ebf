"""Pydantic request/response schemas for the Catalogue API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from catalogue.product.product import Product

# --- Product Request Schemas ---


def _check_discount(price: Decimal, discount_price: Decimal | None) -> None:
    if discount_price and discount_price >= price:
        raise ValueError("Discount price must be lower than the price")


class ProductImageSchema(BaseModel):
    url: str
    alt: str | None = None
    is_primary: bool = False


class CreateProductRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Classic Black T-Shirt",
                    "sku": "TSHIRT-BLK-M",
                    "price": "29.99",
                    "discount_price": "24.99",
                    "initial_stock": 100,
                    "images": [{"url": "https://cdn.example.com/tshirt.jpg", "is_primary": True}],
                }
            ]
        }
    }

    name: str = Field(..., min_length=1, max_length=100)
    sku: str = Field(..., min_length=1, max_length=50)
    price: Decimal = Field(..., ge=0)
    discount_price: Decimal | None = Field(None, ge=0)
    initial_stock: int = Field(0, ge=0)
    images: list[ProductImageSchema] = Field(default_factory=list)
    is_active: bool = True

    @model_validator(mode="after")
    def _discount_below_price(self) -> CreateProductRequest:
        _check_discount(self.price, self.discount_price)
        return self


class UpdatePricingRequest(BaseModel):
    price: Decimal = Field(..., ge=0)
    discount_price: Decimal | None = Field(None, ge=0)

    @model_validator(mode="after")
    def _discount_below_price(self) -> UpdatePricingRequest:
        _check_discount(self.price, self.discount_price)
        return self


class SetActiveRequest(BaseModel):
    is_active: bool


# --- Product Response Schemas ---


class ProductResponse(BaseModel):
    id: str
    name: str
    sku: str
    price: Decimal
    discount_price: Decimal | None
    final_price: Decimal
    discount_percentage: int
    is_active: bool
    image_ref: str | None
    available: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_product(cls, product: Product, available: int) -> ProductResponse:
        return cls(
            id=product.id,
            name=product.name,
            sku=product.sku,
            price=product.price,
            discount_price=product.discount_price,
            final_price=product.final_price,
            discount_percentage=product.discount_percentage,
            is_active=product.is_active,
            image_ref=product.image_ref,
            available=available,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )
