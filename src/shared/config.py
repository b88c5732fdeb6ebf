"""Runtime settings for the storefront, read from the environment."""

import os
from decimal import Decimal

from pydantic import BaseModel, Field

_DEFAULT_LOG_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}


def get_environment() -> str:
    return (os.getenv("ENV") or os.getenv("ENVIRONMENT") or "development").lower()


class Settings(BaseModel):
    environment: str = "development"
    log_level: str = "DEBUG"
    redis_url: str = "redis://localhost:6379/0"

    # Carts
    cart_ttl_seconds: int = Field(default=3600, ge=1)

    # Pricing
    currency: str = Field(default="USD", max_length=3)
    free_shipping_threshold: Decimal = Decimal("500")
    flat_shipping_fee: Decimal = Decimal("29.99")
    tax_rate: Decimal = Decimal("0.20")

    # Optimistic transactions against the store
    cas_max_retries: int = Field(default=50, ge=1)

    # Per-actor checkout lock held in the store, released on expiry if its holder dies
    checkout_lock_seconds: int = Field(default=30, ge=1)

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls) -> "Settings":
        env = get_environment()
        return cls(
            environment=env,
            log_level=os.getenv("LOG_LEVEL", _DEFAULT_LOG_LEVELS.get(env, "INFO")),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            cart_ttl_seconds=int(os.getenv("CART_TTL_SECONDS", "3600")),
            currency=os.getenv("CURRENCY", "USD"),
            free_shipping_threshold=Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "500")),
            flat_shipping_fee=Decimal(os.getenv("FLAT_SHIPPING_FEE", "29.99")),
            tax_rate=Decimal(os.getenv("TAX_RATE", "0.20")),
            cas_max_retries=int(os.getenv("CAS_MAX_RETRIES", "50")),
            checkout_lock_seconds=int(os.getenv("CHECKOUT_LOCK_SECONDS", "30")),
        )

    @property
    def is_production(self) -> bool:
        return self.environment in ("production", "staging")
