"""ProductCatalog: registration and lookup of products."""

from datetime import UTC, datetime
from decimal import Decimal

import redis
import structlog

from catalogue.product.product import Product, ProductImage, ProductView
from inventory.stock.ledger import StockLedger
from shared.exceptions import ProductUnavailable
from shared.redis import key

logger = structlog.get_logger(__name__)


class ProductCatalog:
    def __init__(self, client: redis.Redis, ledger: StockLedger):
        self._redis = client
        self._ledger = ledger

    @staticmethod
    def _key(product_id: str) -> str:
        return key("product", product_id)

    def add(self, product: Product, initial_stock: int = 0) -> Product:
        """Store a product and seed its stock entry."""
        self._redis.set(self._key(product.id), product.model_dump_json())
        if not self._ledger.exists(product.id) or initial_stock:
            self._ledger.set_quantity(product.id, initial_stock)
        logger.info("product_added", product_id=product.id, sku=product.sku, initial_stock=initial_stock)
        return product

    def register(
        self,
        name: str,
        sku: str,
        price: Decimal,
        discount_price: Decimal | None = None,
        initial_stock: int = 0,
        images: list[dict] | None = None,
        is_active: bool = True,
    ) -> Product:
        product = Product(
            name=name,
            sku=sku,
            price=price,
            discount_price=discount_price,
            is_active=is_active,
            images=[ProductImage(**image) for image in images or []],
        )
        return self.add(product, initial_stock=initial_stock)

    def find(self, product_id: str) -> Product | None:
        raw = self._redis.get(self._key(product_id))
        if raw is None:
            return None
        return Product.model_validate_json(raw)

    def get(self, product_id: str) -> Product:
        product = self.find(product_id)
        if product is None:
            raise ProductUnavailable(product_id, {"product_id": [f"Product {product_id} not found"]})
        return product

    def update_pricing(self, product_id: str, price: Decimal, discount_price: Decimal | None = None) -> Product:
        product = self.get(product_id)
        updated = Product.model_validate(
            {
                **product.model_dump(),
                "price": price,
                "discount_price": discount_price,
                "updated_at": datetime.now(UTC),
            }
        )
        self._redis.set(self._key(product_id), updated.model_dump_json())
        logger.info(
            "product_price_updated",
            product_id=product_id,
            previous_price=str(product.final_price),
            final_price=str(updated.final_price),
        )
        return updated

    def set_active(self, product_id: str, is_active: bool) -> Product:
        product = self.get(product_id)
        updated = product.model_copy(update={"is_active": is_active, "updated_at": datetime.now(UTC)})
        self._redis.set(self._key(product_id), updated.model_dump_json())
        logger.info("product_activation_changed", product_id=product_id, is_active=is_active)
        return updated

    def get_product(self, product_id: str) -> ProductView | None:
        """Lookup used by the cart and order assembly. ``None`` for unknown ids."""
        product = self.find(product_id)
        if product is None:
            return None
        return ProductView(
            id=product.id,
            name=product.name,
            final_price=product.final_price,
            is_active=product.is_active,
            stock_hint=self._ledger.available(product.id),
            image_ref=product.image_ref,
        )
