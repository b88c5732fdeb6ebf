"""Storefront composition root.

Wires the catalogue, the stock ledger, carts and orders around one Redis
client. The HTTP app builds a single ``Storefront`` at startup; tests build one
per test around a fake client.
"""

from dataclasses import dataclass

import redis
import structlog

from catalogue.product.catalog import ProductCatalog
from inventory.stock.ledger import StockLedger
from ordering.cart.merge import CartMerger
from ordering.cart.store import CartStore
from ordering.order.assembly import OrderAssembler, PricingPolicy
from ordering.order.lifecycle import OrderLifecycle
from ordering.order.repository import OrderRepository
from shared.config import Settings
from shared.redis import create_client

logger = structlog.get_logger(__name__)


@dataclass
class Storefront:
    settings: Settings
    client: redis.Redis
    ledger: StockLedger
    catalog: ProductCatalog
    carts: CartStore
    merger: CartMerger
    orders: OrderRepository
    assembler: OrderAssembler
    lifecycle: OrderLifecycle


def build_storefront(settings: Settings, client: redis.Redis | None = None) -> Storefront:
    client = client if client is not None else create_client(settings)

    ledger = StockLedger(client, max_retries=settings.cas_max_retries)
    catalog = ProductCatalog(client, ledger)
    carts = CartStore(
        client,
        catalog,
        ledger,
        ttl_seconds=settings.cart_ttl_seconds,
        max_retries=settings.cas_max_retries,
    )
    orders = OrderRepository(client, max_retries=settings.cas_max_retries)

    storefront = Storefront(
        settings=settings,
        client=client,
        ledger=ledger,
        catalog=catalog,
        carts=carts,
        merger=CartMerger(carts),
        orders=orders,
        assembler=OrderAssembler(
            carts,
            catalog,
            ledger,
            orders,
            PricingPolicy.from_settings(settings),
            client,
            lock_seconds=settings.checkout_lock_seconds,
        ),
        lifecycle=OrderLifecycle(orders, ledger),
    )
    logger.debug("storefront_built", environment=settings.environment, cart_ttl=settings.cart_ttl_seconds)
    return storefront
