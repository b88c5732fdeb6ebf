"""CartStore: per-actor cart snapshots in an expiring key-value store.

Each actor has exactly one entry, ``cart:<kind>:<id>``, holding the full JSON
snapshot with a TTL. Mutations are read-modify-write cycles on that single key
guarded by ``WATCH``: if another writer replaced the snapshot in the meantime
the cycle restarts against the newer snapshot, so concurrent edits of the same
cart are applied one after the other instead of overwriting each other.

Signed-in users may also keep a copy without expiry under ``saved_cart:user:<id>``.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import redis
import structlog
from redis.exceptions import WatchError

from catalogue.product.product import ProductView
from inventory.stock.ledger import StockLedger
from ordering.cart.cart import Cart, CartLine, recompute_totals
from shared.actor import ActorRef
from shared.exceptions import (
    CartContention,
    InvalidActor,
    InvalidQuantity,
    LineNotFound,
    OutOfStock,
    ProductUnavailable,
)
from shared.redis import key

logger = structlog.get_logger(__name__)


class ProductLookup(Protocol):
    def get_product(self, product_id: str) -> ProductView | None: ...


def _require_int(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidQuantity({"quantity": [f"Quantity must be an integer, got {quantity!r}"]})


class CartStore:
    def __init__(
        self,
        client: redis.Redis,
        catalog: ProductLookup,
        ledger: StockLedger,
        ttl_seconds: int = 3600,
        max_retries: int = 50,
    ):
        self._redis = client
        self._catalog = catalog
        self._ledger = ledger
        self._ttl = ttl_seconds
        self._max_retries = max_retries

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    @staticmethod
    def _key(actor: ActorRef) -> str:
        return key("cart", actor.key)

    # -------------------------------------------------------------------
    # Snapshot plumbing
    # -------------------------------------------------------------------
    def _decode(self, raw: str | None) -> Cart | None:
        if raw is None:
            return None
        cart = Cart.model_validate_json(raw)
        if cart.is_expired():
            return None
        return cart

    def _stamp(self, cart: Cart, version: int) -> Cart:
        now = datetime.now(UTC)
        return recompute_totals(cart).model_copy(
            update={
                "last_updated": now,
                "expires_at": now + timedelta(seconds=self._ttl),
                "version": version,
            }
        )

    def _mutate(self, actor: ActorRef, change: Callable[[Cart], Cart]) -> Cart:
        """Apply ``change`` to the current snapshot and write the result back atomically.

        ``change`` may raise to abort without writing, or return the snapshot it
        was given to signal that nothing changed.
        """
        cart_key = self._key(actor)

        with self._redis.pipeline() as pipe:
            for _ in range(self._max_retries):
                try:
                    pipe.watch(cart_key)
                    current = self._decode(pipe.get(cart_key)) or Cart.empty(actor, self._ttl)
                    updated = change(current)
                    if updated is current:
                        return current

                    snapshot = self._stamp(updated, current.version + 1)
                    pipe.multi()
                    pipe.set(cart_key, snapshot.model_dump_json(), ex=self._ttl)
                    pipe.execute()
                except WatchError:
                    logger.debug("cart_write_retry", actor=actor.key)
                    continue
                finally:
                    pipe.reset()

                return snapshot

        logger.error("cart_write_contention", actor=actor.key, retries=self._max_retries)
        raise CartContention({"cart": ["The cart is being modified concurrently, retry later"]})

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, actor: ActorRef) -> Cart:
        """Return the actor's live cart, creating and persisting an empty one if needed."""
        cart_key = self._key(actor)
        cart = self._decode(self._redis.get(cart_key))
        if cart is not None:
            return cart

        fresh = self._stamp(Cart.empty(actor, self._ttl), version=1)
        if self._redis.set(cart_key, fresh.model_dump_json(), ex=self._ttl, nx=True):
            logger.debug("cart_created", actor=actor.key)
            return fresh

        # Lost the race against another creator or an expired leftover; read again.
        cart = self._decode(self._redis.get(cart_key))
        if cart is not None:
            return cart
        return self.clear(actor)

    def ttl(self, actor: ActorRef) -> int:
        """Seconds left before the actor's cart expires (negative when absent)."""
        return int(self._redis.ttl(self._key(actor)))

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add_line(self, actor: ActorRef, product_id: str, quantity: int) -> Cart:
        _require_int(quantity)
        if quantity < 1:
            raise InvalidQuantity({"quantity": ["Quantity must be at least 1"]})

        product = self._catalog.get_product(product_id)
        if product is None or not product.is_active:
            raise ProductUnavailable(product_id)

        def change(cart: Cart) -> Cart:
            wanted = cart.quantity_of(product_id) + quantity
            available = self._ledger.available(product_id)
            if available < wanted:
                raise OutOfStock(product_id, available=available, requested=wanted)

            return cart.with_line_added(
                CartLine(
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=product.final_price,
                    display_name=product.name,
                    image_ref=product.image_ref,
                )
            )

        cart = self._mutate(actor, change)
        logger.info("cart_line_added", actor=actor.key, product_id=product_id, quantity=quantity)
        return cart

    def update_line(self, actor: ActorRef, product_id: str, quantity: int) -> Cart:
        """Set a line's quantity. Zero or less removes the line."""
        _require_int(quantity)
        if quantity <= 0:
            return self.remove_line(actor, product_id)

        def change(cart: Cart) -> Cart:
            if cart.find_line(product_id) is None:
                raise LineNotFound(product_id)
            available = self._ledger.available(product_id)
            if available < quantity:
                raise OutOfStock(product_id, available=available, requested=quantity)
            return cart.with_quantity(product_id, quantity)

        cart = self._mutate(actor, change)
        logger.info("cart_line_updated", actor=actor.key, product_id=product_id, quantity=quantity)
        return cart

    def remove_line(self, actor: ActorRef, product_id: str) -> Cart:
        def change(cart: Cart) -> Cart:
            if cart.find_line(product_id) is None:
                return cart
            return cart.without_line(product_id)

        cart = self._mutate(actor, change)
        logger.info("cart_line_removed", actor=actor.key, product_id=product_id)
        return cart

    def clear(self, actor: ActorRef) -> Cart:
        cart = self._mutate(actor, lambda current: current.without_lines())
        logger.info("cart_cleared", actor=actor.key)
        return cart

    def remove_ordered(self, actor: ActorRef, ordered: Cart) -> Cart:
        """Take the lines of an ordered snapshot out of the actor's cart.

        If the cart is still at the snapshot's version it is emptied. Otherwise
        it was edited while the order was being placed, and only the ordered
        quantities are subtracted so that the newer edits survive.
        """

        def change(current: Cart) -> Cart:
            if current.version == ordered.version:
                return current.without_lines()
            cart = current
            for line in ordered.lines:
                cart = cart.with_quantity(line.product_id, cart.quantity_of(line.product_id) - line.quantity)
            return cart

        cart = self._mutate(actor, change)
        logger.info("cart_ordered_lines_removed", actor=actor.key, lines=len(ordered.lines), version=cart.version)
        return cart

    def put_back(self, actor: ActorRef, ordered: Cart) -> Cart:
        """Add an ordered snapshot's lines back, e.g. when a checkout is rolled back.

        Quantities are added onto whatever the cart holds now. No stock check
        is made; the units are the ones the actor already had in the cart.
        """

        def change(current: Cart) -> Cart:
            cart = current
            for line in ordered.lines:
                cart = cart.with_line_added(line)
            return cart

        cart = self._mutate(actor, change)
        logger.info("cart_lines_put_back", actor=actor.key, lines=len(ordered.lines))
        return cart

    def discard(self, actor: ActorRef) -> None:
        """Drop the actor's entry entirely."""
        self._redis.delete(self._key(actor))
        logger.info("cart_discarded", actor=actor.key)

    # -------------------------------------------------------------------
    # Durable copies
    # -------------------------------------------------------------------
    @staticmethod
    def _saved_key(actor: ActorRef) -> str:
        return key("saved_cart", actor.key)

    def save_durable(self, actor: ActorRef) -> Cart | None:
        """Copy a signed-in user's cart to a key without expiry.

        Returns the saved snapshot, or ``None`` when the cart is empty and
        nothing was written. Anonymous sessions cannot save.
        """
        if not actor.is_user:
            raise InvalidActor({"actor": ["Only signed-in users can save their cart"]})

        cart = self.get(actor)
        if cart.is_empty:
            logger.debug("cart_save_skipped_empty", actor=actor.key)
            return None

        self._redis.set(self._saved_key(actor), cart.model_dump_json())
        logger.info("cart_saved", actor=actor.key, lines=len(cart.lines), total_amount=str(cart.total_amount))
        return cart

    def saved(self, actor: ActorRef) -> Cart | None:
        raw = self._redis.get(self._saved_key(actor))
        return Cart.model_validate_json(raw) if raw is not None else None
