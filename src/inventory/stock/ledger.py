"""StockLedger: the authoritative available-quantity count per product.

Each product's stock is a single integer key in the store. Decrements run as an
optimistic transaction: the key is watched, the current value checked, and the
new value written inside ``MULTI``/``EXEC``. If another client touched the key
in between, ``EXEC`` aborts and the check is repeated against the fresh value,
so two decrements whose sum exceeds availability can never both commit.
"""

import redis
import structlog
from redis.client import Pipeline
from redis.exceptions import WatchError

from shared.exceptions import InsufficientStock, InvalidQuantity, StockContention
from shared.redis import key

logger = structlog.get_logger(__name__)


class StockLedger:
    def __init__(self, client: redis.Redis, max_retries: int = 50):
        self._redis = client
        self._max_retries = max_retries

    @staticmethod
    def _key(product_id: str) -> str:
        return key("stock", product_id)

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 1:
            raise InvalidQuantity({"amount": [f"Amount must be a positive integer, got {amount!r}"]})

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def available(self, product_id: str) -> int:
        value = self._redis.get(self._key(product_id))
        return int(value) if value is not None else 0

    def exists(self, product_id: str) -> bool:
        return bool(self._redis.exists(self._key(product_id)))

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def set_quantity(self, product_id: str, quantity: int) -> int:
        """Overwrite the stock count. Used for seeding and stock takes."""
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
            raise InvalidQuantity({"quantity": [f"Stock quantity must be >= 0, got {quantity!r}"]})

        previous = self.available(product_id)
        self._redis.set(self._key(product_id), quantity)
        logger.info("stock_set", product_id=product_id, previous=previous, quantity=quantity)
        return quantity

    def decrement(self, product_id: str, amount: int) -> int:
        """Take ``amount`` units out of stock and return the new quantity."""
        self._check_amount(amount)
        stock_key = self._key(product_id)

        with self._redis.pipeline() as pipe:
            for _ in range(self._max_retries):
                try:
                    pipe.watch(stock_key)
                    raw = pipe.get(stock_key)
                    current = int(raw) if raw is not None else 0
                    if current < amount:
                        raise InsufficientStock(product_id, available=current, requested=amount)

                    pipe.multi()
                    pipe.set(stock_key, current - amount)
                    pipe.execute()
                except WatchError:
                    logger.debug("stock_decrement_retry", product_id=product_id)
                    continue
                finally:
                    pipe.reset()

                logger.info(
                    "stock_decremented",
                    product_id=product_id,
                    amount=amount,
                    previous=current,
                    quantity=current - amount,
                )
                return current - amount

        logger.error("stock_decrement_contention", product_id=product_id, retries=self._max_retries)
        raise StockContention({"product_id": [f"Stock for {product_id} is under heavy contention, retry later"]})

    def increment(self, product_id: str, amount: int) -> int:
        """Return ``amount`` units to stock. There is no upper bound."""
        self._check_amount(amount)
        quantity = int(self._redis.incrby(self._key(product_id), amount))
        logger.info("stock_incremented", product_id=product_id, amount=amount, quantity=quantity)
        return quantity

    def queue_increment(self, pipe: Pipeline, product_id: str, amount: int) -> None:
        """Queue an increment on a pipeline already in ``MULTI`` so it commits with the caller's writes."""
        self._check_amount(amount)
        pipe.incrby(self._key(product_id), amount)
