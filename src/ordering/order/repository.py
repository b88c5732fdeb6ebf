"""Order persistence, lookups and listing."""

import math
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

import redis
import structlog
from pydantic import BaseModel, Field
from redis.client import Pipeline
from redis.exceptions import WatchError

from ordering.order.order import Order, OrderStatus, PaymentStatus, generate_order_number
from shared.actor import ActorRef
from shared.exceptions import OrderContention, OrderNotFound
from shared.money import ZERO
from shared.redis import key

logger = structlog.get_logger(__name__)

_ALL_ORDERS = key("orders", "all")


class OrderFilter(BaseModel):
    owner: ActorRef | None = None
    status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class OrderPage(BaseModel):
    orders: list[Order]
    pagination: Pagination


class StatusStats(BaseModel):
    status: OrderStatus
    count: int
    total_amount: Decimal


class OrderStats(BaseModel):
    by_status: list[StatusStats]
    total_orders: int
    total_revenue: Decimal = Field(description="Sum of totals of all orders that were not cancelled")


class OrderRepository:
    def __init__(self, client: redis.Redis, max_retries: int = 50):
        self._redis = client
        self._max_retries = max_retries

    @staticmethod
    def _key(order_id: str) -> str:
        return key("order", order_id)

    @staticmethod
    def _owner_index(owner: ActorRef) -> str:
        return key("orders", "owner", owner.key)

    @staticmethod
    def _number_key(order_number: str) -> str:
        return key("order_number", order_number)

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def add(self, order: Order) -> Order:
        """Persist a new order, re-rolling its order number until it is unique."""
        while not self._redis.set(self._number_key(order.order_number), order.id, nx=True):
            logger.debug("order_number_collision", order_number=order.order_number)
            order.order_number = generate_order_number()

        score = order.created_at.timestamp()
        with self._redis.pipeline() as pipe:
            pipe.set(self._key(order.id), order.model_dump_json())
            pipe.zadd(_ALL_ORDERS, {order.id: score})
            pipe.zadd(self._owner_index(order.owner), {order.id: score})
            pipe.execute()
        return order

    def update(
        self,
        order_id: str,
        change: Callable[[Order], None],
        also: Callable[[Pipeline, Order], None] | None = None,
    ) -> Order:
        """Apply ``change`` to the stored order and write it back unless another writer got there first.

        The order key is watched while ``change`` runs; a concurrent write aborts
        the transaction and the cycle restarts against the newer order, so checks
        made by ``change`` (e.g. "still cancellable") hold at commit time.
        ``also`` may queue further commands that commit atomically with the order.
        """
        order_key = self._key(order_id)

        with self._redis.pipeline() as pipe:
            for _ in range(self._max_retries):
                try:
                    pipe.watch(order_key)
                    raw = pipe.get(order_key)
                    if raw is None:
                        raise OrderNotFound(order_id)
                    order = Order.model_validate_json(raw)
                    change(order)

                    pipe.multi()
                    pipe.set(order_key, order.model_dump_json())
                    if also is not None:
                        also(pipe, order)
                    pipe.execute()
                except WatchError:
                    logger.debug("order_write_retry", order_id=order_id)
                    continue
                finally:
                    pipe.reset()

                return order

        logger.error("order_write_contention", order_id=order_id, retries=self._max_retries)
        raise OrderContention({"order_id": [f"Order {order_id} is being modified concurrently, retry later"]})

    def remove(self, order: Order) -> None:
        """Erase an order that never became visible, e.g. when a checkout is rolled back."""
        with self._redis.pipeline() as pipe:
            pipe.delete(self._key(order.id))
            pipe.delete(self._number_key(order.order_number))
            pipe.zrem(_ALL_ORDERS, order.id)
            pipe.zrem(self._owner_index(order.owner), order.id)
            pipe.execute()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def find(self, order_id: str) -> Order | None:
        raw = self._redis.get(self._key(order_id))
        if raw is None:
            return None
        return Order.model_validate_json(raw)

    def get(self, order_id: str) -> Order:
        order = self.find(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def find_by_number(self, order_number: str) -> Order | None:
        order_id = self._redis.get(self._number_key(order_number))
        return self.find(order_id) if order_id else None

    def _load_many(self, order_ids: list[str]) -> list[Order]:
        if not order_ids:
            return []
        raws = self._redis.mget([self._key(order_id) for order_id in order_ids])
        return [Order.model_validate_json(raw) for raw in raws if raw is not None]

    def _candidate_ids(self, criteria: OrderFilter) -> list[str]:
        index = self._owner_index(criteria.owner) if criteria.owner else _ALL_ORDERS
        upper = criteria.created_to.timestamp() if criteria.created_to else "+inf"
        lower = criteria.created_from.timestamp() if criteria.created_from else "-inf"
        return list(self._redis.zrevrangebyscore(index, upper, lower))

    def list(self, criteria: OrderFilter | None = None, page: int = 1, limit: int = 10) -> OrderPage:
        """Orders matching ``criteria``, newest first, one page at a time."""
        criteria = criteria or OrderFilter()
        page = max(page, 1)
        limit = max(limit, 1)

        orders = self._load_many(self._candidate_ids(criteria))
        if criteria.status is not None:
            orders = [order for order in orders if order.status == criteria.status]
        if criteria.payment_status is not None:
            orders = [order for order in orders if order.payment.status == criteria.payment_status]

        total = len(orders)
        start = (page - 1) * limit
        return OrderPage(
            orders=orders[start : start + limit],
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / limit),
                total_items=total,
                items_per_page=limit,
            ),
        )

    def stats(self) -> OrderStats:
        orders = self._load_many(list(self._redis.zrange(_ALL_ORDERS, 0, -1)))

        grouped: dict[OrderStatus, StatusStats] = {}
        for order in orders:
            entry = grouped.setdefault(order.status, StatusStats(status=order.status, count=0, total_amount=ZERO))
            entry.count += 1
            entry.total_amount += order.total

        revenue = sum((order.total for order in orders if order.status != OrderStatus.CANCELLED), ZERO)
        return OrderStats(
            by_status=[grouped[status] for status in OrderStatus if status in grouped],
            total_orders=len(orders),
            total_revenue=revenue,
        )
