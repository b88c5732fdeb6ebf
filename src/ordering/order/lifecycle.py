"""OrderLifecycle: status changes and cancellation of placed orders.

Every change is a conditional write on the order's key (see
``OrderRepository.update``), so it holds across worker processes. A
cancellation commits the new status and the returned stock in one
transaction: either both land or neither does.
"""

import structlog
from redis.client import Pipeline

from inventory.stock.ledger import StockLedger
from ordering.order.order import Order, OrderStatus, PaymentStatus
from ordering.order.repository import OrderFilter, OrderPage, OrderRepository, OrderStats
from shared.actor import ActorRef
from shared.exceptions import ActorMismatch

logger = structlog.get_logger(__name__)


def _check_owner(order: Order, actor: ActorRef | None) -> None:
    if actor is not None and not order.belongs_to(actor):
        raise ActorMismatch(order.id)


class OrderLifecycle:
    def __init__(self, orders: OrderRepository, ledger: StockLedger):
        self._orders = orders
        self._ledger = ledger

    def get(self, order_id: str, actor: ActorRef | None = None) -> Order:
        """Fetch an order. When ``actor`` is given the order must be theirs."""
        order = self._orders.get(order_id)
        _check_owner(order, actor)
        return order

    def update_status(self, order_id: str, new_status: OrderStatus, note: str = "") -> Order:
        """Administrative override: sets any status without checking the transition.

        Stock is not touched, even when the target status is ``cancelled``; use
        ``cancel`` for a cancellation that gives the stock back.
        """
        order = self._orders.update(order_id, lambda current: current.update_status(OrderStatus(new_status), note))
        logger.info(
            "order_status_updated",
            order_id=order_id,
            previous_status=order.status_history[-2].status.value,
            status=order.status.value,
            note=note,
        )
        return order

    def cancel(self, order_id: str, reason: str = "", actor: ActorRef | None = None) -> Order:
        """Cancel a pending or confirmed order and give its stock back."""

        def change(order: Order) -> None:
            _check_owner(order, actor)
            order.cancel(reason)

        def restock(pipe: Pipeline, order: Order) -> None:
            for line in order.lines:
                self._ledger.queue_increment(pipe, line.product_id, line.quantity)

        order = self._orders.update(order_id, change, also=restock)
        logger.info(
            "order_cancelled",
            order_id=order_id,
            actor=actor.key if actor else None,
            reason=reason,
            restored={line.product_id: line.quantity for line in order.lines},
        )
        return order

    def update_payment_status(
        self, order_id: str, status: PaymentStatus, transaction_id: str | None = None
    ) -> Order:
        order = self._orders.update(
            order_id, lambda current: current.record_payment_status(PaymentStatus(status), transaction_id)
        )
        logger.info("order_payment_status_updated", order_id=order_id, payment_status=order.payment.status.value)
        return order

    def list_orders(self, criteria: OrderFilter | None = None, page: int = 1, limit: int = 10) -> OrderPage:
        return self._orders.list(criteria, page=page, limit=limit)

    def stats(self) -> OrderStats:
        return self._orders.stats()
