"""Application tests for cancelling orders and changing their status."""

import threading

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ordering.order.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from shared.actor import ActorRef
from shared.exceptions import ActorMismatch, NotCancellable, OrderNotFound


@pytest.fixture()
def placed(storefront, make_product, address, user):
    """A pending order for 3 units of a product that had 5 in stock."""
    product = make_product(stock=5)
    storefront.carts.add_line(user, product.id, 3)
    order = storefront.assembler.create_order(
        user, shipping_address=address, payment_method=PaymentMethod.CASH_ON_DELIVERY
    )
    return order, product


class TestCancel:
    def test_cancel_restores_stock(self, storefront, placed, user):
        order, product = placed
        assert storefront.ledger.available(product.id) == 2

        cancelled = storefront.lifecycle.cancel(order.id, "changed my mind", actor=user)

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancel_reason == "changed my mind"
        assert cancelled.cancelled_at is not None
        assert storefront.ledger.available(product.id) == 5
        assert storefront.orders.get(order.id).status == OrderStatus.CANCELLED

    def test_second_cancel_fails_without_restoring_again(self, storefront, placed, user):
        order, product = placed
        storefront.lifecycle.cancel(order.id, actor=user)

        with pytest.raises(NotCancellable):
            storefront.lifecycle.cancel(order.id, actor=user)

        assert storefront.ledger.available(product.id) == 5

    def test_confirmed_order_can_be_cancelled(self, storefront, placed, user):
        order, product = placed
        storefront.lifecycle.update_status(order.id, OrderStatus.CONFIRMED)

        storefront.lifecycle.cancel(order.id, actor=user)

        assert storefront.ledger.available(product.id) == 5

    @pytest.mark.parametrize("status", [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_too_late_to_cancel(self, storefront, placed, user, status):
        order, product = placed
        storefront.lifecycle.update_status(order.id, status)

        with pytest.raises(NotCancellable):
            storefront.lifecycle.cancel(order.id, actor=user)

        assert storefront.ledger.available(product.id) == 2

    def test_other_actor_cannot_cancel(self, storefront, placed):
        order, product = placed

        with pytest.raises(ActorMismatch):
            storefront.lifecycle.cancel(order.id, actor=ActorRef.user("someone-else"))

        assert storefront.orders.get(order.id).status == OrderStatus.PENDING
        assert storefront.ledger.available(product.id) == 2

    def test_admin_cancel_without_actor(self, storefront, placed):
        order, product = placed
        storefront.lifecycle.cancel(order.id, "fraud check")
        assert storefront.ledger.available(product.id) == 5

    def test_unknown_order(self, storefront):
        with pytest.raises(OrderNotFound):
            storefront.lifecycle.cancel("nope")

    def test_concurrent_cancels_restore_once(self, storefront, placed, user):
        order, product = placed
        start = threading.Barrier(4)
        outcomes = []

        def cancel():
            start.wait()
            try:
                storefront.lifecycle.cancel(order.id, actor=user)
                outcomes.append("cancelled")
            except NotCancellable:
                outcomes.append("refused")

        threads = [threading.Thread(target=cancel) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["cancelled", "refused", "refused", "refused"]
        assert storefront.ledger.available(product.id) == 5

    def test_store_failure_during_cancel_changes_nothing(self, storefront, placed, user, monkeypatch):
        order, product = placed
        queue_increment = storefront.ledger.queue_increment
        calls = []

        def flaky_queue_increment(pipe, product_id, amount):
            calls.append(product_id)
            if len(calls) == 1:
                raise RedisConnectionError("store went away")
            return queue_increment(pipe, product_id, amount)

        monkeypatch.setattr(storefront.ledger, "queue_increment", flaky_queue_increment)

        with pytest.raises(RedisConnectionError):
            storefront.lifecycle.cancel(order.id, actor=user)

        assert storefront.orders.get(order.id).status == OrderStatus.PENDING
        assert storefront.ledger.available(product.id) == 2

        storefront.lifecycle.cancel(order.id, actor=user)

        assert storefront.orders.get(order.id).status == OrderStatus.CANCELLED
        assert storefront.ledger.available(product.id) == 5

    def test_cancels_from_two_workers_restore_once(self, storefront, other_worker, placed, user):
        order, product = placed
        start = threading.Barrier(2)
        outcomes = []

        def cancel(lifecycle):
            start.wait()
            try:
                lifecycle.cancel(order.id, actor=user)
                outcomes.append("cancelled")
            except NotCancellable:
                outcomes.append("refused")

        threads = [
            threading.Thread(target=cancel, args=(worker.lifecycle,)) for worker in (storefront, other_worker)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["cancelled", "refused"]
        assert storefront.ledger.available(product.id) == 5

    def test_status_change_between_read_and_write_is_respected(
        self, storefront, other_worker, placed, user, monkeypatch
    ):
        order, product = placed
        cancel = Order.cancel

        def cancel_after_shipping(self, reason=""):
            # Another worker ships the order while this cancellation is in flight
            if not getattr(cancel_after_shipping, "shipped", False):
                cancel_after_shipping.shipped = True
                other_worker.lifecycle.update_status(order.id, OrderStatus.SHIPPED)
            return cancel(self, reason)

        monkeypatch.setattr(Order, "cancel", cancel_after_shipping)

        with pytest.raises(NotCancellable):
            storefront.lifecycle.cancel(order.id, actor=user)

        assert storefront.orders.get(order.id).status == OrderStatus.SHIPPED
        assert storefront.ledger.available(product.id) == 2

    def test_cancel_restores_every_line_exactly(self, storefront, make_product, address, user):
        lamp = make_product(name="Lamp", stock=4)
        desk = make_product(name="Desk", stock=3)
        storefront.carts.add_line(user, lamp.id, 2)
        storefront.carts.add_line(user, desk.id, 1)
        order = storefront.assembler.create_order(
            user, shipping_address=address, payment_method=PaymentMethod.BANK_TRANSFER
        )
        assert (storefront.ledger.available(lamp.id), storefront.ledger.available(desk.id)) == (2, 2)

        storefront.lifecycle.cancel(order.id, actor=user)

        assert (storefront.ledger.available(lamp.id), storefront.ledger.available(desk.id)) == (4, 3)


class TestStockScenario:
    def test_order_then_cancel_round_trip(self, storefront, make_product, address, user):
        product = make_product(stock=5)
        storefront.carts.add_line(user, product.id, 3)

        order = storefront.assembler.create_order(
            user, shipping_address=address, payment_method=PaymentMethod.CREDIT_CARD
        )
        assert storefront.ledger.available(product.id) == 2

        storefront.lifecycle.cancel(order.id, actor=user)
        assert storefront.ledger.available(product.id) == 5
        assert storefront.lifecycle.get(order.id).status == OrderStatus.CANCELLED


class TestAdminStatus:
    def test_update_status_persists_history(self, storefront, placed):
        order, _ = placed
        storefront.lifecycle.update_status(order.id, OrderStatus.SHIPPED, "tracking 123")

        stored = storefront.orders.get(order.id)
        assert stored.status == OrderStatus.SHIPPED
        assert [change.status for change in stored.status_history] == [OrderStatus.PENDING, OrderStatus.SHIPPED]
        assert stored.status_history[-1].note == "tracking 123"

    def test_status_cancelled_does_not_touch_stock(self, storefront, placed):
        order, product = placed
        storefront.lifecycle.update_status(order.id, OrderStatus.CANCELLED)

        assert storefront.orders.get(order.id).cancelled_at is not None
        assert storefront.ledger.available(product.id) == 2

    def test_delivered(self, storefront, placed):
        order, _ = placed
        assert storefront.lifecycle.update_status(order.id, OrderStatus.DELIVERED).delivered_at is not None

    def test_payment_status(self, storefront, placed):
        order, _ = placed
        storefront.lifecycle.update_payment_status(order.id, PaymentStatus.COMPLETED, "txn-9")

        payment = storefront.orders.get(order.id).payment
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.transaction_id == "txn-9"
        assert payment.paid_at is not None


class TestGetOrder:
    def test_owner_can_read(self, storefront, placed, user):
        order, _ = placed
        assert storefront.lifecycle.get(order.id, user).id == order.id

    def test_other_actor_cannot_read(self, storefront, placed, guest):
        order, _ = placed
        with pytest.raises(ActorMismatch):
            storefront.lifecycle.get(order.id, guest)
