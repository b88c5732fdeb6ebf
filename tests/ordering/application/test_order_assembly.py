"""Application tests for turning a cart into an order."""

import threading
from decimal import Decimal

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ordering.order.assembly import PricingPolicy
from ordering.order.order import OrderStatus, PaymentMethod, PaymentStatus
from ordering.order.repository import OrderFilter
from shared.actor import ActorRef
from shared.exceptions import EmptyCart, InsufficientStock, ProductUnavailable


@pytest.fixture()
def place_order(storefront, address):
    def _place(actor, **kwargs):
        kwargs.setdefault("payment_method", PaymentMethod.CREDIT_CARD)
        return storefront.assembler.create_order(actor, shipping_address=address, **kwargs)

    return _place


def _order_count(storefront):
    return storefront.orders.list().pagination.total_items


class TestPricingPolicy:
    policy = PricingPolicy(Decimal("500"), Decimal("29.99"), Decimal("0.20"))

    def test_flat_fee_below_threshold(self):
        assert self.policy.shipping_cost(Decimal("499.99")) == Decimal("29.99")

    def test_free_shipping_at_threshold(self):
        assert self.policy.shipping_cost(Decimal("500.00")) == Decimal("0")

    def test_tax(self):
        assert self.policy.tax(Decimal("33.33")) == Decimal("6.67")


class TestCreateOrder:
    def test_order_from_cart(self, storefront, make_product, place_order, user):
        product = make_product(name="Lamp", price="10.00", stock=5)
        storefront.carts.add_line(user, product.id, 3)

        order = place_order(user, notes="ring twice")

        assert order.status == OrderStatus.PENDING
        assert order.payment.status == PaymentStatus.PENDING
        assert order.owner == user
        assert [(line.product_id, line.name, line.quantity) for line in order.lines] == [(product.id, "Lamp", 3)]
        assert order.subtotal == Decimal("30.00")
        assert order.shipping.cost == Decimal("29.99")
        assert order.tax == Decimal("6.00")
        assert order.total == Decimal("65.99")
        assert order.notes == "ring twice"

    def test_side_effects(self, storefront, make_product, place_order, user):
        product = make_product(stock=5)
        storefront.carts.add_line(user, product.id, 3)

        order = place_order(user)

        assert storefront.ledger.available(product.id) == 2
        assert storefront.carts.get(user).is_empty
        assert storefront.orders.get(order.id) == order
        assert storefront.orders.find_by_number(order.order_number).id == order.id

    def test_free_shipping_over_threshold(self, storefront, make_product, place_order, user):
        product = make_product(price="250.00", stock=5)
        storefront.carts.add_line(user, product.id, 2)

        order = place_order(user)

        assert order.shipping.cost == Decimal("0")
        assert order.total == Decimal("600.00")

    def test_reprices_at_order_time(self, storefront, make_product, place_order, user):
        product = make_product(price="10.00", stock=5)
        storefront.carts.add_line(user, product.id, 2)
        storefront.catalog.update_pricing(product.id, Decimal("12.50"))

        order = place_order(user)

        assert order.lines[0].unit_price == Decimal("12.50")
        assert order.subtotal == Decimal("25.00")

    def test_guest_can_order(self, storefront, make_product, place_order, guest):
        product = make_product(stock=1)
        storefront.carts.add_line(guest, product.id, 1)
        assert place_order(guest).owner == guest


class TestValidationFailures:
    def test_empty_cart(self, storefront, place_order, user):
        with pytest.raises(EmptyCart):
            place_order(user)
        assert _order_count(storefront) == 0

    def test_product_deactivated_after_adding(self, storefront, make_product, place_order, user):
        fine = make_product(name="Fine", stock=5)
        gone = make_product(name="Gone", stock=5)
        storefront.carts.add_line(user, fine.id, 1)
        storefront.carts.add_line(user, gone.id, 1)
        storefront.catalog.set_active(gone.id, False)

        with pytest.raises(ProductUnavailable) as exc:
            place_order(user)

        assert exc.value.product_id == gone.id
        assert storefront.ledger.available(fine.id) == 5
        assert len(storefront.carts.get(user).lines) == 2

    def test_stock_dropped_after_adding(self, storefront, make_product, place_order, user):
        product = make_product(stock=5)
        storefront.carts.add_line(user, product.id, 4)
        storefront.ledger.set_quantity(product.id, 3)

        with pytest.raises(InsufficientStock) as exc:
            place_order(user)

        assert exc.value.product_id == product.id
        assert storefront.ledger.available(product.id) == 3
        assert _order_count(storefront) == 0


class TestAtomicity:
    def test_failure_at_last_line_restores_earlier_lines(self, storefront, make_product, place_order, monkeypatch, user):
        first = make_product(name="First", stock=5)
        second = make_product(name="Second", stock=5)
        third = make_product(name="Third", stock=5)
        for product in (first, second, third):
            storefront.carts.add_line(user, product.id, 2)
        cart_before = storefront.carts.get(user)

        decrement = storefront.ledger.decrement

        def racing_decrement(product_id, amount):
            # Another buyer takes most of the third product between validation and commit
            if product_id == third.id:
                storefront.ledger.set_quantity(third.id, 1)
            return decrement(product_id, amount)

        monkeypatch.setattr(storefront.ledger, "decrement", racing_decrement)

        with pytest.raises(InsufficientStock) as exc:
            place_order(user)

        assert exc.value.product_id == third.id
        assert storefront.ledger.available(first.id) == 5
        assert storefront.ledger.available(second.id) == 5
        assert storefront.ledger.available(third.id) == 1
        assert _order_count(storefront) == 0
        assert storefront.carts.get(user).lines == cart_before.lines

    def test_store_failure_while_saving_rolls_back_stock(
        self, storefront, make_product, place_order, monkeypatch, user
    ):
        product = make_product(stock=5)
        storefront.carts.add_line(user, product.id, 2)

        def broken_add(order):
            raise RedisConnectionError("store went away")

        monkeypatch.setattr(storefront.orders, "add", broken_add)

        with pytest.raises(RedisConnectionError):
            place_order(user)

        assert storefront.ledger.available(product.id) == 5
        assert storefront.carts.get(user).quantity_of(product.id) == 2

    def test_failure_clearing_cart_removes_order(self, storefront, make_product, place_order, monkeypatch, user):
        product = make_product(stock=5)
        storefront.carts.add_line(user, product.id, 2)

        def broken_remove_ordered(actor, ordered):
            raise RedisConnectionError("store went away")

        monkeypatch.setattr(storefront.carts, "remove_ordered", broken_remove_ordered)

        with pytest.raises(RedisConnectionError):
            place_order(user)

        monkeypatch.undo()
        assert storefront.ledger.available(product.id) == 5
        assert _order_count(storefront) == 0
        assert storefront.orders.list(OrderFilter(owner=user)).orders == []
        assert storefront.carts.get(user).quantity_of(product.id) == 2


class TestConcurrentCheckout:
    def test_last_unit_goes_to_exactly_one_buyer(self, storefront, make_product, place_order):
        product = make_product(stock=1)
        buyers = [ActorRef.user("alice"), ActorRef.user("bob")]
        for buyer in buyers:
            storefront.carts.add_line(buyer, product.id, 1)

        start = threading.Barrier(len(buyers))
        placed = []
        rejected = []

        def checkout(buyer):
            start.wait()
            try:
                placed.append(place_order(buyer))
            except InsufficientStock:
                rejected.append(buyer)

        threads = [threading.Thread(target=checkout, args=(buyer,)) for buyer in buyers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(placed) == 1
        assert len(rejected) == 1
        assert storefront.ledger.available(product.id) == 0
        assert storefront.carts.get(rejected[0]).quantity_of(product.id) == 1

    def test_same_actor_cannot_spend_cart_twice(self, storefront, make_product, place_order, user):
        product = make_product(stock=10)
        storefront.carts.add_line(user, product.id, 2)

        start = threading.Barrier(2)
        placed = []
        empty = []

        def checkout():
            start.wait()
            try:
                placed.append(place_order(user))
            except EmptyCart:
                empty.append(1)

        threads = [threading.Thread(target=checkout) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(placed) == 1
        assert len(empty) == 1
        assert storefront.ledger.available(product.id) == 8

    def test_same_actor_on_two_workers_places_one_order(
        self, storefront, other_worker, make_product, address, user
    ):
        product = make_product(stock=10)
        storefront.carts.add_line(user, product.id, 2)

        start = threading.Barrier(2)
        placed = []
        empty = []

        def checkout(assembler):
            start.wait()
            try:
                placed.append(
                    assembler.create_order(user, shipping_address=address, payment_method=PaymentMethod.CREDIT_CARD)
                )
            except EmptyCart:
                empty.append(1)

        threads = [
            threading.Thread(target=checkout, args=(worker.assembler,)) for worker in (storefront, other_worker)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(placed) == 1
        assert len(empty) == 1
        assert storefront.ledger.available(product.id) == 8
        assert _order_count(storefront) == 1


class TestCartEditsDuringCheckout:
    @pytest.fixture()
    def shopping_during_checkout(self, storefront, make_product, monkeypatch, user):
        """Adds two desks to the cart while the order's stock is being taken."""
        desk = make_product(name="Desk", stock=5)
        decrement = storefront.ledger.decrement

        def decrement_while_shopping(product_id, amount):
            storefront.carts.add_line(user, desk.id, 2)
            return decrement(product_id, amount)

        monkeypatch.setattr(storefront.ledger, "decrement", decrement_while_shopping)
        return desk

    def test_line_added_while_placing_is_kept(
        self, storefront, make_product, place_order, shopping_during_checkout, user
    ):
        lamp = make_product(name="Lamp", stock=5)
        storefront.carts.add_line(user, lamp.id, 1)

        order = place_order(user)

        desk = shopping_during_checkout
        assert [line.product_id for line in order.lines] == [lamp.id]
        cart = storefront.carts.get(user)
        assert [(line.product_id, line.quantity) for line in cart.lines] == [(desk.id, 2)]
        assert storefront.ledger.available(lamp.id) == 4
        assert storefront.ledger.available(desk.id) == 5

    def test_rolled_back_checkout_keeps_both_lines(
        self, storefront, make_product, place_order, shopping_during_checkout, monkeypatch, user
    ):
        lamp = make_product(name="Lamp", stock=5)
        storefront.carts.add_line(user, lamp.id, 1)

        def broken_add(order):
            raise RedisConnectionError("store went away")

        monkeypatch.setattr(storefront.orders, "add", broken_add)

        with pytest.raises(RedisConnectionError):
            place_order(user)

        desk = shopping_during_checkout
        cart = storefront.carts.get(user)
        assert cart.quantity_of(lamp.id) == 1
        assert cart.quantity_of(desk.id) == 2
        assert storefront.ledger.available(lamp.id) == 5
