from decimal import Decimal

import pytest

from ordering.order.order import Address, Order, OrderLine, PaymentMethod
from shared.actor import ActorRef


@pytest.fixture()
def address():
    return Address(
        first_name="Jane",
        last_name="Doe",
        street="123 Main St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="US",
    )


@pytest.fixture()
def order_factory(address):
    def _build(owner=None, lines=None, shipping_cost="29.99", tax="2.00"):
        return Order.create(
            owner=owner or ActorRef.user("u-1"),
            lines=lines or [OrderLine.priced("p-1", "Widget", 1, Decimal("10.00"))],
            shipping_address=address,
            billing_address=None,
            payment_method=PaymentMethod.CREDIT_CARD,
            shipping_cost=Decimal(shipping_cost),
            tax=Decimal(tax),
        )

    return _build
