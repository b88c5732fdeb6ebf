from decimal import Decimal
from pathlib import Path

import fakeredis
import pytest

from ordering.domain import build_storefront
from shared.actor import ActorRef
from shared.config import Settings


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture()
def settings():
    return Settings(environment="test", log_level="WARNING")


@pytest.fixture()
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture()
def redis_client(fake_server):
    """A fresh in-memory store per test."""
    client = fakeredis.FakeRedis(server=fake_server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def storefront(settings, redis_client):
    return build_storefront(settings, client=redis_client)


@pytest.fixture()
def other_worker(settings, fake_server):
    """A second storefront on its own connection to the same store, as another worker process would have."""
    client = fakeredis.FakeRedis(server=fake_server, decode_responses=True)
    yield build_storefront(settings, client=client)
    client.close()


@pytest.fixture()
def make_product(storefront):
    """Register a product and seed its stock."""

    def _make(name="Widget", sku=None, price="10.00", discount_price=None, stock=10, is_active=True):
        return storefront.catalog.register(
            name=name,
            sku=sku or f"SKU-{name.upper().replace(' ', '-')}",
            price=Decimal(price),
            discount_price=Decimal(discount_price) if discount_price else None,
            initial_stock=stock,
            is_active=is_active,
        )

    return _make


@pytest.fixture()
def user():
    return ActorRef.user("42")


@pytest.fixture()
def guest():
    return ActorRef.session("sess-abc")
