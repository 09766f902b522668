"""Shared fixtures for the dbtestbed test suite.

Provides sync and async test databases on the sample schema plus a few
factories for sample rows.
"""

from __future__ import annotations

import pytest

from dbtestbed.factory import create_test_db, create_test_db_async
from sample_models import Order, OrderItem, Product, User


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep TESTBED_* variables from the outer environment out of tests."""
    for name in ("TESTBED_PROVIDER", "TESTBED_LOG_TO_CONSOLE", "TESTBED_DATABASE_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_user():
    def _make(name: str = "John", email: str | None = None) -> User:
        return User(name=name, email=email or f"{name.lower()}@example.com")

    return _make


@pytest.fixture
def make_product():
    def _make(name: str = "Widget", sku: str = "W-0001", price: float = 9.99) -> Product:
        return Product(name=name, sku=sku, price=price)

    return _make


@pytest.fixture
def database():
    """An in-memory test database on the sample schema."""
    with create_test_db() as testdb:
        yield testdb


@pytest.fixture
def session(database):
    return database.session


@pytest.fixture
async def async_database():
    async with await create_test_db_async() as testdb:
        yield testdb


@pytest.fixture
async def async_session(async_database):
    return async_database.session


@pytest.fixture
def seeded_database():
    """John with one order of two widgets, plus an unused gadget."""

    def _seed(session):
        john = User(name="John", email="john@example.com")
        widget = Product(name="Widget", sku="W-0001", price=10.0)
        gadget = Product(name="Gadget", sku="G-0001", price=25.0)
        order = Order(user=john, total=20.0)
        order.items.append(OrderItem(product=widget, quantity=2, unit_price=10.0))
        session.add_all([john, widget, gadget, order])

    with create_test_db(seed=_seed) as testdb:
        yield testdb
