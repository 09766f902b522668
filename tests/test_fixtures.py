"""Tests for dbtestbed.fixtures."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as ModelSession
from sqlmodel import select

from dbtestbed.assertions import assert_count, assert_count_async
from dbtestbed.errors import NotInitializedError
from dbtestbed.fixtures import CollectionDbFixture, IsolatedDbFixture, SharedDbFixture
from dbtestbed.session import save_changes
from sample_models import Order, OrderItem, Product, User


class ShopFixture(SharedDbFixture):
    def seed_data(self, session):
        john = User(name="John", email="john@example.com")
        widget = Product(name="Widget", sku="WDG-001", price=9.99)
        order = Order(user=john, total=9.99)
        session.add_all([john, widget, order, OrderItem(order=order, product=widget)])


@pytest.fixture(scope="module")
def shop():
    with ShopFixture() as fixture:
        yield fixture


class TestSharedDbFixture:
    def test_seed_visible_to_new_sessions(self, shop):
        with shop.create_session() as session:
            assert session.exec(select(User)).one().name == "John"

    def test_sessions_are_independent(self, shop):
        with shop.create_session() as first, shop.create_session() as second:
            assert isinstance(first, ModelSession)
            assert first is not second
            assert first.exec(select(User)).one() is not second.exec(select(User)).one()

    def test_constraints_enforced(self, shop):
        with shop.create_session() as session:
            session.add(Order(user_id=999, total=1.0))
            with pytest.raises(IntegrityError):
                save_changes(session)

    def test_configure(self):
        with SharedDbFixture(
            configure=lambda o: setattr(o, "enable_sensitive_data_logging", True)
        ) as fixture:
            assert fixture.options.enable_sensitive_data_logging is True
            assert fixture.engine.hide_parameters is False


class TestClearAndReset:
    def test_clear_all_tables_keeps_schema(self):
        with ShopFixture() as fixture:
            fixture.clear_all_tables()
            with fixture.create_session() as session:
                for model in (User, Product, Order, OrderItem):
                    assert_count(session, model, 0)
                session.add(User(name="New", email="new@example.com"))
                save_changes(session)

    def test_reset_database_reseeds(self):
        with ShopFixture() as fixture:
            with fixture.create_session() as session:
                session.add(User(name="Extra", email="extra@example.com"))
                save_changes(session)
            fixture.reset_database()
            with fixture.create_session() as session:
                assert_count(session, User, 1)
                assert_count(session, OrderItem, 1)

    def test_dispose_is_idempotent(self):
        fixture = SharedDbFixture()
        fixture.dispose()
        fixture.dispose()
        assert fixture.disposed


class TestCollectionDbFixture:
    def test_is_shared_fixture(self):
        with CollectionDbFixture() as fixture:
            assert isinstance(fixture, SharedDbFixture)
            with fixture.create_session() as session:
                assert_count(session, User, 0)


async def _seed_products(session):
    session.add_all(
        [
            Product(name="Widget", sku="WDG-001", price=9.99),
            Product(name="Gadget", sku="GDG-001", price=19.99),
        ]
    )


class TestIsolatedDbFixture:
    async def test_initialize_seeds(self):
        fixture = IsolatedDbFixture(seed_async=_seed_products)
        try:
            await fixture.initialize()
            async with fixture.create_session() as session:
                await assert_count_async(session, Product, 2)
        finally:
            await fixture.dispose()

    async def test_initialize_once(self):
        async with IsolatedDbFixture(seed_async=_seed_products) as fixture:
            await fixture.initialize()
            assert fixture.initialized
            async with fixture.create_session() as session:
                await assert_count_async(session, Product, 2)

    async def test_session_before_initialize(self):
        fixture = IsolatedDbFixture()
        try:
            with pytest.raises(NotInitializedError):
                fixture.create_session()
        finally:
            await fixture.dispose()

    async def test_without_seed(self):
        async with IsolatedDbFixture() as fixture:
            async with fixture.create_session() as session:
                await assert_count_async(session, User, 0)
