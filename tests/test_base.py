"""Tests for DbTestBase: per-test databases with real constraints."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as ModelSession
from sqlmodel import select

from dbtestbed.assertions import assert_count, assert_exists, assert_save_fails
from dbtestbed.base import DbTestBase
from dbtestbed.config import DbProvider
from dbtestbed.session import save_changes
from sample_models import Order, OrderItem, Product, User


class TestBasicUsage(DbTestBase):
    def seed(self, session):
        session.add(User(id=1, name="John Doe", email="john@example.com"))
        session.add_all(
            [
                Product(id=1, name="Widget", sku="WDG-001", price=9.99),
                Product(id=2, name="Gadget", sku="GDG-001", price=19.99),
            ]
        )

    def test_user_exists_after_seeding(self):
        user = self.db.get(User, 1)
        assert user is not None
        assert user.name == "John Doe"

    def test_create_order_with_valid_user(self):
        order = Order(user_id=1, total=29.98)
        self.db.add(order)
        save_changes(self.db)
        assert order.id > 0
        assert_count(self.db, Order, 1)

    def test_create_order_with_invalid_user_fails(self):
        self.db.add(Order(user_id=999, total=50.0))
        with pytest.raises(IntegrityError):
            save_changes(self.db)

    def test_database_is_fresh_for_each_test(self):
        assert_count(self.db, Order, 0)
        assert_count(self.db, Product, 2)

    def test_session_is_sqlmodel_session(self):
        assert isinstance(self.db, ModelSession)


class TestCascadeDelete(DbTestBase):
    def seed(self, session):
        session.add(User(id=1, name="John", email="john@example.com"))
        save_changes(session)
        session.add_all([Order(user_id=1, total=100.0), Order(user_id=1, total=200.0)])

    def test_delete_user_cascades_to_orders(self):
        assert_count(self.db, Order, 2)
        self.db.delete(self.db.get(User, 1))
        save_changes(self.db)
        assert_count(self.db, User, 0)
        assert_count(self.db, Order, 0)


class TestRestrictDelete(DbTestBase):
    def seed(self, session):
        user = User(id=1, name="John", email="john@example.com")
        product = Product(id=1, name="Widget", sku="WDG-001", price=9.99)
        order = Order(id=1, user=user, total=9.99)
        session.add_all(
            [user, product, order, OrderItem(order=order, product=product, quantity=1)]
        )

    def test_delete_product_in_use_fails(self):
        self.db.delete(self.db.get(Product, 1))
        assert_save_fails(self.db, IntegrityError)
        self.clear_change_tracker()
        assert_exists(self.db, Product, Product.id == 1)

    def test_delete_product_after_removing_items(self):
        item = self.db.exec(select(OrderItem)).one()
        self.db.delete(item)
        save_changes(self.db)
        self.db.delete(self.db.get(Product, 1))
        save_changes(self.db)
        assert_count(self.db, Product, 0)


class TestUniqueConstraint(DbTestBase):
    def seed(self, session):
        session.add(User(name="John", email="john@example.com"))

    def test_duplicate_email_fails(self):
        self.db.add(User(name="Other John", email="john@example.com"))
        exc = assert_save_fails(self.db, IntegrityError)
        assert "UNIQUE" in str(exc)

    def test_distinct_email_succeeds(self):
        self.db.add(User(name="Jane", email="jane@example.com"))
        save_changes(self.db)
        assert_count(self.db, User, 2)


class TestLazyInitialization(DbTestBase):
    seed_calls = 0

    def seed(self, session):
        type(self).seed_calls += 1

    def test_database_not_built_until_accessed(self):
        calls = type(self).seed_calls
        assert self._database is None
        self.db
        assert self._database is not None
        assert type(self).seed_calls == calls + 1

    def test_repeated_access_reuses_session(self):
        assert self.db is self.db


class TestConfigureOptions(DbTestBase):
    def configure_options(self, options):
        options.provider = DbProvider.IN_MEMORY

    def test_provider_is_applied(self):
        assert self.database.options.provider is DbProvider.IN_MEMORY
        assert self.database.validates_foreign_keys is False

    def test_orphans_allowed_without_validation(self):
        self.db.add(Order(user_id=999, total=1.0))
        save_changes(self.db)
        assert_count(self.db, Order, 1)


class TestHelpers(DbTestBase):
    def seed(self, session):
        session.add(User(id=1, name="John", email="john@example.com"))

    def test_supports_transactions(self):
        assert self.supports_transactions is True

    def test_new_session_sees_saved_data(self):
        other = self.create_new_session()
        try:
            assert other is not self.db
            assert other.get(User, 1).name == "John"
        finally:
            other.close()

    def test_new_session_does_not_share_identity_map(self):
        other = self.create_new_session()
        try:
            assert other.get(User, 1) is not self.db.get(User, 1)
        finally:
            other.close()

    def test_reset_database_reseeds(self):
        self.db.add(User(name="Jane", email="jane@example.com"))
        save_changes(self.db)
        self.reset_database()
        assert_count(self.db, User, 1)

    def test_clear_change_tracker(self):
        user = self.db.get(User, 1)
        self.clear_change_tracker()
        assert user not in self.db

    def test_detach(self):
        user = self.db.get(User, 1)
        self.detach(user)
        assert user not in self.db

    def test_reload_picks_up_changes_from_other_session(self):
        user = self.db.get(User, 1)
        other = self.create_new_session()
        try:
            other.get(User, 1).name = "Jane"
            other.commit()
        finally:
            other.close()
        assert user.name == "John"
        self.reload(user)
        assert user.name == "Jane"

    def test_dispose_allows_rebuild(self):
        first = self.database
        self.dispose()
        assert self._database is None
        assert self.database is not first
