"""Tests for dbtestbed.providers."""

from __future__ import annotations

import pytest
from sqlmodel import Session, select

from dbtestbed.config import DbProvider, TestBedOptions
from dbtestbed.providers import (
    InMemoryProvider,
    SqliteFileProvider,
    SqliteMemoryProvider,
    create_provider,
)
from dbtestbed.session import create_tables
from sample_models import Order, User


class TestCreateProvider:
    def test_sqlite_memory(self):
        assert isinstance(create_provider(DbProvider.SQLITE_MEMORY), SqliteMemoryProvider)

    def test_sqlite_file_uses_options(self, tmp_path):
        options = TestBedOptions(database_path=tmp_path / "db.sqlite", delete_on_dispose=False)
        provider = create_provider("sqlite_file", options)
        assert isinstance(provider, SqliteFileProvider)
        assert provider.path == tmp_path / "db.sqlite"
        assert provider.delete_on_dispose is False

    def test_in_memory_uses_database_name(self):
        provider = create_provider("in_memory", TestBedOptions(database_name="shop"))
        assert isinstance(provider, InMemoryProvider)
        assert "file:shop?" in provider.url

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown test database provider"):
            create_provider("cosmos")


class TestCapabilities:
    def test_sqlite_providers_validate(self):
        assert SqliteMemoryProvider().validates_foreign_keys is True
        assert SqliteFileProvider().validates_foreign_keys is True

    def test_in_memory_does_not_validate(self):
        provider = InMemoryProvider()
        assert provider.validates_foreign_keys is False
        assert provider.supports_transactions is True


class TestSqliteMemoryProvider:
    def test_data_survives_across_connections(self):
        provider = SqliteMemoryProvider()
        engine = provider.create_engine()
        try:
            create_tables(engine)
            with Session(engine) as session:
                session.add(User(name="John", email="john@example.com"))
                session.commit()
            with Session(engine) as session:
                assert session.exec(select(User)).one().name == "John"
        finally:
            provider.dispose()

    def test_dispose_is_idempotent(self):
        provider = SqliteMemoryProvider()
        provider.create_engine()
        provider.dispose()
        provider.dispose()
        assert provider.disposed

    def test_engine_after_dispose(self):
        provider = SqliteMemoryProvider()
        provider.dispose()
        with pytest.raises(RuntimeError, match="disposed"):
            provider.create_engine()

    async def test_sync_dispose_refused_with_async_engines(self):
        provider = SqliteMemoryProvider()
        provider.create_async_engine()
        with pytest.raises(RuntimeError, match="dispose_async"):
            provider.dispose()
        await provider.dispose_async()
        assert provider.disposed


class TestSqliteFileProvider:
    def test_default_path_in_temp_dir(self):
        provider = SqliteFileProvider()
        assert provider.path.name.startswith("testbed_")
        assert provider.path.suffix == ".db"

    def test_file_removed_on_dispose(self, tmp_path):
        path = tmp_path / "test.db"
        provider = SqliteFileProvider(path)
        create_tables(provider.create_engine())
        assert path.exists()
        provider.dispose()
        assert not path.exists()
        assert not (tmp_path / "test.db-wal").exists()

    def test_file_kept_when_requested(self, tmp_path):
        path = tmp_path / "keep.db"
        provider = SqliteFileProvider(path, delete_on_dispose=False)
        create_tables(provider.create_engine())
        provider.dispose()
        assert path.exists()

    def test_wal_journal(self, tmp_path):
        provider = SqliteFileProvider(tmp_path / "wal.db")
        engine = provider.create_engine()
        try:
            with engine.connect() as conn:
                assert conn.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"
        finally:
            provider.dispose()


class TestInMemoryProvider:
    def test_orphans_are_accepted(self):
        provider = InMemoryProvider()
        engine = provider.create_engine()
        try:
            create_tables(engine)
            with Session(engine) as session:
                session.add(Order(user_id=999, total=1.0))
                session.commit()
                assert session.exec(select(Order)).one().user_id == 999
        finally:
            provider.dispose()

    def test_generated_names_are_unique(self):
        assert InMemoryProvider().database_name != InMemoryProvider().database_name
