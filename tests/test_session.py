"""Tests for dbtestbed.session."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from sqlmodel import SQLModel, select
from sqlmodel import Session as ModelSession

from dbtestbed.errors import SessionTypeError
from dbtestbed.providers import SqliteMemoryProvider
from dbtestbed.session import (
    create_async_session_factory,
    create_session_factory,
    create_tables,
    drop_tables,
    reset_tables,
    save_changes,
)
from sample_models import User


class AuditedSession(ModelSession):
    pass


@pytest.fixture
def engine():
    provider = SqliteMemoryProvider()
    eng = provider.create_engine()
    create_tables(eng)
    yield eng
    provider.dispose()


class TestSessionFactory:
    def test_defaults_to_sqlmodel_session(self, engine):
        with create_session_factory(engine)() as session:
            assert isinstance(session, ModelSession)

    def test_custom_session_class(self, engine):
        with create_session_factory(engine, AuditedSession)() as session:
            assert isinstance(session, AuditedSession)

    def test_rejects_non_session_class(self, engine):
        with pytest.raises(SessionTypeError, match="must be a subclass"):
            create_session_factory(engine, dict)

    def test_rejects_async_session_for_sync_factory(self, engine):
        with pytest.raises(SessionTypeError):
            create_session_factory(engine, AsyncSession)

    def test_info_is_copied_to_sessions(self, engine):
        with create_session_factory(engine, info={"k": "v"})() as session:
            assert session.info["k"] == "v"

    def test_objects_readable_after_commit(self, engine):
        with create_session_factory(engine)() as session:
            user = User(name="John", email="john@example.com")
            session.add(user)
            session.commit()
            assert "name" not in sa_inspect(user).expired_attributes
            assert user.name == "John"

    async def test_async_factory_rejects_sync_session(self):
        provider = SqliteMemoryProvider()
        engine = provider.create_async_engine()
        try:
            with pytest.raises(SessionTypeError):
                create_async_session_factory(engine, Session)
        finally:
            await provider.dispose_async()


class TestSaveChanges:
    def test_commits_outside_nested_transaction(self, engine):
        factory = create_session_factory(engine)
        with factory() as session:
            session.add(User(name="John", email="john@example.com"))
            save_changes(session)
        with factory() as other:
            assert other.exec(select(User)).one().name == "John"

    def test_only_flushes_inside_savepoint(self, engine):
        with create_session_factory(engine)() as session:
            nested = session.begin_nested()
            user = User(name="John", email="john@example.com")
            session.add(user)
            save_changes(session)
            assert user.id is not None
            assert session.in_nested_transaction()
            nested.rollback()
            assert session.exec(select(User)).all() == []


class TestTables:
    def test_drop_and_create(self, engine):
        drop_tables(engine)
        with engine.connect() as conn:
            assert sa_inspect(conn).get_table_names() == []
        create_tables(engine)
        with engine.connect() as conn:
            assert set(sa_inspect(conn).get_table_names()) == set(SQLModel.metadata.tables)

    def test_reset_removes_rows(self, engine):
        factory = create_session_factory(engine)
        with factory() as session:
            session.add(User(name="John", email="john@example.com"))
            session.commit()
        reset_tables(engine)
        with factory() as session:
            assert session.exec(select(User)).all() == []
