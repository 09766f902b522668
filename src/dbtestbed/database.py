"""Disposable test databases.

A :class:`TestDatabase` ties together a provider, an engine, a session and
the schema of one metadata.  It is what the factory functions return and
what the per-test base classes hold on to.

Usage::

    with TestDatabase.open(seed=lambda s: s.add(User(name="John"))) as testdb:
        testdb.session.exec(select(User)).all()

    async with await AsyncTestDatabase.open() as testdb:
        ...
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy import Engine, MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import Session
from sqlmodel import SQLModel

from dbtestbed.config import TestBedOptions
from dbtestbed.providers import DatabaseProvider, create_provider
from dbtestbed.session import (
    OPTIONS_INFO_KEY,
    create_async_session_factory,
    create_session_factory,
    create_tables,
    create_tables_async,
    reset_tables,
    reset_tables_async,
    save_changes,
    save_changes_async,
)
from dbtestbed.tracking import apply_query_tracking, has_changes

logger = logging.getLogger(__name__)

SeedFn = Callable[[Session], Any]
AsyncSeedFn = Callable[[AsyncSession], "Awaitable[Any] | Any"]


def _resolve_options(options: TestBedOptions | None) -> TestBedOptions:
    if options is None:
        return TestBedOptions()
    options.validate()
    return options


class TestDatabase:
    """A sync session on a freshly built SQLite database."""

    __test__ = False

    def __init__(
        self,
        provider: DatabaseProvider,
        engine: Engine,
        *,
        metadata: MetaData | None = None,
        options: TestBedOptions | None = None,
        session_class: type[Session] | None = None,
    ) -> None:
        self.provider = provider
        self.engine = engine
        self.metadata = metadata if metadata is not None else SQLModel.metadata
        self.options = _resolve_options(options)
        self._session_factory = create_session_factory(
            engine, session_class, info={OPTIONS_INFO_KEY: self.options}
        )
        self.session = self.new_session()
        self._closed = False

    @classmethod
    def open(
        cls,
        options: TestBedOptions | None = None,
        *,
        metadata: MetaData | None = None,
        session_class: type[Session] | None = None,
        seed: SeedFn | None = None,
    ) -> TestDatabase:
        """Build the database described by *options*.

        Tables are created when ``auto_create_database`` is set.  *seed* runs
        against the new session and its changes are saved afterwards.
        """
        options = _resolve_options(options)
        provider = create_provider(options.provider, options)
        try:
            engine = provider.create_engine(**options.engine_kwargs())
            testdb = cls(
                provider,
                engine,
                metadata=metadata,
                options=options,
                session_class=session_class,
            )
            if options.auto_create_database:
                create_tables(engine, testdb.metadata)
        except Exception:
            provider.dispose()
            raise

        logger.info("Opened test database on %s", options.provider.value)
        if seed is not None:
            try:
                testdb.seed(seed)
            except Exception:
                testdb.close()
                raise
        return testdb

    @property
    def supports_transactions(self) -> bool:
        return self.provider.supports_transactions

    @property
    def validates_foreign_keys(self) -> bool:
        return self.provider.validates_foreign_keys

    @property
    def closed(self) -> bool:
        return self._closed

    def new_session(self) -> Session:
        """Create another session on the same database.

        Useful for checking what was really persisted, independent of the
        main session's identity map.
        """
        session = self._session_factory()
        apply_query_tracking(session, self.options.query_tracking_behavior)
        return session

    def seed(self, seed: SeedFn) -> None:
        """Run *seed* against the main session and save what it added."""
        seed(self.session)
        if has_changes(self.session):
            save_changes(self.session)
        logger.debug("Seeded test database")

    def reset(self, seed: SeedFn | None = None) -> None:
        """Drop and recreate the schema, then optionally re-seed."""
        self.session.close()
        reset_tables(self.engine, self.metadata)
        logger.info("Test database reset")
        if seed is not None:
            self.seed(seed)

    def clear_change_tracker(self) -> None:
        """Detach every object from the main session."""
        self.session.expunge_all()

    def close(self) -> None:
        """Close the session and dispose the provider. Idempotent."""
        if self._closed:
            return
        self.session.close()
        self.provider.dispose()
        self._closed = True
        logger.info("Closed test database")

    def __enter__(self) -> TestDatabase:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncTestDatabase:
    """An ``AsyncSession`` on a freshly built SQLite database (aiosqlite)."""

    __test__ = False

    def __init__(
        self,
        provider: DatabaseProvider,
        engine: AsyncEngine,
        *,
        metadata: MetaData | None = None,
        options: TestBedOptions | None = None,
        session_class: type[AsyncSession] | None = None,
    ) -> None:
        self.provider = provider
        self.engine = engine
        self.metadata = metadata if metadata is not None else SQLModel.metadata
        self.options = _resolve_options(options)
        self._session_factory = create_async_session_factory(
            engine, session_class, info={OPTIONS_INFO_KEY: self.options}
        )
        self.session = self.new_session()
        self._closed = False

    @classmethod
    async def open(
        cls,
        options: TestBedOptions | None = None,
        *,
        metadata: MetaData | None = None,
        session_class: type[AsyncSession] | None = None,
        seed: AsyncSeedFn | None = None,
    ) -> AsyncTestDatabase:
        """Async counterpart of :meth:`TestDatabase.open`.

        *seed* may be a plain function or a coroutine function.
        """
        options = _resolve_options(options)
        provider = create_provider(options.provider, options)
        try:
            engine = provider.create_async_engine(**options.engine_kwargs())
            testdb = cls(
                provider,
                engine,
                metadata=metadata,
                options=options,
                session_class=session_class,
            )
            if options.auto_create_database:
                await create_tables_async(engine, testdb.metadata)
        except Exception:
            await provider.dispose_async()
            raise

        logger.info("Opened async test database on %s", options.provider.value)
        if seed is not None:
            try:
                await testdb.seed(seed)
            except Exception:
                await testdb.close()
                raise
        return testdb

    @property
    def supports_transactions(self) -> bool:
        return self.provider.supports_transactions

    @property
    def validates_foreign_keys(self) -> bool:
        return self.provider.validates_foreign_keys

    @property
    def closed(self) -> bool:
        return self._closed

    def new_session(self) -> AsyncSession:
        """Create another ``AsyncSession`` on the same database."""
        session = self._session_factory()
        apply_query_tracking(session, self.options.query_tracking_behavior)
        return session

    async def seed(self, seed: AsyncSeedFn) -> None:
        """Run *seed* (sync or async) and save what it added."""
        result = seed(self.session)
        if inspect.isawaitable(result):
            await result
        if has_changes(self.session):
            await save_changes_async(self.session)
        logger.debug("Seeded async test database")

    async def reset(self, seed: AsyncSeedFn | None = None) -> None:
        """Drop and recreate the schema, then optionally re-seed."""
        await self.session.close()
        await reset_tables_async(self.engine, self.metadata)
        logger.info("Async test database reset")
        if seed is not None:
            await self.seed(seed)

    def clear_change_tracker(self) -> None:
        """Detach every object from the main session."""
        self.session.expunge_all()

    async def close(self) -> None:
        """Close the session and dispose the provider. Idempotent."""
        if self._closed:
            return
        await self.session.close()
        await self.provider.dispose_async()
        self._closed = True
        logger.info("Closed async test database")

    async def __aenter__(self) -> AsyncTestDatabase:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
