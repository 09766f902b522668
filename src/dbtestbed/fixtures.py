"""Database fixtures shared between tests.

Unlike :class:`~dbtestbed.base.DbTestBase`, which builds a database per
test, these fixtures build one in-memory SQLite database (foreign keys
enforced) and hand out sessions on it.  They are meant to be wrapped in a
module or session scoped pytest fixture::

    class ShopFixture(SharedDbFixture):
        def seed_data(self, session):
            session.add(Product(name="Widget", sku="W-1", price=9.99))

    @pytest.fixture(scope="module")
    def shop():
        with ShopFixture() as fixture:
            yield fixture
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from sqlmodel import SQLModel

from dbtestbed.config import TestBedOptions
from dbtestbed.errors import NotInitializedError
from dbtestbed.providers import SqliteMemoryProvider
from dbtestbed.session import (
    OPTIONS_INFO_KEY,
    create_async_session_factory,
    create_session_factory,
    create_tables,
    create_tables_async,
    reset_tables,
    save_changes,
    save_changes_async,
)

logger = logging.getLogger(__name__)


class SharedDbFixture:
    """One seeded database shared by every session created from it."""

    def __init__(
        self,
        configure: Callable[[TestBedOptions], Any] | None = None,
        *,
        metadata: MetaData | None = None,
        session_class: type[Session] | None = None,
    ) -> None:
        self.options = TestBedOptions()
        if configure is not None:
            configure(self.options)
        self.options.validate()
        self.metadata = metadata if metadata is not None else SQLModel.metadata

        self.provider = SqliteMemoryProvider()
        self.engine = self.provider.create_engine(**self.options.engine_kwargs())
        self._session_factory = create_session_factory(
            self.engine, session_class, info={OPTIONS_INFO_KEY: self.options}
        )
        self._disposed = False

        try:
            create_tables(self.engine, self.metadata)
            self._seed()
        except Exception:
            self.provider.dispose()
            raise
        logger.info("Shared test database ready")

    def seed_data(self, session: Session) -> None:
        """Override to seed the shared database. Changes are saved afterwards."""

    def _seed(self) -> None:
        with self.create_session() as session:
            self.seed_data(session)
            save_changes(session)

    def create_session(self) -> Session:
        """A new session on the shared database; the caller closes it."""
        return self._session_factory()

    def clear_all_tables(self) -> None:
        """Delete every row but keep the schema. Dependent tables go first."""
        with self.engine.begin() as conn:
            for table in reversed(self.metadata.sorted_tables):
                conn.execute(table.delete())
        logger.debug("Cleared all tables")

    def reset_database(self) -> None:
        """Drop and recreate the schema, then run :meth:`seed_data` again."""
        reset_tables(self.engine, self.metadata)
        self._seed()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self.provider.dispose()
        self._disposed = True
        logger.info("Shared test database disposed")

    def __enter__(self) -> SharedDbFixture:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class CollectionDbFixture(SharedDbFixture):
    """A :class:`SharedDbFixture` meant to be shared across test modules,
    typically from a session scoped fixture in ``conftest.py``."""


class IsolatedDbFixture:
    """An ``AsyncSession`` database built once by :meth:`initialize`.

    Usage::

        @pytest_asyncio.fixture(scope="module")
        async def isolated():
            fixture = IsolatedDbFixture(seed_async=seed_products)
            await fixture.initialize()
            yield fixture
            await fixture.dispose()
    """

    def __init__(
        self,
        seed_async: Callable[[AsyncSession], Awaitable[Any]] | None = None,
        *,
        metadata: MetaData | None = None,
        session_class: type[AsyncSession] | None = None,
    ) -> None:
        self.options = TestBedOptions()
        self.metadata = metadata if metadata is not None else SQLModel.metadata
        self._seed_async = seed_async
        self.provider = SqliteMemoryProvider()
        self.engine = self.provider.create_async_engine(**self.options.engine_kwargs())
        self._session_factory = create_async_session_factory(
            self.engine, session_class, info={OPTIONS_INFO_KEY: self.options}
        )
        self._initialized = False
        self._disposed = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create the schema and run the seed. Later calls do nothing."""
        if self._initialized:
            return
        await create_tables_async(self.engine, self.metadata)
        if self._seed_async is not None:
            async with self._session_factory() as session:
                await self._seed_async(session)
                await save_changes_async(session)
        self._initialized = True
        logger.info("Isolated test database ready")

    def create_session(self) -> AsyncSession:
        if not self._initialized:
            raise NotInitializedError(
                "Isolated database not initialized. Await initialize() first."
            )
        return self._session_factory()

    async def dispose(self) -> None:
        if self._disposed:
            return
        await self.provider.dispose_async()
        self._disposed = True
        logger.info("Isolated test database disposed")

    async def __aenter__(self) -> IsolatedDbFixture:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()
