"""Per-test base classes.

Subclass :class:`DbTestBase` in a pytest test class to get a fresh database
for every test.  The database is created on first access to ``self.db`` and
disposed after the test by an autouse fixture::

    class TestOrders(DbTestBase):
        def seed(self, session):
            session.add(User(id=1, name="John", email="john@example.com"))

        def test_user_is_seeded(self):
            assert self.db.get(User, 1).name == "John"

:class:`AsyncDbTestBase` does the same for ``AsyncSession``; there the
database is initialized eagerly by an async autouse fixture.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from typing import Any, ClassVar

import pytest
import pytest_asyncio
from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from sqlmodel import Session as ModelSession
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as AsyncModelSession

from dbtestbed.config import TestBedOptions
from dbtestbed.database import AsyncTestDatabase, TestDatabase
from dbtestbed.errors import NotInitializedError


class DbTestBase:
    """Base class giving each test a lazily created sync database session."""

    metadata: ClassVar[MetaData] = SQLModel.metadata
    session_class: ClassVar[type[Session]] = ModelSession

    _database: TestDatabase | None = None

    @pytest.fixture(autouse=True)
    def dbtestbed_lifecycle(self) -> Iterator[None]:
        yield
        self.dispose()

    # -- hooks --------------------------------------------------------------

    def configure_options(self, options: TestBedOptions) -> None:
        """Override to adjust options before the database is built."""

    def seed(self, session: Session) -> None:
        """Override to seed test data. Changes are saved automatically."""

    # -- database access ----------------------------------------------------

    def _ensure_initialized(self) -> TestDatabase:
        if self._database is None:
            options = TestBedOptions()
            self.configure_options(options)
            self._database = TestDatabase.open(
                options,
                metadata=self.metadata,
                session_class=self.session_class,
                seed=self.seed,
            )
        return self._database

    @property
    def db(self) -> Session:
        """The test session; builds the database on first access."""
        return self._ensure_initialized().session

    @property
    def database(self) -> TestDatabase:
        return self._ensure_initialized()

    @property
    def supports_transactions(self) -> bool:
        return self._ensure_initialized().supports_transactions

    def create_new_session(self) -> Session:
        """A second session on the same database, for detached scenarios."""
        return self._ensure_initialized().new_session()

    def reset_database(self) -> None:
        """Recreate the schema and run :meth:`seed` again."""
        self._ensure_initialized().reset(seed=self.seed)

    def clear_change_tracker(self) -> None:
        self._ensure_initialized().clear_change_tracker()

    def detach(self, entity: Any) -> None:
        self.db.expunge(entity)

    def reload(self, entity: Any) -> None:
        """Overwrite *entity*'s attributes with the database row."""
        self.db.refresh(entity)

    def dispose(self) -> None:
        if self._database is not None:
            self._database.close()
            self._database = None


class AsyncDbTestBase:
    """Base class giving each test an ``AsyncSession`` on a fresh database."""

    metadata: ClassVar[MetaData] = SQLModel.metadata
    session_class: ClassVar[type[AsyncSession]] = AsyncModelSession

    _database: AsyncTestDatabase | None = None

    @pytest_asyncio.fixture(autouse=True)
    async def dbtestbed_lifecycle(self) -> AsyncIterator[None]:
        await self.initialize()
        yield
        await self.dispose()

    # -- hooks --------------------------------------------------------------

    def configure_options(self, options: TestBedOptions) -> None:
        """Override to adjust options before the database is built."""

    async def seed(self, session: AsyncSession) -> None:
        """Override to seed test data. Changes are saved automatically."""

    # -- database access ----------------------------------------------------

    async def initialize(self) -> None:
        """Build the database. Safe to call more than once."""
        if self._database is not None:
            return
        options = TestBedOptions()
        self.configure_options(options)
        self._database = await AsyncTestDatabase.open(
            options,
            metadata=self.metadata,
            session_class=self.session_class,
            seed=self.seed,
        )

    def _require_initialized(self) -> AsyncTestDatabase:
        if self._database is None:
            raise NotInitializedError(
                "Test database not initialized. Await initialize() first."
            )
        return self._database

    @property
    def db(self) -> AsyncSession:
        return self._require_initialized().session

    @property
    def database(self) -> AsyncTestDatabase:
        return self._require_initialized()

    @property
    def supports_transactions(self) -> bool:
        return self._require_initialized().supports_transactions

    def create_new_session(self) -> AsyncSession:
        return self._require_initialized().new_session()

    async def reset_database(self) -> None:
        await self._require_initialized().reset(seed=self.seed)

    def clear_change_tracker(self) -> None:
        self._require_initialized().clear_change_tracker()

    def detach(self, entity: Any) -> None:
        self.db.expunge(entity)

    async def reload(self, entity: Any) -> None:
        await self.db.refresh(entity)

    async def dispose(self) -> None:
        if self._database is not None:
            await self._database.close()
            self._database = None
