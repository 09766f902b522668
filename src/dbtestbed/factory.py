"""Factory functions for ad-hoc test databases.

Usage::

    from dbtestbed import create_test_db

    with create_test_db(seed=lambda s: s.add(User(name="John"))) as testdb:
        assert testdb.session.exec(select(User)).one().name == "John"

    with quick_session() as session:
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from dbtestbed.config import DbProvider, TestBedOptions
from dbtestbed.database import AsyncSeedFn, AsyncTestDatabase, SeedFn, TestDatabase


#: ``session.info`` key keeping the owning database of a quick session alive.
DATABASE_INFO_KEY = "dbtestbed.database"

ConfigureFn = Callable[[TestBedOptions], Any]


def _build_options(
    configure: ConfigureFn | None, **overrides: Any
) -> TestBedOptions:
    options = TestBedOptions(**overrides)
    if configure is not None:
        configure(options)
    return options


def create_test_db(
    seed: SeedFn | None = None,
    configure: ConfigureFn | None = None,
    *,
    metadata: MetaData | None = None,
    session_class: type[Session] | None = None,
) -> TestDatabase:
    """Create a test database (SQLite in memory unless *configure* says otherwise).

    Parameters
    ----------
    seed:
        Called with the new session; its changes are saved afterwards.
    configure:
        Called with a fresh :class:`TestBedOptions` before anything is built.
    metadata:
        Schema to create; defaults to ``SQLModel.metadata``.
    session_class:
        ``Session`` subclass to instantiate.
    """
    options = _build_options(configure)
    return TestDatabase.open(
        options, metadata=metadata, session_class=session_class, seed=seed
    )


async def create_test_db_async(
    seed: AsyncSeedFn | None = None,
    configure: ConfigureFn | None = None,
    *,
    metadata: MetaData | None = None,
    session_class: type[AsyncSession] | None = None,
) -> AsyncTestDatabase:
    """Async counterpart of :func:`create_test_db`; *seed* may be async."""
    options = _build_options(configure)
    return await AsyncTestDatabase.open(
        options, metadata=metadata, session_class=session_class, seed=seed
    )


def create_test_db_with_provider(
    provider: DbProvider | str,
    seed: SeedFn | None = None,
    *,
    metadata: MetaData | None = None,
    session_class: type[Session] | None = None,
) -> TestDatabase:
    """Create a test database on an explicit *provider*."""
    options = _build_options(None, provider=provider)
    return TestDatabase.open(
        options, metadata=metadata, session_class=session_class, seed=seed
    )


def quick_session(
    seed: SeedFn | None = None,
    *,
    metadata: MetaData | None = None,
    session_class: type[Session] | None = None,
) -> Session:
    """Return a bare session on a new in-memory database.

    The database stays alive as long as the session is referenced; its
    :class:`TestDatabase` is kept under ``session.info``.
    """
    testdb = create_test_db(seed, metadata=metadata, session_class=session_class)
    testdb.session.info[DATABASE_INFO_KEY] = testdb
    return testdb.session
