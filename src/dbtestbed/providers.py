"""Test database providers.

A provider owns the backing SQLite database of one test database: it knows
the URL, builds engines bound to it and tears everything down on dispose.

Usage::

    from dbtestbed.config import DbProvider
    from dbtestbed.providers import create_provider

    provider = create_provider(DbProvider.SQLITE_MEMORY)
    engine = provider.create_engine()
    ...
    provider.dispose()
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import StaticPool

from dbtestbed.config import DbProvider, TestBedOptions
from dbtestbed.engine import create_async_engine_from_url, create_engine_from_url

logger = logging.getLogger(__name__)


class DatabaseProvider(ABC):
    """Base class for the SQLite flavours a test database can run on."""

    #: Whether BEGIN / COMMIT / ROLLBACK reach a real transaction.
    supports_transactions: bool = True
    #: Whether foreign keys are enforced on every connection.
    validates_foreign_keys: bool = True
    #: Optional ``PRAGMA journal_mode`` for every connection.
    journal_mode: str | None = None

    def __init__(self) -> None:
        self._engines: list[Engine] = []
        self._async_engines: list[AsyncEngine] = []
        self._disposed = False

    @property
    @abstractmethod
    def url(self) -> str:
        """The sync SQLAlchemy URL of the database."""

    @property
    def disposed(self) -> bool:
        return self._disposed

    def engine_options(self) -> dict[str, Any]:
        """Provider-specific keyword arguments for the engine factory."""
        return {}

    def _merged(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        merged = self.engine_options()
        merged.update(kwargs)
        return merged

    def create_engine(self, **kwargs: Any) -> Engine:
        """Create a sync engine bound to this provider's database."""
        if self._disposed:
            raise RuntimeError(f"{type(self).__name__} has been disposed")
        engine = create_engine_from_url(
            self.url,
            enforce_foreign_keys=self.validates_foreign_keys,
            journal_mode=self.journal_mode,
            **self._merged(kwargs),
        )
        self._engines.append(engine)
        return engine

    def create_async_engine(self, **kwargs: Any) -> AsyncEngine:
        """Create an async engine bound to this provider's database."""
        if self._disposed:
            raise RuntimeError(f"{type(self).__name__} has been disposed")
        engine = create_async_engine_from_url(
            self.url,
            enforce_foreign_keys=self.validates_foreign_keys,
            journal_mode=self.journal_mode,
            **self._merged(kwargs),
        )
        self._async_engines.append(engine)
        return engine

    def _cleanup(self) -> None:
        """Remove any on-disk state. Called once, after engines are disposed."""

    def dispose(self) -> None:
        """Dispose every sync engine and clean up.

        Raises
        ------
        RuntimeError
            If async engines were created; use :meth:`dispose_async` then.
        """
        if self._disposed:
            return
        if self._async_engines:
            raise RuntimeError(
                "Provider has async engines. Call dispose_async() instead."
            )
        for engine in self._engines:
            engine.dispose()
        self._engines.clear()
        self._cleanup()
        self._disposed = True
        logger.info("%s disposed", type(self).__name__)

    async def dispose_async(self) -> None:
        """Dispose every engine (async and sync) and clean up."""
        if self._disposed:
            return
        for async_engine in self._async_engines:
            await async_engine.dispose()
        self._async_engines.clear()
        for engine in self._engines:
            engine.dispose()
        self._engines.clear()
        self._cleanup()
        self._disposed = True
        logger.info("%s disposed", type(self).__name__)


class SqliteMemoryProvider(DatabaseProvider):
    """SQLite in-memory database with foreign keys enforced.

    All sessions share one connection (``StaticPool``) so the database lives
    exactly as long as the provider.
    """

    @property
    def url(self) -> str:
        return "sqlite://"

    def engine_options(self) -> dict[str, Any]:
        # Sessions share the connection; returning one must not roll back
        # another's transaction.
        return {"poolclass": StaticPool, "pool_reset_on_return": None}


class SqliteFileProvider(DatabaseProvider):
    """SQLite file database, by default a uniquely named temp file."""

    journal_mode = "WAL"

    def __init__(
        self, path: Path | str | None = None, delete_on_dispose: bool = True
    ) -> None:
        super().__init__()
        if path is None:
            path = Path(tempfile.gettempdir()) / f"testbed_{uuid.uuid4()}.db"
        self.path = Path(path)
        self.delete_on_dispose = delete_on_dispose

    @property
    def url(self) -> str:
        return f"sqlite:///{self.path}"

    def engine_options(self) -> dict[str, Any]:
        # Concurrent writers wait instead of failing immediately
        return {"connect_args": {"timeout": 5}}

    def _cleanup(self) -> None:
        if not self.delete_on_dispose:
            return
        for suffix in ("", "-wal", "-shm", "-journal"):
            candidate = Path(f"{self.path}{suffix}")
            if not candidate.exists():
                continue
            try:
                os.remove(candidate)
            except OSError:
                logger.warning("Failed to remove test database file %s", candidate, exc_info=True)


class InMemoryProvider(DatabaseProvider):
    """Fast, non-validating database: SQLite in memory with foreign keys off.

    The database is a named shared-cache memory database, so providers (and
    engines) created with the same ``database_name`` see the same data while
    any of them is alive.
    """

    validates_foreign_keys = False

    def __init__(self, database_name: str | None = None) -> None:
        super().__init__()
        self.database_name = database_name or str(uuid.uuid4())

    @property
    def url(self) -> str:
        return f"sqlite:///file:{self.database_name}?mode=memory&cache=shared&uri=true"

    def engine_options(self) -> dict[str, Any]:
        return {"poolclass": StaticPool, "pool_reset_on_return": None}


def create_provider(
    kind: DbProvider | str, options: TestBedOptions | None = None
) -> DatabaseProvider:
    """Create the provider for *kind*, honouring the relevant *options*.

    Raises
    ------
    ValueError
        If *kind* is not a known provider.
    """
    try:
        kind = DbProvider(kind)
    except ValueError:
        raise ValueError(f"Unknown test database provider: {kind!r}") from None

    if kind is DbProvider.SQLITE_MEMORY:
        return SqliteMemoryProvider()
    if kind is DbProvider.SQLITE_FILE:
        return SqliteFileProvider(
            options.database_path if options else None,
            delete_on_dispose=options.delete_on_dispose if options else True,
        )
    return InMemoryProvider(options.database_name if options else None)
