"""SQLite engine factory for sync and async test databases.

Creates SQLAlchemy ``Engine`` / ``AsyncEngine`` instances for SQLite URLs
(``sqlite://`` via the stdlib driver, ``sqlite+aiosqlite://`` for async).
Every pooled connection is prepared the same way:

- ``PRAGMA foreign_keys=ON`` when constraint validation is requested
- an optional ``PRAGMA journal_mode``
- driver-level autocommit, with SQLAlchemy emitting its own ``BEGIN`` so
  that SAVEPOINTs and transactional DDL work as documented

Usage::

    from dbtestbed.engine import create_engine_from_url

    engine = create_engine_from_url("sqlite://", poolclass=StaticPool)
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, event
from sqlalchemy import create_engine as _create_engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine as _create_async_engine,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Connection preparation
# ---------------------------------------------------------------------------


def install_sqlite_listeners(
    engine: Engine,
    *,
    enforce_foreign_keys: bool = True,
    journal_mode: str | None = None,
) -> None:
    """Attach the connect/begin listeners to a (sync) SQLite engine.

    For async engines pass ``async_engine.sync_engine``.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # stop the driver from issuing BEGIN on its own
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(
                f"PRAGMA foreign_keys={'ON' if enforce_foreign_keys else 'OFF'}"
            )
            if journal_mode:
                cursor.execute(f"PRAGMA journal_mode={journal_mode}")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        # Sessions sharing one StaticPool connection share its transaction
        if not conn.connection.driver_connection.in_transaction:
            conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def _check_sqlite(url: str) -> None:
    if not url.startswith("sqlite"):
        raise ValueError(f"Unsupported database URL scheme: {url}")


def create_engine_from_url(
    url: str,
    *,
    enforce_foreign_keys: bool = True,
    journal_mode: str | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a sync ``Engine`` for a SQLite URL.

    Parameters
    ----------
    url:
        A ``sqlite://`` URL.  An explicit ``+aiosqlite`` driver is rejected.
    enforce_foreign_keys:
        Whether every connection turns on ``PRAGMA foreign_keys``.
    journal_mode:
        Optional journal mode (``WAL`` for file databases).
    **kwargs:
        Forwarded to ``sqlalchemy.create_engine``; they override defaults.

    Raises
    ------
    ValueError
        If the URL is not a sync SQLite URL.
    """
    _check_sqlite(url)
    if "+aiosqlite" in url:
        raise ValueError(f"Async driver in sync engine URL: {url}")

    connect_args = {"check_same_thread": False, **kwargs.pop("connect_args", {})}
    merged: dict[str, Any] = {"echo": False}
    # Caller-supplied kwargs take precedence
    merged.update(kwargs)
    merged["connect_args"] = connect_args

    engine = _create_engine(url, **merged)
    install_sqlite_listeners(
        engine, enforce_foreign_keys=enforce_foreign_keys, journal_mode=journal_mode
    )
    logger.info(
        "Created sqlite engine %s (foreign_keys=%s)", engine.url, enforce_foreign_keys
    )
    return engine


def create_async_engine_from_url(
    url: str,
    *,
    enforce_foreign_keys: bool = True,
    journal_mode: str | None = None,
    **kwargs: Any,
) -> AsyncEngine:
    """Create an ``AsyncEngine`` for a SQLite URL using ``aiosqlite``.

    ``sqlite://`` URLs are rewritten to ``sqlite+aiosqlite://``.

    Raises
    ------
    ValueError
        If the URL is not a SQLite URL.
    """
    _check_sqlite(url)
    if "+aiosqlite" not in url:
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    connect_args = {"check_same_thread": False, **kwargs.pop("connect_args", {})}
    merged: dict[str, Any] = {"echo": False}
    # Caller-supplied kwargs take precedence
    merged.update(kwargs)
    merged["connect_args"] = connect_args

    engine = _create_async_engine(url, **merged)
    install_sqlite_listeners(
        engine.sync_engine,
        enforce_foreign_keys=enforce_foreign_keys,
        journal_mode=journal_mode,
    )
    logger.info(
        "Created async sqlite engine %s (foreign_keys=%s)",
        engine.url,
        enforce_foreign_keys,
    )
    return engine
