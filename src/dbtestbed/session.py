"""Session factories, schema management and ``save_changes``.

Provides the session layer that sits on top of a test engine.  Sessions are
built with ``expire_on_commit=False`` so that seeded objects stay readable
after they are saved, and with ``autoflush=False`` so that queries (and the
assertions built on them) only see what was explicitly saved.

Usage::

    from dbtestbed.session import create_session_factory, save_changes

    factory = create_session_factory(engine)
    with factory() as session:
        session.add(user)
        save_changes(session)
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session, sessionmaker
from sqlmodel import Session as ModelSession
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as AsyncModelSession

from dbtestbed.errors import SessionTypeError

logger = logging.getLogger(__name__)

#: ``session.info`` key holding the :class:`TestBedOptions` of a session.
OPTIONS_INFO_KEY = "dbtestbed.options"

# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def _check_session_class(session_class: Any, base: type) -> None:
    if not (isinstance(session_class, type) and issubclass(session_class, base)):
        name = getattr(session_class, "__name__", repr(session_class))
        raise SessionTypeError(
            f"Session type '{name}' must be a subclass of "
            f"{base.__module__}.{base.__qualname__}."
        )


def create_session_factory(
    engine: Engine,
    session_class: type[Session] | None = None,
    *,
    info: dict[str, Any] | None = None,
) -> sessionmaker[Session]:
    """Create a ``sessionmaker`` bound to *engine*.

    Parameters
    ----------
    engine:
        The ``Engine`` to bind sessions to.
    session_class:
        A ``Session`` subclass; defaults to ``sqlmodel.Session``.
    info:
        Initial ``session.info`` for every session.

    Raises
    ------
    SessionTypeError
        If *session_class* is not a ``Session`` subclass.
    """
    session_class = session_class or ModelSession
    _check_session_class(session_class, Session)
    return sessionmaker(
        bind=engine,
        class_=session_class,
        autoflush=False,
        expire_on_commit=False,
        info=info,
    )


def create_async_session_factory(
    engine: AsyncEngine,
    session_class: type[AsyncSession] | None = None,
    *,
    info: dict[str, Any] | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` bound to *engine*.

    *session_class* defaults to ``sqlmodel``'s ``AsyncSession``.

    Raises
    ------
    SessionTypeError
        If *session_class* is not an ``AsyncSession`` subclass.
    """
    session_class = session_class or AsyncModelSession
    _check_session_class(session_class, AsyncSession)
    return async_sessionmaker(
        engine,
        class_=session_class,
        autoflush=False,
        expire_on_commit=False,
        info=info,
    )


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------


def save_changes(session: Session) -> None:
    """Persist pending changes.

    Inside a helper transaction (a SAVEPOINT, see
    :mod:`dbtestbed.transactions`) the changes are only flushed so the
    enclosing scope decides their fate; otherwise they are committed.
    """
    if session.in_nested_transaction():
        session.flush()
    else:
        session.commit()


async def save_changes_async(session: AsyncSession) -> None:
    """Async counterpart of :func:`save_changes`."""
    if session.in_nested_transaction():
        await session.flush()
    else:
        await session.commit()


# ---------------------------------------------------------------------------
# Table management
# ---------------------------------------------------------------------------


def create_tables(engine: Engine, metadata: MetaData | None = None) -> None:
    """Create all tables of *metadata* (default ``SQLModel.metadata``)."""
    metadata = metadata if metadata is not None else SQLModel.metadata
    with engine.begin() as conn:
        metadata.create_all(conn)
    logger.info("Created %d tables", len(metadata.tables))


def drop_tables(engine: Engine, metadata: MetaData | None = None) -> None:
    """Drop all tables of *metadata*."""
    metadata = metadata if metadata is not None else SQLModel.metadata
    with engine.begin() as conn:
        metadata.drop_all(conn)
    logger.info("Dropped %d tables", len(metadata.tables))


def reset_tables(engine: Engine, metadata: MetaData | None = None) -> None:
    """Drop and recreate all tables of *metadata*."""
    drop_tables(engine, metadata)
    create_tables(engine, metadata)


async def create_tables_async(
    engine: AsyncEngine, metadata: MetaData | None = None
) -> None:
    """Async counterpart of :func:`create_tables`."""
    metadata = metadata if metadata is not None else SQLModel.metadata
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Created %d tables", len(metadata.tables))


async def drop_tables_async(
    engine: AsyncEngine, metadata: MetaData | None = None
) -> None:
    """Async counterpart of :func:`drop_tables`."""
    metadata = metadata if metadata is not None else SQLModel.metadata
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    logger.info("Dropped %d tables", len(metadata.tables))


async def reset_tables_async(
    engine: AsyncEngine, metadata: MetaData | None = None
) -> None:
    """Async counterpart of :func:`reset_tables`."""
    await drop_tables_async(engine, metadata)
    await create_tables_async(engine, metadata)
