"""Transaction helpers for tests.

All helpers open a SAVEPOINT (``Session.begin_nested()``) so they work
whether or not the session already has a transaction going.  Inside the
helper, :func:`~dbtestbed.session.save_changes` only flushes; the helper
decides what happens to the work:

- :func:`in_rollback_transaction` always rolls back
- :func:`in_transaction` commits on success, rolls back and re-raises on error
- :class:`RollbackScope` rolls back on exit unless :meth:`~RollbackScope.commit`
  was called

Usage::

    in_rollback_transaction(session, lambda s: seed_one(s, User(...)))

    with create_rollback_scope(session) as scope:
        ...
        scope.commit()
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_open(session: Session, nested: SessionTransaction) -> bool:
    # A SAVEPOINT deactivated by a failed flush is still open until rolled back
    return session.get_nested_transaction() is nested


def _rollback(session: Session, nested: SessionTransaction) -> None:
    if _is_open(session, nested):
        nested.rollback()


def _commit(session: Session, nested: SessionTransaction) -> None:
    nested.commit()
    if not session.in_nested_transaction():
        session.commit()


def _is_open_async(session: AsyncSession, nested: AsyncSessionTransaction) -> bool:
    return session.sync_session.get_nested_transaction() is nested.sync_transaction


async def _rollback_async(session: AsyncSession, nested: AsyncSessionTransaction) -> None:
    if _is_open_async(session, nested):
        await nested.rollback()


async def _commit_async(session: AsyncSession, nested: AsyncSessionTransaction) -> None:
    await nested.commit()
    if not session.in_nested_transaction():
        await session.commit()


# ---------------------------------------------------------------------------
# Callable wrappers
# ---------------------------------------------------------------------------


def in_rollback_transaction(session: Session, action: Callable[[Session], T]) -> T:
    """Run *action* and roll back everything it wrote."""
    nested = session.begin_nested()
    logger.debug("Entered rollback-only transaction")
    try:
        return action(session)
    finally:
        _rollback(session, nested)


async def in_rollback_transaction_async(
    session: AsyncSession, action: Callable[[AsyncSession], Awaitable[T]]
) -> T:
    nested = await session.begin_nested()
    logger.debug("Entered rollback-only transaction")
    try:
        return await action(session)
    finally:
        await _rollback_async(session, nested)


def in_transaction(session: Session, action: Callable[[Session], T]) -> T:
    """Run *action* in a transaction and return its result.

    Commits when *action* returns, rolls back and re-raises when it raises.
    """
    nested = session.begin_nested()
    try:
        result = action(session)
    except BaseException:
        _rollback(session, nested)
        logger.debug("Transaction rolled back")
        raise
    _commit(session, nested)
    return result


async def in_transaction_async(
    session: AsyncSession, action: Callable[[AsyncSession], Awaitable[T]]
) -> T:
    nested = await session.begin_nested()
    try:
        result = await action(session)
    except BaseException:
        await _rollback_async(session, nested)
        logger.debug("Transaction rolled back")
        raise
    await _commit_async(session, nested)
    return result


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


class RollbackScope:
    """A transaction that rolls back on exit unless committed."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._nested = session.begin_nested()
        self._committed = False
        self._closed = False

    @property
    def committed(self) -> bool:
        return self._committed

    def commit(self) -> None:
        """Keep the work: commit now and skip the rollback on exit."""
        _commit(self.session, self._nested)
        self._committed = True

    def rollback(self) -> None:
        """Roll back now. Does nothing after :meth:`commit`."""
        if not self._committed:
            _rollback(self.session, self._nested)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._committed:
            return
        try:
            _rollback(self.session, self._nested)
        except Exception:
            logger.warning("Rollback on scope exit failed", exc_info=True)

    def __enter__(self) -> RollbackScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncRollbackScope:
    """Async counterpart of :class:`RollbackScope`.

    Create it with ``await AsyncRollbackScope.begin(session)`` or use it as
    ``async with AsyncRollbackScope(session) as scope``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._nested: AsyncSessionTransaction | None = None
        self._committed = False
        self._closed = False

    @classmethod
    async def begin(cls, session: AsyncSession) -> AsyncRollbackScope:
        scope = cls(session)
        await scope._start()
        return scope

    async def _start(self) -> None:
        if self._nested is None:
            self._nested = await self.session.begin_nested()

    @property
    def committed(self) -> bool:
        return self._committed

    async def commit(self) -> None:
        await self._start()
        await _commit_async(self.session, self._nested)
        self._committed = True

    async def rollback(self) -> None:
        if not self._committed and self._nested is not None:
            await _rollback_async(self.session, self._nested)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._committed or self._nested is None:
            return
        try:
            await _rollback_async(self.session, self._nested)
        except Exception:
            logger.warning("Rollback on scope exit failed", exc_info=True)

    async def __aenter__(self) -> AsyncRollbackScope:
        await self._start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def create_rollback_scope(session: Session) -> RollbackScope:
    return RollbackScope(session)


async def create_rollback_scope_async(session: AsyncSession) -> AsyncRollbackScope:
    return await AsyncRollbackScope.begin(session)

