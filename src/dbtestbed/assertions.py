"""Database assertions for tests.

Every helper takes the session first, like the rest of the library, and
raises :class:`~dbtestbed.errors.DbAssertionError` (an ``AssertionError``)
on failure.  Criteria are ordinary SQLAlchemy expressions::

    assert_exists(session, User, User.name == "John")
    assert_count(session, Order, 2, Order.user_id == 1)
    exc = assert_save_fails(session, IntegrityError)
"""

from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from dbtestbed.errors import DbAssertionError
from dbtestbed.session import OPTIONS_INFO_KEY, save_changes, save_changes_async
from dbtestbed.tracking import EntityState, entity_state

E = TypeVar("E", bound=BaseException)


def _exists_stmt(model: type, criteria: tuple[ColumnElement[bool], ...]):
    return select(select(model).where(*criteria).exists())


def _count_stmt(model: type, criteria: tuple[ColumnElement[bool], ...]):
    return select(func.count()).select_from(model).where(*criteria)


def _describe(session: Session | AsyncSession, exc: BaseException) -> str:
    """Render *exc* for a failure message.

    Without detailed errors only the driver's own message is shown, not the
    statement and parameters SQLAlchemy appends.
    """
    options = session.info.get(OPTIONS_INFO_KEY)
    detailed = options.enable_detailed_errors if options is not None else True
    if not detailed and isinstance(exc, DBAPIError) and exc.orig is not None:
        return f"{type(exc).__name__}: {exc.orig}"
    return f"{type(exc).__name__}: {exc}"


def _matching(criteria: tuple[Any, ...]) -> str:
    return " matching criteria" if criteria else ""


# ---------------------------------------------------------------------------
# Existence and counts
# ---------------------------------------------------------------------------


def _check_exists(found: bool, model: type, criteria: tuple[Any, ...]) -> None:
    if not found:
        raise DbAssertionError(
            f"Expected entity of type '{model.__name__}'{_matching(criteria)} "
            "to exist, but none was found."
        )


def _check_not_exists(found: bool, model: type, criteria: tuple[Any, ...]) -> None:
    if found:
        raise DbAssertionError(
            f"Expected no entity of type '{model.__name__}'{_matching(criteria)} "
            "to exist, but one was found."
        )


def _check_count(
    actual: int, expected: int, model: type, criteria: tuple[Any, ...]
) -> None:
    if actual != expected:
        raise DbAssertionError(
            f"Expected {expected} entities of type '{model.__name__}'"
            f"{_matching(criteria)}, but found {actual}."
        )


def assert_exists(session: Session, model: type, *criteria: ColumnElement[bool]) -> None:
    _check_exists(bool(session.scalar(_exists_stmt(model, criteria))), model, criteria)


async def assert_exists_async(
    session: AsyncSession, model: type, *criteria: ColumnElement[bool]
) -> None:
    found = await session.scalar(_exists_stmt(model, criteria))
    _check_exists(bool(found), model, criteria)


def assert_not_exists(
    session: Session, model: type, *criteria: ColumnElement[bool]
) -> None:
    _check_not_exists(
        bool(session.scalar(_exists_stmt(model, criteria))), model, criteria
    )


async def assert_not_exists_async(
    session: AsyncSession, model: type, *criteria: ColumnElement[bool]
) -> None:
    found = await session.scalar(_exists_stmt(model, criteria))
    _check_not_exists(bool(found), model, criteria)


def assert_count(
    session: Session, model: type, expected: int, *criteria: ColumnElement[bool]
) -> None:
    """Assert that exactly *expected* rows of *model* match *criteria*."""
    actual = session.scalar(_count_stmt(model, criteria)) or 0
    _check_count(actual, expected, model, criteria)


async def assert_count_async(
    session: AsyncSession, model: type, expected: int, *criteria: ColumnElement[bool]
) -> None:
    actual = await session.scalar(_count_stmt(model, criteria)) or 0
    _check_count(actual, expected, model, criteria)


def assert_empty(session: Session, model: type) -> None:
    actual = session.scalar(_count_stmt(model, ())) or 0
    if actual != 0:
        raise DbAssertionError(
            f"Expected no entities of type '{model.__name__}', but found {actual}."
        )


async def assert_empty_async(session: AsyncSession, model: type) -> None:
    actual = await session.scalar(_count_stmt(model, ())) or 0
    if actual != 0:
        raise DbAssertionError(
            f"Expected no entities of type '{model.__name__}', but found {actual}."
        )


def assert_not_empty(session: Session, model: type) -> None:
    if not session.scalar(_exists_stmt(model, ())):
        raise DbAssertionError(
            f"Expected at least one entity of type '{model.__name__}', but found none."
        )


async def assert_not_empty_async(session: AsyncSession, model: type) -> None:
    if not await session.scalar(_exists_stmt(model, ())):
        raise DbAssertionError(
            f"Expected at least one entity of type '{model.__name__}', but found none."
        )


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------


def assert_save_succeeds(session: Session) -> None:
    try:
        save_changes(session)
    except Exception as exc:
        raise DbAssertionError(
            f"Expected save to succeed, but it raised {_describe(session, exc)}"
        ) from exc


async def assert_save_succeeds_async(session: AsyncSession) -> None:
    try:
        await save_changes_async(session)
    except Exception as exc:
        raise DbAssertionError(
            f"Expected save to succeed, but it raised {_describe(session, exc)}"
        ) from exc


def _unexpected_success(exc_type: type[BaseException] | None) -> DbAssertionError:
    if exc_type is None:
        return DbAssertionError("Expected save to fail, but it succeeded.")
    return DbAssertionError(
        f"Expected save to raise {exc_type.__name__}, but it succeeded."
    )


def _wrong_failure(
    session: Session | AsyncSession, exc_type: type[BaseException], exc: Exception
) -> DbAssertionError:
    return DbAssertionError(
        f"Expected save to raise {exc_type.__name__}, but it raised "
        f"{_describe(session, exc)}"
    )


def assert_save_fails(
    session: Session, exc_type: type[E] | None = None
) -> E | Exception:
    """Assert that saving raises (optionally *exc_type*) and return the error.

    The save runs in its own SAVEPOINT.  On failure only that SAVEPOINT is
    rolled back, which discards the failed changes and leaves the session
    (and any enclosing helper transaction) usable.
    """
    try:
        with session.begin_nested():
            session.flush()
    except Exception as exc:
        if exc_type is not None and not isinstance(exc, exc_type):
            raise _wrong_failure(session, exc_type, exc) from exc
        return exc
    save_changes(session)
    raise _unexpected_success(exc_type)


async def assert_save_fails_async(
    session: AsyncSession, exc_type: type[E] | None = None
) -> E | Exception:
    """Async counterpart of :func:`assert_save_fails`."""
    try:
        async with session.begin_nested():
            await session.flush()
    except Exception as exc:
        if exc_type is not None and not isinstance(exc, exc_type):
            raise _wrong_failure(session, exc_type, exc) from exc
        return exc
    await save_changes_async(session)
    raise _unexpected_success(exc_type)


# ---------------------------------------------------------------------------
# Entity states
# ---------------------------------------------------------------------------


def _assert_state(
    session: Session | AsyncSession, entity: Any, expected: EntityState
) -> None:
    actual = entity_state(session, entity)
    if actual is not expected:
        raise DbAssertionError(
            f"Expected entity to be {expected.name.title()}, "
            f"but state was {actual.name.title()}."
        )


def assert_added(session: Session | AsyncSession, entity: Any) -> None:
    _assert_state(session, entity, EntityState.ADDED)


def assert_modified(session: Session | AsyncSession, entity: Any) -> None:
    _assert_state(session, entity, EntityState.MODIFIED)


def assert_deleted(session: Session | AsyncSession, entity: Any) -> None:
    _assert_state(session, entity, EntityState.DELETED)


def assert_unchanged(session: Session | AsyncSession, entity: Any) -> None:
    _assert_state(session, entity, EntityState.UNCHANGED)


def assert_detached(session: Session | AsyncSession, entity: Any) -> None:
    _assert_state(session, entity, EntityState.DETACHED)
