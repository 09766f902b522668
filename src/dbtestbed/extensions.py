"""Session convenience helpers for tests.

Thin wrappers that read well inside a test body: the ``should_*`` helpers
delegate to :mod:`dbtestbed.assertions`, the rest combine common session
calls with :func:`~dbtestbed.session.save_changes`.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from sqlalchemy import ColumnElement, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from dbtestbed import assertions
from dbtestbed.errors import EntityNotFoundError
from dbtestbed.session import save_changes, save_changes_async
from dbtestbed.tracking import EntityState, entity_state, tracked_entities

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


def _identity(key: tuple[Any, ...]) -> Any:
    return key[0] if len(key) == 1 else key


def _not_found(model: type, key: tuple[Any, ...]) -> EntityNotFoundError:
    rendered = ", ".join(str(part) for part in key)
    return EntityNotFoundError(
        f"Entity of type '{model.__name__}' with key [{rendered}] not found."
    )


# -- assertions --------------------------------------------------------------


def should_have(session: Session, model: type, *criteria: ColumnElement[bool]) -> None:
    assertions.assert_exists(session, model, *criteria)


async def should_have_async(
    session: AsyncSession, model: type, *criteria: ColumnElement[bool]
) -> None:
    await assertions.assert_exists_async(session, model, *criteria)


def should_not_have(
    session: Session, model: type, *criteria: ColumnElement[bool]
) -> None:
    assertions.assert_not_exists(session, model, *criteria)


async def should_not_have_async(
    session: AsyncSession, model: type, *criteria: ColumnElement[bool]
) -> None:
    await assertions.assert_not_exists_async(session, model, *criteria)


def should_have_count(
    session: Session, model: type, expected: int, *criteria: ColumnElement[bool]
) -> None:
    assertions.assert_count(session, model, expected, *criteria)


def should_save_successfully(session: Session) -> None:
    assertions.assert_save_succeeds(session)


def should_fail_on_save(
    session: Session, exc_type: type[E] | None = None
) -> E | Exception:
    return assertions.assert_save_fails(session, exc_type)


# -- table and tracking management --------------------------------------------


def clear_table(session: Session, model: type) -> int:
    """Delete every row of *model* through the session and save.

    Rows are deleted one object at a time so ORM cascades apply.  Returns
    the number of rows deleted.
    """
    rows = session.scalars(select(model)).all()
    for row in rows:
        session.delete(row)
    save_changes(session)
    logger.debug("Cleared %d rows from %s", len(rows), model.__name__)
    return len(rows)


async def clear_table_async(session: AsyncSession, model: type) -> int:
    rows = (await session.scalars(select(model))).all()
    for row in rows:
        await session.delete(row)
    await save_changes_async(session)
    logger.debug("Cleared %d rows from %s", len(rows), model.__name__)
    return len(rows)


def clear_tracking(session: Session | AsyncSession) -> None:
    session.expunge_all()


def detach(session: Session | AsyncSession, entity: Any) -> None:
    session.expunge(entity)


def detach_all(session: Session | AsyncSession, model: type) -> None:
    """Detach every tracked object of *model*."""
    for entity in tracked_entities(session, model):
        session.expunge(entity)


def get_tracked_count(session: Session | AsyncSession, state: EntityState) -> int:
    return len(get_tracked(session, object, state))


def get_tracked(
    session: Session | AsyncSession, model: type[T], state: EntityState
) -> list[T]:
    """Tracked objects of *model* currently in *state*."""
    state = EntityState(state)
    return [
        entity
        for entity in tracked_entities(session, model)
        if entity_state(session, entity) is state
    ]


# -- lookups ------------------------------------------------------------------


def find_or_throw(session: Session, model: type[T], *key: Any) -> T:
    """``session.get`` that raises :class:`EntityNotFoundError` instead of
    returning ``None``.  Composite keys are passed positionally."""
    entity = session.get(model, _identity(key))
    if entity is None:
        raise _not_found(model, key)
    return entity


async def find_or_throw_async(session: AsyncSession, model: type[T], *key: Any) -> T:
    entity = await session.get(model, _identity(key))
    if entity is None:
        raise _not_found(model, key)
    return entity


def get_fresh(session: Session, model: type[T], *key: Any) -> T | None:
    """Load *model* by key from the database, bypassing the identity map.

    A tracked copy is detached first, so the returned object is a new
    instance holding the persisted values.
    """
    cached = session.identity_map.get(
        session.identity_key(model, _identity(key))
    )
    if cached is not None:
        session.expunge(cached)
    return session.get(model, _identity(key))


def first_or_throw(session: Session, model: type[T], *criteria: ColumnElement[bool]) -> T:
    entity = session.scalars(select(model).where(*criteria).limit(1)).first()
    if entity is None:
        raise EntityNotFoundError(
            f"No entity of type '{model.__name__}' matches the criteria."
        )
    return entity


def single_or_throw(session: Session, model: type[T], *criteria: ColumnElement[bool]) -> T:
    """Return the only row matching *criteria*.

    Raises ``NoResultFound`` or ``MultipleResultsFound`` otherwise.
    """
    return session.scalars(select(model).where(*criteria)).one()


# -- add / remove -------------------------------------------------------------


def add_and_save(session: Session, entity: T) -> T:
    session.add(entity)
    save_changes(session)
    return entity


async def add_and_save_async(session: AsyncSession, entity: T) -> T:
    session.add(entity)
    await save_changes_async(session)
    return entity


def add_range_and_save(session: Session, *entities: Any) -> None:
    session.add_all(entities)
    save_changes(session)


def remove_and_save(session: Session, entity: Any) -> None:
    session.delete(entity)
    save_changes(session)
