"""Change-tracking views over a SQLAlchemy session.

SQLAlchemy keeps its change tracking in the session's identity map and the
``new`` / ``dirty`` / ``deleted`` collections.  This module folds that into a
single :class:`EntityState` per object and installs the optional
"no tracking" query mode.

Both ``Session`` and ``AsyncSession`` are accepted everywhere; none of these
helpers perform IO.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, TypeVar

from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstanceState, ORMExecuteState, Session

from dbtestbed.config import QueryTrackingBehavior

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityState(str, Enum):
    """Where an object stands relative to a session."""

    DETACHED = "detached"
    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


def sync_session_of(session: Session | AsyncSession) -> Session:
    """Return the ``Session`` behind *session* (itself for sync sessions)."""
    if isinstance(session, AsyncSession):
        return session.sync_session
    return session


def entity_state(session: Session | AsyncSession, entity: Any) -> EntityState:
    """Classify *entity* relative to *session*."""
    sess = sync_session_of(session)
    state: InstanceState = inspect(entity)
    if state.session is not sess:
        return EntityState.DETACHED
    if state.pending:
        return EntityState.ADDED
    if state.deleted or entity in sess.deleted:
        return EntityState.DELETED
    if state.persistent:
        if sess.is_modified(entity):
            return EntityState.MODIFIED
        return EntityState.UNCHANGED
    return EntityState.DETACHED


def has_changes(session: Session | AsyncSession) -> bool:
    """True when the session holds unflushed inserts, updates or deletes."""
    sess = sync_session_of(session)
    if sess.new or sess.deleted:
        return True
    return any(sess.is_modified(obj) for obj in sess.dirty)


def tracked_entities(
    session: Session | AsyncSession, model: type[T] | None = None
) -> list[T]:
    """All objects attached to the session, optionally limited to *model*.

    The session holds its saved objects by weak reference, so a saved object
    the test no longer references may already have dropped out.  Pending
    objects are always included.
    """
    sess = sync_session_of(session)
    objects = list(sess.identity_map.values()) + list(sess.new)
    if model is None:
        return objects
    return [obj for obj in objects if isinstance(obj, model)]


# ---------------------------------------------------------------------------
# No-tracking queries
# ---------------------------------------------------------------------------


def _detach_query_results(orm_execute_state: ORMExecuteState) -> Any:
    if (
        not orm_execute_state.is_select
        or orm_execute_state.is_relationship_load
        or orm_execute_state.is_column_load
    ):
        return None

    sess = orm_execute_state.session
    already_tracked = {id(obj) for obj in sess}
    frozen = orm_execute_state.invoke_statement().freeze()

    for row in frozen().all():
        for value in row:
            if id(value) in already_tracked:
                continue
            state = inspect(value, raiseerr=False)
            if isinstance(state, InstanceState) and state.session is sess:
                sess.expunge(value)

    return frozen()


def apply_query_tracking(
    session: Session | AsyncSession, behavior: QueryTrackingBehavior
) -> None:
    """Install *behavior* on *session*.

    With either ``NO_TRACKING`` mode, objects loaded by a query are detached
    from the session once the result is read; objects the session already
    tracked stay attached.  A single result never holds two copies of one
    row, so the two no-tracking modes behave the same.
    """
    behavior = QueryTrackingBehavior(behavior)
    if behavior is QueryTrackingBehavior.TRACK_ALL:
        return
    sess = sync_session_of(session)
    event.listen(sess, "do_orm_execute", _detach_query_results)
    logger.debug("Query tracking set to %s", behavior.value)
