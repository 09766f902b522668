"""Named snapshots of a session's tracked objects.

A snapshot records, for every object the session tracks, its
:class:`~dbtestbed.tracking.EntityState` along with copies of its current
and original column values.  Restoring puts the same objects back into the
session in those states with those values.  Only the session is rewound:
rows already written to the database stay as they are.

Usage::

    snapshots = SnapshotManager(session)
    snapshots.take_snapshot("before")
    user.name = "Changed"
    snapshots.restore_snapshot("before")
    assert user.name == "John"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, make_transient, make_transient_to_detached
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.base import NO_VALUE

from dbtestbed.errors import SnapshotNotFoundError
from dbtestbed.tracking import EntityState, entity_state, sync_session_of, tracked_entities

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT = "default"


@dataclass
class EntitySnapshot:
    entity: Any
    state: EntityState
    current_values: dict[str, Any]
    original_values: dict[str, Any]


@dataclass
class Snapshot:
    name: str
    entities: list[EntitySnapshot] = field(default_factory=list)


def _capture(session: Session, entity: Any) -> EntitySnapshot:
    insp = inspect(entity)
    columns = [attr.key for attr in insp.mapper.column_attrs]
    current = {key: insp.dict[key] for key in columns if key in insp.dict}
    original = dict(current)
    for key, value in insp.committed_state.items():
        if key in original and value is not NO_VALUE:
            original[key] = value
    return EntitySnapshot(entity, entity_state(session, entity), current, original)


class SnapshotManager:
    """Takes and restores named snapshots of one session.

    Accepts a ``Session`` or an ``AsyncSession``; nothing here performs IO.
    """

    def __init__(self, session: Session | AsyncSession) -> None:
        self.session = session
        self._snapshots: dict[str, Snapshot] = {}

    @property
    def _sync_session(self) -> Session:
        return sync_session_of(self.session)

    def take_snapshot(self, name: str = DEFAULT_SNAPSHOT) -> None:
        """Record the tracked objects under *name*, replacing any previous one."""
        sess = self._sync_session
        snapshot = Snapshot(name, [_capture(sess, obj) for obj in tracked_entities(sess)])
        self._snapshots[name] = snapshot
        logger.debug("Took snapshot '%s' of %d entities", name, len(snapshot.entities))

    def restore_snapshot(self, name: str = DEFAULT_SNAPSHOT) -> None:
        """Detach everything, then re-attach the objects recorded under *name*.

        Raises
        ------
        SnapshotNotFoundError
            If no snapshot called *name* exists.
        """
        snapshot = self._snapshots.get(name)
        if snapshot is None:
            raise SnapshotNotFoundError(f"Snapshot '{name}' does not exist.")

        sess = self._sync_session
        sess.expunge_all()
        for entry in snapshot.entities:
            if entry.state is EntityState.ADDED:
                self._restore_added(sess, entry)
            else:
                self._restore_persistent(sess, entry)
        logger.debug("Restored snapshot '%s'", name)

    @staticmethod
    def _restore_added(sess: Session, entry: EntitySnapshot) -> None:
        entity = entry.entity
        if inspect(entity).key is not None:
            # flushed since the snapshot was taken
            make_transient(entity)
        for key, value in entry.current_values.items():
            setattr(entity, key, value)
        sess.add(entity)

    @staticmethod
    def _restore_persistent(sess: Session, entry: EntitySnapshot) -> None:
        entity = entry.entity
        insp = inspect(entity)
        if insp.was_deleted:
            make_transient(entity)
        for key, value in entry.original_values.items():
            set_committed_value(entity, key, value)
        if insp.key is None:
            make_transient_to_detached(entity)
        sess.add(entity)
        for key, value in entry.current_values.items():
            if entry.original_values.get(key) != value:
                setattr(entity, key, value)
        if entry.state is EntityState.DELETED:
            sess.delete(entity)

    def has_snapshot(self, name: str = DEFAULT_SNAPSHOT) -> bool:
        return name in self._snapshots

    def delete_snapshot(self, name: str = DEFAULT_SNAPSHOT) -> None:
        """Forget *name*. Unknown names are ignored."""
        self._snapshots.pop(name, None)

    def clear_snapshots(self) -> None:
        self._snapshots.clear()

    def snapshot_names(self) -> list[str]:
        return list(self._snapshots)

    def close(self) -> None:
        self.clear_snapshots()

    def __enter__(self) -> SnapshotManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_snapshot_manager(session: Session | AsyncSession) -> SnapshotManager:
    return SnapshotManager(session)
