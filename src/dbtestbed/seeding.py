"""Seeding helpers.

Every helper adds objects to the session and saves them with
:func:`~dbtestbed.session.save_changes`, so seeded rows are committed unless
a transaction helper is in charge.

Usage::

    user = seed_one(session, User(name="John", email="john@example.com"))
    products = seed_generated(session, 5, lambda i: Product(name=f"P{i}", sku=f"SKU-{i:04d}"))

    seeder(session).add(user_a, user_b).add_generated(3, make_product).build()
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from dbtestbed.session import save_changes, save_changes_async

logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S", bound=Session)
A = TypeVar("A", bound=AsyncSession)


class Seeder(ABC, Generic[S]):
    """A reusable unit of seed data."""

    @abstractmethod
    def seed(self, session: S) -> None:
        """Add objects to *session*. Saving is done by the caller."""


class AsyncSeeder(ABC, Generic[A]):
    """A reusable unit of seed data that needs to await while seeding."""

    @abstractmethod
    async def seed(self, session: A) -> None:
        """Add objects to *session*. Saving is done by the caller."""


# ---------------------------------------------------------------------------
# Seeder / callable entry points
# ---------------------------------------------------------------------------


def seed_with(session: S, seeder: Seeder[S] | Callable[[S], Any]) -> S:
    """Run *seeder* (a :class:`Seeder` or a callable) and save."""
    if isinstance(seeder, Seeder):
        seeder.seed(session)
    else:
        seeder(session)
    save_changes(session)
    return session


async def seed_with_async(
    session: A, seeder: AsyncSeeder[A] | Callable[[A], Awaitable[Any] | Any]
) -> A:
    """Run an :class:`AsyncSeeder` or a (possibly async) callable and save."""
    if isinstance(seeder, AsyncSeeder):
        await seeder.seed(session)
    else:
        result = seeder(session)
        if inspect.isawaitable(result):
            await result
    await save_changes_async(session)
    return session


# ---------------------------------------------------------------------------
# Entity helpers
# ---------------------------------------------------------------------------


def seed_one(session: Session, entity: T) -> T:
    session.add(entity)
    save_changes(session)
    return entity


async def seed_one_async(session: AsyncSession, entity: T) -> T:
    session.add(entity)
    await save_changes_async(session)
    return entity


def seed_many(session: Session, entities: Iterable[T]) -> list[T]:
    """Add every object of *entities*, save, and return them as a list."""
    entity_list = list(entities)
    session.add_all(entity_list)
    save_changes(session)
    logger.debug("Seeded %d entities", len(entity_list))
    return entity_list


async def seed_many_async(session: AsyncSession, entities: Iterable[T]) -> list[T]:
    entity_list = list(entities)
    session.add_all(entity_list)
    await save_changes_async(session)
    logger.debug("Seeded %d entities", len(entity_list))
    return entity_list


def seed_generated(session: Session, count: int, factory: Callable[[int], T]) -> list[T]:
    """Seed ``factory(0) .. factory(count - 1)``."""
    return seed_many(session, (factory(i) for i in range(count)))


async def seed_generated_async(
    session: AsyncSession, count: int, factory: Callable[[int], T]
) -> list[T]:
    return await seed_many_async(session, (factory(i) for i in range(count)))


def seed_if_empty(session: Session, *entities: Any) -> bool:
    """Seed *entities* only when their table has no rows yet.

    The table is that of the first entity.  Returns whether anything was
    seeded.
    """
    if not entities:
        return False
    model = type(entities[0])
    if session.scalar(select(select(model).exists())):
        return False
    seed_many(session, entities)
    return True


async def seed_if_empty_async(session: AsyncSession, *entities: Any) -> bool:
    if not entities:
        return False
    model = type(entities[0])
    if await session.scalar(select(select(model).exists())):
        return False
    await seed_many_async(session, entities)
    return True


# ---------------------------------------------------------------------------
# Fluent builder
# ---------------------------------------------------------------------------


class SeederBuilder(Generic[S]):
    """Collects seed actions and runs them in order on :meth:`build`."""

    def __init__(self, session: S) -> None:
        self.session = session
        self._actions: list[Callable[[Any], Any]] = []

    def add(self, *entities: Any) -> SeederBuilder[S]:
        self._actions.append(lambda session: session.add_all(entities))
        return self

    def add_generated(self, count: int, factory: Callable[[int], Any]) -> SeederBuilder[S]:
        self._actions.append(
            lambda session: session.add_all([factory(i) for i in range(count)])
        )
        return self

    def with_action(self, action: Callable[[S], Any]) -> SeederBuilder[S]:
        self._actions.append(action)
        return self

    def build(self) -> S:
        for action in self._actions:
            action(self.session)
        save_changes(self.session)
        logger.debug("Seeder builder ran %d actions", len(self._actions))
        return self.session

    async def build_async(self) -> S:
        """Run the actions against an ``AsyncSession`` and save.

        Actions may return awaitables, which are awaited in order.
        """
        for action in self._actions:
            result = action(self.session)
            if inspect.isawaitable(result):
                await result
        await save_changes_async(self.session)
        logger.debug("Seeder builder ran %d actions", len(self._actions))
        return self.session


def seeder(session: S) -> SeederBuilder[S]:
    return SeederBuilder(session)
