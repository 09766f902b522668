"""pytest plugin: ready-made test database fixtures.

Registered through the ``pytest11`` entry point, so installing the package
makes these fixtures available everywhere::

    def test_signup(db_session):
        db_session.add(User(name="John", email="john@example.com"))
        save_changes(db_session)
        assert_count(db_session, User, 1)

Override ``testbed_options`` in a ``conftest.py`` to change how the
databases are built.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from dbtestbed.config import TestBedOptions
from dbtestbed.database import AsyncTestDatabase, TestDatabase


@pytest.fixture
def testbed_options() -> TestBedOptions:
    """Options used by the database fixtures below."""
    return TestBedOptions()


@pytest.fixture
def testdb(testbed_options: TestBedOptions) -> Iterator[TestDatabase]:
    """A fresh sync test database, closed after the test."""
    with TestDatabase.open(testbed_options) as db:
        yield db


@pytest.fixture
def db_session(testdb: TestDatabase) -> Session:
    return testdb.session


@pytest_asyncio.fixture
async def async_testdb(
    testbed_options: TestBedOptions,
) -> AsyncIterator[AsyncTestDatabase]:
    """A fresh async test database, closed after the test."""
    async with await AsyncTestDatabase.open(testbed_options) as db:
        yield db


@pytest_asyncio.fixture
async def async_db_session(async_testdb: AsyncTestDatabase) -> AsyncSession:
    return async_testdb.session
