"""dbtestbed exception hierarchy.

All library-specific exceptions inherit from :class:`TestBedError`.  Errors
raised by SQLAlchemy or SQLite themselves (``IntegrityError`` and friends)
are never wrapped, except by the assertion helpers which chain them.
"""

from __future__ import annotations


class TestBedError(Exception):
    """Base exception for all dbtestbed errors."""

    __test__ = False


class DbAssertionError(TestBedError, AssertionError):
    """Raised when a database assertion fails."""


class NotInitializedError(TestBedError, RuntimeError):
    """Raised when a test database is used before it was initialized."""


class SessionTypeError(TestBedError, TypeError):
    """Raised when a session class cannot be used to build sessions."""


class EntityNotFoundError(TestBedError, LookupError):
    """Raised when a lookup helper finds no matching entity."""


class SnapshotNotFoundError(TestBedError, KeyError):
    """Raised when restoring a snapshot name that was never taken."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""
