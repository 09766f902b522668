"""Tests for dbtestbed.errors."""

from __future__ import annotations

import pytest

from dbtestbed.errors import (
    DbAssertionError,
    EntityNotFoundError,
    NotInitializedError,
    SessionTypeError,
    SnapshotNotFoundError,
    TestBedError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type, builtin",
        [
            (DbAssertionError, AssertionError),
            (NotInitializedError, RuntimeError),
            (SessionTypeError, TypeError),
            (EntityNotFoundError, LookupError),
            (SnapshotNotFoundError, KeyError),
        ],
    )
    def test_is_testbed_error_and_builtin(self, exc_type, builtin):
        assert issubclass(exc_type, TestBedError)
        assert issubclass(exc_type, builtin)

    def test_db_assertion_caught_as_assertion_error(self):
        with pytest.raises(AssertionError):
            raise DbAssertionError("boom")


class TestMessages:
    def test_snapshot_not_found_message_is_not_quoted(self):
        assert str(SnapshotNotFoundError("Snapshot 'x' does not exist.")) == (
            "Snapshot 'x' does not exist."
        )

    def test_message_preserved(self):
        assert str(EntityNotFoundError("missing")) == "missing"
