"""Test database configuration via dataclass.

Priority (highest wins): constructor arg / attribute set in
``configure_options`` > env var > default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


_TRUTHY = ("1", "true", "yes")


class DbProvider(str, Enum):
    """Backing engine for a test database."""

    #: SQLite in memory with foreign keys enforced (recommended).
    SQLITE_MEMORY = "sqlite_memory"
    #: SQLite file in the temp directory, removed on dispose.
    SQLITE_FILE = "sqlite_file"
    #: SQLite in memory without constraint validation.
    IN_MEMORY = "in_memory"


class QueryTrackingBehavior(str, Enum):
    """Whether query results stay attached to the session."""

    TRACK_ALL = "track_all"
    NO_TRACKING = "no_tracking"
    NO_TRACKING_WITH_IDENTITY_RESOLUTION = "no_tracking_with_identity_resolution"


def _parse_enum(enum_cls: type[Enum], value: object, field_name: str) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        valid = sorted(member.value for member in enum_cls)
        raise ValueError(
            f"Invalid {field_name} '{value}'. Must be one of: {valid}"
        ) from None


@dataclass
class TestBedOptions:
    """Options for building a test database.

    ``provider``, ``log_to_console`` and ``database_path`` fall back to the
    ``TESTBED_PROVIDER``, ``TESTBED_LOG_TO_CONSOLE`` and
    ``TESTBED_DATABASE_PATH`` environment variables when left as ``None``.
    """

    __test__ = False

    provider: DbProvider | str | None = None
    auto_create_database: bool = True
    enable_sensitive_data_logging: bool = False
    enable_detailed_errors: bool = True
    log_to_console: bool | None = None
    database_name: str | None = None
    database_path: Path | str | None = None
    delete_on_dispose: bool = True
    query_tracking_behavior: QueryTrackingBehavior | str = QueryTrackingBehavior.TRACK_ALL

    def __post_init__(self) -> None:
        if self.provider is None:
            self.provider = os.getenv("TESTBED_PROVIDER", DbProvider.SQLITE_MEMORY.value)
        self.provider = _parse_enum(DbProvider, self.provider, "provider")

        if self.log_to_console is None:
            self.log_to_console = (
                os.getenv("TESTBED_LOG_TO_CONSOLE", "").lower() in _TRUTHY
            )

        if self.database_path is None:
            env_path = os.getenv("TESTBED_DATABASE_PATH")
            if env_path:
                self.database_path = env_path
        if self.database_path is not None:
            self.database_path = Path(self.database_path)

        self.query_tracking_behavior = _parse_enum(
            QueryTrackingBehavior, self.query_tracking_behavior, "query_tracking_behavior"
        )

    def validate(self) -> None:
        """Re-check fields that may have been reassigned after construction."""
        self.provider = _parse_enum(DbProvider, self.provider, "provider")
        self.query_tracking_behavior = _parse_enum(
            QueryTrackingBehavior, self.query_tracking_behavior, "query_tracking_behavior"
        )
        if self.database_path is not None:
            self.database_path = Path(self.database_path)

    def engine_kwargs(self) -> dict:
        """Keyword arguments for the SQLAlchemy engine factory."""
        return {
            "echo": bool(self.log_to_console),
            "hide_parameters": not self.enable_sensitive_data_logging,
        }
