"""dbtestbed -- disposable SQLite databases for SQLAlchemy and SQLModel tests.

Top-level convenience re-exports::

    from dbtestbed import DbTestBase, create_test_db, assert_count
    from dbtestbed.extensions import find_or_throw  # session helpers
    from dbtestbed.generator import generate        # random test data
"""

__version__ = "0.1.0"

from dbtestbed.assertions import (
    assert_added,
    assert_count,
    assert_count_async,
    assert_deleted,
    assert_detached,
    assert_empty,
    assert_empty_async,
    assert_exists,
    assert_exists_async,
    assert_modified,
    assert_not_empty,
    assert_not_empty_async,
    assert_not_exists,
    assert_not_exists_async,
    assert_save_fails,
    assert_save_fails_async,
    assert_save_succeeds,
    assert_save_succeeds_async,
    assert_unchanged,
)
from dbtestbed.base import AsyncDbTestBase, DbTestBase
from dbtestbed.config import DbProvider, QueryTrackingBehavior, TestBedOptions
from dbtestbed.database import AsyncTestDatabase, TestDatabase
from dbtestbed.errors import (
    DbAssertionError,
    EntityNotFoundError,
    NotInitializedError,
    SessionTypeError,
    SnapshotNotFoundError,
    TestBedError,
)
from dbtestbed.factory import (
    create_test_db,
    create_test_db_async,
    create_test_db_with_provider,
    quick_session,
)
from dbtestbed.fixtures import CollectionDbFixture, IsolatedDbFixture, SharedDbFixture
from dbtestbed.providers import (
    DatabaseProvider,
    InMemoryProvider,
    SqliteFileProvider,
    SqliteMemoryProvider,
    create_provider,
)
from dbtestbed.seeding import (
    AsyncSeeder,
    Seeder,
    SeederBuilder,
    seed_generated,
    seed_generated_async,
    seed_if_empty,
    seed_if_empty_async,
    seed_many,
    seed_many_async,
    seed_one,
    seed_one_async,
    seed_with,
    seed_with_async,
    seeder,
)
from dbtestbed.session import save_changes, save_changes_async
from dbtestbed.snapshots import SnapshotManager, create_snapshot_manager
from dbtestbed.tracking import EntityState, entity_state
from dbtestbed.transactions import (
    AsyncRollbackScope,
    RollbackScope,
    create_rollback_scope,
    create_rollback_scope_async,
    in_rollback_transaction,
    in_rollback_transaction_async,
    in_transaction,
    in_transaction_async,
)

__all__ = [
    "__version__",
    # Assertions
    "assert_added",
    "assert_count",
    "assert_count_async",
    "assert_deleted",
    "assert_detached",
    "assert_empty",
    "assert_empty_async",
    "assert_exists",
    "assert_exists_async",
    "assert_modified",
    "assert_not_empty",
    "assert_not_empty_async",
    "assert_not_exists",
    "assert_not_exists_async",
    "assert_save_fails",
    "assert_save_fails_async",
    "assert_save_succeeds",
    "assert_save_succeeds_async",
    "assert_unchanged",
    # Base classes
    "AsyncDbTestBase",
    "DbTestBase",
    # Configuration
    "DbProvider",
    "QueryTrackingBehavior",
    "TestBedOptions",
    # Databases and factory
    "AsyncTestDatabase",
    "TestDatabase",
    "create_test_db",
    "create_test_db_async",
    "create_test_db_with_provider",
    "quick_session",
    # Errors
    "DbAssertionError",
    "EntityNotFoundError",
    "NotInitializedError",
    "SessionTypeError",
    "SnapshotNotFoundError",
    "TestBedError",
    # Fixtures
    "CollectionDbFixture",
    "IsolatedDbFixture",
    "SharedDbFixture",
    # Providers
    "DatabaseProvider",
    "InMemoryProvider",
    "SqliteFileProvider",
    "SqliteMemoryProvider",
    "create_provider",
    # Seeding
    "AsyncSeeder",
    "Seeder",
    "SeederBuilder",
    "seed_generated",
    "seed_generated_async",
    "seed_if_empty",
    "seed_if_empty_async",
    "seed_many",
    "seed_many_async",
    "seed_one",
    "seed_one_async",
    "seed_with",
    "seed_with_async",
    "seeder",
    # Session
    "save_changes",
    "save_changes_async",
    # Snapshots
    "SnapshotManager",
    "create_snapshot_manager",
    # Tracking
    "EntityState",
    "entity_state",
    # Transactions
    "AsyncRollbackScope",
    "RollbackScope",
    "create_rollback_scope",
    "create_rollback_scope_async",
    "in_rollback_transaction",
    "in_rollback_transaction_async",
    "in_transaction",
    "in_transaction_async",
]
