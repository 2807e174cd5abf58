"""
Migration engine: discovery, applied-set tracking, execution and run orchestration.

Exports:
    discover_migrations: Ordered MigrationFile list from a directory
    SQLiteMigrationTracker: Tracking-table repository
    execute_pending: Sequential executor with per-migration results
    run_migrations: One full run with snapshot/restore
"""

from .discovery import MigrationFile, discover_migrations
from .executor import ExecutionReport, MigrationResult, apply_migration, execute_pending
from .runner import RunReport, plan_run, run_migrations
from .tracker import (
    AppliedMigration,
    InMemoryMigrationTracker,
    MigrationTracker,
    SQLiteMigrationTracker,
    compute_pending,
)

__all__ = [
    "AppliedMigration",
    "ExecutionReport",
    "InMemoryMigrationTracker",
    "MigrationFile",
    "MigrationResult",
    "MigrationTracker",
    "RunReport",
    "SQLiteMigrationTracker",
    "apply_migration",
    "compute_pending",
    "discover_migrations",
    "execute_pending",
    "plan_run",
    "run_migrations",
]
