"""
Migration executor.

Applies pending migrations strictly in discovery order, one at a time: a
later migration may depend on schema left by an earlier one, so nothing is
reordered or parallelized.

Each migration's SQL and its tracking row run inside a single SQLite
transaction. A failure rolls that transaction back and stops the run; the
outcome is returned as an explicit MigrationResult instead of an exception,
so the orchestrator can tell an expected migration failure apart from a
snapshot/restore failure.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from .discovery import MigrationFile
from .tracker import MigrationTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationResult:
    """
    Outcome of applying one migration.

    Attributes:
        name: Migration filename
        status: "applied" or "failed"
        error: Engine error for failed migrations
    """

    name: str
    status: Literal["applied", "failed"]
    error: Exception | None = None

    @classmethod
    def applied(cls, name: str) -> "MigrationResult":
        return cls(name=name, status="applied")

    @classmethod
    def failed(cls, name: str, error: Exception) -> "MigrationResult":
        return cls(name=name, status="failed", error=error)

    @property
    def ok(self) -> bool:
        return self.status == "applied"


@dataclass
class ExecutionReport:
    """
    Result of executing a pending list.

    Attributes:
        applied: Names applied in this run, in order
        failure: Result of the migration that stopped the run, if any
    """

    applied: list[str] = field(default_factory=list)
    failure: MigrationResult | None = None

    @property
    def ran(self) -> int:
        return len(self.applied)

    @property
    def ok(self) -> bool:
        return self.failure is None


def _rollback(conn: sqlite3.Connection, name: str) -> None:
    if not conn.in_transaction:
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error as e:
        # The file-level restore still reverts the run
        logger.warning(f"ROLLBACK after failed migration {name} also failed: {e}")


def apply_migration(
    conn: sqlite3.Connection, tracker: MigrationTracker, migration: MigrationFile
) -> MigrationResult:
    """
    Run one migration's SQL and record it, as a single transaction.

    Args:
        conn: Connection opened with isolation_level=None
        tracker: Tracker sharing the same connection (or an external one)
        migration: Migration to apply

    Returns:
        MigrationResult.applied(name) on success,
        MigrationResult.failed(name, error) on any SQLite error
    """
    try:
        # BEGIN is part of the script: executescript() would otherwise
        # commit a transaction opened beforehand
        conn.executescript(f"BEGIN;\n{migration.sql_text}\n")
        tracker.record_applied(migration.name)
        conn.execute("COMMIT")
    except sqlite3.Error as e:
        _rollback(conn, migration.name)
        logger.error(
            f"Migration {migration.name} failed: {e}",
            extra={"context": {"path": str(migration.source_path)}},
        )
        return MigrationResult.failed(migration.name, e)

    logger.info(f"Applied migration {migration.name}")
    return MigrationResult.applied(migration.name)


def execute_pending(
    conn: sqlite3.Connection,
    tracker: MigrationTracker,
    pending: list[MigrationFile],
    on_applied: Callable[[MigrationFile], None] | None = None,
) -> ExecutionReport:
    """
    Apply pending migrations in order, stopping at the first failure.

    Args:
        conn: Connection opened with isolation_level=None
        tracker: Repository the applied names are recorded in
        pending: Migrations to apply, already in discovery order
        on_applied: Optional callback invoked after each successful migration

    Returns:
        ExecutionReport with the applied names and the failing result, if any

    Example:
        >>> report = execute_pending(conn, tracker, pending)
        >>> report.ran
        2
    """
    tracker.ensure_table()

    report = ExecutionReport()
    for migration in pending:
        result = apply_migration(conn, tracker, migration)
        if not result.ok:
            report.failure = result
            break
        report.applied.append(migration.name)
        if on_applied is not None:
            on_applied(migration)

    return report
