"""
Migration run orchestrator.

Drives one run end to end:

    discover -> read applied set -> diff -> (snapshot) -> execute -> (restore) -> report

Guarantees after the run terminates:
- success: every pending migration applied and tracked
- failure: the database is byte-identical to its pre-run state (or absent,
  if it didn't exist), and ExecutionError is raised
- snapshot/restore failure: BackupError / RestoreError propagate unchanged,
  so callers can report them as a distinct, more severe failure

With nothing pending the run is a true no-op: no snapshot, no write
transaction, and a missing database file is not created.
"""

import logging
import sqlite3
from collections.abc import Callable
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path

from ..config.schema import MigrateSettings
from ..exceptions import ConfigurationError, ExecutionError
from ..storage.snapshot import RESTORE_MESSAGES, recover, run_snapshot
from ..storage.sqlite import open_connection
from ..utils.logging import log_with_context
from ..utils.time import run_id_from_timestamp
from .discovery import MigrationFile, discover_migrations
from .executor import ExecutionReport, execute_pending
from .tracker import (
    AppliedMigration,
    SQLiteMigrationTracker,
    compute_pending,
    find_orphaned,
)

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """
    Summary of a successful run.

    Attributes:
        run_id: Run identifier (timestamp slug)
        db_path: Migrated database
        ran: Migrations applied in this run
        total: Migration files discovered
        applied: Names applied in this run, in order
        orphaned: Tracked names with no file in the migrations directory
    """

    run_id: str
    db_path: Path
    ran: int
    total: int
    applied: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)


def read_applied(
    db_path: Path, busy_timeout_ms: int
) -> list[AppliedMigration]:
    """
    Read the applied set without modifying the database.

    A missing database file has nothing applied; it is not created here.

    Raises:
        ConfigurationError: If db_path exists but isn't a readable SQLite database
    """
    if not db_path.exists():
        return []

    try:
        with closing(open_connection(db_path, busy_timeout_ms)) as conn:
            return SQLiteMigrationTracker(conn).list_applied()
    except sqlite3.Error as e:
        raise ConfigurationError(
            f"Cannot read applied migrations from {db_path}: {e}"
        ) from e


def plan_run(
    settings: MigrateSettings,
) -> tuple[list[MigrationFile], list[MigrationFile], list[str]]:
    """
    Compute what a run would do without touching the database.

    Returns:
        (discovered, pending, orphaned)
    """
    discovered = discover_migrations(settings.migrations_dir)
    applied_names = {
        m.name for m in read_applied(settings.db_path, settings.busy_timeout_ms)
    }
    pending = compute_pending(discovered, applied_names)
    orphaned = find_orphaned(discovered, applied_names)
    return discovered, pending, orphaned


def _execute(
    settings: MigrateSettings,
    pending: list[MigrationFile],
    on_applied: Callable[[MigrationFile], None] | None,
) -> ExecutionReport:
    with closing(open_connection(settings.db_path, settings.busy_timeout_ms)) as conn:
        conn.execute(f"PRAGMA journal_mode = {settings.journal_mode}")
        return execute_pending(
            conn, SQLiteMigrationTracker(conn), pending, on_applied=on_applied
        )


def run_migrations(
    settings: MigrateSettings,
    run_id: str | None = None,
    on_applied: Callable[[MigrationFile], None] | None = None,
) -> RunReport:
    """
    Apply all pending migrations, restoring the database on failure.

    Args:
        settings: Resolved settings (db path, migrations dir, ...)
        run_id: Optional run identifier; generated from the clock if omitted
        on_applied: Optional callback invoked after each successful migration

    Returns:
        RunReport for a successful run (ran may be 0)

    Raises:
        ConfigurationError: Missing/invalid migrations dir or unreadable database
        DiscoveryError: Unreadable migration files or bad filenames
        ExecutionError: A migration failed; the database was already restored
            (or the fresh file deleted), see ExecutionError.restore_action
        BackupError: The pre-run snapshot couldn't be taken (nothing ran)
        RestoreError: The database couldn't be restored after a failure

    Example:
        >>> report = run_migrations(load_settings("data/app.db", "db/migrations"))
        >>> report.ran
        2
    """
    run_id = run_id or run_id_from_timestamp()
    db_path = settings.db_path

    discovered, pending, orphaned = plan_run(settings)

    if orphaned:
        log_with_context(
            logger,
            logging.WARNING,
            f"{len(orphaned)} applied migration(s) have no file in {settings.migrations_dir}",
            context={"orphaned": orphaned},
            run_id=run_id,
        )

    if not pending:
        log_with_context(
            logger,
            logging.INFO,
            "Database is up to date",
            context={"db_path": str(db_path), "total": len(discovered)},
            run_id=run_id,
        )
        return RunReport(
            run_id=run_id, db_path=db_path, ran=0, total=len(discovered), orphaned=orphaned
        )

    log_with_context(
        logger,
        logging.INFO,
        f"{len(pending)} pending migration(s)",
        context={"db_path": str(db_path), "pending": [m.name for m in pending]},
        run_id=run_id,
    )

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot create database directory {db_path.parent}: {e}"
        ) from e

    applied_so_far: list[str] = []
    notifying: str | None = None

    def _track(migration: MigrationFile) -> None:
        nonlocal notifying
        applied_so_far.append(migration.name)
        if on_applied is not None:
            notifying = migration.name
            on_applied(migration)
            notifying = None

    with run_snapshot(
        db_path, run_id, settings.snapshot_dir, settings.busy_timeout_ms
    ) as backup:
        try:
            execution = _execute(settings, pending, _track)
        except Exception as e:
            # Anything unexpected mid-run (locked db, journal mode switch,
            # callback error) still reverts the whole run
            action = recover(db_path, backup, settings.busy_timeout_ms)
            # A failing callback belongs to the migration it was notified
            # about, which has already committed
            failed_name = (
                notifying or pending[min(len(applied_so_far), len(pending) - 1)].name
            )
            log_with_context(
                logger,
                logging.ERROR,
                f"Run aborted at {failed_name}; {RESTORE_MESSAGES[action]}",
                context={"error": str(e)},
                run_id=run_id,
            )
            raise ExecutionError(failed_name, e, action, applied_so_far) from e

        if execution.failure is not None:
            action = recover(db_path, backup, settings.busy_timeout_ms)
            log_with_context(
                logger,
                logging.ERROR,
                f"Migration {execution.failure.name} failed; {RESTORE_MESSAGES[action]}",
                context={
                    "error": str(execution.failure.error),
                    "reverted": execution.applied,
                },
                run_id=run_id,
            )
            raise ExecutionError(
                execution.failure.name,
                execution.failure.error,
                action,
                execution.applied,
            )

    log_with_context(
        logger,
        logging.INFO,
        f"Applied {execution.ran} migration(s)",
        context={"db_path": str(db_path), "applied": execution.applied},
        run_id=run_id,
    )
    return RunReport(
        run_id=run_id,
        db_path=db_path,
        ran=execution.ran,
        total=len(discovered),
        applied=execution.applied,
        orphaned=orphaned,
    )
