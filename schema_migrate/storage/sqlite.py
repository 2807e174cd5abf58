"""
SQLite connection helpers for schema-migrate.

Every connection the engine opens goes through open_connection() so pragmas
are applied consistently:
- PRAGMA foreign_keys = ON (disabled by default in SQLite)
- PRAGMA busy_timeout from settings

Connections are opened with isolation_level=None: the executor issues
BEGIN / COMMIT / ROLLBACK itself so a migration and its tracking row share
one transaction.

Security:
    - ALL queries with values use parameterized statements
    - Migration SQL is trusted input from the deployer's migrations directory
"""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path

from ..config.constants import DEFAULT_BUSY_TIMEOUT_MS
from ..exceptions import RestoreError

logger = logging.getLogger(__name__)

# Files SQLite keeps beside the main database file
SIDE_FILE_SUFFIXES = ("-wal", "-shm", "-journal")


def open_connection(
    db_path: str | Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
) -> sqlite3.Connection:
    """
    Open a SQLite connection with the engine's standard pragmas.

    Creates the database file if it doesn't exist; callers that must not
    create it check existence first.

    Args:
        db_path: Database file path
        busy_timeout_ms: Milliseconds to wait on a locked database

    Returns:
        sqlite3.Connection in autocommit mode (isolation_level=None)
    """
    conn = sqlite3.connect(str(db_path), isolation_level=None)
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def side_files(db_path: str | Path) -> list[Path]:
    """Return the WAL/SHM/rollback-journal paths that belong to db_path."""
    db_path = Path(db_path)
    return [db_path.with_name(db_path.name + suffix) for suffix in SIDE_FILE_SUFFIXES]


def remove_side_files(db_path: str | Path) -> None:
    """
    Delete stale WAL/SHM/journal files next to db_path.

    A restored main file must not be paired with a WAL written by the run
    being discarded.
    """
    for path in side_files(db_path):
        if path.exists():
            path.unlink()
            logger.debug(f"Removed stale side file {path}")


def checkpoint(db_path: str | Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
    """
    Fold any WAL content into the main database file.

    After this call the main file alone reflects the committed state, so a
    byte copy of it is a complete snapshot. No-op for non-WAL databases.
    """
    with closing(open_connection(db_path, busy_timeout_ms)) as conn:
        conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")


def check_integrity(
    db_path: str | Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
) -> None:
    """
    Run PRAGMA integrity_check against db_path.

    Raises:
        RestoreError: If the check reports anything other than "ok" or the
            file cannot be opened as a database

    Example:
        >>> check_integrity("data/app.db")  # silent when healthy
    """
    try:
        with closing(open_connection(db_path, busy_timeout_ms)) as conn:
            rows = conn.execute("PRAGMA integrity_check").fetchall()
    except sqlite3.Error as e:
        raise RestoreError(
            f"SQLite integrity_check could not run on {db_path}: {e}", db_path=db_path
        ) from e

    issues = [str(row[0]).strip() for row in rows]
    issues = [issue for issue in issues if issue and issue.lower() != "ok"]
    if issues:
        raise RestoreError(
            f"SQLite integrity_check failed for {db_path}: {'; '.join(issues)}",
            db_path=db_path,
        )
