"""
Applied-set tracking for schema-migrate.

The durable record of which migrations have run lives in the
`schema_migrations` table inside the target database. The engine only
touches it through the MigrationTracker interface (list_applied /
record_applied), so tests can swap in an in-memory tracker.

Rows are only ever added. The single path that "removes" entries is a
whole-run restore, which replaces the database file itself.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Protocol

from ..config.constants import TRACKING_TABLE
from ..utils.time import utc_timestamp
from .discovery import MigrationFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedMigration:
    """
    A row of the tracking table.

    Attributes:
        name: Migration filename (primary key)
        applied_at: ISO 8601 UTC timestamp with 'Z' suffix
    """

    name: str
    applied_at: str


class MigrationTracker(Protocol):
    """
    Repository of applied migrations.

    Implementations don't inherit from this Protocol; they only need to
    provide these methods.
    """

    def ensure_table(self) -> None:
        """Create the tracking storage if it doesn't exist (idempotent)."""
        ...

    def list_applied(self) -> list[AppliedMigration]:
        """Return every applied migration, ordered by name."""
        ...

    def record_applied(self, name: str, applied_at: str | None = None) -> None:
        """Record a migration as applied."""
        ...


class SQLiteMigrationTracker:
    """
    MigrationTracker backed by a table in the target SQLite database.

    record_applied() runs on the caller's connection without committing, so
    the executor can include it in the same transaction as the migration SQL.

    Example:
        >>> tracker = SQLiteMigrationTracker(conn)
        >>> tracker.ensure_table()
        >>> tracker.record_applied("0001_init.sql")
        >>> [m.name for m in tracker.list_applied()]
        ['0001_init.sql']
    """

    def __init__(self, conn: sqlite3.Connection, table_name: str = TRACKING_TABLE):
        if not table_name.isidentifier():
            raise ValueError(f"Invalid tracking table name: {table_name!r}")
        self.conn = conn
        self.table_name = table_name

    def table_exists(self) -> bool:
        cursor = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (self.table_name,),
        )
        return cursor.fetchone() is not None

    def ensure_table(self) -> None:
        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                name TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
        """)

    def list_applied(self) -> list[AppliedMigration]:
        # A database the engine has never touched has no table yet; reading
        # must not create it
        if not self.table_exists():
            return []

        cursor = self.conn.execute(
            f"SELECT name, applied_at FROM {self.table_name} ORDER BY name"
        )
        return [AppliedMigration(name=row[0], applied_at=row[1]) for row in cursor]

    def record_applied(self, name: str, applied_at: str | None = None) -> None:
        self.conn.execute(
            f"INSERT INTO {self.table_name} (name, applied_at) VALUES (?, ?)",
            (name, applied_at or utc_timestamp()),
        )


class InMemoryMigrationTracker:
    """MigrationTracker kept in a dict, for callers that track outside the database."""

    def __init__(self, applied: list[str] | None = None):
        self._applied: dict[str, str] = {}
        for name in applied or []:
            self._applied[name] = utc_timestamp()

    def ensure_table(self) -> None:
        pass

    def list_applied(self) -> list[AppliedMigration]:
        return [
            AppliedMigration(name=name, applied_at=self._applied[name])
            for name in sorted(self._applied)
        ]

    def record_applied(self, name: str, applied_at: str | None = None) -> None:
        if name in self._applied:
            raise ValueError(f"Migration already recorded: {name}")
        self._applied[name] = applied_at or utc_timestamp()


def compute_pending(
    discovered: list[MigrationFile], applied_names: set[str]
) -> list[MigrationFile]:
    """
    Return discovered migrations that haven't been applied, in discovery order.
    """
    return [m for m in discovered if m.name not in applied_names]


def find_orphaned(discovered: list[MigrationFile], applied_names: set[str]) -> list[str]:
    """
    Return applied names with no matching file in the migrations directory.

    Orphans are reported, never deleted.
    """
    discovered_names = {m.name for m in discovered}
    return sorted(name for name in applied_names if name not in discovered_names)
