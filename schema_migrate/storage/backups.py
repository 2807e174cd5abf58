"""
Operator-driven database backups (migrate-backup create / list / restore).

Unlike run-scoped snapshots, these backups are kept until the operator
removes them. They are written with VACUUM INTO, so each backup is a
compact, consistent copy even if the service is reading the database.

Backup files are named:

    <db basename>.<name>.<UTC stamp>.sqlite

e.g. `app.db.pre-upgrade.2025-11-02T08-30-45-123Z.sqlite`.
"""

import logging
import re
import sqlite3
from contextlib import closing
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

from ..config.constants import DEFAULT_BUSY_TIMEOUT_MS
from ..exceptions import BackupError, RestoreError
from ..utils.time import backup_stamp, utc_now
from .snapshot import Backup, restore_snapshot
from .sqlite import open_connection

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".sqlite"
MAX_NAME_LENGTH = 64


@dataclass
class BackupInfo:
    """A backup file on disk."""

    path: Path
    size_bytes: int
    modified_at: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["path"] = str(self.path)
        return data


def normalize_name(name: str | None) -> str:
    """
    Turn a free-form label into a filename-safe backup name.

    Lowercases, collapses anything outside [a-z0-9._-] into '-', trims
    leading/trailing '-', caps the length at 64 characters, and falls back
    to 'manual' when nothing is left.

    Examples:
        >>> normalize_name("Pre Upgrade!")
        'pre-upgrade'
        >>> normalize_name("***")
        'manual'
    """
    normalized = re.sub(r"[^a-z0-9._-]+", "-", (name or "").strip().lower())
    normalized = normalized.strip("-")[:MAX_NAME_LENGTH]
    return normalized or "manual"


def create_backup(
    db_path: str | Path,
    backup_dir: str | Path,
    name: str | None = "manual",
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> Path:
    """
    Write a consistent copy of the database into backup_dir.

    Args:
        db_path: Live database
        backup_dir: Destination directory (created if missing)
        name: Free-form label, normalized with normalize_name()
        busy_timeout_ms: Busy timeout for the backup connection

    Returns:
        Path of the new backup file

    Raises:
        BackupError: If the database doesn't exist or the copy fails
    """
    db_path = Path(db_path)
    backup_dir = Path(backup_dir)

    if not db_path.exists():
        raise BackupError(f"Database file does not exist: {db_path}")

    backup_path = backup_dir / (
        f"{db_path.name}.{normalize_name(name)}.{backup_stamp()}{BACKUP_SUFFIX}"
    )
    escaped = str(backup_path).replace("'", "''")

    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        with closing(open_connection(db_path, busy_timeout_ms)) as conn:
            conn.execute("PRAGMA wal_checkpoint(FULL)")
            conn.execute(f"VACUUM INTO '{escaped}'")
    except (sqlite3.Error, OSError) as e:
        raise BackupError(f"Failed to back up {db_path} to {backup_path}: {e}") from e

    logger.info(f"Created backup {backup_path}")
    return backup_path


def list_backups(db_path: str | Path, backup_dir: str | Path) -> list[BackupInfo]:
    """
    List backups of db_path in backup_dir, newest first.

    A missing backup directory yields an empty list.
    """
    db_name = Path(db_path).name
    backup_dir = Path(backup_dir)
    if not backup_dir.is_dir():
        return []

    rows = []
    for entry in backup_dir.iterdir():
        if not (
            entry.is_file()
            and entry.name.startswith(f"{db_name}.")
            and entry.name.endswith(BACKUP_SUFFIX)
        ):
            continue
        stat = entry.stat()
        rows.append((stat.st_mtime, entry, stat.st_size))

    rows.sort(key=lambda row: row[0], reverse=True)
    return [
        BackupInfo(
            path=entry,
            size_bytes=size,
            modified_at=datetime.fromtimestamp(mtime, UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        )
        for mtime, entry, size in rows
    ]


def resolve_backup_file(file_arg: str | Path, backup_dir: str | Path) -> Path:
    """
    Locate a backup given as a path or as a filename inside backup_dir.

    Raises:
        RestoreError: If neither location exists
    """
    candidate = Path(file_arg).expanduser()
    if candidate.is_file():
        return candidate.resolve()

    in_dir = Path(backup_dir) / file_arg
    if in_dir.is_file():
        return in_dir.resolve()

    raise RestoreError(f"Backup file not found: {file_arg}")


def restore_backup(
    db_path: str | Path,
    backup_file: str | Path,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> None:
    """
    Replace the live database with a backup.

    Stop the service before restoring: open connections would keep writing
    to the replaced file.

    Raises:
        RestoreError: If the backup is missing, the copy fails, or the
            restored database fails its integrity check
    """
    db_path = Path(db_path)
    backup_file = Path(backup_file)

    if not backup_file.is_file():
        raise RestoreError(
            f"Backup file does not exist: {backup_file}", db_path=db_path
        )

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise RestoreError(
            f"Cannot create database directory {db_path.parent}: {e}", db_path=db_path
        ) from e

    restore_snapshot(
        Backup(source_db_path=db_path, snapshot_path=backup_file, created_at=utc_now()),
        busy_timeout_ms,
    )
    logger.info(f"Restored {db_path} from {backup_file}")
