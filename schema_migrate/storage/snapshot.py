"""
Run-scoped database snapshots and restore for schema-migrate.

Before the first pending migration executes, the live database file is
copied byte-for-byte to a snapshot file. If any migration in the run fails,
the snapshot is copied back over the live file, discarding every change the
run made (including migrations that succeeded earlier in the same run).

When the database did not exist before the run, no snapshot is taken and
recovery deletes the partially-created file instead.

The snapshot never outlives the run: run_snapshot() removes it on every
exit path.

Example:
    >>> with run_snapshot(db_path, run_id) as backup:
    ...     report = execute_pending(conn, tracker, pending)
    ...     if report.failure is not None:
    ...         action = recover(db_path, backup)
"""

import logging
import os
import shutil
import sqlite3
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal

from ..config.constants import DEFAULT_BUSY_TIMEOUT_MS
from ..exceptions import BackupError, RestoreError
from ..utils.time import run_id_from_timestamp, utc_now
from .sqlite import check_integrity, checkpoint, remove_side_files

logger = logging.getLogger(__name__)

RestoreAction = Literal["restored_from_backup", "deleted_fresh_database"]

RESTORE_MESSAGES: dict[str, str] = {
    "restored_from_backup": "restored db from backup",
    "deleted_fresh_database": "deleted partially-created db",
}


@dataclass
class Backup:
    """
    A run-scoped snapshot of the database file.

    Attributes:
        source_db_path: Live database the snapshot was taken from
        snapshot_path: Byte copy of the database
        created_at: UTC time the snapshot was taken
    """

    source_db_path: Path
    snapshot_path: Path
    created_at: datetime


def take_snapshot(
    db_path: str | Path,
    run_id: str | None = None,
    snapshot_dir: str | Path | None = None,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> Backup | None:
    """
    Copy the live database file to a uniquely named snapshot file.

    WAL content is checkpointed into the main file first so the copy is a
    complete picture of the pre-run state.

    Args:
        db_path: Live database path
        run_id: Run identifier used in the snapshot filename
        snapshot_dir: Directory for the snapshot (defaults to the db's directory)
        busy_timeout_ms: Busy timeout for the checkpoint connection

    Returns:
        Backup describing the snapshot, or None if db_path doesn't exist yet

    Raises:
        BackupError: If the checkpoint or the copy fails. No partial snapshot
            file is left behind.
    """
    db_path = Path(db_path)
    if not db_path.exists():
        logger.info(f"No existing database at {db_path}; snapshot skipped")
        return None

    run_id = run_id or run_id_from_timestamp()
    target_dir = Path(snapshot_dir) if snapshot_dir else db_path.parent

    try:
        checkpoint(db_path, busy_timeout_ms)
    except sqlite3.Error as e:
        raise BackupError(f"Failed to checkpoint {db_path} before snapshot: {e}") from e

    snapshot_path = None
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            prefix=f"{db_path.name}.premigrate-{run_id}.", suffix=".bak", dir=target_dir
        )
        os.close(fd)
        snapshot_path = Path(name)
        shutil.copyfile(db_path, snapshot_path)
    except OSError as e:
        if snapshot_path is not None:
            snapshot_path.unlink(missing_ok=True)
        raise BackupError(f"Failed to snapshot {db_path} into {target_dir}: {e}") from e

    logger.info(
        f"Snapshot taken: {snapshot_path}",
        extra={"context": {"db_path": str(db_path), "bytes": snapshot_path.stat().st_size}},
    )
    return Backup(source_db_path=db_path, snapshot_path=snapshot_path, created_at=utc_now())


def discard_snapshot(backup: Backup) -> None:
    """
    Delete a run-scoped snapshot file.

    Raises:
        BackupError: If the snapshot exists but cannot be removed
    """
    try:
        backup.snapshot_path.unlink(missing_ok=True)
    except OSError as e:
        raise BackupError(f"Failed to remove snapshot {backup.snapshot_path}: {e}") from e
    logger.debug(f"Snapshot removed: {backup.snapshot_path}")


def restore_snapshot(
    backup: Backup, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
) -> RestoreAction:
    """
    Overwrite the live database with its pre-run snapshot.

    The snapshot is copied to a temporary file beside the database and moved
    into place with os.replace(), so the live path never holds a half-written
    copy. Stale WAL/SHM files are removed and the result is integrity-checked.

    All connections to the database must be closed before calling this.

    Raises:
        RestoreError: If copying, replacing or the integrity check fails
    """
    db_path = backup.source_db_path
    tmp_path = db_path.with_name(db_path.name + ".restore-tmp")

    try:
        shutil.copyfile(backup.snapshot_path, tmp_path)
        os.replace(tmp_path, db_path)
        remove_side_files(db_path)
    except OSError as e:
        raise RestoreError(
            f"Failed to restore {db_path} from snapshot {backup.snapshot_path}: {e}",
            db_path=db_path,
            snapshot_path=backup.snapshot_path,
        ) from e
    finally:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove temporary restore file {tmp_path}: {e}")

    check_integrity(db_path, busy_timeout_ms)
    logger.warning(f"Restored {db_path} from snapshot {backup.snapshot_path}")
    return "restored_from_backup"


def discard_fresh_database(db_path: str | Path) -> RestoreAction:
    """
    Delete a database file that did not exist before the run.

    Raises:
        RestoreError: If the file (or one of its side files) cannot be removed
    """
    db_path = Path(db_path)
    try:
        db_path.unlink(missing_ok=True)
        remove_side_files(db_path)
    except OSError as e:
        raise RestoreError(
            f"Failed to delete partially-created database {db_path}: {e}",
            db_path=db_path,
        ) from e

    logger.warning(f"Deleted partially-created database {db_path}")
    return "deleted_fresh_database"


def recover(
    db_path: str | Path,
    backup: Backup | None,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> RestoreAction:
    """
    Return the database to its pre-run state after a failed migration.

    With a snapshot the file is restored from it; without one (fresh
    database) the file is deleted.
    """
    if backup is None:
        return discard_fresh_database(db_path)
    return restore_snapshot(backup, busy_timeout_ms)


@contextmanager
def run_snapshot(
    db_path: str | Path,
    run_id: str | None = None,
    snapshot_dir: str | Path | None = None,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
):
    """
    Take a snapshot for the duration of a run and always remove it afterwards.

    Yields:
        Backup, or None when the database doesn't exist yet

    If the body raises, a failure to remove the snapshot is only logged so
    the original error reaches the caller.

    Raises:
        BackupError: If the snapshot cannot be taken (the body never runs),
            or cannot be removed after a successful body
    """
    backup = take_snapshot(db_path, run_id, snapshot_dir, busy_timeout_ms)
    try:
        yield backup
    except BaseException:
        if backup is not None:
            try:
                discard_snapshot(backup)
            except BackupError as cleanup_error:
                logger.error(f"Snapshot cleanup failed: {cleanup_error}")
        raise
    else:
        if backup is not None:
            discard_snapshot(backup)
