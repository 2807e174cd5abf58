"""
Tests for storage.snapshot and storage.sqlite - run-scoped snapshot and restore.

Covers:
- Byte-for-byte snapshots, including WAL content folded in by the checkpoint
- Unique snapshot filenames and the optional snapshot directory
- Restore: byte-identical result, stale WAL/SHM removal, integrity check
- Fresh-database recovery (delete instead of restore)
- run_snapshot(): the snapshot never outlives the run
- Fault injection: copy/replace failures map to BackupError / RestoreError
"""

import sqlite3
from contextlib import closing
from unittest.mock import patch

import pytest

from schema_migrate.exceptions import BackupError, RestoreError
from schema_migrate.storage.snapshot import (
    RESTORE_MESSAGES,
    Backup,
    discard_fresh_database,
    discard_snapshot,
    recover,
    restore_snapshot,
    run_snapshot,
    take_snapshot,
)
from schema_migrate.storage.sqlite import (
    check_integrity,
    open_connection,
    remove_side_files,
    side_files,
)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def db_path(tmp_path):
    """Database with one table and one row, fully checkpointed."""
    path = tmp_path / "app.db"
    with closing(open_connection(path)) as conn:
        conn.execute("CREATE TABLE agents(id TEXT PRIMARY KEY)")
        conn.execute("INSERT INTO agents VALUES ('a1')")
    return path


def _agent_ids(path) -> list[str]:
    with closing(open_connection(path)) as conn:
        return [row[0] for row in conn.execute("SELECT id FROM agents ORDER BY id")]


# ============================================================================
# sqlite helpers
# ============================================================================


def test_open_connection_applies_pragmas(tmp_path):
    with closing(open_connection(tmp_path / "x.db", busy_timeout_ms=1234)) as conn:
        assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 1234
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert conn.isolation_level is None


def test_side_files(tmp_path):
    names = [p.name for p in side_files(tmp_path / "app.db")]
    assert names == ["app.db-wal", "app.db-shm", "app.db-journal"]


def test_remove_side_files(tmp_path):
    db = tmp_path / "app.db"
    (tmp_path / "app.db-wal").write_bytes(b"stale")
    (tmp_path / "app.db-shm").write_bytes(b"stale")

    remove_side_files(db)

    assert not (tmp_path / "app.db-wal").exists()
    assert not (tmp_path / "app.db-shm").exists()


def test_check_integrity_passes_on_healthy_db(db_path):
    check_integrity(db_path)


def test_check_integrity_rejects_garbage(tmp_path):
    garbage = tmp_path / "garbage.db"
    garbage.write_bytes(b"this is not a sqlite database" * 200)

    with pytest.raises(RestoreError):
        check_integrity(garbage)


# ============================================================================
# take_snapshot
# ============================================================================


class TestTakeSnapshot:
    """Test snapshot creation."""

    def test_missing_database_returns_none(self, tmp_path):
        assert take_snapshot(tmp_path / "missing.db", run_id="r1") is None
        assert list(tmp_path.iterdir()) == []

    def test_snapshot_is_byte_copy(self, db_path):
        backup = take_snapshot(db_path, run_id="2025-11-02T08-30-45Z")

        assert backup.source_db_path == db_path
        assert backup.snapshot_path.read_bytes() == db_path.read_bytes()
        assert backup.snapshot_path.parent == db_path.parent
        assert backup.snapshot_path.name.startswith("app.db.premigrate-2025-11-02T08-30-45Z.")
        assert backup.snapshot_path.name.endswith(".bak")
        assert backup.created_at.tzinfo is not None

    def test_snapshot_names_are_unique(self, db_path):
        first = take_snapshot(db_path, run_id="same")
        second = take_snapshot(db_path, run_id="same")

        assert first.snapshot_path != second.snapshot_path

    def test_snapshot_dir_is_created(self, db_path, tmp_path):
        snapshot_dir = tmp_path / "snapshots" / "nested"

        backup = take_snapshot(db_path, run_id="r1", snapshot_dir=snapshot_dir)

        assert backup.snapshot_path.parent == snapshot_dir

    def test_snapshot_includes_wal_content(self, tmp_path):
        """Committed rows still in the WAL must be part of the snapshot."""
        path = tmp_path / "wal.db"
        writer = open_connection(path)
        try:
            writer.execute("PRAGMA journal_mode = WAL")
            writer.execute("CREATE TABLE agents(id TEXT PRIMARY KEY)")
            writer.execute("INSERT INTO agents VALUES ('in-wal')")

            backup = take_snapshot(path, run_id="r1")
        finally:
            writer.close()

        assert _agent_ids(backup.snapshot_path) == ["in-wal"]

    def test_copy_failure_is_backup_error_without_leftovers(self, db_path):
        with patch(
            "schema_migrate.storage.snapshot.shutil.copyfile",
            side_effect=OSError("No space left on device"),
        ):
            with pytest.raises(BackupError, match="No space left"):
                take_snapshot(db_path, run_id="r1")

        assert list(db_path.parent.glob("*.bak")) == []

    def test_checkpoint_failure_is_backup_error(self, db_path):
        with patch(
            "schema_migrate.storage.snapshot.checkpoint",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            with pytest.raises(BackupError, match="database is locked"):
                take_snapshot(db_path, run_id="r1")


# ============================================================================
# restore_snapshot / discard_fresh_database / recover
# ============================================================================


class TestRestore:
    """Test restoring the pre-run state."""

    def test_restore_is_byte_identical(self, db_path):
        original_bytes = db_path.read_bytes()
        backup = take_snapshot(db_path, run_id="r1")

        with closing(open_connection(db_path)) as conn:
            conn.execute("CREATE TABLE created_by_run(id INT)")
            conn.execute("INSERT INTO agents VALUES ('a2')")

        action = restore_snapshot(backup)

        assert action == "restored_from_backup"
        assert db_path.read_bytes() == original_bytes
        assert _agent_ids(db_path) == ["a1"]

    def test_restore_removes_stale_wal(self, db_path):
        backup = take_snapshot(db_path, run_id="r1")
        (db_path.parent / "app.db-wal").write_bytes(b"from the failed run")
        (db_path.parent / "app.db-shm").write_bytes(b"from the failed run")

        restore_snapshot(backup)

        assert not (db_path.parent / "app.db-wal").exists()
        assert not (db_path.parent / "app.db-shm").exists()
        assert not (db_path.parent / "app.db.restore-tmp").exists()

    def test_replace_failure_is_restore_error(self, db_path):
        backup = take_snapshot(db_path, run_id="r1")

        with patch(
            "schema_migrate.storage.snapshot.os.replace",
            side_effect=OSError("Read-only file system"),
        ):
            with pytest.raises(RestoreError) as exc_info:
                restore_snapshot(backup)

        assert exc_info.value.snapshot_path == backup.snapshot_path
        assert exc_info.value.db_path == db_path
        assert not (db_path.parent / "app.db.restore-tmp").exists()

    def test_leftover_temp_file_cleanup_failure_keeps_restore_error(self, db_path):
        backup = take_snapshot(db_path, run_id="r1")

        with patch(
            "schema_migrate.storage.snapshot.os.replace",
            side_effect=OSError("Read-only file system"),
        ), patch(
            "schema_migrate.storage.snapshot.Path.unlink",
            side_effect=OSError("Permission denied"),
        ):
            with pytest.raises(RestoreError, match="Read-only file system"):
                restore_snapshot(backup)

    def test_corrupt_snapshot_fails_integrity_check(self, db_path, tmp_path):
        corrupt = tmp_path / "corrupt.bak"
        corrupt.write_bytes(b"not a database" * 500)
        backup = Backup(source_db_path=db_path, snapshot_path=corrupt, created_at=None)

        with pytest.raises(RestoreError):
            restore_snapshot(backup)

    def test_discard_fresh_database(self, tmp_path):
        db = tmp_path / "fresh.db"
        with closing(open_connection(db)) as conn:
            conn.execute("CREATE TABLE t(id INT)")
        (tmp_path / "fresh.db-journal").write_bytes(b"")

        action = discard_fresh_database(db)

        assert action == "deleted_fresh_database"
        assert list(tmp_path.iterdir()) == []

    def test_recover_without_backup_deletes(self, tmp_path):
        db = tmp_path / "fresh.db"
        db.write_bytes(b"")

        assert recover(db, None) == "deleted_fresh_database"
        assert not db.exists()

    def test_recover_with_backup_restores(self, db_path):
        backup = take_snapshot(db_path, run_id="r1")

        assert recover(db_path, backup) == "restored_from_backup"

    def test_restore_messages(self):
        assert RESTORE_MESSAGES["restored_from_backup"] == "restored db from backup"
        assert RESTORE_MESSAGES["deleted_fresh_database"] == "deleted partially-created db"


# ============================================================================
# run_snapshot
# ============================================================================


class TestRunSnapshot:
    """Test the run-scoped context manager."""

    def test_snapshot_removed_on_success(self, db_path):
        with run_snapshot(db_path, "r1") as backup:
            assert backup.snapshot_path.exists()

        assert not backup.snapshot_path.exists()

    def test_snapshot_removed_on_error(self, db_path):
        with pytest.raises(RuntimeError):
            with run_snapshot(db_path, "r1") as backup:
                raise RuntimeError("migration blew up")

        assert not backup.snapshot_path.exists()

    def test_fresh_database_yields_none(self, tmp_path):
        with run_snapshot(tmp_path / "fresh.db", "r1") as backup:
            assert backup is None

    def test_cleanup_failure_does_not_mask_body_error(self, db_path):
        with patch(
            "schema_migrate.storage.snapshot.discard_snapshot",
            side_effect=BackupError("Permission denied"),
        ):
            with pytest.raises(RuntimeError, match="migration blew up"):
                with run_snapshot(db_path, "r1"):
                    raise RuntimeError("migration blew up")

    def test_cleanup_failure_after_success_is_backup_error(self, db_path):
        with patch(
            "schema_migrate.storage.snapshot.discard_snapshot",
            side_effect=BackupError("Permission denied"),
        ):
            with pytest.raises(BackupError, match="Permission denied"):
                with run_snapshot(db_path, "r1"):
                    pass

    def test_discard_snapshot_tolerates_missing_file(self, db_path):
        backup = take_snapshot(db_path, run_id="r1")
        backup.snapshot_path.unlink()

        discard_snapshot(backup)
