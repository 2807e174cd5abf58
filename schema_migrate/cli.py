"""
CLI entrypoints for schema-migrate.

Two Typer applications:

    migrate          Apply pending SQL migrations to a SQLite database
    migrate-backup   Create, list and restore operator backups

Output modes:
- Human-friendly output (default): Rich spinner, colored messages, summary panel
- Agent-friendly output (--format json): one JSON object on stdout
- Quiet mode (--quiet): tab-separated minimal output

Exit codes:
    0: Success (including "nothing to do")
    1: A migration failed; the database was restored (or the fresh file deleted)
    2: Configuration or discovery error; nothing was changed
    3: Backup/restore failure; the data-safety guarantee could not be honored

Examples:
    # Apply migrations
    migrate --db ./data/app.db --migrations ./db/migrations

    # Same, for deploy scripts
    migrate --db ./data/app.db --migrations ./db/migrations --format json

    # Manual backup before a risky deploy
    migrate-backup create --db ./data/app.db --name pre-upgrade
"""

import logging
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from schema_migrate.config.constants import (
    ENV_BACKUP_DIR,
    ENV_CONFIG_PATH,
    ENV_DB_PATH,
    ENV_MIGRATIONS_DIR,
)
from schema_migrate.config.loader import (
    busy_timeout_from_env,
    load_backup_target,
    load_settings,
)
from schema_migrate.engine.runner import run_migrations
from schema_migrate.exceptions import (
    BackupError,
    ConfigurationError,
    DiscoveryError,
    ExecutionError,
    RestoreError,
)
from schema_migrate.storage.backups import (
    create_backup,
    list_backups,
    resolve_backup_file,
    restore_backup,
)
from schema_migrate.storage.snapshot import RESTORE_MESSAGES
from schema_migrate.utils.console import (
    error,
    info,
    output_mode,
    print_backup_table,
    print_run_failure,
    print_run_summary,
    spinner,
    success,
    warning,
)
from schema_migrate.utils.logging import setup_logging
from schema_migrate.utils.time import run_id_from_timestamp

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0  # Migrations applied (or nothing to do)
EXIT_MIGRATION_FAILED = 1  # A migration failed and the run was reverted
EXIT_CONFIG_ERROR = 2  # Bad --db/--migrations/--config or unreadable migrations
EXIT_DATA_SAFETY_ERROR = 3  # Snapshot or restore failed

app = typer.Typer(
    name="migrate",
    help="Apply forward-only SQL migrations to a SQLite database",
    add_completion=False,
)

backup_app = typer.Typer(
    name="migrate-backup",
    help="Create, list and restore SQLite database backups",
    add_completion=False,
)


def _read_version() -> str:
    """Read version from package metadata (pyproject.toml)."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("schema-migrate")
    except PackageNotFoundError:
        return "0.1.0"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"schema-migrate {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)


def _set_output_mode(format: str, quiet: bool, verbose: bool) -> None:
    if format not in ("text", "json"):
        # Mode not set yet, so report in plain text
        output_mode.format = "text"
        error(f"Invalid --format '{format}'. Must be 'text' or 'json'")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    output_mode.format = format
    output_mode.quiet = quiet
    output_mode._json_buffer.clear()

    # Suppress JSON logs in human mode (unless verbose=True)
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())


def _fail(message: str, exit_code: int) -> None:
    error(message)
    output_mode.flush_json()
    raise typer.Exit(exit_code)


@app.command()
def migrate(
    db: str | None = typer.Option(
        None,
        "--db",
        help="Path to the SQLite database file (created if missing)",
        envvar=ENV_DB_PATH,
    ),
    migrations: str | None = typer.Option(
        None,
        "--migrations",
        "-m",
        help="Directory of NNNN_description.sql migration files",
        envvar=ENV_MIGRATIONS_DIR,
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Optional YAML config file (database.path, migrations.dir, ...)",
        envvar=ENV_CONFIG_PATH,
    ),
    snapshot_dir: str | None = typer.Option(
        None,
        "--snapshot-dir",
        help="Directory for the pre-run snapshot (default: next to the database)",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output (tab-separated values)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """
    Apply pending migrations in filename order.

    The database is snapshotted before the first pending migration runs. If
    any migration fails, every change made by this run is discarded: the
    database is restored from the snapshot, or deleted if it didn't exist
    before the run.

    Exit codes:
      0: Success (prints ran=<N>)
      1: Migration failed, database restored
      2: Configuration or discovery error
      3: Backup/restore failure

    Examples:
      migrate --db ./data/app.db --migrations ./db/migrations
      migrate --config migrate.config.yaml --format json
    """
    _set_output_mode(format, quiet, verbose)

    try:
        settings = load_settings(
            db_path=db,
            migrations_dir=migrations,
            config_path=config,
            snapshot_dir=snapshot_dir,
        )
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG_ERROR)

    run_id = run_id_from_timestamp()
    info(f"Database: {settings.db_path}")
    info(f"Migrations: {settings.migrations_dir}")

    def _on_applied(migration) -> None:
        success(f"applied {migration.name}")

    try:
        with spinner("Applying migrations..."):
            report = run_migrations(settings, run_id=run_id, on_applied=_on_applied)

    except (ConfigurationError, DiscoveryError) as e:
        _fail(f"{e}", EXIT_CONFIG_ERROR)

    except ExecutionError as e:
        action_message = None
        if e.restore_action is not None:
            action_message = f"{RESTORE_MESSAGES[e.restore_action]}: {settings.db_path}"
        print_run_failure(e.migration_name, str(e.cause), action_message)
        raise typer.Exit(EXIT_MIGRATION_FAILED)

    except BackupError as e:
        _fail(
            f"FATAL: could not snapshot the database, no migrations were applied: {e}",
            EXIT_DATA_SAFETY_ERROR,
        )

    except RestoreError as e:
        _fail(
            f"FATAL: restore failed, {settings.db_path} may be partially migrated. "
            f"Restore it manually before retrying: {e}",
            EXIT_DATA_SAFETY_ERROR,
        )

    except Exception as e:
        logger.error("Unexpected error during migration run", exc_info=True)
        _fail(f"Unexpected error: {e}", EXIT_MIGRATION_FAILED)

    if report.orphaned:
        warning(
            f"Tracked migrations with no file in {settings.migrations_dir}: "
            f"{', '.join(report.orphaned)}"
        )

    print_run_summary(
        run_id=report.run_id,
        db_path=str(report.db_path),
        ran=report.ran,
        total=report.total,
        applied=report.applied,
    )
    raise typer.Exit(EXIT_SUCCESS)


# ============================================================================
# migrate-backup
# ============================================================================


def _db_option():
    return typer.Option(
        None,
        "--db",
        help="Path to the SQLite database file (or database.path from --config)",
        envvar=ENV_DB_PATH,
    )


def _backup_dir_option():
    return typer.Option(
        None,
        "--backup-dir",
        help="Backup directory (default: backups.dir from --config, else <db dir>/backups)",
        envvar=ENV_BACKUP_DIR,
    )


def _config_option():
    return typer.Option(
        None,
        "--config",
        "-c",
        help="Optional YAML config file (database.path, backups.dir)",
        envvar=ENV_CONFIG_PATH,
    )


def _backup_target(
    db: str | None, backup_dir: str | None, config: Path | None
) -> tuple[Path, Path]:
    try:
        return load_backup_target(db_path=db, backup_dir=backup_dir, config_path=config)
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG_ERROR)


@backup_app.command("create")
def backup_create(
    db: str | None = _db_option(),
    backup_dir: str | None = _backup_dir_option(),
    config: Path | None = _config_option(),
    name: str = typer.Option(
        "manual",
        "--name",
        "-n",
        help="Label included in the backup filename",
    ),
    format: str = typer.Option("text", "--format", "-f", help="'text' or 'json'"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Write a consistent copy of the database (VACUUM INTO).

    Examples:
      migrate-backup create --db ./data/app.db --name pre-upgrade
      migrate-backup create --config migrate.config.yaml
    """
    _set_output_mode(format, False, verbose)
    db_path, target_dir = _backup_target(db, backup_dir, config)

    try:
        with spinner(f"Backing up {db_path}..."):
            backup_path = create_backup(db_path, target_dir, name, busy_timeout_from_env())
    except BackupError as e:
        _fail(f"Backup failed: {e}", EXIT_DATA_SAFETY_ERROR)

    output_mode.add_json("backup_path", str(backup_path))
    success(f"created {backup_path}")
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@backup_app.command("list")
def backup_list(
    db: str | None = _db_option(),
    backup_dir: str | None = _backup_dir_option(),
    config: Path | None = _config_option(),
    format: str = typer.Option("text", "--format", "-f", help="'text' or 'json'"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    List backups of a database, newest first.

    Examples:
      migrate-backup list --db ./data/app.db
    """
    _set_output_mode(format, quiet, False)
    db_path, target_dir = _backup_target(db, backup_dir, config)

    rows = [row.to_dict() for row in list_backups(db_path, target_dir)]
    output_mode.add_json("backup_dir", str(target_dir))
    print_backup_table(rows)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@backup_app.command("restore")
def backup_restore(
    file: str = typer.Option(
        ...,
        "--file",
        help="Backup file path, or a filename inside the backup directory",
    ),
    db: str | None = _db_option(),
    backup_dir: str | None = _backup_dir_option(),
    config: Path | None = _config_option(),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip the confirmation prompt (for automation)",
    ),
    format: str = typer.Option("text", "--format", "-f", help="'text' or 'json'"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Replace the database with a backup. Stop the service first.

    Examples:
      migrate-backup restore --db ./data/app.db --file app.db.pre-upgrade.2025-11-02T08-30-45-123Z.sqlite
    """
    _set_output_mode(format, False, verbose)
    db_path, target_dir = _backup_target(db, backup_dir, config)

    try:
        backup_file = resolve_backup_file(file, target_dir)
    except RestoreError as e:
        _fail(f"{e}", EXIT_CONFIG_ERROR)

    if not yes and output_mode.is_human():
        typer.confirm(f"Overwrite {db_path} with {backup_file}?", abort=True)

    try:
        with spinner(f"Restoring {db_path}..."):
            restore_backup(db_path, backup_file, busy_timeout_from_env())
    except RestoreError as e:
        _fail(f"FATAL: restore failed: {e}", EXIT_DATA_SAFETY_ERROR)

    output_mode.add_json("db_path", str(db_path))
    output_mode.add_json("backup_file", str(backup_file))
    success(f"restored {db_path} from {backup_file}")
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


if __name__ == "__main__":
    app()
