"""
Configuration loader for schema-migrate.

Resolves the settings for a run from three sources, highest precedence first:

1. Explicit values (CLI options, which Typer also fills from environment
   variables such as SCHEMA_MIGRATE_DB)
2. The optional YAML config file (--config / SCHEMA_MIGRATE_CONFIG)
3. Built-in defaults

Functions:
    load_settings: Main entrypoint returning validated MigrateSettings
    load_config_file: Load and validate migrate.config.yaml
    load_backup_target: Resolve the database and backup directory for migrate-backup
    busy_timeout_from_env: Read SCHEMA_MIGRATE_BUSY_TIMEOUT_MS with fallback
    default_backup_dir: Resolve the manual backup directory for a database
"""

import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from schema_migrate.exceptions import ConfigFileNotFoundError, ConfigValidationError

from .constants import DEFAULT_BUSY_TIMEOUT_MS, ENV_BACKUP_DIR, ENV_BUSY_TIMEOUT_MS
from .schema import MigrateConfig, MigrateSettings


def _format_validation_error(e: ValidationError, source: str) -> str:
    error_messages = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        error_messages.append(f"  - {loc}: {error['msg']}")
    return f"Configuration validation failed in {source}:\n" + "\n".join(error_messages)


def load_config_file(config_path: str | Path) -> MigrateConfig:
    """
    Load migrate.config.yaml and validate its structure.

    Args:
        config_path: Path to the YAML file

    Returns:
        Validated MigrateConfig

    Raises:
        ConfigFileNotFoundError: If the file doesn't exist
        ConfigValidationError: If YAML is invalid, empty, or fails validation

    Example:
        >>> config = load_config_file("migrate.config.yaml")
        >>> config.database.path
        'data/app.db'
    """
    config_path = Path(config_path)

    if not config_path.is_file():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration file must contain a mapping: {config_path}"
        )

    try:
        return MigrateConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            _format_validation_error(e, str(config_path))
        ) from e


def _resolve_relative(value: str | None, base_dir: Path) -> Path | None:
    """Resolve a path from the config file against the file's directory."""
    if value is None or not value.strip():
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _explicit_path(value: str | Path | None, option: str) -> Path | None:
    """
    Convert an explicitly passed path, rejecting empty strings.

    An empty `--migrations ""` must not turn into Path("."), which would
    silently point at the working directory.
    """
    if value is None:
        return None
    if not str(value).strip():
        raise ConfigValidationError(f"Path cannot be empty ({option})")
    return Path(value).expanduser()


def _load_optional_config(config_path: str | Path | None) -> tuple[MigrateConfig, Path]:
    """Return the YAML config (or defaults) and the directory paths resolve against."""
    if config_path is None:
        return MigrateConfig(), Path.cwd()
    config_path = Path(config_path)
    return load_config_file(config_path), config_path.resolve().parent


def load_settings(
    db_path: str | Path | None = None,
    migrations_dir: str | Path | None = None,
    config_path: str | Path | None = None,
    snapshot_dir: str | Path | None = None,
    busy_timeout_ms: int | None = None,
) -> MigrateSettings:
    """
    Resolve settings for a migration run.

    Explicit arguments win over values from the YAML file. Paths are
    resolved to absolute paths so log records and error messages are
    unambiguous.

    Args:
        db_path: Database file (--db)
        migrations_dir: Migrations directory (--migrations)
        config_path: Optional YAML config file (--config)
        snapshot_dir: Optional snapshot directory override
        busy_timeout_ms: Optional busy timeout override; when None the
            config file value, then SCHEMA_MIGRATE_BUSY_TIMEOUT_MS, is used

    Returns:
        Validated MigrateSettings

    Raises:
        ConfigFileNotFoundError: If config_path is given but doesn't exist
        ConfigValidationError: If a required path is missing, empty or invalid

    Example:
        >>> settings = load_settings("data/app.db", "db/migrations")
        >>> settings.db_path.is_absolute()
        True
    """
    file_config, base_dir = _load_optional_config(config_path)
    busy_timeout_from_file = "busy_timeout_ms" in file_config.database.model_fields_set

    resolved_db = _explicit_path(db_path, "--db") or _resolve_relative(
        file_config.database.path, base_dir
    )
    resolved_migrations = _explicit_path(migrations_dir, "--migrations") or _resolve_relative(
        file_config.migrations.dir, base_dir
    )
    resolved_snapshot_dir = _explicit_path(snapshot_dir, "--snapshot-dir") or _resolve_relative(
        file_config.backups.snapshot_dir, base_dir
    )

    if resolved_db is None:
        raise ConfigValidationError("Database path is required (--db)")
    if resolved_migrations is None:
        raise ConfigValidationError("Migrations directory is required (--migrations)")

    if busy_timeout_ms is None:
        busy_timeout_ms = (
            file_config.database.busy_timeout_ms
            if busy_timeout_from_file
            else busy_timeout_from_env()
        )

    try:
        return MigrateSettings(
            db_path=resolved_db.resolve(),
            migrations_dir=resolved_migrations.resolve(),
            snapshot_dir=resolved_snapshot_dir.resolve() if resolved_snapshot_dir else None,
            busy_timeout_ms=busy_timeout_ms,
            journal_mode=file_config.database.journal_mode,
        )
    except ValidationError as e:
        raise ConfigValidationError(_format_validation_error(e, "settings")) from e


def load_backup_target(
    db_path: str | Path | None = None,
    backup_dir: str | Path | None = None,
    config_path: str | Path | None = None,
) -> tuple[Path, Path]:
    """
    Resolve the database and manual backup directory for migrate-backup.

    Precedence for the directory: explicit --backup-dir (or
    SCHEMA_MIGRATE_BACKUP_DIR), then `backups.dir` from the YAML file, then
    `<db dir>/backups`.

    Returns:
        (db_path, backup_dir), both absolute

    Raises:
        ConfigFileNotFoundError: If config_path is given but doesn't exist
        ConfigValidationError: If no database path is available or a path is empty
    """
    file_config, base_dir = _load_optional_config(config_path)

    resolved_db = _explicit_path(db_path, "--db") or _resolve_relative(
        file_config.database.path, base_dir
    )
    if resolved_db is None:
        raise ConfigValidationError("Database path is required (--db)")
    resolved_db = resolved_db.resolve()

    resolved_dir = _explicit_path(backup_dir, "--backup-dir") or _resolve_relative(
        file_config.backups.dir, base_dir
    )
    if resolved_dir is None:
        return resolved_db, default_backup_dir(resolved_db)
    return resolved_db, resolved_dir.resolve()


def busy_timeout_from_env() -> int:
    """
    Read SCHEMA_MIGRATE_BUSY_TIMEOUT_MS.

    Missing, non-numeric or negative values fall back to the default (5000 ms).
    """
    raw = os.environ.get(ENV_BUSY_TIMEOUT_MS, "").strip()
    try:
        value = int(float(raw))
    except (ValueError, OverflowError):
        return DEFAULT_BUSY_TIMEOUT_MS
    if value < 0:
        return DEFAULT_BUSY_TIMEOUT_MS
    return value


def default_backup_dir(db_path: str | Path) -> Path:
    """
    Resolve the manual backup directory for a database.

    SCHEMA_MIGRATE_BACKUP_DIR wins; otherwise `<db dir>/backups`.
    """
    override = os.environ.get(ENV_BACKUP_DIR, "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path(db_path).resolve().parent / "backups"
