"""
Custom exceptions for schema-migrate.

This module provides a hierarchy of exceptions that lets the CLI map every
failure to a distinct exit code. All exceptions inherit from the base
SchemaMigrateError for consistent catching.

Exception Hierarchy:
    SchemaMigrateError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   └── ConfigValidationError
    ├── DiscoveryError
    │   └── MigrationNameError
    ├── ExecutionError
    └── DataSafetyError
        ├── BackupError
        └── RestoreError

Usage:
    from schema_migrate.exceptions import ExecutionError

    try:
        report = run_migrations(settings)
    except ExecutionError as e:
        logger.error(f"Migration {e.migration_name} failed: {e.cause}")
        sys.exit(1)
"""


class SchemaMigrateError(Exception):
    """
    Base exception for all schema-migrate errors.

    All custom exceptions in this application should inherit from this class.
    This enables catching all application-specific errors with a single except clause.
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(SchemaMigrateError):
    """
    Base class for configuration-related errors.

    Raised when --db / --migrations are missing or invalid, or when the
    optional YAML config file cannot be loaded. Nothing has been mutated
    when this is raised.
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """
    Configuration file does not exist at the specified path.

    Example:
        raise ConfigFileNotFoundError("Configuration file not found: migrate.yaml")
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration is invalid (schema validation failed or a required value is missing).

    Example:
        raise ConfigValidationError("Database path is required (--db)")
    """

    pass


# ============================================================================
# Discovery Errors
# ============================================================================


class DiscoveryError(SchemaMigrateError):
    """
    Migrations directory or one of its files could not be read.

    Fatal before any mutation, same as a configuration error.
    """

    pass


class MigrationNameError(DiscoveryError):
    """
    A migration filename does not follow the zero-padded numeric prefix convention.

    Attributes:
        filenames: Offending filenames, sorted

    Example:
        raise MigrationNameError(
            "Invalid migration filename(s): init.sql",
            filenames=["init.sql"],
        )
    """

    def __init__(self, message: str, filenames: list[str] | None = None):
        super().__init__(message)
        self.filenames = filenames or []


# ============================================================================
# Execution Errors
# ============================================================================


class ExecutionError(SchemaMigrateError):
    """
    A specific migration's SQL failed.

    Raised by the orchestrator only after the database has been restored
    (or the partially-created file deleted).

    Attributes:
        migration_name: Filename of the failing migration
        cause: Underlying engine exception (usually sqlite3.Error)
        restore_action: "restored_from_backup" or "deleted_fresh_database"
        applied_before_failure: Migrations from the same run that were reverted

    Example:
        raise ExecutionError(
            "0002_broken.sql",
            cause=sqlite3.OperationalError('near "THIS": syntax error'),
            restore_action="restored_from_backup",
        )
    """

    def __init__(
        self,
        migration_name: str,
        cause: BaseException | None = None,
        restore_action: str | None = None,
        applied_before_failure: list[str] | None = None,
    ):
        super().__init__(f"Migration {migration_name} failed: {cause}")
        self.migration_name = migration_name
        self.cause = cause
        self.restore_action = restore_action
        self.applied_before_failure = applied_before_failure or []


# ============================================================================
# Data Safety Errors
# ============================================================================


class DataSafetyError(SchemaMigrateError):
    """
    Base class for failures that break the snapshot/restore guarantee.

    These are the most severe errors: the database may not be in a known
    consistent state. They must never be reported as an ordinary migration
    failure.
    """

    pass


class BackupError(DataSafetyError):
    """
    Snapshotting the database failed.

    Raised before any migration runs, so the live database is untouched.

    Example:
        raise BackupError("Failed to snapshot data/app.db: disk full")
    """

    pass


class RestoreError(DataSafetyError):
    """
    Restoring the database (or deleting a fresh file) failed.

    The live database may hold partially-applied changes; operator
    intervention is required.

    Attributes:
        db_path: Live database path
        snapshot_path: Snapshot that could not be restored, if any
    """

    def __init__(self, message: str, db_path=None, snapshot_path=None):
        super().__init__(message)
        self.db_path = db_path
        self.snapshot_path = snapshot_path
