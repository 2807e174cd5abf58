"""
Configuration schema models for schema-migrate.

This module defines Pydantic models for validating the optional
migrate.config.yaml file and the resolved runtime settings. All models use
Pydantic v2 field validators.

Models:
    DatabaseConfig: `database:` section (path, busy timeout, journal mode)
    MigrationsConfig: `migrations:` section (directory)
    BackupsConfig: `backups:` section (manual backup dir, snapshot dir)
    MigrateConfig: Root configuration model (validates entire YAML)
    MigrateSettings: Resolved settings a run operates on
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_BUSY_TIMEOUT_MS

JournalMode = Literal["WAL", "DELETE", "TRUNCATE", "PERSIST"]


class DatabaseConfig(BaseModel):
    """
    `database:` section of migrate.config.yaml.

    Attributes:
        path: SQLite database file (relative to the config file's directory)
        busy_timeout_ms: SQLite busy timeout applied to every connection
        journal_mode: Journal mode set before migrating
    """

    path: str | None = None
    busy_timeout_ms: int = Field(default=DEFAULT_BUSY_TIMEOUT_MS, ge=0)
    journal_mode: JournalMode = "WAL"

    @field_validator("journal_mode", mode="before")
    @classmethod
    def normalize_journal_mode(cls, v):
        """Accept journal modes in any case (e.g. 'wal')."""
        if isinstance(v, str):
            return v.strip().upper()
        return v


class MigrationsConfig(BaseModel):
    """`migrations:` section of migrate.config.yaml."""

    dir: str | None = None


class BackupsConfig(BaseModel):
    """
    `backups:` section of migrate.config.yaml.

    Attributes:
        dir: Directory for manual backups (migrate-backup)
        snapshot_dir: Directory for run-scoped snapshots (defaults to the db's directory)
    """

    dir: str | None = None
    snapshot_dir: str | None = None


class MigrateConfig(BaseModel):
    """Root configuration model for migrate.config.yaml."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    migrations: MigrationsConfig = Field(default_factory=MigrationsConfig)
    backups: BackupsConfig = Field(default_factory=BackupsConfig)


class MigrateSettings(BaseModel):
    """
    Resolved settings for one migration run.

    Built by config.loader.load_settings() from CLI options, environment
    variables and the optional YAML file.

    Attributes:
        db_path: Target SQLite database file (may not exist yet)
        migrations_dir: Directory holding NNNN_description.sql files
        snapshot_dir: Where the run-scoped snapshot is written (None = next to db)
        busy_timeout_ms: SQLite busy timeout
        journal_mode: Journal mode set before migrating
    """

    db_path: Path
    migrations_dir: Path
    snapshot_dir: Path | None = None
    busy_timeout_ms: int = Field(default=DEFAULT_BUSY_TIMEOUT_MS, ge=0)
    journal_mode: JournalMode = "WAL"

    @field_validator("db_path", "migrations_dir")
    @classmethod
    def validate_absolute(cls, v: Path) -> Path:
        """Validate paths were resolved by the loader."""
        if not v.is_absolute():
            raise ValueError(f"path must be absolute: {v}")
        return v

    @field_validator("db_path")
    @classmethod
    def validate_db_path_not_directory(cls, v: Path) -> Path:
        """Validate db_path does not point at an existing directory."""
        if v.is_dir():
            raise ValueError(f"database path is a directory: {v}")
        return v
