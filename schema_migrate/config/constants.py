"""Shared constants for schema-migrate configuration."""

DEFAULT_BUSY_TIMEOUT_MS = 5000
TRACKING_TABLE = "schema_migrations"

ENV_DB_PATH = "SCHEMA_MIGRATE_DB"
ENV_MIGRATIONS_DIR = "SCHEMA_MIGRATE_MIGRATIONS_DIR"
ENV_CONFIG_PATH = "SCHEMA_MIGRATE_CONFIG"
ENV_BACKUP_DIR = "SCHEMA_MIGRATE_BACKUP_DIR"
ENV_BUSY_TIMEOUT_MS = "SCHEMA_MIGRATE_BUSY_TIMEOUT_MS"
