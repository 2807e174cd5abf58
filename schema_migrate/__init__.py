"""schema-migrate: forward-only SQLite schema migrations with snapshot/restore."""

__version__ = "0.1.0"
