"""
Entry point for running schema-migrate as a module.

Enables execution via:
    python -m schema_migrate --db ./data/app.db --migrations ./db/migrations

This is equivalent to running the installed CLI:
    migrate --db ./data/app.db --migrations ./db/migrations
"""

from schema_migrate.cli import app

if __name__ == "__main__":
    app()
