"""
Migration discovery and ordering.

Lists `*.sql` files in the migrations directory and orders them by filename.
The naming convention `<zero-padded number>_<description>.sql` makes lexical
order equal version order, so the convention is validated rather than
assumed: a non-conforming name, or a mix of prefix widths, is rejected
instead of being silently mis-ordered.

Discovery reads the directory fresh on every call; nothing is cached.

Example:
    >>> migrations = discover_migrations("db/migrations")
    >>> [m.name for m in migrations]
    ['0001_init.sql', '0002_automations.sql']
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import ConfigurationError, DiscoveryError, MigrationNameError

logger = logging.getLogger(__name__)

MIGRATION_SUFFIX = ".sql"
MIGRATION_FILENAME_PATTERN = re.compile(
    r"^(?P<version>\d+)_(?P<description>[A-Za-z0-9][A-Za-z0-9_.-]*)\.sql$"
)


@dataclass(frozen=True)
class MigrationFile:
    """
    A migration discovered on disk.

    Attributes:
        name: Filename, the unique key recorded in the tracking table
        source_path: Absolute path to the file
        sql_text: File contents (UTF-8)
    """

    name: str
    source_path: Path
    sql_text: str

    @property
    def version(self) -> str:
        """Zero-padded numeric prefix (e.g. '0004')."""
        return MIGRATION_FILENAME_PATTERN.match(self.name).group("version")

    @property
    def description(self) -> str:
        """Filename part after the numeric prefix, without extension."""
        return MIGRATION_FILENAME_PATTERN.match(self.name).group("description")


def validate_migration_names(names: list[str]) -> None:
    """
    Check filenames against the zero-padded numeric prefix convention.

    Args:
        names: Candidate `.sql` filenames

    Raises:
        MigrationNameError: If any name doesn't match the pattern, or the
            numeric prefixes don't all have the same width
    """
    invalid = sorted(n for n in names if not MIGRATION_FILENAME_PATTERN.match(n))
    if invalid:
        raise MigrationNameError(
            f"Invalid migration filename(s): {', '.join(invalid)}. "
            f"Expected <zero-padded number>_<description>.sql, e.g. 0001_init.sql",
            filenames=invalid,
        )

    widths: dict[int, list[str]] = {}
    for name in names:
        width = len(MIGRATION_FILENAME_PATTERN.match(name).group("version"))
        widths.setdefault(width, []).append(name)

    if len(widths) > 1:
        # Report the files that deviate from the most common width
        expected = max(widths, key=lambda w: len(widths[w]))
        offending = sorted(
            name for width, group in widths.items() if width != expected for name in group
        )
        raise MigrationNameError(
            f"Migration prefixes must share one zero-padded width "
            f"({expected} digits); mis-padded: {', '.join(offending)}",
            filenames=offending,
        )


def discover_migrations(migrations_dir: str | Path) -> list[MigrationFile]:
    """
    List and order migration files from a directory.

    Only regular files ending in `.sql` are candidates; anything else
    (README, sub-directories, dotfiles) is ignored.

    Args:
        migrations_dir: Directory holding the migration files

    Returns:
        MigrationFile list sorted by filename

    Raises:
        ConfigurationError: If the directory is missing or not a directory
        DiscoveryError: If the directory or a file can't be read, or a file
            isn't valid UTF-8
        MigrationNameError: If a filename breaks the naming convention
    """
    migrations_dir = Path(migrations_dir)

    if not migrations_dir.exists():
        raise ConfigurationError(f"Migrations directory not found: {migrations_dir}")
    if not migrations_dir.is_dir():
        raise ConfigurationError(f"Migrations path is not a directory: {migrations_dir}")

    try:
        entries = list(migrations_dir.iterdir())
    except OSError as e:
        raise DiscoveryError(
            f"Cannot read migrations directory {migrations_dir}: {e}"
        ) from e

    candidates: dict[str, Path] = {}
    for entry in entries:
        if entry.name.startswith(".") or not entry.name.endswith(MIGRATION_SUFFIX):
            logger.debug(f"Ignoring non-migration entry {entry.name}")
            continue
        if not entry.is_file():
            logger.debug(f"Ignoring non-file entry {entry.name}")
            continue
        candidates[entry.name] = entry

    validate_migration_names(list(candidates))

    migrations = []
    for name in sorted(candidates):
        path = candidates[name]
        try:
            sql_text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise DiscoveryError(f"Migration {name} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise DiscoveryError(f"Cannot read migration {path}: {e}") from e
        migrations.append(
            MigrationFile(name=name, source_path=path.resolve(), sql_text=sql_text)
        )

    logger.debug(
        f"Discovered {len(migrations)} migrations in {migrations_dir}",
        extra={"context": {"migrations": [m.name for m in migrations]}},
    )
    return migrations
