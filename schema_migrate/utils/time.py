"""
UTC timestamp utilities for schema-migrate.

All timestamps MUST be in UTC with explicit timezone markers.

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix
- run_id_from_timestamp(): Filesystem-safe timestamp slug for run IDs
- backup_stamp(): Millisecond-precision filesystem-safe stamp for backup files

Examples:
    >>> from schema_migrate.utils.time import utc_timestamp, run_id_from_timestamp
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
    >>> run_id_from_timestamp()
    '2025-11-02T08-30-45Z'
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    This is the canonical way to get current time in the codebase.

    Note:
        NEVER use datetime.now() without timezone parameter.
        NEVER use datetime.utcnow() (deprecated, returns naive datetime).
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ
    Used for the schema_migrations.applied_at column and for logging.
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def run_id_from_timestamp(dt: datetime | None = None) -> str:
    """
    Generate run_id slug from UTC timestamp.

    Format: YYYY-MM-DDTHH-MM-SSZ (hyphens instead of colons)

    The format is filesystem-safe and sorts chronologically. It tags log
    records and names the run-scoped snapshot file.

    Args:
        dt: Optional datetime to convert. If None, uses utc_now().
            Must be timezone-aware if provided.

    Raises:
        ValueError: If dt is provided but is naive (missing timezone)

    Examples:
        >>> from datetime import datetime, timezone
        >>> run_id_from_timestamp(datetime(2025, 11, 2, 8, 30, 45, tzinfo=timezone.utc))
        '2025-11-02T08-30-45Z'
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError(
            "Datetime must be timezone-aware (use timezone.utc). "
            "Got naive datetime. Use utc_now() or ensure dt has tzinfo set."
        )

    return dt.strftime("%Y-%m-%dT%H-%M-%SZ")


def backup_stamp(dt: datetime | None = None) -> str:
    """
    Generate a millisecond-precision, filesystem-safe stamp for backup files.

    Format: YYYY-MM-DDTHH-MM-SS-mmmZ

    Two manual backups taken within the same second still get distinct names.

    Examples:
        >>> from datetime import datetime, timezone
        >>> backup_stamp(datetime(2025, 11, 2, 8, 30, 45, 123000, tzinfo=timezone.utc))
        '2025-11-02T08-30-45-123Z'
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware (use timezone.utc)")

    return dt.strftime("%Y-%m-%dT%H-%M-%S-") + f"{dt.microsecond // 1000:03d}Z"
