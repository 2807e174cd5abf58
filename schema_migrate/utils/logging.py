"""
Structured JSON logging for schema-migrate.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps with timezone info
- Structured context fields
- Per-run correlation via run_id

All logs use Python's standard logging module with custom formatting.
Log level defaults to INFO, use setup_logging(verbose=True) for DEBUG.

Examples:
    >>> import logging
    >>> from schema_migrate.utils.logging import setup_logging
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("schema_migrate.engine.runner")
    >>> logger.info("Run started", extra={"context": {"pending": 2}})

Note:
    Only stderr is used (stdout is reserved for the `ran=<N>` contract and
    other user-facing output).
"""

import json
import logging
import sys
from typing import Any

from schema_migrate.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs as JSON with structured fields.

    Each log record is formatted as a JSON object with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level (INFO, WARNING, ERROR, DEBUG)
    - component: Module/component name (from logger name)
    - message: Human-readable log message
    - context: Additional structured data (from 'context' in extra)
    - run_id: Current run identifier (from 'run_id' in extra, if available)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "run_id"):
            log_entry["run_id"] = record.run_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Paths in context are not JSON-native
        return json.dumps(log_entry, default=str)


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging for the application.

    Sets up:
    - JSON formatter for structured output
    - stderr output (stdout reserved for user-facing content)
    - Log level: DEBUG if verbose, WARNING if quiet_logs, INFO otherwise

    Args:
        verbose: If True, set log level to DEBUG.
        quiet_logs: If True (and not verbose), only WARNING and above are
            emitted. The CLI sets this in human mode so JSON log lines do not
            interleave with Rich output.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers (prevents duplicate logs)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())

    root_logger.addHandler(handler)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    run_id: str | None = None,
) -> None:
    """
    Log a message with structured context and optional run_id.

    Equivalent to logger.log(level, message, extra={'context': {...}, 'run_id': '...'})

    Example:
        >>> logger = logging.getLogger("schema_migrate.engine.executor")
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Migration applied",
        ...     context={"migration": "0001_init.sql"},
        ...     run_id="2025-11-02T08-30-00Z"
        ... )
    """
    extra = {}

    if context is not None:
        extra["context"] = context

    if run_id is not None:
        extra["run_id"] = run_id

    logger.log(level, message, extra=extra if extra else None)
