"""
Tests for utils.logging - structured JSON log records on stderr.
"""

import json
import logging
import sys

import pytest
from freezegun import freeze_time

from schema_migrate.utils.logging import (
    JSONFormatter,
    log_with_context,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def _record(message="Applied migration 0001_init.sql", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="schema_migrate.engine.executor",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@freeze_time("2025-11-02 08:30:45")
def test_formatter_basic_fields():
    entry = json.loads(JSONFormatter().format(_record()))

    assert entry == {
        "timestamp": "2025-11-02T08:30:45Z",
        "level": "INFO",
        "component": "schema_migrate.engine.executor",
        "message": "Applied migration 0001_init.sql",
    }


def test_formatter_context_and_run_id(tmp_path):
    record = _record(context={"db_path": tmp_path / "app.db"}, run_id="2025-11-02T08-30-45Z")

    entry = json.loads(JSONFormatter().format(record))

    assert entry["context"] == {"db_path": str(tmp_path / "app.db")}
    assert entry["run_id"] == "2025-11-02T08-30-45Z"


def test_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    entry = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: boom" in entry["exception"]


@pytest.mark.parametrize(
    ("verbose", "quiet_logs", "expected"),
    [
        (False, False, logging.INFO),
        (True, False, logging.DEBUG),
        (False, True, logging.WARNING),
        (True, True, logging.DEBUG),
    ],
)
def test_setup_logging_levels(verbose, quiet_logs, expected):
    setup_logging(verbose=verbose, quiet_logs=quiet_logs)

    root_logger = logging.getLogger()
    assert root_logger.level == expected
    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)


def test_log_with_context_writes_json_to_stderr(capsys):
    setup_logging()
    logger = logging.getLogger("engine.runner")

    log_with_context(
        logger, logging.WARNING, "1 orphaned migration", context={"orphaned": ["0002_x.sql"]}, run_id="r1"
    )

    captured = capsys.readouterr()
    entry = json.loads(captured.err.strip())
    assert captured.out == ""
    assert entry["level"] == "WARNING"
    assert entry["component"] == "engine.runner"
    assert entry["context"] == {"orphaned": ["0002_x.sql"]}
    assert entry["run_id"] == "r1"
