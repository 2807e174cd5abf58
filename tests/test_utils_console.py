"""
Tests for utils.console module - dual-mode CLI output utilities.

Checks that:
- OutputMode manages format/quiet state and the JSON buffer
- Output functions adapt to human, agent and quiet modes
- Run summaries always carry the `ran=<N>` contract in human/quiet modes
- Failure output names the failing migration and the restore action
"""

import json

import pytest

from schema_migrate.utils.console import (
    OutputMode,
    error,
    info,
    output_mode,
    print_backup_table,
    print_run_failure,
    print_run_summary,
    spinner,
    success,
    warning,
)

# ========================================================================
# Fixtures
# ========================================================================


@pytest.fixture(autouse=True)
def reset_output_mode():
    """Reset global output_mode to default state after each test."""
    original_format = output_mode.format
    original_quiet = output_mode.quiet
    output_mode._json_buffer.clear()

    yield

    output_mode.format = original_format
    output_mode.quiet = original_quiet
    output_mode._json_buffer.clear()


def _set_mode(format_type: str, quiet: bool = False) -> None:
    output_mode.format = format_type
    output_mode.quiet = quiet


# ========================================================================
# OutputMode
# ========================================================================


class TestOutputMode:
    """Test OutputMode state handling."""

    def test_defaults_to_human(self):
        mode = OutputMode()
        assert mode.is_human()
        assert not mode.is_agent()
        assert mode.quiet is False

    def test_invalid_format_raises(self):
        with pytest.raises(ValueError, match="Invalid format"):
            OutputMode(format_type="xml")

    def test_flush_json_in_agent_mode(self, capsys):
        mode = OutputMode(format_type="json")
        mode.add_json("ran", 2)

        mode.flush_json()

        assert json.loads(capsys.readouterr().out) == {"ran": 2}
        assert mode._json_buffer == {}

    def test_flush_json_noop_in_human_mode(self, capsys):
        mode = OutputMode()
        mode.add_json("ran", 2)

        mode.flush_json()

        assert capsys.readouterr().out == ""


# ========================================================================
# Message functions
# ========================================================================


class TestMessages:
    """Test success/error/warning/info routing."""

    def test_success_human(self, capsys):
        _set_mode("text")
        success("applied 0001_init.sql")
        assert "applied 0001_init.sql" in capsys.readouterr().out

    def test_success_silent_when_quiet(self, capsys):
        _set_mode("text", quiet=True)
        success("applied 0001_init.sql")
        assert capsys.readouterr().out == ""

    def test_error_goes_to_stderr_even_when_quiet(self, capsys):
        _set_mode("text", quiet=True)
        error("Migrations directory not found")
        captured = capsys.readouterr()
        assert "Migrations directory not found" in captured.err
        assert captured.out == ""

    def test_error_buffers_in_agent_mode(self):
        _set_mode("json")
        error("bad config")
        assert output_mode._json_buffer == {"status": "error", "error": "bad config"}

    def test_warnings_accumulate_in_agent_mode(self):
        _set_mode("json")
        warning("first")
        warning("second")
        assert output_mode._json_buffer["warnings"] == ["first", "second"]

    def test_info_silent_in_agent_mode(self, capsys):
        _set_mode("json")
        info("Database: app.db")
        assert capsys.readouterr().out == ""
        assert output_mode._json_buffer == {}

    def test_markup_in_messages_is_escaped(self, capsys):
        _set_mode("text")
        success("applied [bold]0001_init.sql[/bold]")
        assert "[bold]0001_init.sql[/bold]" in capsys.readouterr().out

    def test_spinner_yields_none_outside_human_mode(self):
        _set_mode("json")
        with spinner("Applying migrations...") as status:
            assert status is None


# ========================================================================
# Run summary / failure
# ========================================================================


class TestRunSummary:
    """Test print_run_summary() in each mode."""

    def test_human_mode_prints_ran_line(self, capsys):
        _set_mode("text")
        print_run_summary("run-1", "/data/app.db", ran=2, total=3, applied=["a", "b"])

        out = capsys.readouterr().out
        assert "Migrations applied" in out
        assert "ran=2" in out.splitlines()[-1]

    def test_human_mode_up_to_date(self, capsys):
        _set_mode("text")
        print_run_summary("run-1", "/data/app.db", ran=0, total=3, applied=[])

        out = capsys.readouterr().out
        assert "up to date" in out
        assert "ran=0" in out

    def test_quiet_mode_tab_separated(self, capsys):
        _set_mode("text", quiet=True)
        print_run_summary("run-1", "/data/app.db", ran=1, total=4, applied=["a"])

        assert capsys.readouterr().out == "ran=1\ttotal=4\n"

    def test_agent_mode_json(self, capsys):
        _set_mode("json")
        warning("orphan")
        print_run_summary("run-1", "/data/app.db", ran=1, total=1, applied=["0001_init.sql"])

        data = json.loads(capsys.readouterr().out)
        assert data == {
            "warnings": ["orphan"],
            "status": "success",
            "run_id": "run-1",
            "db_path": "/data/app.db",
            "ran": 1,
            "total": 1,
            "applied": ["0001_init.sql"],
        }


class TestRunFailure:
    """Test print_run_failure() in each mode."""

    def test_human_mode_names_migration_and_action(self, capsys):
        _set_mode("text")
        print_run_failure("0002_broken.sql", "syntax error", "restored db from backup")

        err = capsys.readouterr().err
        assert "0002_broken.sql" in err
        assert "restored db from backup" in err

    def test_quiet_mode_still_reports(self, capsys):
        _set_mode("text", quiet=True)
        print_run_failure("0002_broken.sql", "syntax error", "restored db from backup")

        assert "restored db from backup" in capsys.readouterr().err

    def test_agent_mode_json(self, capsys):
        _set_mode("json")
        print_run_failure("0002_broken.sql", "syntax error", "restored db from backup")

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "error"
        assert data["failed_migration"] == "0002_broken.sql"
        assert data["restore_action"] == "restored db from backup"


# ========================================================================
# Backup table
# ========================================================================


ROWS = [{"path": "/b/app.db.manual.sqlite", "size_bytes": 4096, "modified_at": "2025-11-02T08:30:45Z"}]


def test_backup_table_quiet(capsys):
    _set_mode("text", quiet=True)
    print_backup_table(ROWS)
    assert capsys.readouterr().out == "2025-11-02T08:30:45Z\t4096\t/b/app.db.manual.sqlite\n"


def test_backup_table_empty(capsys):
    _set_mode("text")
    print_backup_table([])
    assert "No backups found" in capsys.readouterr().out


def test_backup_table_agent_mode():
    _set_mode("json")
    print_backup_table(ROWS)
    assert output_mode._json_buffer["backups"] == ROWS
