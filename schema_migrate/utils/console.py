"""
Rich console utilities for dual-mode CLI output.

Provides readable terminal output for operators and structured JSON for
deploy scripts. All output functions adapt based on the global output_mode
setting.

This module provides:
- OutputMode: Class to manage output format (text/json) and quiet flag
- spinner(): Context manager for long-running steps
- Output functions: success(), error(), warning(), info()
- Display functions: print_run_summary(), print_run_failure(), print_backup_table()

Human Mode (--format text):
    - Rich spinners, colored messages, summary panel
    - Always ends a successful run with a plain `ran=<N>` line

Agent Mode (--format json):
    - A single JSON object written to stdout at the end of the command
    - No ANSI codes or spinners

Quiet Mode (--quiet):
    - Minimal output, tab-separated values
    - Errors and restore confirmations are still printed

Examples:
    >>> from schema_migrate.utils.console import output_mode, spinner, success
    >>> output_mode.format = "text"
    >>> with spinner("Discovering migrations..."):
    ...     migrations = discover_migrations(path)
    >>> success("Found 3 migrations")
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table


class OutputMode:
    """
    Output mode configuration for dual-mode CLI.

    Attributes:
        format: Output format - "text" (human) or "json" (agent)
        quiet: If True, suppress non-essential output
        _json_buffer: Internal buffer for JSON output in agent mode

    Examples:
        >>> mode = OutputMode()
        >>> mode.is_human()
        True
        >>> mode.format = "json"
        >>> mode.is_agent()
        True
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        """
        Initialize output mode.

        Raises:
            ValueError: If format_type is not "text" or "json"
        """
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        """Check if in human-friendly mode."""
        return self.format == "text"

    def is_agent(self) -> bool:
        """Check if in agent-friendly mode."""
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """
        Add key-value pair to JSON buffer.

        Used in agent mode to accumulate structured data
        before final output via flush_json().
        """
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """
        Output buffered JSON to stdout and clear buffer.

        Only outputs in agent mode. In human mode, this is a no-op.
        """
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

# Global Rich console instances for human mode
console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


@contextmanager
def spinner(message: str):
    """
    Context manager for showing a spinner during operations.

    Displays a Rich spinner with message in human mode.
    Silent in agent and quiet modes.
    """
    if output_mode.is_human() and not output_mode.quiet:
        with console.status(f"[bold blue]{escape(message)}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    """
    Print a success message.

    Human mode: Green checkmark with message
    Agent mode: Buffer to JSON
    Quiet mode: Silent
    """
    if output_mode.is_human():
        if not output_mode.quiet:
            console.print(f"[green]✓[/green] {escape(message)}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """
    Print an error message.

    Human mode: Red X with message to stderr (also in quiet mode)
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {escape(message)}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    """
    Print a warning message.

    Human mode: Yellow warning symbol with message (also in quiet mode)
    Agent mode: Buffer to JSON (a list, so several warnings survive)
    """
    if output_mode.is_human():
        console.print(f"[yellow]⚠[/yellow] {escape(message)}", style="yellow")
    elif output_mode.is_agent():
        warnings = output_mode._json_buffer.setdefault("warnings", [])
        warnings.append(message)


def info(message: str) -> None:
    """
    Print an info message.

    Human mode: Blue info symbol with message
    Agent/Quiet mode: Silent
    """
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {escape(message)}")


def print_run_summary(
    run_id: str, db_path: str, ran: int, total: int, applied: list[str]
) -> None:
    """
    Print the outcome of a successful migration run.

    Human mode: Rich panel followed by a plain `ran=<N>` line
    Agent mode: Flush all buffered JSON including these final stats
    Quiet mode: `ran=<N>` and total, tab-separated

    Args:
        run_id: Run identifier (timestamp slug)
        db_path: Migrated database path
        ran: Number of migrations applied in this run
        total: Number of migration files discovered
        applied: Names of the migrations applied in this run, in order
    """
    if output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("run_id", run_id)
        output_mode.add_json("db_path", db_path)
        output_mode.add_json("ran", ran)
        output_mode.add_json("total", total)
        output_mode.add_json("applied", applied)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        print(f"ran={ran}\ttotal={total}")
        return

    if ran == 0:
        title = "[bold green]✓ Database is up to date[/bold green]"
    else:
        title = "[bold green]✓ Migrations applied[/bold green]"

    summary_text = f"""
[bold]Run ID:[/bold] {run_id}
[bold]Database:[/bold] {escape(db_path)}
[bold]Applied:[/bold] {ran} of {total} discovered
"""

    console.print(
        Panel(summary_text.strip(), title=title, border_style="green", box=box.ROUNDED)
    )
    console.print(f"ran={ran}", highlight=False)


def print_run_failure(
    migration_name: str, cause: str, action_message: str | None
) -> None:
    """
    Print the outcome of a failed migration run.

    Always names the failing migration and the recovery action taken, in
    every output mode.

    Args:
        migration_name: Filename of the failing migration
        cause: Underlying engine error message
        action_message: Restore confirmation (e.g. "restored db from backup")
    """
    if output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("failed_migration", migration_name)
        output_mode.add_json("error", cause)
        output_mode.add_json("restore_action", action_message)
        output_mode.flush_json()
        return

    console_err.print(
        f"[red]✗[/red] failed {escape(migration_name)}: {escape(cause)}",
        style="red",
        highlight=False,
    )
    if action_message:
        console_err.print(f"[yellow]⚠[/yellow] {escape(action_message)}", highlight=False)


def print_backup_table(rows: list[dict]) -> None:
    """
    Print a table of manual backups.

    Expected dict keys: path, size_bytes, modified_at

    Human mode: Rich table
    Agent mode: Buffer rows as JSON array
    Quiet mode: Tab-separated rows (modified_at, size_bytes, path)
    """
    if output_mode.is_agent():
        output_mode.add_json("backups", rows)
        return

    if output_mode.quiet:
        for row in rows:
            print(f"{row['modified_at']}\t{row['size_bytes']}\t{row['path']}")
        return

    if not rows:
        console.print("No backups found.")
        return

    table = Table(title="Backups", box=box.ROUNDED)
    table.add_column("Modified (UTC)", style="cyan", no_wrap=True)
    table.add_column("Size", justify="right", style="green")
    table.add_column("Path", style="magenta", overflow="fold")

    for row in rows:
        table.add_row(row["modified_at"], str(row["size_bytes"]), escape(str(row["path"])))

    console.print(table)
