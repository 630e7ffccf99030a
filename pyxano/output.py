"""Output formatting for the command line."""

import json
import sys
from typing import Any

from rich.console import Console

from .models import FileStatus, StatusEntry

# Style per status row in the status table
STATUS_STYLES: dict[FileStatus, str] = {
    FileStatus.UNCHANGED: "dim",
    FileStatus.NEW: "green",
    FileStatus.MODIFIED: "yellow",
    FileStatus.DELETED: "red",
    FileStatus.REMOTE_ONLY: "cyan",
}


class OutputFormatter:
    """Formats output as rich text or JSON."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize the formatter.

        Args:
            json_output: Emit machine-readable JSON instead of text
            quiet: Suppress informational messages
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def output_json(self, data: Any) -> None:
        """Print data as JSON to stdout."""
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def print(self, message: str = "") -> None:
        if not self.json_output:
            self.console.print(message, highlight=False)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]✓[/green] {message}", highlight=False)

    def warning(self, message: str) -> None:
        if not self.json_output:
            self.err_console.print(f"[yellow]Warning:[/yellow] {message}", highlight=False)

    def error(self, message: str) -> None:
        """Errors always go to stderr, also in JSON mode."""
        if self.json_output:
            print(json.dumps({"error": message}), file=sys.stderr)
        else:
            self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print_summary(self, title: str, items: list[tuple[str, Any]]) -> None:
        """Print a titled list of label/value pairs."""
        if self.json_output:
            return
        self.console.print(f"\n[bold]{title}[/bold]")
        width = max((len(label) for label, _ in items), default=0)
        for label, value in items:
            self.console.print(f"  {label.ljust(width)}  {value}", highlight=False)

    def status_entries(self, entries: list[StatusEntry], show_unchanged: bool = False) -> None:
        """Print a status report."""
        if self.json_output:
            self.output_json([entry.to_dict() for entry in entries])
            return
        visible = [
            e for e in entries if show_unchanged or e.status != FileStatus.UNCHANGED
        ]
        if not visible:
            self.info("Everything is up to date.")
            return
        for entry in visible:
            style = STATUS_STYLES.get(entry.status, "")
            label = entry.status.value
            if entry.detail is not None:
                label = f"{label} ({entry.detail.value})"
            if entry.is_conflict:
                style = "bold red"
                label = f"{label} conflict"
            self.console.print(
                f"  [{style}]{label:<24}[/{style}] {entry.path}", highlight=False
            )
