"""Console output formatting."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Prints user-facing messages, tables and JSON.

    Status messages go to stderr so that ``--json`` output on stdout stays
    machine readable.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def info(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(f"[green]{message}[/green]", highlight=False)

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]{message}[/yellow]", highlight=False)

    def error(self, message: str) -> None:
        self.err_console.print(f"[bold red]{message}[/bold red]", highlight=False)

    def print(self, message: str = "") -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(message, highlight=False)

    def print_summary(self, title: str, rows: list[tuple[str, Any]]) -> None:
        """Print a two-column summary table.

        Args:
            title: Table title
            rows: List of (label, value) pairs
        """
        if self.quiet or self.json_output:
            return
        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")
        for label, value in rows:
            table.add_row(label, str(value))
        self.console.print(table)

    def output_json(self, data: Any) -> None:
        """Print data as JSON on stdout, regardless of quiet mode."""
        self.console.print_json(json.dumps(data, default=str))
