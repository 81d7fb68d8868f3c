"""Console output formatting for pydbxsync."""

from typing import Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats user-visible messages on the console.

    Informational output is suppressed in quiet mode; errors are always
    shown (on stderr).
    """

    def __init__(
        self,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        if not self.quiet:
            self.console.print(message, markup=False)

    def info(self, message: str) -> None:
        if not self.quiet:
            self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        if not self.quiet:
            self.console.print(message, style="green", markup=False)

    def warning(self, message: str) -> None:
        if not self.quiet:
            self.console.print(message, style="yellow", markup=False)

    def error(self, message: str) -> None:
        self.err_console.print(message, style="bold red", markup=False)

    def status_line(self, status: str, path: str, detail: str = "") -> None:
        """Print the one-line result for a synced file.

        Failures go to stderr. Failures and ties are shown even in quiet
        mode, since both need the operator to step in.
        """
        if self.quiet and status not in ("failed", "tie"):
            return
        styles = {
            "uploaded": "green",
            "downloaded": "green",
            "skipped": "dim",
            "planned": "cyan",
            "declined": "yellow",
            "tie": "yellow",
            "missing": "yellow",
            "failed": "bold red",
        }
        line = f"{status:<10} {path}"
        if detail:
            line = f"{line} ({detail})"
        console = self.err_console if status == "failed" else self.console
        console.print(line, style=styles.get(status, ""), markup=False)

    def print_summary(self, title: str, rows: list[tuple[str, str]]) -> None:
        """Print a two-column summary table."""
        if self.quiet:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in rows:
            table.add_row(key, value)
        self.console.print(table)
