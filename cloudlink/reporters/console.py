"""Console reporter using Rich library for formatted CLI output.

Renders:
- Response headers for head/get requests as a two-column table
- Collection listings as a table
- Notes and errors as single styled lines
"""

from typing import Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table

from cloudlink.models import ResponseEnvelope
from cloudlink.reporters.base import Reporter

# Headers shown first, in this order, when present
PRIMARY_HEADERS = ("Content-Length", "Content-Type", "ETag", "Last-Modified")


class ConsoleReporter(Reporter):
    """Rich-based console reporter for CLI output.

    Args:
        quiet: If True, suppress notes (errors and results still print)
    """

    def __init__(self, quiet: bool = False):
        # Use legacy_windows=True for ASCII-safe output on Windows consoles
        self.console = Console(legacy_windows=True)
        self.quiet = quiet

    def on_response(self, title: str, response: ResponseEnvelope) -> None:
        """Print status and headers of a response."""
        self.console.print()
        self.console.print(Rule(f"[bold cyan]{escape(title)}[/bold cyan]", style="cyan", characters="-"))

        if 200 <= response.status < 300:
            status = f"[green]{response.status}[/green]"
        else:
            status = f"[yellow]{response.status}[/yellow]"
        self.console.print(f"Status: {status}")

        table = Table(show_header=True, header_style="bold magenta", border_style="dim", box=box.ASCII)
        table.add_column("Header", style="cyan", no_wrap=True)
        table.add_column("Value")

        headers = response.headers
        for name in PRIMARY_HEADERS:
            if name in headers:
                table.add_row(name, escape(headers[name]))
        primary = {name.lower() for name in PRIMARY_HEADERS}
        for name, value in headers.items():
            if name.lower() not in primary:
                table.add_row(name, escape(value))

        self.console.print(table)

    def on_listing(self, title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Print a listing as a table."""
        if not rows:
            self.console.print(f"[yellow]{title}: nothing to display.[/yellow]")
            return

        table = Table(
            title=title,
            show_header=True,
            header_style="bold magenta",
            border_style="dim",
            box=box.ASCII,
        )
        # Identity column folds rather than truncates
        table.add_column(columns[0], overflow="fold")
        for column in columns[1:]:
            table.add_column(column)
        for row in rows:
            table.add_row(*[escape(str(value)) for value in row])

        self.console.print(table)

    def on_note(self, message: str) -> None:
        if self.quiet:
            return
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def on_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def on_complete(self) -> None:
        """Currently a no-op for the console reporter."""
        pass
