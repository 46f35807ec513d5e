"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

console = Console()

_PERFECT_RATE = 100.0
_GOOD_RATE = 50.0


def _pass_rate_color(rate: float) -> str:
    """Return a Rich color name for a given pass-rate percentage."""
    if rate >= _PERFECT_RATE:
        return "green"
    if rate >= _GOOD_RATE:
        return "yellow"
    return "red"


class CLIReporter:
    """Rich terminal output for test generation runs."""

    def __init__(self, output: Console | None = None) -> None:
        self.console = output or console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    def print_generation_summary(self, stats: dict[str, int]) -> None:
        """Print the collector statistics of a generation run as a table."""
        total = stats.get("nrTests", 0)
        passed = stats.get("nrPasses", 0)
        rate = (passed / total * 100.0) if total else 0.0

        table = Table(title="Test generation summary", show_header=True)
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="right")
        table.add_row("Prompts", str(stats.get("nrPrompts", 0)))
        table.add_row("Tests", str(total))
        table.add_row("Passed", f"[green]{passed}[/green]")
        table.add_row("Failed", f"[red]{stats.get('nrFailures', 0)}[/red]")
        table.add_row("Pending", str(stats.get("nrPending", 0)))
        table.add_row("Other", str(stats.get("nrOther", 0)))
        color = _pass_rate_color(rate)
        table.add_row("Pass rate", f"[{color}]{rate:.1f}%[/{color}]")
        self.console.print(table)


reporter = CLIReporter()
