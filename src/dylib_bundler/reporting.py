"""
Reporting and output formatting for bundling runs.

Provides console output using the Rich library.
"""

from dataclasses import dataclass
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .dependency import Dependency


@dataclass
class RunSummary:
    """Counts gathered while applying a bundling run."""

    dependencies: int = 0
    files_copied: int = 0
    copies_skipped: int = 0
    references_rewritten: int = 0
    rpaths_rewritten: int = 0
    files_fixed: int = 0
    warnings: int = 0


class BundleReporter:
    """Formats and displays bundling progress and results."""

    def __init__(self, console: Optional[Console] = None, quiet: bool = False):
        self.console = console or Console()
        self.quiet = quiet

    def step(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"* {message}")

    def print_dependencies(self, dependencies: List[Dependency]) -> None:
        """
        List every distinct dependency before anything is modified.

        Args:
            dependencies: Distinct records from the resolution context
        """
        if self.quiet:
            return

        self.console.print()
        if not dependencies:
            self.console.print("✅ No libraries need bundling.", style="green")
            return

        table = Table(
            title=f"📦 {len(dependencies)} libraries to bundle",
            box=box.ROUNDED,
            title_style="bold cyan",
        )
        table.add_column("Library", style="bold")
        table.add_column("Referenced as")
        table.add_column("Location", style="dim")

        for dep in dependencies:
            table.add_row(
                dep.filename,
                dep.prefix or "[yellow]location unknown[/yellow]",
                dep.resolved_path or "",
            )

        self.console.print(table)
        self.console.print()

    def print_summary(self, summary: RunSummary) -> None:
        if self.quiet:
            return

        text = (
            f"Libraries: {summary.dependencies}  "
            f"Copied: {summary.files_copied}  "
            f"Already present: {summary.copies_skipped}\n"
            f"References rewritten: {summary.references_rewritten}  "
            f"Rpaths rewritten: {summary.rpaths_rewritten}  "
            f"Files fixed: {summary.files_fixed}"
        )
        if summary.warnings:
            text += f"\n[yellow]Warnings: {summary.warnings}[/yellow]"
        self.console.print(
            Panel(text, title="[bold green]Done[/bold green]", border_style="green")
        )
