#!/usr/bin/env python3

from rich.console import Console as RichConsole
from rich.markup import escape

from abstraktor import __version__
from abstraktor.config import LogLevel


class Console:
    """Console wrapper that filters output by log level."""

    def __init__(self, level: LogLevel = "info", rich: RichConsole | None = None):
        self.level = level
        self._rich = rich or RichConsole(stderr=True)

    def print(self, *args, **kwargs):
        """Print using Rich console."""
        return self._rich.print(*args, **kwargs)

    def _shows_progress(self) -> bool:
        return self.level in ("debug", "info")

    def debug(self, message: str):
        if self.level == "debug":
            self.print(f"[dim]\\[DEBUG][/dim] {escape(message)}")

    def log(self, message: str):
        if self._shows_progress():
            self.print(f"◇ {escape(message)}")

    def success(self, message: str):
        if self._shows_progress():
            self.print(f"[green]✔ {escape(message)}[/green]")

    def warning(self, message: str):
        if self._shows_progress():
            self.print(f"[bold yellow]Warning:[/bold yellow] [yellow]{escape(message)}[/yellow]")

    def error(self, message: str):
        if self.level != "quiet":
            self.print(f"[bold red]Error:[/bold red] [red]{escape(message)}[/red]")

    def intro(self):
        if self.level != "quiet":
            self.print(f"[bold cyan]Abstraktor - v{__version__}[/bold cyan]")

    def outro(self):
        if self.level != "quiet":
            self.print("[bold green]Execution successful![/bold green]")
