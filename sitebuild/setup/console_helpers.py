"""Shared Rich console and small output helpers for the CLI."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()


def rprint(*objects: object) -> None:
    """Print through the shared console."""
    console.print(*objects)


def print_error_panel(message: str, resume_command: str | None = None) -> None:
    """Show a failure with the command that resumes the build."""
    body = message
    if resume_command:
        body += f"\n\nResume with:\n  [bold]{resume_command}[/bold]"
    console.print(Panel(body, title="Build failed", border_style="red"))


__all__ = ["Panel", "Table", "console", "print_error_panel", "rprint"]
