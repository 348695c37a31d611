"""Render the phase table of a build state document."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sitebuild.config import PHASE_NAMES
from sitebuild.pipeline.state import LoadResult, StateStore

from .console_helpers import Table, console

STATUS_LABELS: dict[str, str] = {
    "pending": "⏳ Pending",
    "in_progress": "▶️  Running",
    "completed": "✅ Done",
    "failed": "❌ Failed",
}


def status_label(status: str) -> str:
    """Return the display label for a phase status.

    Examples
    --------
    >>> status_label("completed")
    '✅ Done'
    """
    return STATUS_LABELS.get(status, status)


def render_status_table(state: Any) -> Table:
    """Build a Rich table with one row per phase in run order."""
    table = Table(
        title=f"Build {state.build_id} ({state.builder_type})",
        show_header=True,
        header_style="bold blue",
    )
    table.add_column("Phase", style="bold")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Detail")
    for phase_id, entry in state.phases.items():
        detail = entry.error or entry.completed_at or ""
        table.add_row(phase_id, PHASE_NAMES.get(phase_id, ""), status_label(entry.status), detail)
    return table


def print_status(project_path: Path | str) -> LoadResult:
    """Print the state of ``project_path`` and return what was loaded.

    A missing or invalid document is reported rather than raised.
    """
    result = StateStore(project_path).load()
    if not result.valid or result.state is None:
        console.print(f"[red]{result.error}[/red]")
        return result
    state = result.state
    console.print(render_status_table(state))
    meta = state.metadata
    if meta.company_name:
        console.print(f"Company: {meta.company_name}")
    if meta.deploy_url:
        console.print(f"Deploy URL: {meta.deploy_url}")
    return result


__all__ = ["STATUS_LABELS", "print_status", "render_status_table", "status_label"]
