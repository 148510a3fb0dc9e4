"""Rendering of install reports and installed skill lists."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from skills_cli.installer import InstallReport
    from skills_cli.skills import SkillMetadata

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

_STATUS_STYLES = {
    "installed": "green",
    "skipped": "yellow",
    "failed": "red",
}


def print_report(report: InstallReport, *, out: Console = console) -> None:
    """Print the per-skill summary table, totals and companion suggestions."""
    if report.outcomes:
        table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
        table.add_column("Skill")
        table.add_column("Status")
        table.add_column("Details", overflow="fold")
        for outcome in report.outcomes:
            if outcome.status == "failed":
                details = f"{outcome.error}: {outcome.reason}"
            elif outcome.status == "skipped":
                details = outcome.reason or ""
            else:
                details = str(outcome.path) if outcome.path else ""
            table.add_row(
                outcome.name,
                Text(outcome.status, style=_STATUS_STYLES[outcome.status]),
                Text(details),
            )
        out.print(table)
    out.print(f"Summary: {report.summary()}")

    suggestions = [
        (outcome.name, companion)
        for outcome in report.outcomes
        for companion in outcome.companions
    ]
    if suggestions:
        out.print()
        out.print("Companion skills suggested (not installed):")
        for name, companion in suggestions:
            out.print(f"  {name} -> {companion.label}: {companion.command}", markup=False)


def print_installed(skills: list[SkillMetadata], *, out: Console = console) -> None:
    if not skills:
        out.print("No skills installed.")
        return
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Name")
    table.add_column("Description", overflow="fold")
    for skill in skills:
        table.add_row(skill.name, Text(skill.description))
    out.print(table)
