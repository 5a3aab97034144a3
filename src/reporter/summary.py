"""Rich tables and panels for plans, run logs and rollbacks."""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from src.executor.rollback import RollbackReport
from src.ledger.models import Action, RunLog, RunStatus
from src.planner.models import PlanStep, Severity
from src.planner.plan import plan_counts
from src.utils import console, format_duration

SEVERITY_STYLES: dict[str, str] = {
    Severity.INFO.value: "dim",
    Severity.WARNING.value: "yellow",
    Severity.ERROR.value: "red bold",
}

ACTION_STYLES: dict[str, str] = {
    Action.GENERATED.value: "green",
    Action.UPDATED.value: "cyan",
    Action.SKIPPED.value: "dim",
    Action.FAILED.value: "red bold",
    Action.ROLLED_BACK.value: "magenta",
}

_STEP_STYLES = {"generate": "green", "update": "cyan", "report": "white"}


def plan_table(steps: Iterable[PlanStep], title: str = "Execution Plan") -> Table:
    """Build the plan table: one row per step, in plan order."""
    table = Table(title=title, show_lines=False, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Key", no_wrap=True)
    table.add_column("Decision")
    table.add_column("Step")
    table.add_column("Severity")
    table.add_column("Reason / Notes")

    for i, step in enumerate(steps, 1):
        severity = step.severity.value
        sev_style = SEVERITY_STYLES[severity]
        step_style = _STEP_STYLES[step.step_type]
        detail = escape(step.reason)
        if step.notes:
            detail += "\n" + "\n".join(f"[yellow]{escape(note)}[/yellow]" for note in step.notes)
        table.add_row(
            str(i),
            escape(step.key),
            step.decision.value,
            f"[{step_style}]{step.step_type}[/{step_style}]",
            f"[{sev_style}]{severity}[/{sev_style}]",
            detail,
        )
    return table


def print_plan_table(steps: list[PlanStep], out: Console | None = None) -> None:
    """Print the plan and a one-line total per step class."""
    out = out or console
    if not steps:
        out.print("[dim]No mockups or generated outputs found; nothing to plan.[/dim]")
        return
    out.print(plan_table(steps))
    counts = plan_counts(steps)
    out.print(
        f"  [green]{counts['generate']} generate[/green]  "
        f"[cyan]{counts['update']} update[/cyan]  "
        f"{counts['report']} report-only"
    )
    out.print()


def print_run_summary(log: RunLog, duration: float, out: Console | None = None) -> None:
    """Pretty-print the outcome of a run."""
    out = out or console
    records = list(log.latest_records().values())
    totals: dict[str, int] = {}
    for record in records:
        totals[record.action.value] = totals.get(record.action.value, 0) + 1

    if log.status is RunStatus.COMPLETED and log.exit_code == 0:
        style, title = "green", "Run Completed"
    elif log.status is RunStatus.COMPLETED:
        style, title = "yellow", "Run Completed With Issues"
    elif log.status is RunStatus.ROLLED_BACK:
        style, title = "magenta", "Run Rolled Back"
    else:
        style, title = "red", "Run Failed"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Run", log.run_id)
    table.add_row("Status", f"[{style}]{log.status.value}[/{style}]")
    table.add_row("Exit Code", str(log.exit_code))
    table.add_row("Duration", format_duration(duration))
    for action in Action:
        if totals.get(action.value):
            act_style = ACTION_STYLES[action.value]
            table.add_row(action.value.capitalize(), f"[{act_style}]{totals[action.value]}[/{act_style}]")
    out.print(Panel(table, title=title, border_style=style))

    changed = [r for r in records if r.action is not Action.SKIPPED or r.errors]
    if changed:
        detail = Table(title="Run Records", header_style="bold cyan")
        detail.add_column("Key", no_wrap=True)
        detail.add_column("Action")
        detail.add_column("Written / Errors")
        for record in changed:
            act_style = ACTION_STYLES[record.action.value]
            lines = [f"[dim]{escape(p)}[/dim]" for p in record.written]
            lines += [f"[yellow]declined: {escape(p)}[/yellow]" for p in record.declined]
            lines += [f"[red]{escape(e)}[/red]" for e in record.errors]
            detail.add_row(
                escape(record.key),
                f"[{act_style}]{record.action.value}[/{act_style}]",
                "\n".join(lines) or "[dim]no file changes[/dim]",
            )
        out.print(detail)

    problems = [e for e in log.events if e.level != "info"]
    for event in problems:
        colour = "red" if event.level == "error" else "yellow"
        out.print(f"  [{colour}]{event.stage}: {escape(event.message)}[/{colour}]")
    out.print("")


def print_rollback_report(report: RollbackReport, out: Console | None = None) -> None:
    """Summarise an explicit rollback."""
    out = out or console
    if report.already_rolled_back:
        out.print(f"[dim]Run {report.run_id} was already rolled back; nothing to do.[/dim]")
        return
    body = (
        f"[bold]Run[/bold] {report.run_id}\n"
        f"Restored: {len(report.restored)}\n"
        f"Removed: {len(report.removed)}"
    )
    out.print(Panel(body, title="Rollback Complete", border_style="magenta"))
    for path in report.restored:
        out.print(f"  [cyan]restored[/cyan] {escape(path)}")
    for path in report.removed:
        out.print(f"  [magenta]removed[/magenta]  {escape(path)}")
