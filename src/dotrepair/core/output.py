"""Rich terminal formatting and JSON reports for dotrepair."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from dotrepair.core.models import (
    Category,
    Change,
    FixerState,
    PlannedAction,
    RollbackReport,
    Session,
    SessionReport,
    SessionStatus,
)

console = Console()
error_console = Console(stderr=True)


CATEGORY_COLORS = {
    Category.AUTO: "green",
    Category.PROMPT: "yellow",
    Category.MANUAL: "cyan",
}

STATUS_COLORS = {
    SessionStatus.IN_PROGRESS: "yellow",
    SessionStatus.COMMITTED: "green",
    SessionStatus.FAILED: "red",
    SessionStatus.ROLLED_BACK: "yellow",
    SessionStatus.ROLLED_BACK_WITH_ERRORS: "red",
}


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def change_to_dict(change: Change) -> dict[str, Any]:
    return {
        "id": change.change_id,
        "category": change.category.value,
        "description": change.description,
        "files": list(change.files),
        "undo": change.undo.to_dict(),
        "backup_ref": change.backup_ref,
    }


def planned_to_dict(action: PlannedAction) -> dict[str, Any]:
    if action.undo is None:
        undo = {"kind": "restore_backup", "backup_ref": None}
    else:
        undo = action.undo.to_dict()
    return {
        "id": None,
        "category": action.category.value,
        "description": action.description,
        "files": list(action.files),
        "undo": undo,
        "backup_ref": None,
        "backup": action.backup,
    }


def rollback_to_dict(rollback: RollbackReport) -> dict[str, Any]:
    return {
        "status": rollback.status.value,
        "reverted": list(rollback.reverted),
        "unreverted": [{"id": f.change_id, "reason": f.reason} for f in rollback.failures],
    }


def session_report_to_dict(report: SessionReport) -> dict[str, Any]:
    """The ``--json`` report for a fix session or its dry-run plan."""
    if report.session.dry_run:
        changes = [planned_to_dict(a) for a in report.planned]
    else:
        changes = [change_to_dict(c) for c in report.changes]
    return {
        "session_id": report.session.session_id,
        "dry_run": report.session.dry_run,
        "status": report.status.value,
        "changes": changes,
        "manual_suggestions": list(report.manual_suggestions),
        "skipped": [
            {"fixer": o.fixer_id, "check": o.check_id, "reason": o.reason}
            for o in report.skipped
        ],
        "unmatched": list(report.unmatched),
        "failed": report.failure,
        "rollback": rollback_to_dict(report.rollback) if report.rollback else None,
    }


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------

def _category_tag(category: Category) -> str:
    color = CATEGORY_COLORS[category]
    return f"[{color}]{category.value:<6}[/{color}]"


def print_session_report(report: SessionReport) -> None:
    """Print everything that happened in a session, or what a dry run would do."""
    session = report.session
    lines = [""]

    if session.dry_run:
        if report.planned:
            lines.append("  [bold]Planned changes:[/bold]")
            for action in report.planned:
                backup = "backup" if action.backup else "no backup"
                lines.append(f"    {_category_tag(action.category)} {escape(action.description)}")
                lines.append(f"           files: {escape(', '.join(action.files))} ({backup})")
                lines.append(f"           undo:  {escape(action.undo_description())}")
        else:
            lines.append("  Nothing to change.")
    elif report.changes:
        lines.append("  [bold]Applied changes:[/bold]")
        for change in report.changes:
            lines.append(
                f"    [green]✅ {change.change_id}[/green] {_category_tag(change.category)} "
                f"{escape(change.description)}"
            )
            lines.append(f"           undo: {escape(change.undo.describe())}")
    elif report.failure is None:
        lines.append("  Nothing to change.")

    failed = [o for o in report.outcomes if o.state == FixerState.FAILED]
    for outcome in failed:
        lines.append(f"    [red]❌ {outcome.fixer_id}[/red]  {escape(outcome.reason)}")

    if report.skipped:
        lines.append("")
        lines.append("  [dim]Skipped:[/dim]")
        for outcome in report.skipped:
            lines.append(f"    [dim]{outcome.fixer_id} ({outcome.check_id}): {escape(outcome.reason)}[/dim]")

    if report.unmatched:
        lines.append("")
        lines.append("  [yellow]No fixer available:[/yellow]")
        for check_id in report.unmatched:
            lines.append(f"    {check_id}")

    if report.manual_suggestions:
        lines.append("")
        lines.append("  [cyan]Manual steps (not run):[/cyan]")
        for suggestion in report.manual_suggestions:
            lines.append(f"    -> {escape(suggestion)}")

    if report.rollback is not None:
        lines.append("")
        lines.extend(_rollback_lines(report.rollback))

    lines.append("")
    color = STATUS_COLORS.get(report.status, "white")
    title = "Repair plan (dry run)" if session.dry_run else f"Repair session {session.session_id}"
    lines.append(f"  Status: [{color}]{report.status.value}[/{color}]")
    if not session.dry_run and report.changes and report.rollback is None:
        lines.append("  [dim]Run `repair undo --all` to revert this session.[/dim]")

    console.print(Panel(
        "\n".join(lines),
        title=f"[bold]{title}[/bold]",
        border_style=color,
        padding=(0, 1),
    ))


def _rollback_lines(rollback: RollbackReport) -> list[str]:
    lines = []
    if rollback.reverted:
        lines.append(f"  [yellow]Rolled back:[/yellow] {', '.join(rollback.reverted)}")
    for failure in rollback.failures:
        lines.append(f"  [red]Not reverted: {failure.change_id}[/red]  {escape(failure.reason)}")
    if rollback.failures:
        lines.append("  [red bold]State may be inconsistent; check the files listed above.[/red bold]")
    return lines


def print_rollback_report(session_id: str, rollback: RollbackReport) -> None:
    console.print(f"\n  [bold]Undoing session {session_id}:[/bold]")
    for line in _rollback_lines(rollback) or ["  Nothing to undo."]:
        console.print(line)
    console.print()


def print_change_list(entries) -> None:
    """Print journaled changes (``repair undo --list``)."""
    table = Table(box=None, padding=(0, 2))
    table.add_column("ID")
    table.add_column("Session", style="dim")
    table.add_column("Category")
    table.add_column("Description")
    table.add_column("When", style="dim")
    table.add_column("State")
    for entry in entries:
        change = entry.change
        state = "[dim]undone[/dim]" if entry.undone else "[green]applied[/green]"
        table.add_row(
            change.change_id,
            change.session_id,
            _category_tag(change.category),
            escape(change.description),
            change.timestamp,
            state,
        )
    console.print()
    console.print(table)
    console.print()


def print_undo_preview(change: Change) -> None:
    console.print(f"\n  [bold]{change.ref}[/bold]  {escape(change.description)}")
    console.print(f"  files: {escape(', '.join(change.files))}")
    console.print(f"  would run: {escape(change.undo.describe())}")
    console.print("  [dim]Dry run: nothing was changed.[/dim]\n")


def print_sessions(sessions: list[Session]) -> None:
    table = Table(box=None, padding=(0, 2))
    table.add_column("Session")
    table.add_column("Status")
    table.add_column("Changes", justify="right")
    table.add_column("Started", style="dim")
    table.add_column("Ended", style="dim")
    for session in sessions:
        color = STATUS_COLORS.get(session.status, "white")
        table.add_row(
            session.session_id,
            f"[{color}]{session.status.value}[/{color}]",
            str(len(session.change_ids)),
            session.started_at,
            session.ended_at or "-",
        )
    console.print()
    console.print(table)
    console.print()
