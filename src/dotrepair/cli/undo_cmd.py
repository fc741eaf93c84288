"""repair undo command."""

from __future__ import annotations

import json

import click

from dotrepair.core.errors import (
    AlreadyUndoneError,
    BackupIntegrityError,
    ChangeNotFoundError,
    CommandError,
    SessionInProgressError,
)
from dotrepair.core.output import (
    change_to_dict,
    console,
    error_console,
    print_change_list,
    print_rollback_report,
    print_undo_preview,
    rollback_to_dict,
)
from dotrepair.fix.undo import UndoManager


@click.command()
@click.argument("change_id", required=False)
@click.option("--list", "list_all", is_flag=True, help="List all journaled changes")
@click.option("--all", "undo_all", is_flag=True, help="Undo every change of a session (default: the latest)")
@click.option("--session", "session_id", type=str, help="Session to undo with --all")
@click.option("--dry-run", is_flag=True, help="Show the undo instruction without running it")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def undo(
    ctx: click.Context,
    change_id: str | None,
    list_all: bool,
    undo_all: bool,
    session_id: str | None,
    dry_run: bool,
    as_json: bool,
):
    """Undo previously applied changes.

    Pass a CHANGE_ID (chg_0001, or SESSION:chg_0001) to undo one change,
    or use --all to undo a whole session in reverse order.
    """
    manager = UndoManager(ctx.obj)

    try:
        if list_all:
            _list(manager, as_json)
            return

        if undo_all:
            ctx.exit(_undo_all(manager, session_id, dry_run, as_json))

        if change_id:
            ctx.exit(_undo_one(manager, change_id, dry_run, as_json))
    except (ChangeNotFoundError, AlreadyUndoneError, SessionInProgressError) as e:
        error_console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    console.print("\n  Usage: repair undo <CHANGE_ID> | --all | --list | --dry-run <CHANGE_ID>")
    console.print("  Run `repair undo --list` to see recorded changes.\n")


def _list(manager: UndoManager, as_json: bool) -> None:
    entries = manager.list_changes()
    if as_json:
        data = [
            {**change_to_dict(e.change), "session_id": e.change.session_id,
             "timestamp": e.change.timestamp, "undone": e.undone}
            for e in entries
        ]
        click.echo(json.dumps(data, indent=2))
        return
    if not entries:
        console.print("\n  No recorded changes.\n")
        return
    print_change_list(entries)


def _undo_all(manager: UndoManager, session_id: str | None, dry_run: bool, as_json: bool) -> int:
    if dry_run:
        session_id, pending = manager.pending_for_session(session_id)
        if as_json:
            click.echo(json.dumps({
                "session_id": session_id,
                "dry_run": True,
                "undo": [change_to_dict(c) for c in reversed(pending)],
            }, indent=2))
            return 0
        if not pending:
            console.print(f"\n  Nothing left to undo in {session_id}.\n")
        for change in reversed(pending):
            print_undo_preview(change)
        return 0

    session_id, report = manager.undo_session(session_id)
    if as_json:
        click.echo(json.dumps({"session_id": session_id, **rollback_to_dict(report)}, indent=2))
    else:
        print_rollback_report(session_id, report)
    return 0 if report.ok else 2


def _undo_one(manager: UndoManager, change_id: str, dry_run: bool, as_json: bool) -> int:
    if dry_run:
        change = manager.preview(change_id)
        if as_json:
            click.echo(json.dumps({**change_to_dict(change), "dry_run": True}, indent=2))
        else:
            print_undo_preview(change)
        return 0

    try:
        change = manager.undo(change_id)
    except (BackupIntegrityError, CommandError, OSError) as e:
        error_console.print(f"[red]Undo of {change_id} failed:[/red] {e}")
        return 2

    if as_json:
        click.echo(json.dumps({**change_to_dict(change), "undone": True}, indent=2))
    else:
        console.print(f"  [green]✅ {change.ref}[/green]  Reverted: {change.description}")
    return 0
