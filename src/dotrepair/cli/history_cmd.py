"""repair sessions command."""

from __future__ import annotations

import json

import click

from dotrepair.core.output import console, print_sessions
from dotrepair.fix.undo import UndoManager


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Export as JSON")
@click.pass_obj
def sessions(config, as_json: bool):
    """Show past repair sessions and how they ended.

    A session still marked in-progress was interrupted; its recorded
    changes can be reverted with `repair undo --all --session ID`.
    """
    history = UndoManager(config).list_sessions()

    if as_json:
        output = [
            {
                "session_id": s.session_id,
                "status": s.status.value,
                "changes": s.change_ids,
                "started_at": s.started_at,
                "ended_at": s.ended_at,
            }
            for s in history
        ]
        click.echo(json.dumps(output, indent=2))
        return

    if not history:
        console.print("\n  No repair sessions yet. Run `repair --fix` to start one.\n")
        return

    print_sessions(history)
