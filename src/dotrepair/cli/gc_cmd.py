"""repair gc command."""

from __future__ import annotations

import click

from dotrepair.core.config import get_state_dir
from dotrepair.core.errors import SessionInProgressError
from dotrepair.core.output import console, error_console
from dotrepair.fix.backup import BackupStore
from dotrepair.fix.lock import SessionLock


@click.command()
@click.option("--keep", type=click.IntRange(min=0), help="Number of recent sessions whose backups to keep")
@click.pass_context
def gc(ctx: click.Context, keep: int | None):
    """Delete old session backups.

    Changes from a collected session can no longer be restored from backup.
    """
    config = ctx.obj
    if keep is None:
        keep = config.backup.keep_sessions
    state_dir = get_state_dir(config)

    try:
        with SessionLock(state_dir):
            removed = BackupStore(state_dir).gc(keep)
    except SessionInProgressError as e:
        error_console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    if not removed:
        console.print("\n  Nothing to collect.\n")
        return
    console.print(f"\n  Removed backups for {len(removed)} session(s):")
    for session_id in removed:
        console.print(f"    {session_id}")
    console.print()
