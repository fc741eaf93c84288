"""Click CLI entry point for dotrepair (the ``repair`` command)."""

from __future__ import annotations

from pathlib import Path

import click

from dotrepair._version import __version__
from dotrepair.core.config import load_config
from dotrepair.core.logging_config import setup_logging


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="repair")
@click.option("--fix", "run_fix", is_flag=True, help="Repair the failing checks")
@click.option("--dry-run", is_flag=True, help="Show what --fix would do without changing anything")
@click.option("--yes", "-y", is_flag=True, help="Approve prompt-category fixers without asking")
@click.option("--json", "as_json", is_flag=True, help="Print a JSON report")
@click.option("--only", type=str, help="Comma-separated categories to consider: auto,prompt,manual")
@click.option(
    "--checks",
    "checks_file",
    type=click.File("r"),
    default="-",
    help="Doctor output (JSON or '<status> <check_id>' lines); '-' reads stdin",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to repair.toml",
)
@click.option("--verbose", "-v", count=True, help="More logging (-vv for debug)")
@click.pass_context
def cli(
    ctx: click.Context,
    run_fix: bool,
    dry_run: bool,
    yes: bool,
    as_json: bool,
    only: str | None,
    checks_file,
    config_file: Path | None,
    verbose: int,
):
    """dotrepair - safe, reversible repair of your shell configuration.

    Feed it the doctor's failing checks and it fixes what it can. Every
    change is backed up, journaled and undoable with `repair undo`.
    """
    config = load_config(config_file)
    if verbose > 1:
        level = "DEBUG"
    elif verbose == 1:
        level = "INFO"
    else:
        level = config.general.log_level
    setup_logging(level)
    ctx.obj = config

    if ctx.invoked_subcommand is not None:
        return

    if not run_fix:
        click.echo(ctx.get_help())
        return

    from dotrepair.cli.fix_cmd import run_fix as run_fix_session

    ctx.exit(run_fix_session(config, checks_file, dry_run=dry_run, yes=yes, as_json=as_json, only=only))


# Import and register subcommands
from dotrepair.cli.undo_cmd import undo  # noqa: E402
from dotrepair.cli.history_cmd import sessions  # noqa: E402
from dotrepair.cli.gc_cmd import gc  # noqa: E402

cli.add_command(undo)
cli.add_command(sessions)
cli.add_command(gc)


if __name__ == "__main__":
    cli()
