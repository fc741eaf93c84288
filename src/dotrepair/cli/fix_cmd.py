"""repair --fix."""

from __future__ import annotations

import json
from typing import TextIO

import click
from rich.prompt import Confirm

from dotrepair.core.checks import parse_checks
from dotrepair.core.config import RepairConfig
from dotrepair.core.errors import CheckInputError, SessionInProgressError
from dotrepair.core.models import Category
from dotrepair.core.output import console, error_console, print_session_report, session_report_to_dict
from dotrepair.fix.engine import FixEngine
from dotrepair.fix.registry import FixContext, Fixer


def parse_only(value: str | None) -> set[Category] | None:
    """``--only auto,prompt`` -> {Category.AUTO, Category.PROMPT}."""
    if not value:
        return None
    categories = set()
    for part in value.split(","):
        part = part.strip().lower()
        if not part:
            continue
        try:
            categories.add(Category(part))
        except ValueError:
            choices = ", ".join(c.value for c in Category)
            raise click.BadParameter(f"unknown category '{part}' (choose from {choices})", param_hint="--only")
    return categories


def _confirm(fixer: Fixer, ctx: FixContext) -> bool:
    return Confirm.ask(f"  Apply [bold]{fixer.fixer_id}[/bold]: {fixer.describe(ctx)}?", default=False)


def run_fix(
    config: RepairConfig,
    checks_file: TextIO,
    *,
    dry_run: bool,
    yes: bool,
    as_json: bool,
    only: str | None,
) -> int:
    """Run (or plan) a fix session and return the process exit code."""
    categories = parse_only(only)

    if checks_file.isatty():
        error_console.print("[red]No checks given.[/red] Pipe the doctor's output in or pass --checks FILE.")
        return 1
    try:
        checks = parse_checks(checks_file.read())
    except CheckInputError as e:
        error_console.print(f"[red]Cannot read checks:[/red] {e}")
        return 1

    approve = None
    stdin = click.get_text_stream("stdin")
    from_stdin = getattr(checks_file, "name", "-") in ("-", "<stdin>")
    if not (yes or as_json or dry_run) and not from_stdin and stdin.isatty():
        approve = _confirm

    engine = FixEngine(config)
    try:
        report = engine.run_session(
            checks,
            dry_run=dry_run,
            assume_yes=yes,
            only=categories,
            approve=approve,
        )
    except SessionInProgressError as e:
        error_console.print(f"[red]{e}[/red]")
        return 1

    if as_json:
        click.echo(json.dumps(session_report_to_dict(report), indent=2))
    else:
        print_session_report(report)
        if not report.changes and not report.planned and report.failure is None:
            console.print("  [dim]Re-run the doctor to confirm everything passes.[/dim]\n")

    return report.exit_code
