"""Reverse-order unwinding of journaled changes."""

from __future__ import annotations

import logging
from typing import Iterable

from dotrepair.core.errors import RepairError
from dotrepair.core.models import Change, RestoreBackup, RollbackFailure, RollbackReport, RunCommand
from dotrepair.fix.backup import BackupStore
from dotrepair.fix.commands import CommandRunner
from dotrepair.fix.journal import ChangeJournal

logger = logging.getLogger(__name__)


class RollbackEngine:
    """Undoes changes most-recent-first, continuing past individual failures."""

    def __init__(self, backups: BackupStore, runner: CommandRunner, journal: ChangeJournal):
        self.backups = backups
        self.runner = runner
        self.journal = journal

    def rollback(self, changes: Iterable[Change]) -> RollbackReport:
        """Revert ``changes`` in reverse order and journal each success."""
        report = RollbackReport()
        for change in reversed(list(changes)):
            try:
                self.revert(change)
            except (RepairError, OSError, ValueError) as e:
                logger.error("Could not revert %s: %s", change.ref, e)
                report.failures.append(RollbackFailure(change_id=change.change_id, reason=str(e)))
                continue
            self.journal.record_undo(change)
            report.reverted.append(change.change_id)
        return report

    def revert(self, change: Change) -> None:
        """Execute one change's undo instruction.

        Raises:
            BackupIntegrityError: The snapshot is missing or corrupt.
            CommandError: The undo command failed.
            OSError: The restored file could not be written.
        """
        undo = change.undo
        if isinstance(undo, RestoreBackup):
            self.backups.restore(self.backups.load(undo.backup_ref))
        elif isinstance(undo, RunCommand):
            self.runner.run(undo.argv)
        else:
            raise ValueError(f"Unsupported undo for {change.ref}: {undo!r}")
        logger.info("Reverted %s (%s)", change.ref, undo.describe())
