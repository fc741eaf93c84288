"""Undo/rollback support for journaled changes, outside of a live session."""

from __future__ import annotations

import logging

from dotrepair.core.config import RepairConfig, get_state_dir
from dotrepair.core.errors import AlreadyUndoneError, ChangeNotFoundError
from dotrepair.core.models import Change, RollbackReport, Session
from dotrepair.fix.backup import BackupStore
from dotrepair.fix.commands import CommandRunner
from dotrepair.fix.journal import ChangeJournal, JournalEntry
from dotrepair.fix.lock import SessionLock
from dotrepair.fix.rollback import RollbackEngine

logger = logging.getLogger(__name__)


class UndoManager:
    """Manages undo operations for applied changes."""

    def __init__(self, config: RepairConfig, runner: CommandRunner | None = None):
        self.config = config
        self.state_dir = get_state_dir(config)
        self.journal = ChangeJournal(self.state_dir)
        self.backups = BackupStore(self.state_dir)
        self.runner = runner or CommandRunner(timeout=config.fix.command_timeout)
        self.rollback_engine = RollbackEngine(self.backups, self.runner, self.journal)

    def list_changes(self) -> list[JournalEntry]:
        """All journaled changes across sessions, oldest first."""
        return self.journal.entries()

    def list_sessions(self) -> list[Session]:
        return self.journal.sessions()

    def resolve(self, change_id: str) -> JournalEntry:
        """Find a change by ``<session>:<chg>`` or bare ``chg_NNNN``.

        A bare ID resolves to the most recent session that holds it.
        """
        entries = self.list_changes()
        if ":" in change_id:
            matches = [e for e in entries if e.change.ref == change_id]
        else:
            matches = [e for e in entries if e.change.change_id == change_id]
        if not matches:
            raise ChangeNotFoundError(f"No journaled change {change_id}")
        return matches[-1]

    def preview(self, change_id: str) -> Change:
        """What undoing ``change_id`` would do. Touches nothing."""
        return self.resolve(change_id).change

    def undo(self, change_id: str) -> Change:
        """Revert a single change exactly as a rollback would."""
        with SessionLock(self.state_dir):
            entry = self.resolve(change_id)
            if entry.undone:
                raise AlreadyUndoneError(f"{entry.change.ref} was already undone at {entry.undone_at}")
            self.rollback_engine.revert(entry.change)
            self.journal.record_undo(entry.change)
        logger.info("Undid %s", entry.change.ref)
        return entry.change

    def pending_for_session(self, session_id: str | None = None) -> tuple[str, list[Change]]:
        """Changes of a session that are not yet undone.

        Without ``session_id`` the most recent session with anything left
        to undo is used.
        """
        entries = self.list_changes()
        if session_id is None:
            for entry in reversed(entries):
                if not entry.undone:
                    session_id = entry.change.session_id
                    break
            else:
                raise ChangeNotFoundError("No undoable changes recorded")
        elif not any(e.change.session_id == session_id for e in entries):
            raise ChangeNotFoundError(f"No journaled changes for session {session_id}")

        pending = [e.change for e in entries if e.change.session_id == session_id and not e.undone]
        return session_id, pending

    def undo_session(self, session_id: str | None = None) -> tuple[str, RollbackReport]:
        """Undo every remaining change of a session, most recent first."""
        with SessionLock(self.state_dir):
            session_id, pending = self.pending_for_session(session_id)
            if not pending:
                raise AlreadyUndoneError(f"Every change in {session_id} was already undone")
            report = self.rollback_engine.rollback(pending)
        return session_id, report
