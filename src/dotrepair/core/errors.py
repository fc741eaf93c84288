"""Exception hierarchy for the repair engine."""

from __future__ import annotations


class RepairError(Exception):
    """Base class for all dotrepair errors."""


class CheckInputError(RepairError):
    """The diagnostic input could not be parsed."""


class GuardEvaluationError(RepairError):
    """A fixer's guard raised; the fixer is treated as blocked."""


class BackupCreationError(RepairError):
    """A snapshot could not be taken; the fixer is skipped."""


class BackupIntegrityError(RepairError):
    """A snapshot or restored file does not match its recorded digest."""


class ApplyError(RepairError):
    """A fixer's mutation failed. Fatal to the session."""

    def __init__(self, fixer_id: str, reason: str):
        super().__init__(f"{fixer_id}: {reason}")
        self.fixer_id = fixer_id
        self.reason = reason


class ChangeNotFoundError(RepairError):
    """No journaled change matches the given ID."""


class AlreadyUndoneError(RepairError):
    """The change was already reverted."""


class SessionInProgressError(RepairError):
    """Another repair session holds the lock."""

    def __init__(self, pid: int | None, lock_file: str):
        super().__init__(
            f"Another repair session is running (pid {pid or 'unknown'}, lock {lock_file})"
        )
        self.pid = pid
        self.lock_file = lock_file


class CommandError(RepairError):
    """An external command exited non-zero, timed out, or was not found."""

    def __init__(self, argv: list[str], reason: str):
        super().__init__(f"`{' '.join(argv)}` failed: {reason}")
        self.argv = argv
        self.reason = reason
