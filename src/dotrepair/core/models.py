"""Shared data models used across dotrepair modules."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class CheckStatus(enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"

    @property
    def is_failing(self) -> bool:
        return self is not CheckStatus.PASS


class Category(enum.Enum):
    """Risk category of a fixer. Declaration order is dispatch order."""

    AUTO = "auto"
    PROMPT = "prompt"
    MANUAL = "manual"

    @property
    def rank(self) -> int:
        return list(Category).index(self)


class Severity(enum.Enum):
    INFO = "info"
    WARNING = "warning"
    DESTRUCTIVE = "destructive"


class GuardOutcome(enum.Enum):
    SATISFIED = "satisfied"
    NEEDS_FIX = "needs-fix"
    BLOCKED = "blocked"


class SessionStatus(enum.Enum):
    IN_PROGRESS = "in-progress"
    COMMITTED = "committed"
    FAILED = "failed"
    ROLLED_BACK = "rolled-back"
    ROLLED_BACK_WITH_ERRORS = "rolled-back-with-errors"


class FixerState(enum.Enum):
    SKIPPED = "skipped"
    APPLIED = "applied"
    PLANNED = "planned"
    FAILED = "failed"


@dataclass(frozen=True)
class Check:
    """A single diagnostic condition reported by the doctor."""

    check_id: str
    status: CheckStatus
    message: str = ""
    target: str | None = None


@dataclass(frozen=True)
class GuardResult:
    outcome: GuardOutcome
    reason: str = ""

    @classmethod
    def satisfied(cls, reason: str = "") -> GuardResult:
        return cls(GuardOutcome.SATISFIED, reason)

    @classmethod
    def needs_fix(cls, reason: str = "") -> GuardResult:
        return cls(GuardOutcome.NEEDS_FIX, reason)

    @classmethod
    def blocked(cls, reason: str) -> GuardResult:
        return cls(GuardOutcome.BLOCKED, reason)


# ---------------------------------------------------------------------------
# Undo descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RestoreBackup:
    """Undo by restoring a snapshot taken before the mutation."""

    backup_ref: str

    kind = "restore_backup"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "backup_ref": self.backup_ref}

    def describe(self) -> str:
        return f"restore backup {self.backup_ref}"


@dataclass(frozen=True)
class RunCommand:
    """Undo by running an argv (never through a shell)."""

    argv: tuple[str, ...]

    kind = "run_command"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "argv": list(self.argv)}

    def describe(self) -> str:
        return " ".join(self.argv)


UndoAction = Union[RestoreBackup, RunCommand]


def undo_from_dict(data: dict[str, Any]) -> UndoAction:
    kind = data.get("kind")
    if kind == RestoreBackup.kind:
        return RestoreBackup(backup_ref=data["backup_ref"])
    if kind == RunCommand.kind:
        return RunCommand(argv=tuple(data["argv"]))
    raise ValueError(f"Unknown undo kind: {kind!r}")


# ---------------------------------------------------------------------------
# Plans, backups and changes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FixPlan:
    """What a fixer is about to do, computed without touching the disk.

    When ``undo`` is None the target already exists and will be restored
    from a backup taken right before the mutation.
    """

    target: Path
    exists: bool
    undo: RunCommand | None = None

    @property
    def needs_backup(self) -> bool:
        return self.exists and self.undo is None


@dataclass
class Backup:
    """Snapshot of one file's content before it was mutated."""

    backup_id: str
    session_id: str
    path: Path
    digest: str
    snapshot: Path
    mode: int
    created_at: str = field(default_factory=utcnow)

    @property
    def ref(self) -> str:
        return f"{self.session_id}/{self.backup_id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "session_id": self.session_id,
            "path": str(self.path),
            "digest": self.digest,
            "snapshot": str(self.snapshot),
            "mode": self.mode,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Backup:
        return cls(
            backup_id=data["backup_id"],
            session_id=data["session_id"],
            path=Path(data["path"]),
            digest=data["digest"],
            snapshot=Path(data["snapshot"]),
            mode=int(data.get("mode", 0o644)),
            created_at=data.get("created_at", ""),
        )


@dataclass(frozen=True)
class Change:
    """One applied fixer's effect, as recorded in the journal."""

    change_id: str
    session_id: str
    fixer_id: str
    check_id: str
    category: Category
    severity: Severity
    description: str
    files: tuple[str, ...]
    undo: UndoAction
    backup_ref: str | None = None
    timestamp: str = field(default_factory=utcnow)

    @property
    def ref(self) -> str:
        return f"{self.session_id}:{self.change_id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "change_id": self.change_id,
            "session_id": self.session_id,
            "fixer_id": self.fixer_id,
            "check_id": self.check_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "description": self.description,
            "files": list(self.files),
            "undo": self.undo.to_dict(),
            "backup_ref": self.backup_ref,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Change:
        return cls(
            change_id=data["change_id"],
            session_id=data["session_id"],
            fixer_id=data["fixer_id"],
            check_id=data.get("check_id", ""),
            category=Category(data["category"]),
            severity=Severity(data.get("severity", "info")),
            description=data.get("description", ""),
            files=tuple(data.get("files", [])),
            undo=undo_from_dict(data["undo"]),
            backup_ref=data.get("backup_ref"),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class Session:
    """One invocation of the repair engine."""

    session_id: str
    status: SessionStatus = SessionStatus.IN_PROGRESS
    change_ids: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=utcnow)
    ended_at: str | None = None
    dry_run: bool = False


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@dataclass
class FixerOutcome:
    """What happened to one (fixer, check) pair during a session."""

    fixer_id: str
    check_id: str
    category: Category
    state: FixerState
    reason: str = ""
    change: Change | None = None


@dataclass
class PlannedAction:
    """Dry-run counterpart of a Change: same content, no IDs."""

    fixer_id: str
    check_id: str
    category: Category
    severity: Severity
    description: str
    files: tuple[str, ...]
    backup: bool
    undo: RunCommand | None

    def undo_description(self) -> str:
        if self.undo is None:
            return "restore backup of " + ", ".join(self.files)
        return self.undo.describe()


@dataclass
class RollbackFailure:
    change_id: str
    reason: str


@dataclass
class RollbackReport:
    """Result of unwinding a list of changes."""

    reverted: list[str] = field(default_factory=list)
    failures: list[RollbackFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def status(self) -> SessionStatus:
        if self.failures:
            return SessionStatus.ROLLED_BACK_WITH_ERRORS
        return SessionStatus.ROLLED_BACK

    @property
    def unreverted(self) -> list[str]:
        return [f.change_id for f in self.failures]


@dataclass
class SessionReport:
    """Complete outcome of a fix session (or its dry-run plan)."""

    session: Session
    outcomes: list[FixerOutcome] = field(default_factory=list)
    changes: list[Change] = field(default_factory=list)
    planned: list[PlannedAction] = field(default_factory=list)
    manual_suggestions: list[str] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    failure: str | None = None
    rollback: RollbackReport | None = None

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def exit_code(self) -> int:
        if self.rollback is not None and not self.rollback.ok:
            return 2
        if self.failure is not None:
            return 1
        return 0

    @property
    def skipped(self) -> list[FixerOutcome]:
        return [o for o in self.outcomes if o.state == FixerState.SKIPPED]
