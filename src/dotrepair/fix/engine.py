"""Fix Engine: applies fixers inside a journaled session and rolls back on failure."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Collection, Iterable

from dotrepair.core.config import RepairConfig, get_state_dir, load_config
from dotrepair.core.errors import ApplyError, BackupCreationError, GuardEvaluationError, RepairError
from dotrepair.core.models import (
    Backup,
    Category,
    Change,
    Check,
    FixerOutcome,
    FixerState,
    FixPlan,
    GuardOutcome,
    GuardResult,
    PlannedAction,
    RestoreBackup,
    RollbackFailure,
    Session,
    SessionReport,
    SessionStatus,
    utcnow,
)
from dotrepair.fix.backup import BackupStore
from dotrepair.fix.catalog import build_registry
from dotrepair.fix.commands import CommandRunner
from dotrepair.fix.journal import ChangeJournal
from dotrepair.fix.lock import SessionLock
from dotrepair.fix.registry import FixContext, Fixer, FixerRegistry
from dotrepair.fix.rollback import RollbackEngine
from dotrepair.fix.undo import UndoManager

logger = logging.getLogger(__name__)

Approver = Callable[[Fixer, FixContext], bool]


def new_session_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"ses_{stamp}_{secrets.token_hex(3)}"


@dataclass
class _WorkItem:
    fixer: Fixer
    ctx: FixContext
    order: int


class FixEngine:
    """Core engine that plans, applies and reverts fixes."""

    def __init__(
        self,
        config: RepairConfig | None = None,
        registry: FixerRegistry | None = None,
        runner: CommandRunner | None = None,
    ):
        self.config = config or load_config()
        self.registry = registry or build_registry()
        self.runner = runner or CommandRunner(timeout=self.config.fix.command_timeout)
        self.state_dir = get_state_dir(self.config)
        self.backups = BackupStore(self.state_dir)
        self.journal = ChangeJournal(self.state_dir)
        self.rollback_engine = RollbackEngine(self.backups, self.runner, self.journal)
        self.undo_manager = UndoManager(self.config, self.runner)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def run_session(
        self,
        checks: Iterable[Check],
        *,
        dry_run: bool = False,
        assume_yes: bool = False,
        only: Collection[Category] | None = None,
        approve: Approver | None = None,
    ) -> SessionReport:
        """Repair every failing check that has a fixer.

        A dry run evaluates guards and gating exactly like a real run but
        only records planned actions; it never touches the filesystem.
        """
        session = Session(session_id=new_session_id(), dry_run=dry_run)
        report = SessionReport(session=session)
        work = self._dispatch(list(checks), only, report)

        if dry_run:
            self._plan_all(work, report, assume_yes, approve)
            session.status = SessionStatus.COMMITTED
            session.ended_at = utcnow()
            return report

        with SessionLock(self.state_dir):
            self.journal.start_session(session)
            logger.info("Session %s started with %d candidate fixer(s)", session.session_id, len(work))
            try:
                for item in work:
                    if not self._run_one(item, report, assume_yes, approve):
                        break
                else:
                    session.status = SessionStatus.COMMITTED
            finally:
                if session.status == SessionStatus.IN_PROGRESS:
                    session.status = SessionStatus.FAILED
                session.ended_at = utcnow()
                self.journal.finish_session(session)
        logger.info("Session %s finished: %s", session.session_id, session.status.value)
        return report

    def _dispatch(
        self,
        checks: list[Check],
        only: Collection[Category] | None,
        report: SessionReport,
    ) -> list[_WorkItem]:
        """Match failing checks to fixers; order by category, registry, input."""
        work = []
        for order, check in enumerate(checks):
            if not check.status.is_failing:
                continue
            fixer = self.registry.match(check.check_id)
            if fixer is None:
                logger.info("No fixer available for %s", check.check_id)
                report.unmatched.append(check.check_id)
                continue
            category = self.registry.classify(fixer)
            if only is not None and category not in only:
                self._skip(report, fixer, check, f"category {category.value} not selected")
                continue
            ctx = FixContext(config=self.config, check=check, runner=self.runner)
            work.append(_WorkItem(fixer=fixer, ctx=ctx, order=order))

        work.sort(key=lambda w: (w.fixer.category.rank, self.registry.index(w.fixer), w.order))
        return work

    # ------------------------------------------------------------------
    # Per-fixer state machine
    # ------------------------------------------------------------------

    def _gate(
        self,
        item: _WorkItem,
        report: SessionReport,
        assume_yes: bool,
        approve: Approver | None,
    ) -> FixPlan | None:
        """Steps shared by real and dry runs. Returns a plan when the fixer should run."""
        fixer, ctx = item.fixer, item.ctx
        result = self._evaluate_guard(fixer, ctx)

        if result.outcome == GuardOutcome.SATISFIED:
            reason = "already satisfied" + (f": {result.reason}" if result.reason else "")
            self._skip(report, fixer, ctx.check, reason)
            return None
        if result.outcome == GuardOutcome.BLOCKED:
            logger.warning("%s blocked: %s", fixer.fixer_id, result.reason)
            self._skip(report, fixer, ctx.check, f"blocked: {result.reason}")
            return None

        if fixer.category == Category.MANUAL:
            suggestion = fixer.suggestion(ctx)
            report.manual_suggestions.append(f"{ctx.check.check_id}: {suggestion}")
            self._skip(report, fixer, ctx.check, "manual fix suggested")
            return None

        if fixer.category == Category.PROMPT and not (assume_yes or (approve is not None and approve(fixer, ctx))):
            self._skip(report, fixer, ctx.check, "deferred: needs approval (--yes)")
            return None

        try:
            return fixer.plan(ctx)
        except (RepairError, OSError, ValueError) as e:
            logger.warning("%s could not be planned: %s", fixer.fixer_id, e)
            self._skip(report, fixer, ctx.check, f"blocked: {e}")
            return None

    def _plan_all(self, work: list[_WorkItem], report: SessionReport, assume_yes: bool, approve: Approver | None) -> None:
        """Plan each item against the filesystem the earlier plans would leave."""
        planned: set[Path] = set()
        seen: set[tuple[str, str | None]] = set()
        for item in work:
            key = (item.fixer.fixer_id, item.ctx.check.target)
            if key in seen:
                self._skip(report, item.fixer, item.ctx.check, "already satisfied: planned earlier in this run")
                continue
            item.ctx = replace(item.ctx, planned=frozenset(planned))
            plan = self._plan_one(item, report, assume_yes, approve)
            if plan is not None:
                seen.add(key)
                planned.add(plan.target)
                planned.update(plan.target.parents)

    def _plan_one(
        self, item: _WorkItem, report: SessionReport, assume_yes: bool, approve: Approver | None,
    ) -> FixPlan | None:
        plan = self._gate(item, report, assume_yes, approve)
        if plan is None:
            return None
        fixer, ctx = item.fixer, item.ctx
        report.planned.append(PlannedAction(
            fixer_id=fixer.fixer_id,
            check_id=ctx.check.check_id,
            category=fixer.category,
            severity=fixer.severity,
            description=fixer.describe(ctx),
            files=(str(plan.target),),
            backup=plan.needs_backup,
            undo=plan.undo,
        ))
        report.outcomes.append(FixerOutcome(fixer.fixer_id, ctx.check.check_id, fixer.category, FixerState.PLANNED))
        return plan

    def _run_one(self, item: _WorkItem, report: SessionReport, assume_yes: bool, approve: Approver | None) -> bool:
        """Run one fixer. Returns False when the session failed and was rolled back."""
        plan = self._gate(item, report, assume_yes, approve)
        if plan is None:
            return True

        fixer, ctx = item.fixer, item.ctx
        session = report.session
        backup: Backup | None = None
        if plan.needs_backup:
            try:
                backup = self.backups.create_backup(session.session_id, plan.target)
            except BackupCreationError as e:
                logger.warning("%s skipped: %s", fixer.fixer_id, e)
                self._skip(report, fixer, ctx.check, f"backup failed: {e}")
                return True

        logger.info("Applying %s for %s", fixer.fixer_id, ctx.check.check_id)
        try:
            fixer.apply(ctx)
            change = Change(
                change_id=f"chg_{len(session.change_ids) + 1:04d}",
                session_id=session.session_id,
                fixer_id=fixer.fixer_id,
                check_id=ctx.check.check_id,
                category=fixer.category,
                severity=fixer.severity,
                description=fixer.describe(ctx),
                files=(str(plan.target),),
                undo=RestoreBackup(backup.ref) if backup is not None else plan.undo,
                backup_ref=backup.ref if backup is not None else None,
            )
            self.journal.record_change(change)
        except Exception as e:  # any failure inside a fixer ends the session
            self._fail(report, item, plan, backup, ApplyError(fixer.fixer_id, str(e)))
            return False

        session.change_ids.append(change.change_id)
        report.changes.append(change)
        report.outcomes.append(FixerOutcome(
            fixer.fixer_id, ctx.check.check_id, fixer.category, FixerState.APPLIED, change=change,
        ))
        return True

    def _fail(
        self,
        report: SessionReport,
        item: _WorkItem,
        plan: FixPlan,
        backup: Backup | None,
        error: ApplyError,
    ) -> None:
        """Revert the failing fixer's partial effects, then unwind the session."""
        logger.error("Apply failed, rolling back session %s: %s", report.session.session_id, error)
        report.session.status = SessionStatus.FAILED
        report.failure = str(error)
        report.outcomes.append(FixerOutcome(
            item.fixer.fixer_id, item.ctx.check.check_id, item.fixer.category, FixerState.FAILED, str(error),
        ))

        partial = self._revert_partial(item.fixer, plan, backup)
        rollback = self.rollback_engine.rollback(report.changes)
        if partial is not None:
            rollback.failures.insert(0, partial)
        report.rollback = rollback
        report.session.status = rollback.status

    def _revert_partial(self, fixer: Fixer, plan: FixPlan, backup: Backup | None) -> RollbackFailure | None:
        try:
            if backup is not None:
                self.backups.restore(backup)
            elif plan.undo is not None and (plan.target.exists() or plan.target.is_symlink()):
                self.runner.run(plan.undo.argv)
        except (RepairError, OSError) as e:
            logger.error("Could not revert partial effects of %s: %s", fixer.fixer_id, e)
            return RollbackFailure(change_id=f"{fixer.fixer_id} (partial)", reason=str(e))
        return None

    def _evaluate_guard(self, fixer: Fixer, ctx: FixContext) -> GuardResult:
        try:
            return fixer.guard(ctx)
        except Exception as e:  # a crashing guard counts as blocked
            err = GuardEvaluationError(f"guard of {fixer.fixer_id} raised {type(e).__name__}: {e}")
            logger.warning("%s", err)
            return GuardResult.blocked(str(err))

    def _skip(self, report: SessionReport, fixer: Fixer, check: Check, reason: str) -> None:
        logger.debug("Skipping %s for %s: %s", fixer.fixer_id, check.check_id, reason)
        report.outcomes.append(FixerOutcome(fixer.fixer_id, check.check_id, fixer.category, FixerState.SKIPPED, reason))

    # ------------------------------------------------------------------
    # Undo passthroughs
    # ------------------------------------------------------------------

    def undo_change(self, change_id: str) -> Change:
        """Undo a previously applied change."""
        return self.undo_manager.undo(change_id)

    def undo_session(self, session_id: str | None = None):
        """Undo all remaining changes from a session (default: the latest)."""
        return self.undo_manager.undo_session(session_id)

    def list_changes(self):
        """List all journaled changes."""
        return self.undo_manager.list_changes()
