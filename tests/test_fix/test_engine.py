"""Tests for the fix engine: gating, sessions, dry runs and rollback."""

from __future__ import annotations

from pathlib import Path

import pytest

from dotrepair.core.errors import BackupCreationError, SessionInProgressError
from dotrepair.core.models import (
    Category,
    Check,
    CheckStatus,
    FixerState,
    FixPlan,
    GuardResult,
    RestoreBackup,
    RunCommand,
    SessionStatus,
)
from dotrepair.fix.catalog import PATH_MARKER, builtin_fixers
from dotrepair.fix.engine import FixEngine
from dotrepair.fix.lock import SessionLock
from dotrepair.fix.registry import Fixer, FixerRegistry


def fail(check_id: str, target: str | None = None) -> Check:
    return Check(check_id, CheckStatus.FAIL, target=target)


@pytest.fixture
def engine(config, runner) -> FixEngine:
    return FixEngine(config=config, runner=runner)


def _states(report) -> dict[str, FixerState]:
    return {o.fixer_id: o.state for o in report.outcomes}


class TestDispatch:
    def test_passing_checks_ignored(self, engine: FixEngine, zshrc: Path):
        report = engine.run_session([Check("path.ordering", CheckStatus.PASS)])

        assert report.outcomes == []
        assert PATH_MARKER not in zshrc.read_text()

    def test_unmatched_reported(self, engine: FixEngine):
        report = engine.run_session([fail("kernel.version")])

        assert report.unmatched == ["kernel.version"]
        assert report.exit_code == 0

    def test_auto_runs_before_prompt(self, engine: FixEngine, zshrc: Path, home: Path):
        report = engine.run_session(
            [fail("ssh.keepalive"), fail("shell.rc.theme"), fail("path.ordering")],
            assume_yes=True,
        )
        assert [c.fixer_id for c in report.changes] == ["path-block", "rc-theme", "ssh-keepalive"]

    def test_only_filters_categories(self, engine: FixEngine, zshrc: Path):
        report = engine.run_session(
            [fail("path.ordering"), fail("shell.rc.theme")],
            assume_yes=True,
            only={Category.PROMPT},
        )

        assert [c.fixer_id for c in report.changes] == ["rc-theme"]
        assert _states(report)["path-block"] == FixerState.SKIPPED


class TestGating:
    def test_manual_never_applied(self, engine: FixEngine, runner, home: Path, tree):
        before = tree(home)
        report = engine.run_session([fail("shell.default"), fail("tools.ripgrep")], assume_yes=True)

        assert report.changes == []
        assert tree(home) == before
        assert runner.calls == []
        assert report.manual_suggestions[0].startswith("shell.default: Run: chsh")
        assert report.manual_suggestions[1].startswith("tools.ripgrep: Install ripgrep")

    def test_prompt_deferred_without_yes(self, engine: FixEngine, zshrc: Path):
        original = zshrc.read_text()
        report = engine.run_session([fail("shell.rc.theme")])

        assert report.changes == []
        assert zshrc.read_text() == original
        assert "needs approval" in report.skipped[0].reason

    def test_prompt_runs_with_approver(self, engine: FixEngine, zshrc: Path):
        asked = []

        def approve(fixer, ctx):
            asked.append(fixer.fixer_id)
            return True

        report = engine.run_session([fail("shell.rc.theme")], approve=approve)

        assert asked == ["rc-theme"]
        assert [c.fixer_id for c in report.changes] == ["rc-theme"]

    def test_prompt_declined(self, engine: FixEngine, zshrc: Path):
        report = engine.run_session([fail("shell.rc.theme")], approve=lambda f, c: False)
        assert report.changes == []

    def test_blocked_fixer_skipped(self, engine: FixEngine, runner):
        report = engine.run_session([fail("shell.theme.powerlevel10k")])

        assert runner.calls == []
        assert report.skipped[0].reason.startswith("blocked: oh-my-zsh")
        assert report.exit_code == 0

    def test_crashing_guard_is_blocked(self, config, runner, zshrc: Path):
        def boom(ctx):
            raise RuntimeError("guard exploded")

        registry = FixerRegistry([Fixer(
            fixer_id="bad-guard",
            pattern="path.ordering",
            category=Category.AUTO,
            description="never runs",
            guard=boom,
            plan=lambda ctx: FixPlan(target=zshrc, exists=True),
            apply=lambda ctx: zshrc.write_text("clobbered"),
        )])
        report = FixEngine(config, registry, runner).run_session([fail("path.ordering")])

        assert report.changes == []
        assert "guard exploded" in report.skipped[0].reason
        assert zshrc.read_text() != "clobbered"


class TestSession:
    def test_applies_and_journals(self, engine: FixEngine, zshrc: Path):
        report = engine.run_session([fail("path.ordering")])

        assert report.status == SessionStatus.COMMITTED
        [change] = report.changes
        assert change.change_id == "chg_0001"
        assert isinstance(change.undo, RestoreBackup)
        assert change.backup_ref == change.undo.backup_ref
        assert engine.journal.entries()[0].change == change
        assert engine.journal.sessions()[0].status == SessionStatus.COMMITTED

    def test_new_file_gets_command_undo(self, engine: FixEngine, home: Path):
        report = engine.run_session([fail("path.ordering")])

        [change] = report.changes
        assert change.undo == RunCommand(("rm", "-f", str(home / ".zshrc")))
        assert change.backup_ref is None

    def test_second_run_is_a_no_op(self, engine: FixEngine, zshrc: Path, home: Path, omz, tree):
        checks = [fail("path.ordering"), fail("dirs.local_bin"), fail("shell.plugins.zsh-autosuggestions")]
        first = engine.run_session(checks)
        after_first = tree(home)

        second = engine.run_session(checks)

        assert len(first.changes) == 3
        assert second.changes == []
        assert tree(home) == after_first
        assert all(o.reason.startswith("already satisfied") for o in second.outcomes)

    def test_lock_held_elsewhere(self, engine: FixEngine, state_dir: Path, zshrc: Path):
        original = zshrc.read_text()
        with SessionLock(state_dir):
            with pytest.raises(SessionInProgressError):
                engine.run_session([fail("path.ordering")])
        assert zshrc.read_text() == original

    def test_backup_failure_skips_fixer(self, engine: FixEngine, zshrc: Path, monkeypatch):
        def broken(session_id, path):
            raise BackupCreationError("disk full")

        monkeypatch.setattr(engine.backups, "create_backup", broken)
        original = zshrc.read_text()
        report = engine.run_session([fail("path.ordering"), fail("dirs.local_bin")])

        assert zshrc.read_text() == original
        assert [c.fixer_id for c in report.changes] == ["local-bin"]
        assert _states(report)["path-block"] == FixerState.SKIPPED
        assert report.status == SessionStatus.COMMITTED


class TestDryRun:
    CHECKS = [
        fail("path.ordering"),
        fail("dirs.local_bin"),
        fail("shell.rc.theme"),
        fail("shell.default"),
        fail("shell.plugins.zsh-autosuggestions"),
    ]

    def test_touches_nothing(self, engine: FixEngine, tmp_path: Path, zshrc: Path, omz, runner, tree):
        before = tree(tmp_path)
        report = engine.run_session(self.CHECKS, dry_run=True, assume_yes=True)

        assert tree(tmp_path) == before
        assert runner.calls == []
        assert report.changes == []
        assert report.session.dry_run

    def test_plan_matches_real_run(self, config, runner, zshrc: Path, omz):
        planned = FixEngine(config, runner=runner).run_session(self.CHECKS, dry_run=True, assume_yes=True)
        real = FixEngine(config, runner=runner).run_session(self.CHECKS, assume_yes=True)

        assert [p.fixer_id for p in planned.planned] == [c.fixer_id for c in real.changes]
        assert planned.manual_suggestions == real.manual_suggestions

    def test_plan_matches_real_run_on_empty_home(self, config, runner, home: Path):
        """Later fixers see what earlier ones would create."""
        checks = [
            fail("path.ordering"),
            fail("shell.rc.theme"),
            fail("shell.rc.plugins"),
            fail("ssh.keepalive"),
            fail("dirs.local_bin"),
        ]
        planned = FixEngine(config, runner=runner).run_session(checks, dry_run=True, assume_yes=True)
        assert not (home / ".zshrc").exists()
        real = FixEngine(config, runner=runner).run_session(checks, assume_yes=True)

        assert real.exit_code == 0
        assert [p.fixer_id for p in planned.planned] == [c.fixer_id for c in real.changes]
        assert [p.backup for p in planned.planned] == [c.backup_ref is not None for c in real.changes]
        assert [p.undo for p in planned.planned if not p.backup] == [
            c.undo for c in real.changes if c.backup_ref is None
        ]

    def test_duplicate_checks_planned_once(self, config, runner, zshrc: Path):
        checks = [fail("path.ordering"), fail("path.ordering")]
        planned = FixEngine(config, runner=runner).run_session(checks, dry_run=True)
        real = FixEngine(config, runner=runner).run_session(checks)

        assert [p.fixer_id for p in planned.planned] == ["path-block"]
        assert [c.fixer_id for c in real.changes] == ["path-block"]
        assert planned.skipped[0].reason.startswith("already satisfied")
        assert real.skipped[0].reason.startswith("already satisfied")

    def test_backup_flag(self, engine: FixEngine, zshrc: Path):
        report = engine.run_session([fail("path.ordering"), fail("dirs.local_bin")], dry_run=True)

        by_id = {p.fixer_id: p for p in report.planned}
        assert by_id["path-block"].backup
        assert not by_id["local-bin"].backup
        assert by_id["local-bin"].undo_description().startswith("rmdir ")


def _failing_fixer(pattern: str, before_raise=None) -> Fixer:
    def apply(ctx):
        if before_raise is not None:
            before_raise(ctx)
        raise OSError("simulated failure")

    return Fixer(
        fixer_id="explodes",
        pattern=pattern,
        category=Category.AUTO,
        description="always fails",
        guard=lambda ctx: GuardResult.needs_fix(),
        plan=lambda ctx: FixPlan(target=ctx.home / "never", exists=False, undo=RunCommand(("true",))),
        apply=apply,
    )


class TestRollback:
    def test_failed_clone_restores_everything(self, config, runner, home: Path, zshrc: Path, omz, tree):
        runner.fail_clone = True
        before = tree(home)
        engine = FixEngine(config, runner=runner)
        report = engine.run_session([fail("path.ordering"), fail("shell.plugins.zsh-autosuggestions")])

        assert report.exit_code == 1
        assert report.status == SessionStatus.ROLLED_BACK
        assert report.rollback.reverted == ["chg_0001"]
        assert "autosuggest-clone" in report.failure
        assert tree(home) == before
        assert engine.journal.sessions()[0].status == SessionStatus.ROLLED_BACK
        assert all(e.undone for e in engine.journal.entries())

    def test_unwinds_in_reverse_order(self, config, runner, zshrc: Path, home: Path):
        registry = FixerRegistry([*builtin_fixers(), _failing_fixer("boom")])
        report = FixEngine(config, registry, runner).run_session(
            [fail("path.ordering"), fail("boom"), fail("dirs.local_bin")],
        )

        assert report.rollback.reverted == ["chg_0002", "chg_0001"]
        assert not (home / ".local" / "bin").exists()
        assert PATH_MARKER not in zshrc.read_text()

    def test_fixers_after_failure_never_run(self, config, runner, home: Path):
        registry = FixerRegistry([_failing_fixer("boom"), *builtin_fixers()])
        report = FixEngine(config, registry, runner).run_session([fail("boom"), fail("dirs.local_bin")])

        assert report.changes == []
        assert not (home / ".local").exists()
        assert "local-bin" not in _states(report)

    def test_corrupt_backup_reports_errors(self, config, runner, zshrc: Path, state_dir: Path):
        def tamper(ctx):
            for snap in (state_dir / "backups").rglob("*.snap"):
                snap.write_text("tampered")

        registry = FixerRegistry([*builtin_fixers(), _failing_fixer("boom", before_raise=tamper)])
        report = FixEngine(config, registry, runner).run_session([fail("path.ordering"), fail("boom")])

        assert report.exit_code == 2
        assert report.status == SessionStatus.ROLLED_BACK_WITH_ERRORS
        assert report.rollback.unreverted == ["chg_0001"]
        assert PATH_MARKER in zshrc.read_text()

    def test_partial_write_reverted(self, config, runner, zshrc: Path):
        original = zshrc.read_text()

        def scribble(ctx):
            zshrc.write_text("half written")
            raise OSError("disk full")

        registry = FixerRegistry([Fixer(
            fixer_id="scribbler",
            pattern="path.ordering",
            category=Category.AUTO,
            description="writes then fails",
            guard=lambda ctx: GuardResult.needs_fix(),
            plan=lambda ctx: FixPlan(target=zshrc, exists=True),
            apply=scribble,
        )])
        report = FixEngine(config, registry, runner).run_session([fail("path.ordering")])

        assert report.exit_code == 1
        assert zshrc.read_text() == original
