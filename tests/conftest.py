"""Shared fixtures: a throwaway home directory and a fake git."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Sequence

import pytest

from dotrepair.core.config import RepairConfig
from dotrepair.core.errors import CommandError
from dotrepair.fix.commands import CommandRunner


class FakeRunner(CommandRunner):
    """Simulates ``git clone``; every other command really runs."""

    def __init__(self, fail_clone: bool = False, has_git: bool = True):
        super().__init__(timeout=30)
        self.fail_clone = fail_clone
        self.has_git = has_git
        self.calls: list[list[str]] = []

    def run(self, argv: Sequence[str]) -> subprocess.CompletedProcess:
        args = list(argv)
        self.calls.append(args)
        if args[:2] == ["git", "clone"]:
            dest = Path(args[-1])
            dest.mkdir(parents=True)
            if self.fail_clone:
                # a half-finished clone leaves a directory behind
                (dest / ".git").mkdir()
                raise CommandError(args, "exit code 128: fatal: unable to access 'https://github.com/'")
            (dest / ".git").mkdir()
            (dest / "README.md").write_text("plugin\n")
            return subprocess.CompletedProcess(args, 0, "", "")
        return super().run(args)

    def which(self, name: str) -> str | None:
        if name == "git":
            return "/usr/bin/git" if self.has_git else None
        return super().which(name)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def config(home: Path, state_dir: Path) -> RepairConfig:
    return RepairConfig.for_home(home, state_dir)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def omz(home: Path) -> Path:
    """A bare oh-my-zsh install (no custom theme or plugins)."""
    path = home / ".oh-my-zsh"
    (path / "custom" / "plugins").mkdir(parents=True)
    (path / "custom" / "themes").mkdir(parents=True)
    return path


@pytest.fixture
def zshrc(home: Path) -> Path:
    """A typical oh-my-zsh generated ~/.zshrc."""
    rc = home / ".zshrc"
    rc.write_text(
        'export ZSH="$HOME/.oh-my-zsh"\n'
        'ZSH_THEME="robbyrussell"\n'
        "plugins=(git)\n"
        "source $ZSH/oh-my-zsh.sh\n"
    )
    return rc


def snapshot_tree(root: Path) -> dict[str, bytes | None]:
    """Map every path under ``root`` to its bytes (None for directories)."""
    tree: dict[str, bytes | None] = {}
    for path in sorted(root.rglob("*")):
        rel = str(path.relative_to(root))
        tree[rel] = None if path.is_dir() else path.read_bytes()
    return tree


@pytest.fixture
def tree():
    """The snapshot_tree helper, for byte-level before/after comparisons."""
    return snapshot_tree
