"""Built-in fixers for shell, PATH, SSH and plugin problems."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Callable

from dotrepair.core.config import RepairConfig
from dotrepair.core.fsutil import atomic_write_bytes, file_mode
from dotrepair.core.models import Category, FixPlan, GuardResult, RunCommand, Severity
from dotrepair.fix.registry import FixContext, Fixer, FixerRegistry

ZSHRC = ".zshrc"
OMZ_DIR = ".oh-my-zsh"
OMZ_INSTALL_URL = "https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh"

PATH_MARKER = "# Simplified Dev Environment Paths"
PATH_BLOCK = (
    "\n"
    f"{PATH_MARKER}\n"
    'export PATH="$HOME/.local/bin:$PATH"\n'
    'export PATH="$HOME/.bun/bin:$PATH"\n'
    'export PATH="$HOME/.cargo/bin:$PATH"\n'
)

SSH_MARKER = "ServerAliveInterval"
SSH_BLOCK = (
    "\n"
    "# Keep connections alive through NAT/firewalls\n"
    "Host *\n"
    "    ServerAliveInterval 60\n"
    "    ServerAliveCountMax 3\n"
    "    TCPKeepAlive yes\n"
)

CLONES = (
    (
        "p10k-clone",
        "shell.theme.powerlevel10k",
        "custom/themes/powerlevel10k",
        "https://github.com/romkatv/powerlevel10k.git",
    ),
    (
        "autosuggest-clone",
        "shell.plugins.zsh-autosuggestions",
        "custom/plugins/zsh-autosuggestions",
        "https://github.com/zsh-users/zsh-autosuggestions",
    ),
    (
        "highlight-clone",
        "shell.plugins.zsh-syntax-highlighting",
        "custom/plugins/zsh-syntax-highlighting",
        "https://github.com/zsh-users/zsh-syntax-highlighting.git",
    ),
)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _missing_dirs(ctx: FixContext, path: Path) -> tuple[Path, ...]:
    """Ancestors of ``path`` that applying would create, innermost first."""
    dirs = []
    parent = path.parent
    while parent != parent.parent and not ctx.exists(parent):
        dirs.append(parent)
        parent = parent.parent
    return tuple(dirs)


def _remove_new(ctx: FixContext, path: Path) -> RunCommand:
    """Undo for a new file: remove it and any directory made to hold it.

    ``rm -d`` refuses a directory that has gained other entries since.
    """
    dirs = _missing_dirs(ctx, path)
    if not dirs:
        return RunCommand(("rm", "-f", str(path)))
    return RunCommand(("rm", "-f", "-d", str(path), *map(str, dirs)))


def _file_plan(ctx: FixContext, path: Path) -> FixPlan:
    """Existing files are restored from backup; new ones are removed."""
    if ctx.exists(path):
        return FixPlan(target=path, exists=True)
    return FixPlan(target=path, exists=False, undo=_remove_new(ctx, path))


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="surrogateescape")


def _append(path: Path, block: str, mode: int | None = None) -> None:
    content = _read(path) if path.exists() else ""
    if content and not content.endswith("\n"):
        content += "\n"
    data = (content + block).encode("utf-8", errors="surrogateescape")
    atomic_write_bytes(path, data, mode=mode)


def _needed(ctx: FixContext) -> GuardResult:
    return GuardResult.needs_fix(ctx.check.message)


# ---------------------------------------------------------------------------
# PATH block in ~/.zshrc
# ---------------------------------------------------------------------------

def _zshrc(ctx: FixContext) -> Path:
    return ctx.home / ZSHRC


def _path_guard(ctx: FixContext) -> GuardResult:
    rc = _zshrc(ctx)
    if rc.is_file() and PATH_MARKER in _read(rc):
        return GuardResult.satisfied("PATH block already present")
    return GuardResult.needs_fix("PATH block missing from ~/.zshrc")


def _path_apply(ctx: FixContext) -> None:
    _append(_zshrc(ctx), PATH_BLOCK)


# ---------------------------------------------------------------------------
# Missing config file copied from templates
# ---------------------------------------------------------------------------

def _config_target(ctx: FixContext) -> PurePosixPath | None:
    raw = ctx.check.target
    if not raw:
        return None
    rel = PurePosixPath(raw)
    if rel.is_absolute() or ".." in rel.parts:
        return None
    return rel


def _config_guard(ctx: FixContext) -> GuardResult:
    rel = _config_target(ctx)
    if rel is None:
        return GuardResult.blocked("check does not name a relative config file")
    dest = ctx.config.config_home / rel
    if ctx.exists(dest):
        return GuardResult.satisfied(f"{dest} exists")
    src = ctx.config.template_dir / rel
    if not src.is_file():
        return GuardResult.blocked(f"no template at {src}")
    return GuardResult.needs_fix(f"{dest} missing")


def _config_plan(ctx: FixContext) -> FixPlan:
    rel = _config_target(ctx)
    if rel is None:
        raise ValueError("check does not name a relative config file")
    dest = ctx.config.config_home / rel
    return FixPlan(target=dest, exists=False, undo=_remove_new(ctx, dest))


def _config_apply(ctx: FixContext) -> None:
    rel = _config_target(ctx)
    src = ctx.config.template_dir / rel
    atomic_write_bytes(ctx.config.config_home / rel, src.read_bytes(), mode=file_mode(src))


# ---------------------------------------------------------------------------
# ~/.local/bin
# ---------------------------------------------------------------------------

def _local_bin(ctx: FixContext) -> Path:
    return ctx.home / ".local" / "bin"


def _local_bin_guard(ctx: FixContext) -> GuardResult:
    path = _local_bin(ctx)
    if path.is_dir() or path in ctx.planned:
        return GuardResult.satisfied(f"{path} exists")
    if path.exists():
        return GuardResult.blocked(f"{path} exists but is not a directory")
    return GuardResult.needs_fix(f"{path} missing")


def _local_bin_plan(ctx: FixContext) -> FixPlan:
    path = _local_bin(ctx)
    dirs = _missing_dirs(ctx, path)
    return FixPlan(target=path, exists=False, undo=RunCommand(("rmdir", str(path), *map(str, dirs))))


def _local_bin_apply(ctx: FixContext) -> None:
    _local_bin(ctx).mkdir(parents=True)


# ---------------------------------------------------------------------------
# oh-my-zsh theme / plugin clones
# ---------------------------------------------------------------------------

def _clone_fixer(fixer_id: str, pattern: str, rel_dir: str, url: str) -> Fixer:
    def dest(ctx: FixContext) -> Path:
        return ctx.home / OMZ_DIR / rel_dir

    def guard(ctx: FixContext) -> GuardResult:
        if ctx.exists(dest(ctx)):
            return GuardResult.satisfied(f"{dest(ctx)} exists")
        if not (ctx.home / OMZ_DIR).is_dir():
            return GuardResult.blocked("oh-my-zsh is not installed")
        # undo removes dest only, so git must not create its parents
        if not dest(ctx).parent.is_dir():
            return GuardResult.blocked(f"{dest(ctx).parent} missing")
        if ctx.runner.which("git") is None:
            return GuardResult.blocked("git is not installed")
        return GuardResult.needs_fix(f"{dest(ctx)} missing")

    def plan(ctx: FixContext) -> FixPlan:
        return FixPlan(target=dest(ctx), exists=False, undo=RunCommand(("rm", "-rf", str(dest(ctx)))))

    def apply(ctx: FixContext) -> None:
        ctx.runner.run(["git", "clone", "--depth=1", url, str(dest(ctx))])

    return Fixer(
        fixer_id=fixer_id,
        pattern=pattern,
        category=Category.AUTO,
        description=f"Clone {url.rsplit('/', 1)[-1].removesuffix('.git')} into ~/{OMZ_DIR}/{rel_dir}",
        guard=guard,
        plan=plan,
        apply=apply,
        severity=Severity.WARNING,
    )


# ---------------------------------------------------------------------------
# KEY=value lines in ~/.zshrc
# ---------------------------------------------------------------------------

def _rc_line_fixer(
    fixer_id: str,
    pattern: str,
    key: str,
    value_of: Callable[[RepairConfig], str],
    description: str,
) -> Fixer:
    line_re = re.compile(rf"^{re.escape(key)}=.*$", re.MULTILINE)

    def wanted(ctx: FixContext) -> str:
        return f"{key}={value_of(ctx.config)}"

    def guard(ctx: FixContext) -> GuardResult:
        rc = _zshrc(ctx)
        if not rc.is_file():
            if rc in ctx.planned:
                return GuardResult.needs_fix("~/.zshrc is created by an earlier fixer")
            return GuardResult.blocked("~/.zshrc not found")
        if wanted(ctx) in _read(rc).splitlines():
            return GuardResult.satisfied(f"{key} already set")
        return GuardResult.needs_fix(f"{key} differs from {wanted(ctx)}")

    def plan(ctx: FixContext) -> FixPlan:
        return FixPlan(target=_zshrc(ctx), exists=True)

    def apply(ctx: FixContext) -> None:
        rc = _zshrc(ctx)
        content = _read(rc)
        new_content, count = line_re.subn(lambda _m: wanted(ctx), content)
        if count == 0:
            if new_content and not new_content.endswith("\n"):
                new_content += "\n"
            new_content += wanted(ctx) + "\n"
        atomic_write_bytes(rc, new_content.encode("utf-8", errors="surrogateescape"))

    return Fixer(
        fixer_id=fixer_id,
        pattern=pattern,
        category=Category.PROMPT,
        description=description,
        guard=guard,
        plan=plan,
        apply=apply,
        severity=Severity.WARNING,
    )


# ---------------------------------------------------------------------------
# SSH keepalive
# ---------------------------------------------------------------------------

def _ssh_config(ctx: FixContext) -> Path:
    return ctx.home / ".ssh" / "config"


def _ssh_guard(ctx: FixContext) -> GuardResult:
    cfg = _ssh_config(ctx)
    if cfg.is_file() and SSH_MARKER in _read(cfg):
        return GuardResult.satisfied("keepalive already configured")
    return GuardResult.needs_fix("no ServerAliveInterval in ~/.ssh/config")


def _ssh_apply(ctx: FixContext) -> None:
    cfg = _ssh_config(ctx)
    cfg.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    _append(cfg, SSH_BLOCK, mode=0o600)


# ---------------------------------------------------------------------------
# Manual-only suggestions
# ---------------------------------------------------------------------------

def _suggest_chsh(ctx: FixContext) -> str:
    return 'Run: chsh -s "$(command -v zsh)"  (needs your password; log out and back in)'


def _suggest_omz(ctx: FixContext) -> str:
    return f'Run: sh -c "$(curl -fsSL {OMZ_INSTALL_URL})" "" --unattended'


def _suggest_tool(ctx: FixContext) -> str:
    tool = ctx.check.check_id.rsplit(".", 1)[-1]
    return f"Install {tool}: re-run the installer's CLI tools phase (needs sudo)"


def _suggest_rc_review(ctx: FixContext) -> str:
    detail = f" ({ctx.check.message})" if ctx.check.message else ""
    return f"Review ~/{ZSHRC} by hand{detail}"


def _suggest_shell_phase(ctx: FixContext) -> str:
    return "Re-run the installer's shell environment phase"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def builtin_fixers() -> list[Fixer]:
    """All built-in fixers in dispatch order."""
    fixers = [
        Fixer(
            fixer_id="path-block",
            pattern="path.ordering",
            category=Category.AUTO,
            description="Append PATH block to ~/.zshrc",
            guard=_path_guard,
            plan=lambda ctx: _file_plan(ctx, _zshrc(ctx)),
            apply=_path_apply,
        ),
        Fixer(
            fixer_id="config-copy",
            pattern="config.missing",
            category=Category.AUTO,
            description="Copy missing config file {target}",
            guard=_config_guard,
            plan=_config_plan,
            apply=_config_apply,
        ),
        Fixer(
            fixer_id="local-bin",
            pattern="dirs.local_bin",
            category=Category.AUTO,
            description="Create ~/.local/bin",
            guard=_local_bin_guard,
            plan=_local_bin_plan,
            apply=_local_bin_apply,
        ),
    ]
    fixers.extend(_clone_fixer(*entry) for entry in CLONES)
    fixers.extend([
        _rc_line_fixer(
            "rc-theme",
            "shell.rc.theme",
            "ZSH_THEME",
            lambda config: f'"{config.fix.zsh_theme}"',
            "Set ZSH_THEME in ~/.zshrc",
        ),
        _rc_line_fixer(
            "rc-plugins",
            "shell.rc.plugins",
            "plugins",
            lambda config: "(" + " ".join(config.fix.zsh_plugins) + ")",
            "Set oh-my-zsh plugins in ~/.zshrc",
        ),
        Fixer(
            fixer_id="ssh-keepalive",
            pattern="ssh.keepalive",
            category=Category.PROMPT,
            description="Add SSH keepalive settings to ~/.ssh/config",
            guard=_ssh_guard,
            plan=lambda ctx: _file_plan(ctx, _ssh_config(ctx)),
            apply=_ssh_apply,
        ),
        Fixer(
            fixer_id="rc-review",
            pattern="shell.rc.*",
            category=Category.MANUAL,
            description="Review ~/.zshrc",
            guard=_needed,
            suggestion=_suggest_rc_review,
        ),
        Fixer(
            fixer_id="default-shell",
            pattern="shell.default",
            category=Category.MANUAL,
            description="Make zsh the login shell",
            guard=_needed,
            suggestion=_suggest_chsh,
            severity=Severity.DESTRUCTIVE,
        ),
        Fixer(
            fixer_id="oh-my-zsh",
            pattern="shell.omz",
            category=Category.MANUAL,
            description="Install oh-my-zsh",
            guard=_needed,
            suggestion=_suggest_omz,
        ),
        Fixer(
            fixer_id="shell-phase",
            pattern="shell.*",
            category=Category.MANUAL,
            description="Shell environment problem",
            guard=_needed,
            suggestion=_suggest_shell_phase,
        ),
        Fixer(
            fixer_id="missing-tool",
            pattern="tools.*",
            category=Category.MANUAL,
            description="Install missing CLI tool",
            guard=_needed,
            suggestion=_suggest_tool,
            severity=Severity.DESTRUCTIVE,
        ),
    ])
    return fixers


def build_registry() -> FixerRegistry:
    """Build the registry once; callers pass it to the engine."""
    return FixerRegistry(builtin_fixers())
