"""Configuration management for dotrepair (repair.toml parsing + defaults)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

CONFIG_ENV = "DOTREPAIR_CONFIG"
HOME_ENV = "DOTREPAIR_HOME"
STATE_DIR_ENV = "DOTREPAIR_STATE_DIR"
LOG_LEVEL_ENV = "DOTREPAIR_LOG_LEVEL"


@dataclass
class GeneralConfig:
    home: Path | None = None
    state_dir: Path | None = None
    log_level: str = "WARNING"


@dataclass
class FixConfig:
    template_dir: str = ".local/share/dotrepair/templates"
    config_home: str = ".acfs"
    zsh_theme: str = "powerlevel10k/powerlevel10k"
    zsh_plugins: list[str] = field(
        default_factory=lambda: ["git", "zsh-autosuggestions", "zsh-syntax-highlighting"]
    )
    command_timeout: int = 120


@dataclass
class BackupConfig:
    keep_sessions: int = 20


@dataclass
class RepairConfig:
    """Complete dotrepair configuration."""

    general: GeneralConfig = field(default_factory=GeneralConfig)
    fix: FixConfig = field(default_factory=FixConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)

    @classmethod
    def for_home(cls, home: Path, state_dir: Path | None = None) -> RepairConfig:
        """Config rooted at an explicit home directory (used heavily by tests)."""
        return cls(general=GeneralConfig(home=home, state_dir=state_dir))

    @property
    def home(self) -> Path:
        return self.general.home or Path.home()

    @property
    def state_dir(self) -> Path:
        if self.general.state_dir is not None:
            return self.general.state_dir
        return self.home / ".local" / "state" / "dotrepair"

    def home_path(self, value: str) -> Path:
        """Resolve a configured path: ``~`` expands, relative means under home."""
        path = Path(value)
        if value.startswith("~"):
            return self.home / Path(value[1:].lstrip("/"))
        if path.is_absolute():
            return path
        return self.home / path

    @property
    def template_dir(self) -> Path:
        return self.home_path(self.fix.template_dir)

    @property
    def config_home(self) -> Path:
        return self.home_path(self.fix.config_home)


def default_config_file(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    if env.get(CONFIG_ENV):
        return Path(env[CONFIG_ENV])
    base = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "dotrepair" / "repair.toml"


def load_config(
    config_file: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> RepairConfig:
    """Load configuration from repair.toml if present, then apply env overrides."""
    env = os.environ if env is None else env
    config = RepairConfig()

    if config_file is None:
        config_file = default_config_file(env)

    if config_file.exists():
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
        _apply_toml(config, data)

    if env.get(HOME_ENV):
        config.general.home = Path(env[HOME_ENV])
    if env.get(STATE_DIR_ENV):
        config.general.state_dir = Path(env[STATE_DIR_ENV])
    elif config.general.state_dir is None and env.get("XDG_STATE_HOME"):
        config.general.state_dir = Path(env["XDG_STATE_HOME"]) / "dotrepair"
    if env.get(LOG_LEVEL_ENV):
        config.general.log_level = env[LOG_LEVEL_ENV]

    return config


def _apply_toml(config: RepairConfig, data: dict) -> None:
    if "general" in data:
        gen = data["general"]
        if "home" in gen:
            config.general.home = Path(gen["home"]).expanduser()
        if "state_dir" in gen:
            config.general.state_dir = Path(gen["state_dir"]).expanduser()
        if "log_level" in gen:
            config.general.log_level = gen["log_level"]

    if "fix" in data:
        fx = data["fix"]
        for attr in ("template_dir", "config_home", "zsh_theme", "command_timeout"):
            if attr in fx:
                setattr(config.fix, attr, fx[attr])
        if "zsh_plugins" in fx:
            config.fix.zsh_plugins = list(fx["zsh_plugins"])

    if "backup" in data:
        b = data["backup"]
        if "keep_sessions" in b:
            config.backup.keep_sessions = int(b["keep_sessions"])


def get_state_dir(config: RepairConfig) -> Path:
    """Get the state directory path without creating it."""
    return config.state_dir

