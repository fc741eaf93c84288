"""dotrepair: safe, reversible repair of home-directory configuration."""

from dotrepair._version import __version__
from dotrepair.core.checks import parse_checks
from dotrepair.core.config import RepairConfig, load_config
from dotrepair.fix.catalog import build_registry
from dotrepair.fix.engine import FixEngine
from dotrepair.fix.undo import UndoManager

__all__ = [
    "__version__",
    "parse_checks",
    "RepairConfig",
    "load_config",
    "build_registry",
    "FixEngine",
    "UndoManager",
]
