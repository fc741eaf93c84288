"""Logging setup, called once by the CLI entry point.

Every module does ``logger = logging.getLogger(__name__)`` and inherits this.
Records go to stderr so ``--json`` output on stdout stays parseable.

Level precedence: ``--verbose`` flag > DOTREPAIR_LOG_LEVEL / repair.toml > WARNING.
"""

from __future__ import annotations

import logging
import sys

_FMT_MINIMAL = "%(levelname)s: %(message)s"
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s"
_DATEFMT = "%H:%M:%S"


def setup_logging(level: str = "WARNING") -> None:
    """Configure the ``dotrepair`` logger hierarchy."""
    numeric_level = parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt = _FMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt = _FMT_VERBOSE
    else:
        fmt = _FMT_MINIMAL

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=_DATEFMT))

    root = logging.getLogger("dotrepair")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)
    root.propagate = False


def parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant (WARNING if unknown)."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
