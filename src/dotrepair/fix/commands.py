"""Runs external commands as argv lists, never through a shell."""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Sequence

from dotrepair.core.errors import CommandError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Executes fixer and undo commands with a timeout."""

    def __init__(self, timeout: int = 120):
        self.timeout = timeout

    def run(self, argv: Sequence[str]) -> subprocess.CompletedProcess:
        args = list(argv)
        logger.debug("Running %s", args)
        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError:
            raise CommandError(args, f"{args[0]} not found") from None
        except subprocess.TimeoutExpired:
            raise CommandError(args, f"timed out after {self.timeout}s") from None

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip().splitlines()
            tail = detail[-1] if detail else ""
            raise CommandError(args, f"exit code {proc.returncode}" + (f": {tail}" if tail else ""))
        return proc

    def which(self, name: str) -> str | None:
        return shutil.which(name)
