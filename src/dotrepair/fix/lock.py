"""Exclusive per-user session lock (pid file created with O_EXCL)."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path

from dotrepair.core.errors import SessionInProgressError

logger = logging.getLogger(__name__)

LOCK_FILE = "session.lock"
# seconds an unreadable lock is still treated as being written by its owner
STALE_GRACE = 10


class SessionLock:
    """Held for the whole of any operation that mutates files or state.

    A lock whose pid is no longer running is considered stale and replaced.
    A lock without a readable pid only counts as stale once it is older
    than STALE_GRACE seconds.
    """

    def __init__(self, state_dir: Path):
        self.path = state_dir / LOCK_FILE
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        try:
            self._create()
            return
        except FileExistsError:
            pass

        holder = self.holder_pid()
        if holder is not None and _pid_alive(holder):
            raise SessionInProgressError(holder, str(self.path))
        if holder is None and self._age() < STALE_GRACE:
            raise SessionInProgressError(None, str(self.path))

        logger.warning("Removing stale session lock %s (pid %s)", self.path, holder)
        self.path.unlink(missing_ok=True)
        try:
            self._create()
        except FileExistsError:
            raise SessionInProgressError(self.holder_pid(), str(self.path)) from None

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def holder_pid(self) -> int | None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return int(data["pid"])
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def _age(self) -> float:
        try:
            return time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return float("inf")

    def __enter__(self) -> SessionLock:
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    def _create(self) -> None:
        fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"pid": os.getpid(), "ts": int(time.time())}, f)
            f.flush()
            os.fsync(f.fileno())
        self._held = True


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
