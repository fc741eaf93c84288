"""Append-only change journal: record of every session and change.

Stored as NDJSON (one JSON object per line) at ``<state>/journal.ndjson``.
Lines are never rewritten; undo is an appended event, not an edit.

Event shapes::

    {"event": "session_start", "session_id": ..., "started_at": ...}
    {"event": "change", "change_id": "chg_0001", "session_id": ..., ...}
    {"event": "undo", "session_id": ..., "change_id": ..., "timestamp": ...}
    {"event": "session_end", "session_id": ..., "status": ..., "ended_at": ...}
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotrepair.core.models import Change, Session, SessionStatus, utcnow

logger = logging.getLogger(__name__)

JOURNAL_FILE = "journal.ndjson"


@dataclass
class JournalEntry:
    """A journaled change plus whether it has since been undone."""

    change: Change
    undone_at: str | None = None

    @property
    def undone(self) -> bool:
        return self.undone_at is not None


class ChangeJournal:
    """Append-only, fsynced journal of applied changes."""

    def __init__(self, state_dir: Path):
        self._path = state_dir / JOURNAL_FILE

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def start_session(self, session: Session) -> None:
        self._append({
            "event": "session_start",
            "session_id": session.session_id,
            "started_at": session.started_at,
        })

    def record_change(self, change: Change) -> None:
        self._append({"event": "change", **change.to_dict()})
        logger.debug("Journaled %s", change.ref)

    def record_undo(self, change: Change) -> None:
        self._append({
            "event": "undo",
            "session_id": change.session_id,
            "change_id": change.change_id,
            "timestamp": utcnow(),
        })

    def finish_session(self, session: Session) -> None:
        session.ended_at = session.ended_at or utcnow()
        self._append({
            "event": "session_end",
            "session_id": session.session_id,
            "status": session.status.value,
            "ended_at": session.ended_at,
        })

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_events(self) -> list[dict[str, Any]]:
        """All events, oldest first. Corrupt lines are skipped with a warning."""
        if not self._path.is_file():
            return []

        events = []
        with self._path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning("Skipping corrupt journal line %d: %s", line_num, e)
        return events

    def entries(self) -> list[JournalEntry]:
        """Every journaled change across sessions, in the order applied."""
        entries: list[JournalEntry] = []
        by_ref: dict[str, JournalEntry] = {}
        for event in self.read_events():
            kind = event.get("event")
            if kind == "change":
                try:
                    change = Change.from_dict(event)
                except (KeyError, ValueError) as e:
                    logger.warning("Skipping malformed change record: %s", e)
                    continue
                entry = JournalEntry(change=change)
                entries.append(entry)
                by_ref[change.ref] = entry
            elif kind == "undo":
                ref = f"{event.get('session_id')}:{event.get('change_id')}"
                if ref in by_ref:
                    by_ref[ref].undone_at = event.get("timestamp") or utcnow()
        return entries

    def sessions(self) -> list[Session]:
        """Sessions in start order. One with no end event stays in-progress."""
        sessions: dict[str, Session] = {}
        for event in self.read_events():
            session_id = event.get("session_id")
            if not session_id:
                continue
            kind = event.get("event")
            if kind == "session_start":
                sessions[session_id] = Session(session_id=session_id, started_at=event.get("started_at", ""))
                continue
            session = sessions.setdefault(session_id, Session(session_id=session_id, started_at=""))
            if kind == "change":
                session.change_ids.append(event["change_id"])
            elif kind == "session_end":
                session.status = SessionStatus(event.get("status", SessionStatus.COMMITTED.value))
                session.ended_at = event.get("ended_at")
        return list(sessions.values())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(self, record: dict[str, Any]) -> None:
        """Append one line under an exclusive advisory lock, then fsync."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record, ensure_ascii=False) + "\n"
        with open(self._path, "a", encoding="utf-8") as fd:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX)
            try:
                fd.write(line)
                fd.flush()
                os.fsync(fd.fileno())
            finally:
                fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
