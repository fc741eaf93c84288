"""Checksummed file snapshots taken before any mutation.

Layout under the state directory::

    backups/<session_id>/bkp_0001.snap
    backups/<session_id>/manifest.json

Backups are only ever deleted by :meth:`BackupStore.gc`.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path

from dotrepair.core.errors import BackupCreationError, BackupIntegrityError
from dotrepair.core.fsutil import atomic_write_bytes, atomic_write_text, file_mode, sha256_bytes, sha256_file
from dotrepair.core.models import Backup

logger = logging.getLogger(__name__)

MANIFEST = "manifest.json"


class BackupStore:
    """Creates, verifies and restores file snapshots."""

    def __init__(self, state_dir: Path):
        self.backup_dir = state_dir / "backups"

    def create_backup(self, session_id: str, path: Path) -> Backup:
        """Snapshot an existing file. Raises BackupCreationError on any failure."""
        path = path.absolute()
        if not path.is_file():
            raise BackupCreationError(f"Cannot back up {path}: not an existing regular file")

        session_dir = self.backup_dir / session_id
        try:
            content = path.read_bytes()
            manifest = self._read_manifest(session_dir)
            backup_id = f"bkp_{len(manifest) + 1:04d}"
            snapshot = session_dir / f"{backup_id}.snap"
            atomic_write_bytes(snapshot, content, mode=0o600)
            backup = Backup(
                backup_id=backup_id,
                session_id=session_id,
                path=path,
                digest=sha256_bytes(content),
                snapshot=snapshot,
                mode=file_mode(path),
            )
            manifest.append(backup.to_dict())
            atomic_write_text(session_dir / MANIFEST, json.dumps(manifest, indent=2) + "\n", mode=0o600)
        except (OSError, ValueError) as e:
            raise BackupCreationError(f"Cannot back up {path}: {e}") from e

        if not self.verify(backup):
            raise BackupCreationError(f"Snapshot of {path} failed verification right after writing")

        logger.debug("Backed up %s -> %s (%s)", path, snapshot, backup.digest[:12])
        return backup

    def verify(self, backup: Backup) -> bool:
        """Recompute the snapshot digest and compare with the recorded one."""
        if not backup.snapshot.is_file():
            return False
        return sha256_file(backup.snapshot) == backup.digest

    def restore(self, backup: Backup) -> None:
        """Put the snapshot content back in place and re-verify it."""
        if not self.verify(backup):
            raise BackupIntegrityError(
                f"Snapshot {backup.ref} for {backup.path} is missing or corrupt"
            )
        atomic_write_bytes(backup.path, backup.snapshot.read_bytes(), mode=backup.mode)
        live = sha256_file(backup.path)
        if live != backup.digest:
            raise BackupIntegrityError(
                f"Restored {backup.path} does not match backup {backup.ref} "
                f"({live[:12]} != {backup.digest[:12]})"
            )
        logger.info("Restored %s from %s", backup.path, backup.ref)

    def load(self, backup_ref: str) -> Backup:
        """Look up a backup by its ``<session_id>/<backup_id>`` reference."""
        session_id, _, backup_id = backup_ref.partition("/")
        manifest = self._read_manifest(self.backup_dir / session_id)
        for entry in manifest:
            if entry.get("backup_id") == backup_id:
                return Backup.from_dict(entry)
        raise BackupIntegrityError(f"Backup {backup_ref} is not in its session manifest")

    def list_sessions(self) -> list[str]:
        """Session IDs that have backups, oldest first."""
        if not self.backup_dir.exists():
            return []
        dirs = [p for p in self.backup_dir.iterdir() if p.is_dir()]
        # IDs only have one-second resolution; the directory mtime breaks ties
        dirs.sort(key=lambda p: (p.stat().st_mtime_ns, p.name))
        return [p.name for p in dirs]

    def gc(self, keep: int) -> list[str]:
        """Delete all but the ``keep`` most recent session backup directories."""
        sessions = self.list_sessions()
        doomed = sessions[:-keep] if keep > 0 else sessions
        for session_id in doomed:
            shutil.rmtree(self.backup_dir / session_id)
            logger.info("Deleted backups for session %s", session_id)
        return doomed

    def _read_manifest(self, session_dir: Path) -> list[dict]:
        manifest_file = session_dir / MANIFEST
        if not manifest_file.exists():
            return []
        return json.loads(manifest_file.read_text())
