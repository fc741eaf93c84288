"""Tests for the backup store."""

from __future__ import annotations

from pathlib import Path

import pytest

from dotrepair.core.errors import BackupCreationError, BackupIntegrityError
from dotrepair.fix.backup import BackupStore


@pytest.fixture
def store(state_dir: Path) -> BackupStore:
    return BackupStore(state_dir)


class TestCreateBackup:
    def test_snapshot_matches_original(self, store: BackupStore, zshrc: Path):
        original = zshrc.read_bytes()
        backup = store.create_backup("ses_1", zshrc)

        assert backup.snapshot.read_bytes() == original
        assert backup.ref == "ses_1/bkp_0001"
        assert store.verify(backup)

    def test_ids_increase_within_session(self, store: BackupStore, zshrc: Path, home: Path):
        other = home / "other"
        other.write_text("x")

        first = store.create_backup("ses_1", zshrc)
        second = store.create_backup("ses_1", other)

        assert (first.backup_id, second.backup_id) == ("bkp_0001", "bkp_0002")
        assert store.load(second.ref).path == other

    def test_snapshot_is_private(self, store: BackupStore, zshrc: Path):
        backup = store.create_backup("ses_1", zshrc)
        assert backup.snapshot.stat().st_mode & 0o777 == 0o600

    def test_missing_file_raises(self, store: BackupStore, home: Path):
        with pytest.raises(BackupCreationError):
            store.create_backup("ses_1", home / "nope")

    def test_unwritable_store_raises(self, tmp_path: Path, zshrc: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where the state dir should be")

        with pytest.raises(BackupCreationError):
            BackupStore(blocker).create_backup("ses_1", zshrc)


class TestRestore:
    def test_restores_bytes_and_mode(self, store: BackupStore, zshrc: Path):
        zshrc.chmod(0o640)
        original = zshrc.read_bytes()
        backup = store.create_backup("ses_1", zshrc)

        zshrc.write_text("clobbered\n")
        zshrc.chmod(0o600)
        store.restore(store.load(backup.ref))

        assert zshrc.read_bytes() == original
        assert zshrc.stat().st_mode & 0o777 == 0o640

    def test_restores_deleted_file(self, store: BackupStore, zshrc: Path):
        original = zshrc.read_bytes()
        backup = store.create_backup("ses_1", zshrc)
        zshrc.unlink()

        store.restore(backup)
        assert zshrc.read_bytes() == original

    def test_corrupt_snapshot_refuses(self, store: BackupStore, zshrc: Path):
        backup = store.create_backup("ses_1", zshrc)
        backup.snapshot.write_text("tampered")
        zshrc.write_text("current\n")

        with pytest.raises(BackupIntegrityError):
            store.restore(backup)
        assert zshrc.read_text() == "current\n"

    def test_unknown_ref(self, store: BackupStore):
        with pytest.raises(BackupIntegrityError):
            store.load("ses_missing/bkp_0001")


class TestGc:
    def test_keeps_newest_sessions(self, store: BackupStore, zshrc: Path):
        for session_id in ("ses_a", "ses_b", "ses_c"):
            store.create_backup(session_id, zshrc)

        deleted = store.gc(keep=1)

        assert deleted == ["ses_a", "ses_b"]
        assert store.list_sessions() == ["ses_c"]

    def test_keep_zero_deletes_all(self, store: BackupStore, zshrc: Path):
        store.create_backup("ses_a", zshrc)
        store.gc(keep=0)
        assert store.list_sessions() == []

    def test_empty_store(self, store: BackupStore):
        assert store.gc(keep=3) == []
