import json

import pytest

from crab.backup import BackupManager
from crab.entry import CredentialEntry
from crab.errors import BackupCollision, CorruptData, DatabaseNotFound, NotFound
from crab.permissions import PermissionOutcome
from crab.storage import Database


@pytest.fixture
def saved_db(db_path, clock):
    db = Database.load(db_path)
    db.add(CredentialEntry.new("github", "alice", "s3cr3t"))
    db.add(CredentialEntry.new("gmail", "alice@example.com", "hunter2"))
    db.save()
    return db


def test_snapshot_is_verbatim_copy(saved_db, db_path):
    backup = BackupManager().snapshot(db_path)

    assert backup.parent == db_path.parent
    assert backup.name == "credentials-backup-20261018T120000Z.json"
    assert backup.read_bytes() == db_path.read_bytes()


def test_snapshot_survives_loss_of_original(saved_db, db_path):
    original = db_path.read_bytes()
    backup = BackupManager().snapshot(db_path)
    db_path.unlink()
    assert backup.read_bytes() == original


def test_snapshot_into_configured_directory(saved_db, db_path, tmp_path):
    backup_dir = tmp_path / "backups"
    backup = BackupManager(backup_dir).snapshot(db_path)
    assert backup.parent == backup_dir


def test_snapshot_collision_is_detected_not_overwritten(saved_db, db_path):
    manager = BackupManager()
    first = manager.snapshot(db_path)
    first.write_text("sentinel", encoding="utf-8")

    with pytest.raises(BackupCollision) as exc:
        manager.snapshot(db_path)

    assert exc.value.path == first
    assert first.read_text(encoding="utf-8") == "sentinel"


def test_snapshot_uses_new_name_each_second(saved_db, db_path, clock):
    manager = BackupManager()
    first = manager.snapshot(db_path)
    clock.advance(seconds=1)
    second = manager.snapshot(db_path)
    assert first != second
    assert manager.list_backups(db_path) == [first, second]
    assert manager.latest(db_path) == second


def test_snapshot_missing_source(db_path):
    with pytest.raises(NotFound):
        BackupManager().snapshot(db_path)


def test_snapshot_does_not_validate_source(db_path, clock):
    db_path.parent.mkdir(parents=True)
    db_path.write_text("{broken", encoding="utf-8")
    backup = BackupManager().snapshot(db_path)
    assert backup.read_text(encoding="utf-8") == "{broken"


def test_restore_round_trip(saved_db, db_path, tmp_path, clock):
    manager = BackupManager()
    backup = manager.snapshot(db_path)
    expected = Database.load(db_path).entries()

    db = Database.load(db_path)
    db.remove("github")
    db.edit("gmail", secret="changed")
    db.save()

    target = tmp_path / "restored" / "credentials.json"
    outcome = manager.restore(backup, target)

    assert isinstance(outcome, PermissionOutcome)
    assert Database.load(target).entries() == expected

    manager.restore(backup, db_path)
    assert Database.load(db_path).entries() == expected


def test_restore_rejects_invalid_backup(saved_db, db_path, tmp_path):
    bad = tmp_path / "credentials-backup-bad.json"
    bad.write_text(json.dumps({"entries": [{"service": "x"}]}), encoding="utf-8")
    before = db_path.read_bytes()

    with pytest.raises(CorruptData):
        BackupManager().restore(bad, db_path)
    assert db_path.read_bytes() == before


def test_restore_missing_backup(db_path, tmp_path):
    with pytest.raises(NotFound):
        BackupManager().restore(tmp_path / "nope.json", db_path)


def test_list_backups_without_directory(tmp_path):
    manager = BackupManager(tmp_path / "missing")
    assert manager.list_backups(tmp_path / "credentials.json") == []
    assert manager.latest(tmp_path / "credentials.json") is None


def test_delete_takes_backup_first(saved_db, db_path):
    content = db_path.read_bytes()

    backup = saved_db.delete(BackupManager())

    assert backup is not None
    assert backup.read_bytes() == content
    assert not db_path.exists()
    assert len(saved_db) == 0


def test_delete_aborts_when_backup_collides(saved_db, db_path):
    manager = BackupManager()
    manager.snapshot(db_path)

    with pytest.raises(BackupCollision):
        saved_db.delete(manager)
    assert db_path.exists()
    assert len(saved_db) == 2


def test_delete_missing_database_with_backup_manager(db_path):
    with pytest.raises(DatabaseNotFound):
        Database.load(db_path).delete(BackupManager())
