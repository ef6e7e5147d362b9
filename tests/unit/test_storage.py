"""
Unit tests for storage layer.
"""

import json
import tempfile
import threading
from pathlib import Path

import pytest

from nftmeta.exceptions import IntegrityError, LockTimeoutError
from nftmeta.schema import AssetRef, DerivationRecord, RegistrySnapshot, SlotRecord
from nftmeta.storage import FileLock, JSONStorage, RegistryStorage


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


class TestFileLock:
    """Test file locking mechanism."""

    def test_file_lock_creation(self, temp_dir):
        lock = FileLock(temp_dir / "data.json")

        assert lock.lock_file_path == temp_dir / "data.json.lock"
        assert not lock.is_locked()

    def test_file_lock_context_manager(self, temp_dir):
        lock = FileLock(temp_dir / "data.json")

        with lock:
            assert lock.is_locked()
            assert lock.lock_file_path.exists()

        assert not lock.is_locked()

    def test_file_lock_timeout(self, temp_dir):
        holder = FileLock(temp_dir / "data.json")
        waiter = FileLock(temp_dir / "data.json", timeout=0.2)

        with holder:
            with pytest.raises(LockTimeoutError):
                waiter.acquire()

    def test_leftover_lock_file_does_not_block(self, temp_dir):
        lock = FileLock(temp_dir / "data.json", timeout=0.2)
        # Lock file left behind by a killed process
        lock.lock_file_path.write_text("")

        assert lock.acquire()
        lock.release()

    def test_file_lock_thread_handoff(self, temp_dir, thread_counter):
        path = temp_dir / "data.json"

        def worker():
            with FileLock(path, timeout=5.0):
                thread_counter.increment()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert thread_counter.get_value() == 5


class TestJSONStorage:
    """Test JSON document storage."""

    def test_write_read(self, temp_dir):
        storage = JSONStorage(temp_dir / "doc.json")
        checksum = storage.write({"a": 1})

        assert storage.read() == {"a": 1}
        assert storage.verify(checksum)
        assert not storage.verify("0" * 64)

    def test_compressed(self, temp_dir):
        storage = JSONStorage(temp_dir / "doc.json.gz", compressed=True)
        storage.write({"a": [1, 2]})

        assert storage.read() == {"a": [1, 2]}

    def test_invalid_json(self, temp_dir):
        path = temp_dir / "doc.json"
        storage = JSONStorage(path)
        path.write_text("{not json")

        with pytest.raises(IntegrityError):
            storage.read()

    def test_backup_rotation(self, temp_dir):
        storage = JSONStorage(temp_dir / "doc.json", backup_count=2)
        for i in range(5):
            storage.write({"n": i})

        assert len(storage.list_backups()) == 2

    def test_backups_disabled(self, temp_dir):
        storage = JSONStorage(temp_dir / "doc.json", backup_count=0)
        storage.write({"n": 1})
        assert storage.list_backups() == []

    def test_restore_backup(self, temp_dir):
        storage = JSONStorage(temp_dir / "doc.json")
        storage.write({"n": 1})
        storage.write({"n": 2})

        newest = storage.list_backups()[0]
        assert storage.restore_backup(newest.name)
        assert storage.read() == {"n": 1}


class TestRegistryStorage:
    """Test snapshot persistence."""

    @pytest.fixture
    def snapshot(self):
        underlying = AssetRef(collection="punks", token_id=1)
        return RegistrySnapshot(
            entries=[SlotRecord(collection="punks", token_id=1, key="aa" * 32, value="beef")],
            derivations=[DerivationRecord(
                underlying=underlying,
                derived_token_id=1,
                start_time=10,
                end_time=20,
                account="0x" + "1" * 40,
                royalty_bps=100
            )],
            next_derived_id=2,
            writers=["writer"],
            ownership={"punks": {"1": "alice"}, "nftmeta-derived": {"1": "alice"}}
        )

    def test_empty_storage(self, temp_dir):
        snapshot = RegistryStorage(temp_dir).load_snapshot()
        assert snapshot.entries == []
        assert snapshot.next_derived_id == 1

    @pytest.mark.parametrize("compressed", [False, True])
    def test_save_load(self, temp_dir, snapshot, compressed):
        storage = RegistryStorage(temp_dir, compressed=compressed)
        storage.save_snapshot(snapshot)

        loaded = storage.load_snapshot()
        assert loaded.entries == snapshot.entries
        assert loaded.derivations == snapshot.derivations
        assert loaded.ownership == snapshot.ownership
        assert loaded.next_derived_id == 2

    def test_invalid_snapshot(self, temp_dir):
        storage = RegistryStorage(temp_dir)
        (temp_dir / "registry.json").write_text(json.dumps({"next_derived_id": 0}))

        with pytest.raises(IntegrityError):
            storage.load_snapshot()

    def test_storage_info(self, temp_dir, snapshot):
        storage = RegistryStorage(temp_dir)
        storage.save_snapshot(snapshot)

        info = storage.get_storage_info()
        assert info['exists']
        assert info['size_bytes'] > 0
        assert info['backup_count'] == 1
