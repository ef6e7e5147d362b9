"""
NFT Metadata Registry - Snapshot Storage

This module persists the registry snapshot as JSON with file locking, atomic
temp-file replacement, optional gzip compression and rotating backups.
"""

import fcntl
import gzip
import hashlib
import json
import logging
import os
import shutil
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .exceptions import IntegrityError, LockTimeoutError, StorageError
from .schema import RegistrySnapshot


logger = logging.getLogger(__name__)


class FileLock:
    """Exclusive flock on a sibling .lock file; the file itself is left in place."""

    def __init__(self, file_path: Union[str, Path], timeout: float = 30.0):
        self.file_path = Path(file_path)
        self.lock_file_path = self.file_path.with_suffix(self.file_path.suffix + '.lock')
        self.timeout = timeout
        self.lock_fd: Optional[int] = None
        self._thread_lock = RLock()

    def is_locked(self) -> bool:
        return self.lock_fd is not None

    def acquire(self) -> bool:
        """Acquire the lock, polling until timeout."""
        with self._thread_lock:
            if self.lock_fd is not None:
                return True

            deadline = time.monotonic() + self.timeout
            while time.monotonic() < deadline:
                try:
                    fd = os.open(str(self.lock_file_path), os.O_CREAT | os.O_RDWR)
                except OSError as e:
                    raise StorageError(f"Failed to acquire lock: {e}") from e

                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    os.close(fd)
                    time.sleep(0.05)
                    continue

                self.lock_fd = fd
                return True

            raise LockTimeoutError(f"Failed to acquire lock within {self.timeout} seconds")

    def release(self) -> None:
        with self._thread_lock:
            if self.lock_fd is None:
                return
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
            except OSError as e:
                logger.warning(f"Failed to release lock {self.lock_file_path}: {e}")
            finally:
                self.lock_fd = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class JSONStorage:
    """Locked JSON document with atomic writes and backup rotation."""

    def __init__(
        self,
        file_path: Union[str, Path],
        compressed: bool = False,
        backup_count: int = 5,
        lock_timeout: float = 30.0
    ):
        self.file_path = Path(file_path)
        self.compressed = compressed
        self.backup_count = backup_count
        self.lock_timeout = lock_timeout
        self.backup_dir = self.file_path.parent / 'backups'

        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            self._write_file({})

    @staticmethod
    def checksum(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def _read_file(self) -> bytes:
        opener = gzip.open if self.compressed else open
        with opener(self.file_path, 'rb') as f:
            return f.read()

    def _write_file(self, data: Dict[str, Any]) -> None:
        payload = json.dumps(data, indent=2, default=str).encode('utf-8')
        temp_file = self.file_path.with_suffix(self.file_path.suffix + '.tmp')
        opener = gzip.open if self.compressed else open

        try:
            with opener(temp_file, 'wb') as f:
                f.write(payload)
            os.replace(temp_file, self.file_path)
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {self.file_path}: {e}") from e

    def _backup_pattern(self) -> str:
        return f"{self.file_path.stem}_*{self.file_path.suffix}"

    def _create_backup(self) -> Optional[Path]:
        if not self.file_path.exists() or self.backup_count <= 0:
            return None

        stamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S_%f')
        backup_path = self.backup_dir / f"{self.file_path.stem}_{stamp}{self.file_path.suffix}"
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.file_path, backup_path)
        self._cleanup_old_backups()
        return backup_path

    def _cleanup_old_backups(self) -> None:
        for stale in self.list_backups()[self.backup_count:]:
            try:
                stale.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove old backup {stale}: {e}")

    @contextmanager
    def _lock_context(self):
        with FileLock(self.file_path, timeout=self.lock_timeout):
            yield

    def read(self) -> Dict[str, Any]:
        """Read and deserialize the stored document."""
        with self._lock_context():
            data = self._read_file()
            if not data:
                return {}
            try:
                return json.loads(data.decode('utf-8'))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise IntegrityError(f"Invalid JSON data in {self.file_path}: {e}") from e

    def write(self, data: Dict[str, Any], create_backup: bool = True) -> str:
        """Write the document atomically and return its checksum."""
        with self._lock_context():
            if create_backup:
                self._create_backup()
            self._write_file(data)
            return self.checksum(self._read_file())

    def exists(self) -> bool:
        return self.file_path.exists()

    def size(self) -> int:
        return self.file_path.stat().st_size if self.file_path.exists() else 0

    def verify(self, expected_checksum: Optional[str] = None) -> bool:
        """Check the file is readable and, if given, matches the checksum."""
        if not self.file_path.exists():
            return False
        try:
            data = self._read_file()
        except OSError:
            return False
        return expected_checksum is None or self.checksum(data) == expected_checksum

    def list_backups(self) -> List[Path]:
        """Backups for this file, newest first."""
        if not self.backup_dir.exists():
            return []
        backups = list(self.backup_dir.glob(self._backup_pattern()))
        backups.sort(key=lambda p: p.name, reverse=True)
        return backups

    def restore_backup(self, backup_name: str) -> bool:
        backup_path = self.backup_dir / backup_name
        if not backup_path.exists():
            return False
        with self._lock_context():
            self._create_backup()
            shutil.copy2(backup_path, self.file_path)
        return True


class RegistryStorage:
    """Loads and saves RegistrySnapshot documents."""

    def __init__(
        self,
        storage_dir: Union[str, Path] = "registry_data",
        compressed: bool = False,
        backup_count: int = 5
    ):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        filename = "registry.json.gz" if compressed else "registry.json"
        self.json_storage = JSONStorage(
            self.storage_dir / filename,
            compressed=compressed,
            backup_count=backup_count
        )

    def load_snapshot(self) -> RegistrySnapshot:
        data = self.json_storage.read()
        if not data:
            return RegistrySnapshot()
        try:
            return RegistrySnapshot.model_validate(data)
        except ValidationError as e:
            raise IntegrityError(f"Stored registry snapshot is invalid: {e}") from e

    def save_snapshot(self, snapshot: RegistrySnapshot, create_backup: bool = True) -> str:
        snapshot.updated_at = datetime.now(timezone.utc)
        return self.json_storage.write(snapshot.model_dump(mode='json'), create_backup=create_backup)

    def list_backups(self) -> List[str]:
        return [path.name for path in self.json_storage.list_backups()]

    def restore_backup(self, backup_name: str) -> bool:
        return self.json_storage.restore_backup(backup_name)

    def get_storage_info(self) -> Dict[str, Any]:
        return {
            'file_path': str(self.json_storage.file_path),
            'compressed': self.json_storage.compressed,
            'size_bytes': self.json_storage.size(),
            'exists': self.json_storage.exists(),
            'backup_count': len(self.json_storage.list_backups())
        }
