"""
NFT Metadata Registry - Key-Value Store

The single owner of attribute bytes: a three-level mapping of
(collection, token_id, key) -> value. The store performs no validation or
access control; callers gate every mutation.
"""

import copy
from threading import RLock
from typing import Dict, Iterator, List, Tuple

from .schema import AssetRef, SlotRecord


Slots = Dict[bytes, bytes]
StoreSnapshot = Dict[Tuple[str, int], Slots]


class KeyValueStore:
    """Thread-safe 3-level mapping of token attributes."""

    def __init__(self):
        self._data: StoreSnapshot = {}
        self._lock = RLock()

    @staticmethod
    def _slot_id(ref: AssetRef) -> Tuple[str, int]:
        return (ref.collection, ref.token_id)

    def set(self, ref: AssetRef, key: bytes, value: bytes) -> None:
        """Unconditionally overwrite the value stored at (ref, key)."""
        with self._lock:
            self._data.setdefault(self._slot_id(ref), {})[key] = value

    def get(self, ref: AssetRef, key: bytes) -> bytes:
        """Return the stored value, or empty bytes if absent."""
        with self._lock:
            return self._data.get(self._slot_id(ref), {}).get(key, b"")

    def clear(self, ref: AssetRef, key: bytes) -> None:
        """Remove the entry at (ref, key) if present."""
        with self._lock:
            slot_id = self._slot_id(ref)
            slots = self._data.get(slot_id)
            if slots is None:
                return
            slots.pop(key, None)
            if not slots:
                del self._data[slot_id]

    def clear_token(self, ref: AssetRef) -> int:
        """Remove every entry stored for ref and return how many were dropped."""
        with self._lock:
            slots = self._data.pop(self._slot_id(ref), {})
            return len(slots)

    def has(self, ref: AssetRef, key: bytes) -> bool:
        with self._lock:
            return key in self._data.get(self._slot_id(ref), {})

    def keys(self, ref: AssetRef) -> List[bytes]:
        """List the keys currently stored for ref."""
        with self._lock:
            return sorted(self._data.get(self._slot_id(ref), {}).keys())

    def __len__(self) -> int:
        with self._lock:
            return sum(len(slots) for slots in self._data.values())

    def token_count(self) -> int:
        with self._lock:
            return len(self._data)

    def snapshot(self) -> StoreSnapshot:
        """Copy the full store state for later restore."""
        with self._lock:
            return copy.deepcopy(self._data)

    def restore(self, snapshot: StoreSnapshot) -> None:
        """Replace the store state with a previously taken snapshot."""
        with self._lock:
            self._data = copy.deepcopy(snapshot)

    def iter_entries(self) -> Iterator[Tuple[AssetRef, bytes, bytes]]:
        with self._lock:
            items = sorted(self._data.items())
        for (collection, token_id), slots in items:
            ref = AssetRef(collection=collection, token_id=token_id)
            for key in sorted(slots):
                yield ref, key, slots[key]

    def to_records(self) -> List[SlotRecord]:
        """Serialize the store into persistable records."""
        return [
            SlotRecord(
                collection=ref.collection,
                token_id=ref.token_id,
                key=key.hex(),
                value=value.hex()
            )
            for ref, key, value in self.iter_entries()
        ]

    def load_records(self, records: List[SlotRecord]) -> None:
        """Replace the store contents with persisted records."""
        data: StoreSnapshot = {}
        for record in records:
            data.setdefault((record.collection, record.token_id), {})[
                bytes.fromhex(record.key)
            ] = bytes.fromhex(record.value)
        with self._lock:
            self._data = data
