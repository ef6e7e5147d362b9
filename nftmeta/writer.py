"""
NFT Metadata Registry - Dynamic Writer

Owner-gated mutable attributes. A write needs both a writer-role caller and a
requester who owns the token; reads need the token to be usable at the time
of the read. Both paths go through the derivation engine's redirect so a
derived token sees its underlying token's attributes.
"""

import logging
from typing import Optional

from .access import AccessGuard
from .derivation import DerivationEngine
from .events import EventBus, WriteEvent
from .exceptions import NotUsableError
from .schema import AssetRef
from .store import KeyValueStore


class DynamicWriter:
    """Mutable, owner-gated attribute writes and usability-gated reads."""

    def __init__(self, store: KeyValueStore, guard: AccessGuard,
                 engine: DerivationEngine, events: Optional[EventBus] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.guard = guard
        self.engine = engine
        self.events = events or engine.events

    def safe_write(self, caller: str, requester: str, ref: AssetRef,
                   key: bytes, value: bytes, now: Optional[int] = None) -> None:
        """
        Write value at (ref, key) for the token owner.

        Raises:
            NotWriterError: caller lacks the writer role
            NotOwnerError: requester does not own ref
            NotUsableError: ref is a derived token outside its window
        """
        self.guard.require_writer(caller)
        self.guard.require_owner(requester, ref)
        if self.engine.is_derived(ref) and not self.engine.is_usable(ref, now):
            raise NotUsableError(f"{ref} is not usable")

        target = self.engine.resolve(ref)
        self.store.set(target, key, value)

        self.logger.info(f"{requester} wrote {len(value)} bytes at {target} key {key.hex()[:16]}")
        self.events.emit(WriteEvent(requester=requester, ref=ref, key=key, value=value))

    def read(self, ref: AssetRef, key: bytes, now: Optional[int] = None) -> bytes:
        """
        Read the value at (ref, key).

        Raises:
            NotUsableError: ref is outside its usability window
        """
        if not self.engine.is_usable(ref, now):
            raise NotUsableError(f"{ref} is not usable")
        return self.store.get(self.engine.resolve(ref), key)
