"""
NFT Metadata Registry - Notifications

Structured notifications emitted by mutating operations, and the bus that
delivers them to subscribers (indexers, the CLI). Delivery can be deferred
until the surrounding operation commits so that aborted operations never
leak a notification.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from enum import Enum
from threading import RLock, local
from typing import Any, Callable, Dict, List, Optional, Tuple

from .schema import AssetRef


class EventType(str, Enum):
    """Notification types."""
    WRITE = "write"
    DERIVE = "derive"
    RECLAIM = "reclaim"
    COMPOSE = "compose"


@dataclass(frozen=True)
class RegistryEvent:
    """Base notification."""

    @property
    def event_type(self) -> EventType:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name, value in list(data.items()):
            if isinstance(value, bytes):
                data[name] = value.hex()
            elif isinstance(value, (list, tuple)):
                data[name] = [v.hex() if isinstance(v, bytes) else v for v in value]
            elif isinstance(value, AssetRef):
                data[name] = str(value)
        data['event_type'] = self.event_type.value
        return data


@dataclass(frozen=True)
class WriteEvent(RegistryEvent):
    requester: str
    ref: AssetRef
    key: bytes
    value: bytes
    timestamp: float = field(default_factory=time.time)

    @property
    def event_type(self) -> EventType:
        return EventType.WRITE


@dataclass(frozen=True)
class DeriveEvent(RegistryEvent):
    owner: str
    underlying: AssetRef
    derived: AssetRef
    account: str
    start_time: int
    end_time: int
    royalty_bps: int
    timestamp: float = field(default_factory=time.time)

    @property
    def event_type(self) -> EventType:
        return EventType.DERIVE


@dataclass(frozen=True)
class ReclaimEvent(RegistryEvent):
    caller: str
    underlying: AssetRef
    derived: AssetRef
    timestamp: float = field(default_factory=time.time)

    @property
    def event_type(self) -> EventType:
        return EventType.RECLAIM


@dataclass(frozen=True)
class ComposeEvent(RegistryEvent):
    caller: str
    source: AssetRef
    destination: AssetRef
    keys: Tuple[bytes, ...]
    timestamp: float = field(default_factory=time.time)

    @property
    def event_type(self) -> EventType:
        return EventType.COMPOSE


EventCallback = Callable[[RegistryEvent], None]


class EventBus:
    """Delivers notifications to registered callbacks."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._callbacks: List[EventCallback] = []
        self._lock = RLock()
        self._pending = local()

    def subscribe(self, callback: EventCallback) -> None:
        """Add callback for registry notifications."""
        with self._lock:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: EventCallback) -> bool:
        with self._lock:
            try:
                self._callbacks.remove(callback)
                return True
            except ValueError:
                return False

    def _queue(self) -> Optional[List[RegistryEvent]]:
        return getattr(self._pending, 'queue', None)

    def emit(self, event: RegistryEvent) -> None:
        """Emit event now, or queue it while a deferred block is open."""
        queue = self._queue()
        if queue is not None:
            queue.append(event)
            return
        self._dispatch(event)

    def _dispatch(self, event: RegistryEvent) -> None:
        self.logger.debug(f"Dispatching {event.event_type.value} notification")
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                # Subscriber failures never affect the committed operation
                self.logger.error(f"Event callback failed: {e}")

    @contextmanager
    def deferred(self):
        """
        Hold notifications until the block exits cleanly.

        Notifications queued inside a block that raises are discarded.
        Nested blocks share the outermost queue.
        """
        if self._queue() is not None:
            yield
            return

        self._pending.queue = []
        try:
            yield
        except BaseException:
            self._pending.queue = None
            raise
        queued = self._pending.queue
        self._pending.queue = None
        for event in queued:
            self._dispatch(event)
