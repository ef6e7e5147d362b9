"""
NFT Metadata Registry - Composer

Moves attribute values from a source token to a destination token owned by
the same caller, clearing them on the source. A batch applies fully or not at
all.
"""

import logging
from typing import Iterable, List, Optional

from .access import AccessGuard
from .derivation import DerivationEngine
from .events import ComposeEvent, EventBus
from .exceptions import DerivedNotComposableError, InvalidCompositionError, TooManyKeysError
from .schema import AssetRef, RegistryConfig
from .store import KeyValueStore


class Composer:
    """Cross-token attribute composition."""

    def __init__(self, store: KeyValueStore, guard: AccessGuard, engine: DerivationEngine,
                 config: Optional[RegistryConfig] = None, events: Optional[EventBus] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.guard = guard
        self.engine = engine
        self.config = config or RegistryConfig()
        self.events = events or engine.events

    @staticmethod
    def _unique(keys: Iterable[bytes]) -> List[bytes]:
        seen = set()
        ordered = []
        for key in keys:
            if key not in seen:
                seen.add(key)
                ordered.append(key)
        return ordered

    def compose(self, caller: str, source: AssetRef, destination: AssetRef,
                keys: Iterable[bytes]) -> bool:
        """
        Move keys from source to destination.

        Duplicate keys are moved once. A key absent on the source moves as
        an empty value, clearing it on the destination too.

        Raises:
            DerivedNotComposableError: either token is a derived token
            TooManyKeysError: more keys than max_compose_keys
            InvalidCompositionError: source and destination are the same token
            NotOwnerError: caller does not own both tokens
        """
        keys = list(keys)

        for ref in (source, destination):
            if self.engine.is_derived(ref):
                raise DerivedNotComposableError(f"Derived token {ref} cannot be composed")
        if len(keys) > self.config.max_compose_keys:
            raise TooManyKeysError(
                f"{len(keys)} keys exceeds the maximum of {self.config.max_compose_keys}"
            )
        keys = self._unique(keys)
        if source == destination:
            raise InvalidCompositionError(f"Cannot compose {source} into itself")
        self.guard.require_owner(caller, source)
        self.guard.require_owner(caller, destination)

        for key in keys:
            value = self.store.get(source, key)
            if value:
                self.store.set(destination, key, value)
            else:
                self.store.clear(destination, key)
            self.store.clear(source, key)

        self.logger.info(f"Composed {len(keys)} keys from {source} into {destination}")
        self.events.emit(ComposeEvent(
            caller=caller,
            source=source,
            destination=destination,
            keys=tuple(keys)
        ))
        return True
