"""
NFT Metadata Registry - Registry Manager

This module provides the registry's boundary interface. It wires a single
KeyValueStore into the inscriber, dynamic writer and composer, shares one
AccessGuard and DerivationEngine between them, and runs every mutating
operation as an all-or-nothing transaction: state is snapshotted up front,
restored if the operation raises, persisted on commit, and notifications are
only delivered once the commit succeeded.
"""

import logging
import time
from contextlib import contextmanager
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .access import AccessGuard, InMemoryOwnershipLedger, InMemoryWriterRoleSet, OwnershipOracle, WriterRoleSet
from .composer import Composer
from .derivation import AccountFactory, DerivationEngine
from .events import EventBus, EventCallback
from .exceptions import RegistryError
from .inscriber import Inscriber
from .schema import (
    AssetRef, DerivedToken, RegistryConfig, RegistrySnapshot,
    normalize_collection, normalize_key, normalize_value
)
from .storage import RegistryStorage
from .store import KeyValueStore
from .writer import DynamicWriter


RefLike = Union[AssetRef, Tuple[str, int]]
KeyLike = Union[bytes, str]


def _coerce_ref(ref: RefLike) -> AssetRef:
    if isinstance(ref, AssetRef):
        return ref
    collection, token_id = ref
    return AssetRef(collection=collection, token_id=token_id)


class RegistryManager:
    """Metadata registry facade with transactional mutations and persistence."""

    def __init__(
        self,
        storage_dir: Optional[str] = None,
        config: Optional[RegistryConfig] = None,
        roles: Optional[WriterRoleSet] = None,
        account_factory: Optional[AccountFactory] = None,
        clock: Optional[Callable[[], float]] = None,
        compressed: bool = False,
        backup_count: int = 5
    ):
        self.logger = logging.getLogger(__name__)
        self.config = config or RegistryConfig()
        self.events = EventBus()
        self.store = KeyValueStore()
        self.roles = roles if roles is not None else InMemoryWriterRoleSet()
        self.guard = AccessGuard(self.roles)
        self.engine = DerivationEngine(
            self.guard,
            config=self.config,
            events=self.events,
            account_factory=account_factory,
            clock=clock or time.time
        )
        self.inscriber = Inscriber(self.store, self.guard, self.engine, self.config)
        self.writer = DynamicWriter(self.store, self.guard, self.engine, self.events)
        self.composer = Composer(self.store, self.guard, self.engine, self.config, self.events)

        self._ledgers: Dict[str, InMemoryOwnershipLedger] = {}
        self._lock = RLock()

        self.storage = None
        if storage_dir is not None:
            self.storage = RegistryStorage(storage_dir, compressed=compressed, backup_count=backup_count)
            self._load()

    # ------------------------------------------------------------------
    # Transactions and persistence
    # ------------------------------------------------------------------

    def _capture(self) -> Dict[str, Any]:
        state = {
            'store': self.store.snapshot(),
            'engine': self.engine.snapshot(),
            'ledgers': {name: ledger.tokens() for name, ledger in self._ledgers.items()},
        }
        if isinstance(self.roles, InMemoryWriterRoleSet):
            state['writers'] = self.roles.members()
        return state

    def _rollback(self, state: Dict[str, Any]) -> None:
        self.store.restore(state['store'])
        self.engine.restore(state['engine'])
        for name, ledger in list(self._ledgers.items()):
            if name in state['ledgers']:
                ledger.replace_all(state['ledgers'][name])
            else:
                ledger.replace_all({})
        if 'writers' in state:
            current = set(self.roles.members())
            for actor in current - set(state['writers']):
                self.roles.revoke(actor)
            for actor in set(state['writers']) - current:
                self.roles.grant(actor)

    @contextmanager
    def _transaction(self, operation: str):
        """Serialize, snapshot, persist on success and roll back on failure."""
        with self._lock:
            state = self._capture()
            try:
                with self.events.deferred():
                    yield
                    self._persist()
            except Exception as e:
                self._rollback(state)
                if isinstance(e, RegistryError):
                    self.logger.debug(f"{operation} rejected: {e}")
                else:
                    self.logger.error(f"{operation} failed: {e}")
                raise

    def to_snapshot(self) -> RegistrySnapshot:
        """Build a persistable snapshot of the full registry state."""
        with self._lock:
            ownership = {
                name: {str(token_id): owner for token_id, owner in ledger.tokens().items()}
                for name, ledger in self._ledgers.items()
            }
            ownership[self.engine.derived_collection] = {
                str(token_id): owner
                for token_id, owner in self.engine.derived_ledger.tokens().items()
            }
            writers = self.roles.members() if isinstance(self.roles, InMemoryWriterRoleSet) else []
            return RegistrySnapshot(
                entries=self.store.to_records(),
                derivations=self.engine.active_derivations(),
                next_derived_id=self.engine.next_derived_id,
                writers=writers,
                ownership=ownership
            )

    def _persist(self) -> Optional[str]:
        if self.storage is None:
            return None
        return self.storage.save_snapshot(self.to_snapshot())

    def _load(self) -> None:
        snapshot = self.storage.load_snapshot()
        derived_owners = {}
        for ledger in self._ledgers.values():
            ledger.replace_all({})
        for collection, owners in snapshot.ownership.items():
            parsed = {int(token_id): owner for token_id, owner in owners.items()}
            if collection == self.engine.derived_collection:
                derived_owners = parsed
            else:
                self.ledger(collection).replace_all(parsed)

        self.store.load_records(snapshot.entries)
        self.engine.load_records(snapshot.derivations, snapshot.next_derived_id, derived_owners)
        if isinstance(self.roles, InMemoryWriterRoleSet):
            for actor in snapshot.writers:
                self.roles.grant(actor)

        self.logger.info(
            f"Loaded registry: {len(snapshot.entries)} slots, "
            f"{len(snapshot.derivations)} active derivations"
        )

    def reload(self) -> None:
        """Reload registry state from storage."""
        if self.storage is None:
            return
        with self._lock:
            if isinstance(self.roles, InMemoryWriterRoleSet):
                for actor in self.roles.members():
                    self.roles.revoke(actor)
            self._load()

    def list_backups(self) -> List[str]:
        return self.storage.list_backups() if self.storage else []

    def restore_backup(self, backup_name: str) -> bool:
        if self.storage is None:
            return False
        with self._lock:
            restored = self.storage.restore_backup(backup_name)
            if restored:
                self.reload()
            return restored

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def register_oracle(self, collection: str, oracle: OwnershipOracle) -> None:
        """Resolve ownership of collection through an external oracle."""
        collection = normalize_collection(collection)
        if collection == self.engine.derived_collection:
            raise ValueError(f"{collection} is reserved for derived tokens")
        self.guard.register_oracle(collection, oracle)

    def ledger(self, collection: str) -> InMemoryOwnershipLedger:
        """Get or create the locally persisted ownership ledger for collection."""
        collection = AssetRef(collection=collection, token_id=0).collection
        if collection == self.engine.derived_collection:
            raise ValueError(f"{collection} is reserved for derived tokens")
        with self._lock:
            ledger = self._ledgers.get(collection)
            if ledger is None:
                ledger = InMemoryOwnershipLedger(collection)
                self._ledgers[collection] = ledger
                self.guard.register_oracle(collection, ledger)
            return ledger

    def assign_owner(self, collection: str, token_id: int, owner: str) -> None:
        """Record owner for a token in the local ownership ledger."""
        with self._transaction('assign_owner'):
            self.ledger(collection).assign(owner, token_id)

    def owner_of(self, collection: str, token_id: int) -> Optional[str]:
        return self.guard.owner_of(AssetRef(collection=collection, token_id=token_id))

    def grant_writer(self, actor: str) -> bool:
        if not isinstance(self.roles, InMemoryWriterRoleSet):
            raise RegistryError("Writer roles are administered externally")
        with self._transaction('grant_writer'):
            return self.roles.grant(actor)

    def revoke_writer(self, actor: str) -> bool:
        if not isinstance(self.roles, InMemoryWriterRoleSet):
            raise RegistryError("Writer roles are administered externally")
        with self._transaction('revoke_writer'):
            return self.roles.revoke(actor)

    def writers(self) -> List[str]:
        return self.roles.members() if isinstance(self.roles, InMemoryWriterRoleSet) else []

    def subscribe(self, callback: EventCallback) -> None:
        self.events.subscribe(callback)

    def unsubscribe(self, callback: EventCallback) -> bool:
        return self.events.unsubscribe(callback)

    # ------------------------------------------------------------------
    # Boundary operations
    # ------------------------------------------------------------------

    def inscribe(self, caller: str, collection: str, token_id: int,
                 key: KeyLike, value: bytes) -> None:
        ref = AssetRef(collection=collection, token_id=token_id)
        key, value = normalize_key(key), normalize_value(value)
        with self._transaction('inscribe'):
            self.inscriber.inscribe(caller, ref, key, value)

    def safe_write(self, caller: str, requester: str, collection: str, token_id: int,
                   key: KeyLike, value: bytes, now: Optional[int] = None) -> None:
        ref = AssetRef(collection=collection, token_id=token_id)
        key, value = normalize_key(key), normalize_value(value)
        with self._transaction('safe_write'):
            self.writer.safe_write(caller, requester, ref, key, value, now=now)

    def read(self, collection: str, token_id: int, key: KeyLike,
             now: Optional[int] = None) -> bytes:
        ref = AssetRef(collection=collection, token_id=token_id)
        with self._lock:
            return self.writer.read(ref, normalize_key(key), now=now)

    def derive(self, caller: str, collection: str, token_id: int,
               start_time: int, end_time: int, royalty_bps: int) -> bool:
        underlying = AssetRef(collection=collection, token_id=token_id)
        with self._transaction('derive'):
            return self.engine.derive(caller, underlying, start_time, end_time, royalty_bps)

    def reclaim(self, caller: str, collection: str, token_id: int,
                now: Optional[int] = None) -> bool:
        underlying = AssetRef(collection=collection, token_id=token_id)
        with self._transaction('reclaim'):
            derived = self.engine.derived_of(underlying).derived_ref
            result = self.engine.reclaim(caller, underlying, now=now)
            if derived is not None:
                self.store.clear_token(derived)
            return result

    def compose(self, caller: str, source: RefLike, destination: RefLike,
                keys: Iterable[KeyLike]) -> bool:
        src, dest = _coerce_ref(source), _coerce_ref(destination)
        normalized = [normalize_key(key) for key in keys]
        with self._transaction('compose'):
            return self.composer.compose(caller, src, dest, normalized)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def derived_of(self, collection: str, token_id: int) -> DerivedToken:
        return self.engine.derived_of(AssetRef(collection=collection, token_id=token_id))

    def underlying_of(self, derived_token_id: int) -> Optional[AssetRef]:
        return self.engine.underlying_of(derived_token_id)

    def derived_account_of(self, derived_token_id: int) -> Optional[str]:
        return self.engine.derived_account_of(derived_token_id)

    def royalty_rate_of(self, derived_token_id: int) -> int:
        return self.engine.royalty_rate_of(derived_token_id)

    def is_usable(self, collection: str, token_id: int, now: Optional[int] = None) -> bool:
        return self.engine.is_usable(AssetRef(collection=collection, token_id=token_id), now)

    def is_derivable(self, collection: str, token_id: int) -> bool:
        return self.engine.is_derivable(AssetRef(collection=collection, token_id=token_id))

    def is_reclaimable(self, requester: str, collection: str, token_id: int,
                       now: Optional[int] = None) -> bool:
        ref = AssetRef(collection=collection, token_id=token_id)
        return self.engine.is_reclaimable(requester, ref, now)

    def get_stats(self) -> Dict[str, Any]:
        """Summary counts for the registry."""
        with self._lock:
            stats = {
                'stored_slots': len(self.store),
                'tokens_with_data': self.store.token_count(),
                'active_derivations': len(self.engine.active_derivations()),
                'next_derived_id': self.engine.next_derived_id,
                'writers': len(self.writers()),
                'collections': self.guard.collections(),
                'derived_collection': self.engine.derived_collection,
            }
            if self.storage:
                stats['storage_info'] = self.storage.get_storage_info()
            return stats
