"""
NFT Metadata Registry - Derivation Engine

This module governs the derive / reclaim lifecycle of a token pair. Deriving
an underlying token mints a time-bounded derived token in the registry's own
collection; the derived token is usable inside its [start_time, end_time]
window while the underlying is usable only outside it. Reclaiming burns the
derived token and returns the underlying to the derivable state.

At most one derivation is live per underlying token. That invariant is carried
purely by the presence of a DerivedToken record; no separate lock exists.
"""

import copy
import hashlib
import logging
import time
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from .access import AccessGuard, InMemoryOwnershipLedger
from .events import DeriveEvent, EventBus, ReclaimEvent
from .exceptions import (
    InvalidWindowError, NotDerivableError, NotReclaimableError, NotUsableError,
    RoyaltyExceededError
)
from .schema import AssetRef, DerivationRecord, DerivedToken, RegistryConfig


Clock = Callable[[], float]


class AccountFactory(ABC):
    """Mints the companion account bound to a derived token."""

    @abstractmethod
    def create_account(self, derived_ref: AssetRef) -> str:
        pass


class DeterministicAccountFactory(AccountFactory):
    """Derives a 20-byte account identifier from the derived token reference."""

    def __init__(self, salt: str = "nftmeta"):
        self.salt = salt

    def create_account(self, derived_ref: AssetRef) -> str:
        data = f"{self.salt}:{derived_ref.collection}:{derived_ref.token_id}".encode('utf-8')
        return "0x" + hashlib.sha256(data).hexdigest()[:40]


class DerivationEngine:
    """State machine for derive / reclaim of underlying tokens."""

    def __init__(
        self,
        guard: AccessGuard,
        config: Optional[RegistryConfig] = None,
        events: Optional[EventBus] = None,
        account_factory: Optional[AccountFactory] = None,
        clock: Optional[Clock] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.guard = guard
        self.config = config or RegistryConfig()
        self.events = events or EventBus()
        self.account_factory = account_factory or DeterministicAccountFactory()
        self.clock = clock or time.time

        # The registry is itself the ownership oracle for derived tokens
        self.derived_ledger = InMemoryOwnershipLedger(self.config.derived_collection)
        self.guard.register_oracle(self.config.derived_collection, self.derived_ledger)

        self._lock = RLock()
        self._derived: Dict[AssetRef, DerivedToken] = {}
        self._underlying: Dict[int, AssetRef] = {}
        self._accounts: Dict[int, str] = {}
        self._royalties: Dict[int, int] = {}
        self._next_id = 1

    @property
    def derived_collection(self) -> str:
        return self.config.derived_collection

    def now(self, override: Optional[int] = None) -> int:
        if override is not None:
            return int(override)
        return int(self.clock())

    def is_derived(self, ref: AssetRef) -> bool:
        """True if ref lives in the registry's derived-token collection."""
        return ref.collection == self.derived_collection

    def derived_ref(self, derived_token_id: int) -> AssetRef:
        return AssetRef(collection=self.derived_collection, token_id=derived_token_id)

    def resolve(self, ref: AssetRef) -> AssetRef:
        """
        Map ref to the storage namespace that holds its attributes.

        Derived tokens read and write through their underlying token; every
        other ref maps to itself. A derived namespace is never used directly.

        Raises:
            NotUsableError: ref is a derived token with no live derivation
        """
        if not self.is_derived(ref):
            return ref
        with self._lock:
            underlying = self._underlying.get(ref.token_id)
        if underlying is None:
            raise NotUsableError(f"{ref} is not bound to an underlying token")
        return underlying

    def _allocate_id(self) -> int:
        token_id = self._next_id
        self._next_id += 1
        return token_id

    def derive(
        self,
        caller: str,
        underlying: AssetRef,
        start_time: int,
        end_time: int,
        royalty_bps: int
    ) -> bool:
        """
        Lease underlying out as a new derived token.

        Args:
            caller: Identity requesting the derivation; must own underlying
            underlying: Token being derived
            start_time: First second of the usability window
            end_time: Last second of the usability window
            royalty_bps: Royalty rate in basis points bound to the derived token

        Returns:
            True on success

        Raises:
            InvalidWindowError: start_time >= end_time
            RoyaltyExceededError: royalty_bps above the configured ceiling
            NotDerivableError: underlying is derived or already has a derivation
            NotOwnerError: caller does not own underlying
        """
        if start_time >= end_time:
            raise InvalidWindowError(
                f"Invalid window: start_time {start_time} must be before end_time {end_time}"
            )
        if royalty_bps < 0 or royalty_bps > self.config.royalty_ceiling_bps:
            raise RoyaltyExceededError(
                f"Royalty {royalty_bps} bps exceeds ceiling {self.config.royalty_ceiling_bps} bps"
            )
        if self.is_derived(underlying):
            raise NotDerivableError(f"Derived token {underlying} cannot be derived again")

        with self._lock:
            self.guard.require_owner(caller, underlying)
            if underlying in self._derived:
                raise NotDerivableError(f"{underlying} already has an active derivation")

            derived_id = self._allocate_id()
            derived = self.derived_ref(derived_id)
            account = self.account_factory.create_account(derived)

            self.derived_ledger.mint(caller, derived_id)
            self._derived[underlying] = DerivedToken(
                derived_ref=derived,
                start_time=start_time,
                end_time=end_time
            )
            self._underlying[derived_id] = underlying
            self._accounts[derived_id] = account
            self._royalties[derived_id] = royalty_bps

        self.logger.info(
            f"Derived {derived} from {underlying} for [{start_time}, {end_time}] "
            f"at {royalty_bps} bps"
        )
        self.events.emit(DeriveEvent(
            owner=caller,
            underlying=underlying,
            derived=derived,
            account=account,
            start_time=start_time,
            end_time=end_time,
            royalty_bps=royalty_bps
        ))
        return True

    def reclaim(self, caller: str, underlying: AssetRef, now: Optional[int] = None) -> bool:
        """
        Burn the derived token of underlying and make it derivable again.

        Raises:
            NotReclaimableError: no active derivation, or the caller neither
                holds the derived token nor is past the window end
            NotOwnerError: caller does not own underlying
        """
        current = self.now(now)
        with self._lock:
            record = self._active(underlying)
            self.guard.require_owner(caller, underlying)
            if not self._reclaimable(caller, record, current):
                raise NotReclaimableError(
                    f"{underlying} cannot be reclaimed before {record.end_time} "
                    f"unless the caller holds {record.derived_ref}"
                )

            derived = record.derived_ref
            self.derived_ledger.burn(derived.token_id)
            del self._derived[underlying]
            del self._underlying[derived.token_id]
            self._accounts.pop(derived.token_id, None)
            self._royalties.pop(derived.token_id, None)

        self.logger.info(f"Reclaimed {underlying} from {derived}")
        self.events.emit(ReclaimEvent(caller=caller, underlying=underlying, derived=derived))
        return True

    def _active(self, underlying: AssetRef) -> DerivedToken:
        if self.is_derived(underlying):
            raise NotReclaimableError(f"{underlying} is a derived token")
        record = self._derived.get(underlying)
        if record is None:
            raise NotReclaimableError(f"{underlying} has no active derivation")
        return record

    def _reclaimable(self, requester: str, record: DerivedToken, now: int) -> bool:
        holds_derived = self.guard.is_owner_of(requester, record.derived_ref)
        return holds_derived or now > record.end_time

    def is_derivable(self, ref: AssetRef) -> bool:
        """True iff ref has no active derivation; derived tokens never are."""
        if self.is_derived(ref):
            return False
        with self._lock:
            return ref not in self._derived

    def is_usable(self, ref: AssetRef, now: Optional[int] = None) -> bool:
        """
        Check whether ref may be used at now.

        A derived token is usable inside its window. An underlying token with
        an active derivation is usable only outside that window. Any other
        token is always usable.
        """
        current = self.now(now)
        with self._lock:
            if self.is_derived(ref):
                underlying = self._underlying.get(ref.token_id)
                if underlying is None:
                    return False
                return self._derived[underlying].covers(current)

            record = self._derived.get(ref)
            if record is None:
                return True
            return not record.covers(current)

    def is_reclaimable(self, requester: str, ref: AssetRef, now: Optional[int] = None) -> bool:
        """
        Check whether requester may reclaim the derivation of ref at now.

        Raises:
            NotReclaimableError: ref is derived or has no active derivation
        """
        current = self.now(now)
        with self._lock:
            record = self._active(ref)
            if not self.guard.is_owner_of(requester, ref):
                return False
            return self._reclaimable(requester, record, current)

    def derived_of(self, underlying: AssetRef) -> DerivedToken:
        """Return the active derivation of underlying or the empty default."""
        with self._lock:
            record = self._derived.get(underlying)
            return record.model_copy() if record else DerivedToken()

    def underlying_of(self, derived_token_id: int) -> Optional[AssetRef]:
        with self._lock:
            return self._underlying.get(derived_token_id)

    def derived_account_of(self, derived_token_id: int) -> Optional[str]:
        with self._lock:
            return self._accounts.get(derived_token_id)

    def royalty_rate_of(self, derived_token_id: int) -> int:
        """Royalty rate in basis points; 0 when no derivation is bound."""
        with self._lock:
            return self._royalties.get(derived_token_id, 0)

    def active_derivations(self) -> List[DerivationRecord]:
        with self._lock:
            return [
                DerivationRecord(
                    underlying=underlying,
                    derived_token_id=record.derived_ref.token_id,
                    start_time=record.start_time,
                    end_time=record.end_time,
                    account=self._accounts[record.derived_ref.token_id],
                    royalty_bps=self._royalties[record.derived_ref.token_id]
                )
                for underlying, record in self._derived.items()
            ]

    @property
    def next_derived_id(self) -> int:
        return self._next_id

    def snapshot(self) -> Dict[str, Any]:
        """Copy the engine state for later restore."""
        with self._lock:
            return {
                'derived': copy.copy(self._derived),
                'underlying': copy.copy(self._underlying),
                'accounts': copy.copy(self._accounts),
                'royalties': copy.copy(self._royalties),
                'next_id': self._next_id,
                'ledger': self.derived_ledger.tokens(),
            }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        with self._lock:
            self._derived = copy.copy(snapshot['derived'])
            self._underlying = copy.copy(snapshot['underlying'])
            self._accounts = copy.copy(snapshot['accounts'])
            self._royalties = copy.copy(snapshot['royalties'])
            self._next_id = snapshot['next_id']
            self.derived_ledger.replace_all(snapshot['ledger'])

    def load_records(
        self,
        records: List[DerivationRecord],
        next_derived_id: int,
        derived_owners: Optional[Dict[int, str]] = None
    ) -> None:
        """Rebuild engine state from persisted derivation records."""
        with self._lock:
            self._derived = {}
            self._underlying = {}
            self._accounts = {}
            self._royalties = {}
            for record in records:
                derived = self.derived_ref(record.derived_token_id)
                self._derived[record.underlying] = DerivedToken(
                    derived_ref=derived,
                    start_time=record.start_time,
                    end_time=record.end_time
                )
                self._underlying[record.derived_token_id] = record.underlying
                self._accounts[record.derived_token_id] = record.account
                self._royalties[record.derived_token_id] = record.royalty_bps
            highest = max(self._underlying, default=0)
            self._next_id = max(next_derived_id, highest + 1)
            self.derived_ledger.replace_all(derived_owners or {})
