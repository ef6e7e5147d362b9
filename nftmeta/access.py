"""
NFT Metadata Registry - Access Control

This module provides the two orthogonal access predicates used by every
mutating operation: the writer-role check against an externally administered
role set, and the ownership check delegated to an ownership oracle resolved
per collection. The checks are never folded together; each operation composes
the ones it needs.
"""

import logging
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Iterable, List, Optional, Set

from .exceptions import NotOwnerError, NotWriterError
from .schema import AssetRef, is_zero_identity


class OwnershipOracle(ABC):
    """Answers "who owns token T" for a single collection."""

    @abstractmethod
    def owner_of(self, token_id: int) -> Optional[str]:
        """Return the current owner of token_id, or None if it does not exist."""
        pass


class WriterRoleSet(ABC):
    """Membership test for the writer capability."""

    @abstractmethod
    def has_role(self, actor: str) -> bool:
        pass


class InMemoryOwnershipLedger(OwnershipOracle):
    """Minimal ownership ledger for one collection."""

    def __init__(self, collection: str, owners: Optional[Dict[int, str]] = None):
        self.collection = collection
        self._owners: Dict[int, str] = dict(owners or {})
        self._lock = RLock()

    def owner_of(self, token_id: int) -> Optional[str]:
        with self._lock:
            return self._owners.get(token_id)

    def mint(self, to: str, token_id: int) -> None:
        """Create token_id owned by to."""
        with self._lock:
            if token_id in self._owners:
                raise ValueError(f"Token {self.collection}:{token_id} already exists")
            if is_zero_identity(to):
                raise ValueError("Cannot mint to the zero identity")
            self._owners[token_id] = to

    def assign(self, to: str, token_id: int) -> None:
        """Set the owner of token_id, creating it if needed."""
        with self._lock:
            if is_zero_identity(to):
                raise ValueError("Cannot assign to the zero identity")
            self._owners[token_id] = to

    def transfer(self, sender: str, to: str, token_id: int) -> None:
        with self._lock:
            if self._owners.get(token_id) != sender:
                raise ValueError(f"{sender} does not own {self.collection}:{token_id}")
            self.assign(to, token_id)

    def burn(self, token_id: int) -> None:
        with self._lock:
            if self._owners.pop(token_id, None) is None:
                raise ValueError(f"Token {self.collection}:{token_id} does not exist")

    def tokens(self) -> Dict[int, str]:
        with self._lock:
            return dict(self._owners)

    def replace_all(self, owners: Dict[int, str]) -> None:
        """Replace every ownership record, e.g. when restoring a snapshot."""
        with self._lock:
            self._owners = dict(owners)

    def __len__(self) -> int:
        return len(self._owners)


class InMemoryWriterRoleSet(WriterRoleSet):
    """Locally administered writer role set."""

    def __init__(self, writers: Optional[Iterable[str]] = None):
        self._writers: Set[str] = set(writers or [])
        self._lock = RLock()

    def has_role(self, actor: str) -> bool:
        with self._lock:
            return actor in self._writers

    def grant(self, actor: str) -> bool:
        """Grant the writer role; returns False if already held."""
        if is_zero_identity(actor):
            raise ValueError("Cannot grant writer role to the zero identity")
        with self._lock:
            if actor in self._writers:
                return False
            self._writers.add(actor)
            return True

    def revoke(self, actor: str) -> bool:
        """Revoke the writer role; returns False if not held."""
        with self._lock:
            if actor not in self._writers:
                return False
            self._writers.discard(actor)
            return True

    def members(self) -> List[str]:
        with self._lock:
            return sorted(self._writers)


class AccessGuard:
    """Role and ownership predicates with explicit require_* rejections."""

    def __init__(self, roles: WriterRoleSet,
                 oracles: Optional[Dict[str, OwnershipOracle]] = None):
        self.logger = logging.getLogger(__name__)
        self.roles = roles
        self._oracles: Dict[str, OwnershipOracle] = dict(oracles or {})
        self._lock = RLock()

    def register_oracle(self, collection: str, oracle: OwnershipOracle) -> None:
        """Resolve collection to oracle for ownership checks."""
        with self._lock:
            self._oracles[collection] = oracle

    def resolve_oracle(self, collection: str) -> Optional[OwnershipOracle]:
        with self._lock:
            return self._oracles.get(collection)

    def collections(self) -> List[str]:
        with self._lock:
            return sorted(self._oracles)

    def has_writer_role(self, actor: str) -> bool:
        if is_zero_identity(actor):
            return False
        return self.roles.has_role(actor)

    def owner_of(self, ref: AssetRef) -> Optional[str]:
        oracle = self.resolve_oracle(ref.collection)
        if oracle is None:
            return None
        return oracle.owner_of(ref.token_id)

    def is_owner_of(self, requester: str, ref: AssetRef) -> bool:
        """
        Check whether requester currently owns ref.

        Returns False for the zero identity and for collections that do not
        resolve to an ownership oracle.
        """
        if is_zero_identity(requester):
            return False
        oracle = self.resolve_oracle(ref.collection)
        if oracle is None:
            self.logger.debug(f"No ownership oracle for collection {ref.collection}")
            return False
        owner = oracle.owner_of(ref.token_id)
        return owner is not None and owner == requester

    def require_writer(self, actor: str) -> None:
        if not self.has_writer_role(actor):
            self.logger.warning(f"Rejected {actor!r}: missing writer role")
            raise NotWriterError(f"{actor!r} does not hold the writer role")

    def require_owner(self, requester: str, ref: AssetRef) -> None:
        if not self.is_owner_of(requester, ref):
            self.logger.warning(f"Rejected {requester!r}: not owner of {ref}")
            raise NotOwnerError(f"{requester!r} is not the owner of {ref}")
