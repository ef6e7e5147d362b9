"""
NFT Metadata Registry

A key-value metadata registry for non-fungible tokens keyed by
(collection, token_id, key), with writer-attested inscriptions, owner-gated
dynamic writes, time-bounded derivation of tokens and cross-token
composition of attributes.
"""

from .access import (
    AccessGuard,
    InMemoryOwnershipLedger,
    InMemoryWriterRoleSet,
    OwnershipOracle,
    WriterRoleSet
)

from .composer import Composer

from .derivation import (
    AccountFactory,
    DerivationEngine,
    DeterministicAccountFactory
)

from .events import (
    ComposeEvent,
    DeriveEvent,
    EventBus,
    EventType,
    ReclaimEvent,
    RegistryEvent,
    WriteEvent
)

from .exceptions import (
    DerivedNotComposableError,
    InscriptionLockedError,
    InvalidCompositionError,
    InvalidKeyError,
    InvalidWindowError,
    NotDerivableError,
    NotOwnerError,
    NotReclaimableError,
    NotUsableError,
    NotWriterError,
    RegistryError,
    RoyaltyExceededError,
    StorageError,
    TooManyKeysError
)

from .inscriber import Inscriber
from .manager import RegistryManager
from .schema import AssetRef, DerivedToken, RegistryConfig, normalize_key
from .store import KeyValueStore
from .writer import DynamicWriter

__version__ = "1.0.0"

__all__ = [
    # Core components
    "KeyValueStore",
    "AccessGuard",
    "Inscriber",
    "DynamicWriter",
    "DerivationEngine",
    "Composer",
    "RegistryManager",

    # Collaborator interfaces
    "OwnershipOracle",
    "WriterRoleSet",
    "AccountFactory",
    "InMemoryOwnershipLedger",
    "InMemoryWriterRoleSet",
    "DeterministicAccountFactory",

    # Models
    "AssetRef",
    "DerivedToken",
    "RegistryConfig",
    "normalize_key",

    # Notifications
    "EventBus",
    "EventType",
    "RegistryEvent",
    "WriteEvent",
    "DeriveEvent",
    "ReclaimEvent",
    "ComposeEvent",

    # Errors
    "RegistryError",
    "NotWriterError",
    "NotOwnerError",
    "InvalidWindowError",
    "RoyaltyExceededError",
    "NotDerivableError",
    "NotReclaimableError",
    "NotUsableError",
    "DerivedNotComposableError",
    "TooManyKeysError",
    "InvalidCompositionError",
    "InvalidKeyError",
    "InscriptionLockedError",
    "StorageError",
]
