"""
NFT Metadata Registry - Schema Models

This module defines the Pydantic models for token references, derivation
records, registry configuration and the persisted registry snapshot.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InvalidKeyError


KEY_SIZE = 32
MAX_ROYALTY_BPS = 10000
DEFAULT_MAX_COMPOSE_KEYS = 32
DEFAULT_DERIVED_COLLECTION = "nftmeta-derived"

ZERO_IDENTITIES = frozenset({"", "0", "0x", "0x0", "0x" + "0" * 40})


def is_zero_identity(identity: Optional[str]) -> bool:
    """True if the identity is missing or one of the zero-address spellings."""
    if identity is None:
        return True
    return identity.strip().lower() in ZERO_IDENTITIES


def normalize_key(key: Union[bytes, bytearray, str]) -> bytes:
    """
    Normalize a storage key to 32 raw bytes.

    Accepts raw bytes or a 64-character hex string with optional 0x prefix.

    Raises:
        InvalidKeyError: If the key is not a 32-byte identifier
    """
    if isinstance(key, (bytes, bytearray)):
        raw = bytes(key)
    elif isinstance(key, str):
        text = key[2:] if key.lower().startswith('0x') else key
        if not re.match(r'^[a-fA-F0-9]{64}$', text):
            raise InvalidKeyError(f"Key must be 64-character hex string, got {key!r}")
        raw = bytes.fromhex(text)
    else:
        raise InvalidKeyError(f"Unsupported key type: {type(key).__name__}")

    if len(raw) != KEY_SIZE:
        raise InvalidKeyError(f"Key must be {KEY_SIZE} bytes, got {len(raw)}")
    return raw


def normalize_collection(collection: str) -> str:
    """Strip a collection identifier; hex addresses are lowercased."""
    collection = collection.strip()
    if not collection:
        raise ValueError('Collection identifier must not be empty')
    if ':' in collection:
        raise ValueError('Collection identifier must not contain ":"')
    if collection.lower().startswith('0x'):
        collection = collection.lower()
    return collection


def normalize_value(value: Union[bytes, bytearray, memoryview]) -> bytes:
    """Normalize a value payload to immutable bytes."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"Value must be bytes, got {type(value).__name__}")


class AssetRef(BaseModel):
    """Identifies a token, native or derived, as a (collection, token_id) pair."""

    model_config = ConfigDict(frozen=True)

    collection: str = Field(..., min_length=1, description="Collection identifier")
    token_id: int = Field(..., ge=0, description="Token identifier within the collection")

    @field_validator('collection')
    @classmethod
    def validate_collection(cls, v):
        return normalize_collection(v)

    @classmethod
    def parse(cls, text: str) -> "AssetRef":
        """Parse a 'collection:token_id' string."""
        collection, sep, token_id = text.rpartition(':')
        if not sep or not token_id.isdigit():
            raise ValueError(f"Expected 'collection:token_id', got {text!r}")
        return cls(collection=collection, token_id=int(token_id))

    def __str__(self) -> str:
        return f"{self.collection}:{self.token_id}"


class DerivedToken(BaseModel):
    """An active derivation of an underlying token, or the empty default."""

    derived_ref: Optional[AssetRef] = None
    start_time: int = Field(default=0, ge=0)
    end_time: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_window(self):
        if self.derived_ref is not None and self.start_time >= self.end_time:
            raise ValueError('Derivation start_time must be before end_time')
        return self

    @property
    def exists(self) -> bool:
        return self.derived_ref is not None

    def covers(self, now: int) -> bool:
        """True if now falls inside [start_time, end_time]."""
        return self.exists and self.start_time <= now <= self.end_time


class RegistryConfig(BaseModel):
    """Tunable registry limits."""

    royalty_ceiling_bps: int = Field(default=MAX_ROYALTY_BPS, ge=0, le=MAX_ROYALTY_BPS)
    max_compose_keys: int = Field(default=DEFAULT_MAX_COMPOSE_KEYS, gt=0, le=1024)
    derived_collection: str = Field(default=DEFAULT_DERIVED_COLLECTION, min_length=1)
    enforce_write_once: bool = Field(default=False, description="Reject re-inscription of a non-empty slot")

    @field_validator('derived_collection')
    @classmethod
    def validate_derived_collection(cls, v):
        return normalize_collection(v)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RegistryConfig":
        """Build a config from a dictionary, ignoring unrelated keys."""
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.model_fields}
        return cls(**known)


class SlotRecord(BaseModel):
    """A single persisted storage slot."""

    collection: str
    token_id: int = Field(..., ge=0)
    key: str = Field(..., description="Storage key (hex)")
    value: str = Field(default="", description="Stored value (hex)")

    @field_validator('key')
    @classmethod
    def validate_key(cls, v):
        if not re.match(r'^[a-fA-F0-9]{64}$', v):
            raise ValueError('Slot key must be 64-character hex string (32 bytes)')
        return v.lower()


class DerivationRecord(BaseModel):
    """A persisted active derivation."""

    underlying: AssetRef
    derived_token_id: int = Field(..., ge=1)
    start_time: int = Field(..., ge=0)
    end_time: int = Field(..., ge=0)
    account: str
    royalty_bps: int = Field(..., ge=0, le=MAX_ROYALTY_BPS)


class RegistrySnapshot(BaseModel):
    """Complete persisted registry state."""

    version: str = Field(default="1.0.0", description="Snapshot schema version")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    entries: List[SlotRecord] = Field(default_factory=list)
    derivations: List[DerivationRecord] = Field(default_factory=list)
    next_derived_id: int = Field(default=1, ge=1)
    writers: List[str] = Field(default_factory=list)
    ownership: Dict[str, Dict[str, str]] = Field(
        default_factory=dict,
        description="Local ownership ledgers: collection -> token_id -> owner"
    )
