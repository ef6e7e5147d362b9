"""
NFT Metadata Registry - Exceptions

This module defines the exception hierarchy raised by registry operations.
Every failed precondition aborts the whole operation; none of these are
retried internally.
"""


class RegistryError(Exception):
    """Base exception for all registry errors."""
    pass


class NotWriterError(RegistryError):
    """Raised when the caller lacks the writer capability."""
    pass


class NotOwnerError(RegistryError):
    """Raised when the requester is not the recognized owner of a token."""
    pass


class InvalidWindowError(RegistryError):
    """Raised when a derivation window has start_time >= end_time."""
    pass


class RoyaltyExceededError(RegistryError):
    """Raised when a royalty rate is above the configured ceiling."""
    pass


class NotDerivableError(RegistryError):
    """Raised when a token already has an active derivation or is itself derived."""
    pass


class NotReclaimableError(RegistryError):
    """Raised when a derivation cannot be reclaimed by the caller."""
    pass


class NotUsableError(RegistryError):
    """Raised when a token is outside its usability window."""
    pass


class DerivedNotComposableError(RegistryError):
    """Raised when a derived token is used as a compose source or destination."""
    pass


class TooManyKeysError(RegistryError):
    """Raised when a compose batch exceeds the maximum key count."""
    pass


class InvalidCompositionError(RegistryError):
    """Raised when a compose request is malformed (e.g. source equals destination)."""
    pass


class InvalidKeyError(RegistryError, ValueError):
    """Raised when a storage key is not a 32-byte identifier."""
    pass


class InscriptionLockedError(RegistryError):
    """Raised when write-once inscriptions are enforced and the slot is taken."""
    pass


class StorageError(RegistryError):
    """Base storage exception."""
    pass


class LockTimeoutError(StorageError):
    """Lock acquisition timeout exception."""
    pass


class IntegrityError(StorageError):
    """File integrity check failure exception."""
    pass
