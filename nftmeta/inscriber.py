"""
NFT Metadata Registry - Inscriber

Writer-role gated inscriptions. The writer subsystem, not the token owner,
attests to the authenticity of inscribed attributes, so no ownership check is
made. Inscriptions are expected to be written once; strict write-once is only
enforced when the registry is configured with enforce_write_once.
"""

import logging
from typing import Optional

from .access import AccessGuard
from .derivation import DerivationEngine
from .exceptions import InscriptionLockedError
from .schema import AssetRef, RegistryConfig
from .store import KeyValueStore


class Inscriber:
    """Writes attestation data on behalf of writer-role holders."""

    def __init__(self, store: KeyValueStore, guard: AccessGuard,
                 engine: DerivationEngine, config: Optional[RegistryConfig] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.guard = guard
        self.engine = engine
        self.config = config or RegistryConfig()

    def inscribe(self, caller: str, ref: AssetRef, key: bytes, value: bytes) -> None:
        """
        Store value at (ref, key) on behalf of a writer.

        Raises:
            NotWriterError: caller lacks the writer role
            InscriptionLockedError: write-once is enforced and the slot is set
            NotUsableError: ref is a derived token with no live derivation
        """
        self.guard.require_writer(caller)
        target = self.engine.resolve(ref)

        if self.config.enforce_write_once and self.store.get(target, key):
            raise InscriptionLockedError(f"{target} key {key.hex()} is already inscribed")

        self.store.set(target, key, value)
        self.logger.info(f"Inscribed {len(value)} bytes at {target} key {key.hex()[:16]}")
