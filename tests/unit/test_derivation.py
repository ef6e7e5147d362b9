"""
Unit tests for the derivation engine.
"""

import pytest

from nftmeta.access import AccessGuard, InMemoryOwnershipLedger, InMemoryWriterRoleSet
from nftmeta.derivation import DerivationEngine, DeterministicAccountFactory
from nftmeta.events import DeriveEvent, EventBus, ReclaimEvent
from nftmeta.exceptions import (
    InvalidWindowError, NotDerivableError, NotOwnerError, NotReclaimableError,
    RoyaltyExceededError
)
from nftmeta.schema import AssetRef, RegistryConfig


T0 = 1_700_000_000


class TestDerivationEngine:
    """Test derive / reclaim lifecycle."""

    @pytest.fixture
    def ledger(self):
        ledger = InMemoryOwnershipLedger("punks")
        ledger.mint("alice", 1)
        ledger.mint("bob", 2)
        return ledger

    @pytest.fixture
    def events(self):
        return EventBus()

    @pytest.fixture
    def engine(self, ledger, events):
        guard = AccessGuard(InMemoryWriterRoleSet(), {"punks": ledger})
        return DerivationEngine(guard, config=RegistryConfig(), events=events, clock=lambda: T0)

    @pytest.fixture
    def underlying(self):
        return AssetRef(collection="punks", token_id=1)

    def test_derive(self, engine, events, underlying):
        received = []
        events.subscribe(received.append)

        assert engine.derive("alice", underlying, T0 + 100, T0 + 200, 250)

        derived = engine.derived_of(underlying)
        assert derived.exists
        assert derived.derived_ref == AssetRef(collection="nftmeta-derived", token_id=1)
        assert (derived.start_time, derived.end_time) == (T0 + 100, T0 + 200)

        assert engine.underlying_of(1) == underlying
        assert engine.royalty_rate_of(1) == 250
        assert engine.derived_account_of(1).startswith("0x")
        assert engine.derived_ledger.owner_of(1) == "alice"
        assert not engine.is_derivable(underlying)

        assert len(received) == 1
        assert isinstance(received[0], DeriveEvent)
        assert received[0].derived == derived.derived_ref

    def test_derive_invalid_window(self, engine, underlying):
        with pytest.raises(InvalidWindowError):
            engine.derive("alice", underlying, T0 + 200, T0 + 200, 0)
        assert engine.is_derivable(underlying)

    def test_derive_royalty_ceiling(self, engine, underlying):
        with pytest.raises(RoyaltyExceededError):
            engine.derive("alice", underlying, T0, T0 + 1, 10001)
        assert engine.derive("alice", underlying, T0, T0 + 1, 10000)

    def test_configured_royalty_ceiling(self, ledger):
        guard = AccessGuard(InMemoryWriterRoleSet(), {"punks": ledger})
        engine = DerivationEngine(guard, config=RegistryConfig(royalty_ceiling_bps=500))
        with pytest.raises(RoyaltyExceededError):
            engine.derive("alice", AssetRef(collection="punks", token_id=1), T0, T0 + 1, 501)

    def test_derive_requires_owner(self, engine, underlying):
        with pytest.raises(NotOwnerError):
            engine.derive("bob", underlying, T0, T0 + 100, 0)

    def test_derive_twice(self, engine, underlying):
        engine.derive("alice", underlying, T0, T0 + 100, 0)
        with pytest.raises(NotDerivableError):
            engine.derive("alice", underlying, T0 + 200, T0 + 300, 0)

    def test_derived_token_cannot_be_derived(self, engine, underlying):
        engine.derive("alice", underlying, T0, T0 + 100, 0)
        derived = engine.derived_of(underlying).derived_ref

        assert not engine.is_derivable(derived)
        with pytest.raises(NotDerivableError):
            engine.derive("alice", derived, T0, T0 + 100, 0)

    def test_derived_ids_are_never_reused(self, engine, underlying):
        engine.derive("alice", underlying, T0 - 100, T0 - 50, 0)
        engine.reclaim("alice", underlying)
        engine.derive("alice", underlying, T0, T0 + 100, 0)

        assert engine.derived_of(underlying).derived_ref.token_id == 2
        assert engine.underlying_of(1) is None

    def test_usability(self, engine, underlying):
        engine.derive("alice", underlying, T0 + 100, T0 + 200, 0)
        derived = engine.derived_of(underlying).derived_ref

        # Before the window
        assert engine.is_usable(underlying, T0 + 50)
        assert not engine.is_usable(derived, T0 + 50)
        # Inside the window, bounds inclusive
        for now in (T0 + 100, T0 + 150, T0 + 200):
            assert not engine.is_usable(underlying, now)
            assert engine.is_usable(derived, now)
        # After the window
        assert engine.is_usable(underlying, T0 + 201)
        assert not engine.is_usable(derived, T0 + 201)

    def test_usability_uses_clock(self, engine, underlying):
        engine.derive("alice", underlying, T0 - 10, T0 + 10, 0)
        assert not engine.is_usable(underlying)

    def test_plain_and_unknown_tokens(self, engine):
        assert engine.is_usable(AssetRef(collection="punks", token_id=2), T0)
        assert not engine.is_usable(engine.derived_ref(99), T0)

    def test_reclaim_after_window(self, engine, events, underlying):
        engine.derive("alice", underlying, T0 + 100, T0 + 200, 0)
        derived = engine.derived_of(underlying).derived_ref
        # Derived token handed to a lessee
        engine.derived_ledger.transfer("alice", "carol", derived.token_id)
        received = []
        events.subscribe(received.append)

        with pytest.raises(NotReclaimableError):
            engine.reclaim("alice", underlying, now=T0 + 200)

        assert engine.reclaim("alice", underlying, now=T0 + 201)
        assert engine.is_derivable(underlying)
        assert not engine.derived_of(underlying).exists
        assert engine.derived_ledger.owner_of(derived.token_id) is None
        assert engine.royalty_rate_of(derived.token_id) == 0
        assert isinstance(received[0], ReclaimEvent)

    def test_reclaim_early_when_holding_derived(self, engine, underlying):
        engine.derive("alice", underlying, T0 + 100, T0 + 200, 0)
        assert engine.reclaim("alice", underlying, now=T0 + 150)

    def test_reclaim_without_derivation(self, engine, underlying):
        with pytest.raises(NotReclaimableError):
            engine.reclaim("alice", underlying)

    def test_reclaim_requires_underlying_owner(self, engine, underlying):
        engine.derive("alice", underlying, T0, T0 + 100, 0)
        with pytest.raises(NotOwnerError):
            engine.reclaim("bob", underlying, now=T0 + 500)

    def test_is_reclaimable(self, engine, underlying):
        with pytest.raises(NotReclaimableError):
            engine.is_reclaimable("alice", underlying)

        engine.derive("alice", underlying, T0 + 100, T0 + 200, 0)
        derived = engine.derived_of(underlying).derived_ref
        assert engine.is_reclaimable("alice", underlying, T0 + 150)
        assert not engine.is_reclaimable("bob", underlying, T0 + 500)

        engine.derived_ledger.transfer("alice", "carol", derived.token_id)
        assert not engine.is_reclaimable("alice", underlying, T0 + 150)
        assert engine.is_reclaimable("alice", underlying, T0 + 201)

    def test_is_reclaimable_rejects_derived_ref(self, engine, underlying):
        engine.derive("alice", underlying, T0, T0 + 100, 0)
        with pytest.raises(NotReclaimableError):
            engine.is_reclaimable("alice", engine.derived_ref(1))

    def test_resolve(self, engine, underlying):
        engine.derive("alice", underlying, T0, T0 + 100, 0)
        assert engine.resolve(engine.derived_ref(1)) == underlying
        assert engine.resolve(underlying) == underlying

    def test_snapshot_restore(self, engine, underlying):
        snapshot = engine.snapshot()
        engine.derive("alice", underlying, T0, T0 + 100, 0)

        engine.restore(snapshot)
        assert engine.is_derivable(underlying)
        assert engine.next_derived_id == 1
        assert engine.derived_ledger.owner_of(1) is None

    def test_load_records(self, engine, underlying):
        engine.derive("alice", underlying, T0, T0 + 100, 300)
        records = engine.active_derivations()
        owners = engine.derived_ledger.tokens()

        guard = AccessGuard(InMemoryWriterRoleSet())
        restored = DerivationEngine(guard)
        restored.load_records(records, engine.next_derived_id, owners)

        assert restored.derived_of(underlying) == engine.derived_of(underlying)
        assert restored.royalty_rate_of(1) == 300
        assert restored.next_derived_id == 2
        assert restored.derived_ledger.owner_of(1) == "alice"


class TestDeterministicAccountFactory:
    def test_stable_and_distinct(self):
        factory = DeterministicAccountFactory()
        first = AssetRef(collection="nftmeta-derived", token_id=1)
        second = AssetRef(collection="nftmeta-derived", token_id=2)

        assert factory.create_account(first) == factory.create_account(first)
        assert factory.create_account(first) != factory.create_account(second)
        assert len(factory.create_account(first)) == 42
