"""Tests for the vote protocol."""

import asyncio
from dataclasses import replace

import pytest

from edengates.adapters.keypair import LocalKeypairAdapter
from edengates.config import Settings
from edengates.core.coordinator import VoteCoordinator, VoteOutcome
from edengates.core.session import DisabledWalletSession, WalletSession
from edengates.errors import (
    AlreadyVoted,
    ConfigurationError,
    ConfirmationTimeout,
    DataStoreError,
    NotConnected,
    RpcError,
    VoteInProgress,
    VotePendingReconciliation,
)
from edengates.state.ledger import KeyValueStore, LocalVoteLedger, UnrecordedVote, UnrecordedVoteJournal
from edengates.state.tally import Founder, FounderTally

from conftest import FakeRpc, FakeStore


def _coordinator(tmp_path, settings, session, store, rpc=None):
    kv = KeyValueStore(tmp_path / "state.json")
    tally = FounderTally([Founder("f-1", "Ada", 3), Founder("f-2", "Grace", 0)])
    return VoteCoordinator(
        store=store,
        session=session,
        tally=tally,
        ledger=LocalVoteLedger(kv),
        settings=settings,
        rpc=rpc,
        journal=UnrecordedVoteJournal(kv),
        fingerprint="device-hash",
    )


def _connected_session(rpc, voter):
    session = WalletSession(rpc, adapter=LocalKeypairAdapter(voter))
    asyncio.run(session.connect())
    return session


class TestWalletDisabled:

    def test_vote_is_recorded_without_wallet(self, tmp_path):
        store = FakeStore()
        coordinator = _coordinator(tmp_path, Settings(state_dir=tmp_path), DisabledWalletSession(), store)

        outcome = asyncio.run(coordinator.cast_vote("f-1"))

        assert outcome == VoteOutcome("f-1", None, None, "Vote recorded. Thanks for supporting a founder.")
        assert coordinator.tally.count("f-1") == 4
        assert coordinator.ledger.has_voted("f-1")
        [record] = store.votes
        assert record.wallet is None
        assert record.tx_sig is None
        assert record.ip_hash == "device-hash"

    def test_flag_on_but_session_disabled_records_no_wallet(self, tmp_path, wallet_settings):
        store = FakeStore()
        coordinator = _coordinator(tmp_path, wallet_settings, DisabledWalletSession(), store)

        asyncio.run(coordinator.cast_vote("f-2"))

        assert store.votes[0].wallet is None

    def test_repeat_vote_is_rejected_before_any_call(self, tmp_path):
        store = FakeStore()
        coordinator = _coordinator(tmp_path, Settings(state_dir=tmp_path), DisabledWalletSession(), store)
        asyncio.run(coordinator.cast_vote("f-1"))

        with pytest.raises(AlreadyVoted) as excinfo:
            asyncio.run(coordinator.cast_vote("f-1"))

        assert excinfo.value.founder_id == "f-1"
        assert len(store.votes) == 1
        assert coordinator.tally.count("f-1") == 4

    def test_concurrent_votes_for_one_founder(self, tmp_path):
        store = FakeStore()
        store.insert_delay = 3
        coordinator = _coordinator(tmp_path, Settings(state_dir=tmp_path), DisabledWalletSession(), store)

        async def vote_twice():
            return await asyncio.gather(
                coordinator.cast_vote("f-1"),
                coordinator.cast_vote("f-1"),
                return_exceptions=True,
            )

        first, second = asyncio.run(vote_twice())

        assert isinstance(first, VoteOutcome)
        assert isinstance(second, VoteInProgress)
        assert coordinator.tally.count("f-1") == 4
        assert len(store.votes) == 1
        assert not coordinator.is_pending("f-1")

    def test_votes_for_different_founders_overlap(self, tmp_path):
        store = FakeStore()
        store.insert_delay = 2
        coordinator = _coordinator(tmp_path, Settings(state_dir=tmp_path), DisabledWalletSession(), store)

        async def vote_both():
            return await asyncio.gather(coordinator.cast_vote("f-1"), coordinator.cast_vote("f-2"))

        asyncio.run(vote_both())

        assert sorted(r.founder_id for r in store.votes) == ["f-1", "f-2"]

    def test_store_failure_rolls_back(self, tmp_path):
        store = FakeStore()
        store.fail_with = "permission denied"
        coordinator = _coordinator(tmp_path, Settings(state_dir=tmp_path), DisabledWalletSession(), store)

        with pytest.raises(DataStoreError, match="Database error: permission denied") as excinfo:
            asyncio.run(coordinator.cast_vote("f-1"))

        assert excinfo.value.signature is None
        assert coordinator.tally.count("f-1") == 3
        assert not coordinator.ledger.has_voted("f-1")
        assert coordinator.journal.entries() == []

    def test_dispose_stops_tally_updates(self, tmp_path):
        store = FakeStore()
        coordinator = _coordinator(tmp_path, Settings(state_dir=tmp_path), DisabledWalletSession(), store)
        coordinator.dispose()

        asyncio.run(coordinator.cast_vote("f-1"))

        assert coordinator.tally.count("f-1") == 3
        assert len(store.votes) == 1


class TestWalletEnabled:

    def test_paid_vote(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        coordinator = _coordinator(tmp_path, wallet_settings, _connected_session(rpc, voter), store, rpc)

        outcome = asyncio.run(coordinator.cast_vote("f-2"))

        assert outcome.signature == rpc.next_signature
        assert outcome.wallet == str(voter.pubkey())
        assert outcome.message.startswith("Vote sent on-chain. Tx: ")
        assert coordinator.tally.count("f-2") == 1
        assert coordinator.ledger.founder_ids == ["f-2"]
        [record] = store.votes
        assert record.tx_sig == rpc.next_signature
        assert record.wallet == str(voter.pubkey())
        assert len(rpc.sent) == 1

    def test_not_connected_is_rejected_before_any_call(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        session = WalletSession(rpc, adapter=LocalKeypairAdapter(voter))
        coordinator = _coordinator(tmp_path, wallet_settings, session, store, rpc)

        with pytest.raises(NotConnected):
            asyncio.run(coordinator.cast_vote("f-1"))

        assert rpc.calls == []
        assert store.votes == []
        assert coordinator.tally.count("f-1") == 3

    def test_transfer_failure_rolls_back(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        rpc.send_error = RpcError("Blockhash not found")
        coordinator = _coordinator(tmp_path, wallet_settings, _connected_session(rpc, voter), store, rpc)

        with pytest.raises(RpcError):
            asyncio.run(coordinator.cast_vote("f-1"))

        assert coordinator.tally.count("f-1") == 3
        assert store.votes == []
        assert not coordinator.ledger.has_voted("f-1")
        assert not coordinator.is_pending("f-1")

        # The founder can be voted for again once the cause is gone
        rpc.send_error = None
        asyncio.run(coordinator.cast_vote("f-1"))
        assert coordinator.tally.count("f-1") == 4

    def test_missing_fee_accounts_roll_back(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        settings = replace(wallet_settings, rewards_wallet="")
        coordinator = _coordinator(tmp_path, settings, _connected_session(rpc, voter), store, rpc)

        with pytest.raises(ConfigurationError, match="ME_MINT and REWARDS_WALLET"):
            asyncio.run(coordinator.cast_vote("f-1"))

        assert coordinator.tally.count("f-1") == 3
        assert rpc.sent == []

    def test_store_failure_after_transfer_keeps_signature(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        store.fail_with = "duplicate key value"
        coordinator = _coordinator(tmp_path, wallet_settings, _connected_session(rpc, voter), store, rpc)

        with pytest.raises(DataStoreError) as excinfo:
            asyncio.run(coordinator.cast_vote("f-1"))

        error = excinfo.value
        assert error.signature == rpc.next_signature
        assert rpc.next_signature in str(error)
        assert coordinator.tally.count("f-1") == 3
        assert not coordinator.ledger.has_voted("f-1")

        [entry] = coordinator.journal.entries()
        assert entry.founder_id == "f-1"
        assert entry.signature == rpc.next_signature
        assert entry.wallet == str(voter.pubkey())

    def test_confirmation_timeout_is_indeterminate(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        rpc.confirm_error = ConfirmationTimeout("Transaction not confirmed after 60s", signature=rpc.next_signature)
        coordinator = _coordinator(tmp_path, wallet_settings, _connected_session(rpc, voter), store, rpc)

        with pytest.raises(ConfirmationTimeout):
            asyncio.run(coordinator.cast_vote("f-1"))

        assert coordinator.tally.count("f-1") == 4
        assert store.votes == []
        assert [e.signature for e in coordinator.journal.entries()] == [rpc.next_signature]
        assert not coordinator.is_pending("f-1")

    def test_retry_after_timeout_waits_for_reconcile(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        signature = rpc.next_signature
        rpc.confirm_error = ConfirmationTimeout("Transaction not confirmed after 60s", signature=signature)
        coordinator = _coordinator(tmp_path, wallet_settings, _connected_session(rpc, voter), store, rpc)

        with pytest.raises(ConfirmationTimeout):
            asyncio.run(coordinator.cast_vote("f-1"))
        rpc.confirm_error = None
        calls_before = len(rpc.calls)

        with pytest.raises(VotePendingReconciliation, match="edengates reconcile") as excinfo:
            asyncio.run(coordinator.cast_vote("f-1"))

        assert excinfo.value.signature == signature
        assert excinfo.value.founder_id == "f-1"
        assert len(rpc.calls) == calls_before
        assert len(rpc.sent) == 1
        assert coordinator.tally.count("f-1") == 4

        # The first transfer landed after all
        rpc.statuses = {signature: {"confirmationStatus": "confirmed", "err": None}}
        [result] = asyncio.run(coordinator.reconcile())

        assert result.status == "recorded"
        assert [r.tx_sig for r in store.votes] == [signature]
        assert coordinator.tally.count("f-1") == 4
        with pytest.raises(AlreadyVoted):
            asyncio.run(coordinator.cast_vote("f-1"))
        assert len(rpc.sent) == 1

    def test_failed_timeout_entry_allows_a_new_vote(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        signature = rpc.next_signature
        rpc.confirm_error = ConfirmationTimeout("Blockhash expired", signature=signature)
        coordinator = _coordinator(tmp_path, wallet_settings, _connected_session(rpc, voter), store, rpc)

        with pytest.raises(ConfirmationTimeout):
            asyncio.run(coordinator.cast_vote("f-1"))
        rpc.confirm_error = None
        rpc.statuses = {signature: {"confirmationStatus": "confirmed", "err": {"InstructionError": [4, "Custom"]}}}

        [result] = asyncio.run(coordinator.reconcile())
        assert result.status == "failed"
        assert coordinator.tally.count("f-1") == 3

        asyncio.run(coordinator.cast_vote("f-1"))
        assert coordinator.tally.count("f-1") == 4
        assert len(store.votes) == 1

    def test_retry_after_unrecorded_fee_is_refused(self, tmp_path, wallet_settings, voter):
        rpc, store = FakeRpc(), FakeStore()
        store.fail_with = "duplicate key value"
        coordinator = _coordinator(tmp_path, wallet_settings, _connected_session(rpc, voter), store, rpc)

        with pytest.raises(DataStoreError):
            asyncio.run(coordinator.cast_vote("f-1"))
        store.fail_with = None

        with pytest.raises(VotePendingReconciliation):
            asyncio.run(coordinator.cast_vote("f-1"))
        assert len(rpc.sent) == 1

        rpc.statuses = {rpc.next_signature: {"confirmationStatus": "finalized", "err": None}}
        asyncio.run(coordinator.reconcile())

        assert coordinator.tally.count("f-1") == 4
        assert len(store.votes) == 1


class TestReconcile:

    def test_journal_entries_are_resolved_by_status(self, tmp_path, wallet_settings):
        rpc, store = FakeRpc(), FakeStore()
        coordinator = _coordinator(tmp_path, wallet_settings, DisabledWalletSession(), store, rpc)
        for founder_id, signature in (("f-1", "sig-confirmed"), ("f-2", "sig-failed"), ("f-2", "sig-unknown")):
            coordinator.journal.add(UnrecordedVote(founder_id=founder_id, signature=signature, wallet="w"))
        rpc.statuses = {
            "sig-confirmed": {"confirmationStatus": "finalized", "err": None},
            "sig-failed": {"confirmationStatus": "confirmed", "err": {"InstructionError": [4, "Custom"]}},
        }

        results = asyncio.run(coordinator.reconcile())

        assert {r.entry.signature: r.status for r in results} == {
            "sig-confirmed": "recorded",
            "sig-failed": "failed",
            "sig-unknown": "pending",
        }
        assert [e.signature for e in coordinator.journal.entries()] == ["sig-unknown"]
        assert [(r.founder_id, r.tx_sig) for r in store.votes] == [("f-1", "sig-confirmed")]
        assert coordinator.ledger.founder_ids == ["f-1"]

    def test_store_failure_leaves_entry_pending(self, tmp_path, wallet_settings):
        rpc, store = FakeRpc(), FakeStore()
        store.fail_with = "timeout"
        coordinator = _coordinator(tmp_path, wallet_settings, DisabledWalletSession(), store, rpc)
        coordinator.journal.add(UnrecordedVote(founder_id="f-1", signature="sig"))
        rpc.statuses = {"sig": {"confirmationStatus": "confirmed", "err": None}}

        [result] = asyncio.run(coordinator.reconcile())

        assert result.status == "pending"
        assert len(coordinator.journal.entries()) == 1
