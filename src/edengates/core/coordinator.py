"""
Vote Coordinator: runs one vote from optimistic tally to recorded row.

Order of a vote:
1. Refuse repeats (pending for this founder, already voted here, or a
   spent fee for it still awaiting reconcile())
2. Optimistically bump the founder's tally
3. Pay the fee through the wallet session, when wallets are on
4. Record the vote row
5. Remember the founder in the device ledger

Any failure rolls back the optimistic bump from this attempt. A fee
that was spent but not recorded is journaled for reconcile().
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Set

from ..config import Settings
from ..errors import (
    AlreadyVoted,
    ConfirmationTimeout,
    DataStoreError,
    NotConnected,
    VoteInProgress,
    VotePendingReconciliation,
)
from ..state.ledger import LocalVoteLedger, UnrecordedVote, UnrecordedVoteJournal
from ..state.tally import FounderTally
from ..store.supabase import VoteRecord
from .rpc import commitment_reached
from .tx_builder import FeeTransactionBuilder

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "confirmation timeout"


@dataclass
class VoteOutcome:
    """Result of a successful vote."""
    founder_id: str
    signature: Optional[str] = None
    wallet: Optional[str] = None
    message: str = ""


@dataclass
class ReconcileResult:
    entry: UnrecordedVote
    status: str  # "recorded", "failed", "pending"
    detail: str = ""


def short_signature(signature: str) -> str:
    return f"{signature[:8]}…{signature[-8:]}"


class VoteCoordinator:
    """
    Casts votes for the current device.

    At most one vote per founder is in flight; votes for different
    founders may overlap.
    """

    def __init__(
        self,
        store: Any,
        session: Any,
        tally: FounderTally,
        ledger: LocalVoteLedger,
        settings: Settings,
        rpc: Any = None,
        builder: Optional[FeeTransactionBuilder] = None,
        journal: Optional[UnrecordedVoteJournal] = None,
        fingerprint: Optional[str] = None,
        require_wallet: bool = True,
    ):
        """
        Args:
            store: Data store with ``insert_vote``
            session: WalletSession or DisabledWalletSession
            tally: Founder tallies shown to the user
            ledger: Founders this device already voted for
            settings: Fee and wallet configuration
            rpc: Ledger RPC client, for the fee builder and reconcile()
            builder: Fee builder (built from settings on first use if omitted)
            journal: Where spent-but-unrecorded fees are kept
            fingerprint: Device fingerprint stored with each vote
            require_wallet: Refuse votes while wallet mode is on but no
                wallet is connected
        """
        self.store = store
        self.session = session
        self.tally = tally
        self.ledger = ledger
        self.settings = settings
        self.rpc = rpc
        self.journal = journal
        self.fingerprint = fingerprint
        self.require_wallet = require_wallet
        self._builder = builder
        self._pending: Set[str] = set()
        self._disposed = False

    @property
    def wallet_mode(self) -> bool:
        return self.settings.wallet_enabled and self.session.enabled

    def is_pending(self, founder_id: str) -> bool:
        return founder_id in self._pending

    def dispose(self) -> None:
        """Stop touching the tally; in-flight network calls still complete."""
        self._disposed = True

    async def cast_vote(self, founder_id: str) -> VoteOutcome:
        if founder_id in self._pending:
            raise VoteInProgress(f"A vote for {founder_id} is already in progress", founder_id)
        if self.ledger.has_voted(founder_id):
            raise AlreadyVoted("You already voted for this founder on this device.", founder_id)
        unresolved = self.journal.pending_for(founder_id) if self.journal is not None else None
        if unresolved is not None:
            raise VotePendingReconciliation(
                f"A fee for this founder (tx {unresolved.signature}) is awaiting reconciliation. "
                "Run `edengates reconcile` before voting again.",
                founder_id,
                unresolved.signature,
            )
        if self.wallet_mode and self.require_wallet and not self.session.connected:
            raise NotConnected("Connect your wallet to vote")

        self._pending.add(founder_id)
        try:
            return await self._cast(founder_id)
        finally:
            self._pending.discard(founder_id)

    async def _cast(self, founder_id: str) -> VoteOutcome:
        applied = False
        if founder_id not in self.ledger:
            self._increment(founder_id)
            applied = True

        wallet = self.session.address if self.wallet_mode else None
        signature = None

        if self.wallet_mode and self.session.connected:
            try:
                signature = await self._pay_fee(wallet)
            except ConfirmationTimeout as e:
                # Outcome unknown: the optimistic count stays until the next refresh
                logger.warning("Vote fee for %s unconfirmed: %s", founder_id, e)
                self._remember(founder_id, e.signature, wallet, TIMEOUT_REASON)
                raise
            except Exception as e:
                logger.warning("Vote fee for %s failed: %s", founder_id, e)
                if applied:
                    self._decrement(founder_id)
                raise

        record = VoteRecord(
            founder_id=founder_id,
            wallet=wallet,
            ip_hash=self.fingerprint or None,
            tx_sig=signature,
        )
        try:
            await self.store.insert_vote(record)
        except Exception as e:
            if applied:
                self._decrement(founder_id)
            reason = e.args[0] if e.args else str(e)
            if signature:
                logger.error(
                    "Fee %s spent but vote for %s not recorded: %s", signature, founder_id, reason
                )
                self._remember(founder_id, signature, wallet, f"data store: {reason}")
            raise DataStoreError(f"Database error: {reason}", signature=signature) from e

        self.ledger.add(founder_id)

        if signature:
            message = f"Vote sent on-chain. Tx: {short_signature(signature)}"
        else:
            message = "Vote recorded. Thanks for supporting a founder."
        logger.info("Vote recorded for %s%s", founder_id, f" (tx {signature})" if signature else "")
        return VoteOutcome(founder_id=founder_id, signature=signature, wallet=wallet, message=message)

    def _fee_builder(self) -> FeeTransactionBuilder:
        if self._builder is None:
            self.settings.require_fee_accounts()
            self._builder = FeeTransactionBuilder(
                self.rpc,
                self.settings.fee_mint,
                compute_unit_limit=self.settings.compute_unit_limit,
                compute_unit_price=self.settings.compute_unit_price,
            )
        return self._builder

    async def _pay_fee(self, wallet: str) -> str:
        self.settings.require_fee_accounts()
        tx = await self._fee_builder().build(
            wallet,
            self.settings.vote_fee,
            self.settings.fee_decimals,
            self.settings.rewards_wallet,
        )
        return await self.session.sign_and_send(tx)

    def _increment(self, founder_id: str) -> None:
        if not self._disposed:
            self.tally.increment(founder_id)

    def _decrement(self, founder_id: str) -> None:
        if not self._disposed:
            self.tally.decrement(founder_id)

    def _remember(self, founder_id: str, signature: Optional[str], wallet: Optional[str], reason: str) -> None:
        if self.journal is None or not signature:
            return
        self.journal.add(UnrecordedVote(
            founder_id=founder_id,
            signature=signature,
            wallet=wallet,
            ip_hash=self.fingerprint or None,
            reason=reason,
        ))

    async def reconcile(self) -> List[ReconcileResult]:
        """
        Retry journaled votes whose fee is confirmed on-chain.

        Failed transactions are dropped, unknown ones are kept. The tally is
        adjusted so each resolved vote counts exactly once.
        """
        if self.journal is None:
            return []

        results = []
        for entry in self.journal.entries():
            statuses = await self.rpc.get_signature_statuses([entry.signature])
            status = statuses[0] if statuses else None

            if status is not None and status.get("err"):
                self.journal.remove(entry.signature)
                if entry.reason == TIMEOUT_REASON:
                    self._decrement(entry.founder_id)
                results.append(ReconcileResult(entry, "failed", str(status["err"])))
                continue
            if status is None or not commitment_reached(status.get("confirmationStatus"), "confirmed"):
                results.append(ReconcileResult(entry, "pending", "not confirmed yet"))
                continue

            record = VoteRecord(
                founder_id=entry.founder_id,
                wallet=entry.wallet,
                ip_hash=entry.ip_hash,
                tx_sig=entry.signature,
            )
            try:
                await self.store.insert_vote(record)
            except DataStoreError as e:
                results.append(ReconcileResult(entry, "pending", e.args[0] if e.args else str(e)))
                continue

            self.journal.remove(entry.signature)
            self.ledger.add(entry.founder_id)
            if entry.reason != TIMEOUT_REASON:
                # The optimistic bump was rolled back when the insert failed
                self._increment(entry.founder_id)
            results.append(ReconcileResult(entry, "recorded"))
            logger.info("Reconciled vote for %s (tx %s)", entry.founder_id, entry.signature)

        return results
