"""Ledger RPC, fee transactions, wallet sessions and the vote protocol."""

from .rpc import Checkpoint, SolanaRpcClient, commitment_reached
from .tx_builder import FeeStep, FeeTransaction, FeeTransactionBuilder, get_associated_token_address, to_base_units
from .session import DisabledWalletSession, SessionState, WalletSession, create_wallet_session
from .coordinator import ReconcileResult, VoteCoordinator, VoteOutcome
