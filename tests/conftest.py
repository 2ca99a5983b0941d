"""
Pytest fixtures for edengates tests. Network collaborators are replaced
by in-memory fakes; device state goes to a temporary directory.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from edengates.adapters.base import ReadyState, WalletAdapter
from edengates.config import Settings
from edengates.core.rpc import Checkpoint
from edengates.errors import DataStoreError
from edengates.state.ledger import KeyValueStore

BLOCKHASH = str(Hash(bytes([7] * 32)))


class FakeRpc:
    """Ledger RPC stand-in with configurable accounts, statuses and failures."""

    def __init__(self, existing: Optional[set] = None):
        self.existing = set(existing or ())
        self.calls: List[tuple] = []
        self.sent: List[bytes] = []
        self.statuses: Dict[str, Optional[dict]] = {}
        self.confirm_error: Optional[BaseException] = None
        self.send_error: Optional[BaseException] = None
        self.next_signature = "5" * 88

    async def get_latest_blockhash(self, commitment: str = "confirmed") -> Checkpoint:
        self.calls.append(("get_latest_blockhash", commitment))
        return Checkpoint(blockhash=BLOCKHASH, last_valid_block_height=1_000)

    async def account_exists(self, pubkey: str) -> bool:
        self.calls.append(("account_exists", pubkey))
        return pubkey in self.existing

    async def send_raw_transaction(self, raw: bytes, options: Optional[dict] = None) -> str:
        self.calls.append(("send_raw_transaction", options))
        if self.send_error:
            raise self.send_error
        self.sent.append(raw)
        return self.next_signature

    async def confirm_transaction(self, signature: str, commitment: str = "confirmed",
                                  last_valid_block_height: Optional[int] = None,
                                  timeout: float = 60.0) -> dict:
        self.calls.append(("confirm_transaction", signature, commitment, last_valid_block_height))
        if self.confirm_error:
            raise self.confirm_error
        return {"confirmationStatus": commitment, "err": None}

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[dict]]:
        self.calls.append(("get_signature_statuses", tuple(signatures)))
        return [self.statuses.get(sig) for sig in signatures]


class FakeStore:
    """Data store stand-in that keeps vote rows in a list."""

    def __init__(self, founders: Optional[List[dict]] = None):
        self.founders = founders or []
        self.votes: List[Any] = []
        self.fail_with: Optional[str] = None
        self.insert_delay = 0

    async def get_active_founders_with_votes(self) -> List[dict]:
        return list(self.founders)

    async def insert_vote(self, record: Any) -> None:
        for _ in range(self.insert_delay):
            await asyncio.sleep(0)
        if self.fail_with:
            raise DataStoreError(self.fail_with)
        self.votes.append(record)


class FakeAdapter(WalletAdapter):
    """Minimal adapter used where only identity matters."""

    def __init__(self, name: str = "Fake"):
        super().__init__()
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def ready_state(self) -> ReadyState:
        return ReadyState.INSTALLED

    @property
    def public_key(self):
        return None

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def sign_transaction(self, transaction):
        return transaction

    async def send_transaction(self, transaction, connection, options=None) -> str:
        return "sig"


@pytest.fixture
def fake_rpc():
    return FakeRpc()


@pytest.fixture
def fake_store():
    return FakeStore(founders=[
        {"id": "f-1", "name": "Ada", "vote_count": 3},
        {"id": "f-2", "name": "Grace", "vote_count": 0},
    ])


@pytest.fixture
def kv_store(tmp_path):
    return KeyValueStore(tmp_path / "state.json")


@pytest.fixture
def voter():
    return Keypair()


@pytest.fixture
def mint():
    return Keypair().pubkey()


@pytest.fixture
def recipient():
    return Keypair().pubkey()


@pytest.fixture
def wallet_settings(tmp_path, mint, recipient):
    return Settings(
        wallet_enabled=True,
        fee_mint=str(mint),
        fee_decimals=6,
        rewards_wallet=str(recipient),
        state_dir=tmp_path,
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "WALLET_ENABLED", "ENABLE_WALLET", "SOLANA_RPC", "SOLANA_CLUSTER", "ME_MINT",
        "ME_DECIMALS", "REWARDS_WALLET", "REWARDS_VAULT", "VOTE_FEE", "COMPUTE_UNIT_LIMIT",
        "COMPUTE_UNIT_PRICE", "CONFIRM_TIMEOUT", "SUPABASE_URL", "SUPABASE_ANON_KEY",
        "EDENS_STATE_DIR", "EDENS_KEYPAIR_PATH", "EDENS_OPTIONAL_ADAPTERS",
    ):
        monkeypatch.delenv(name, raising=False)
