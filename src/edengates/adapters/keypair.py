"""Local keypair wallet for command-line voting."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..errors import AdapterUnavailable
from .base import ReadyState, WalletAdapter

logger = logging.getLogger(__name__)


def load_keypair(path: Path) -> Keypair:
    """Read a Solana CLI keypair file (JSON array of 64 bytes)."""
    with open(path) as f:
        raw = json.load(f)
    return Keypair.from_bytes(bytes(raw))


class LocalKeypairAdapter(WalletAdapter):
    """
    Signs with a keypair held by this process.

    Either pass a Keypair directly or a path that is read on connect.
    """

    def __init__(self, keypair: Optional[Keypair] = None, keypair_path: Optional[Path] = None):
        super().__init__()
        self._keypair = keypair
        self._keypair_path = keypair_path
        self._connected = False

    @property
    def name(self) -> str:
        return "Local Keypair"

    @property
    def ready_state(self) -> ReadyState:
        if self._keypair is not None:
            return ReadyState.INSTALLED
        if self._keypair_path is not None and self._keypair_path.exists():
            return ReadyState.INSTALLED
        return ReadyState.NOT_DETECTED

    @property
    def public_key(self) -> Optional[Pubkey]:
        if not self._connected or self._keypair is None:
            return None
        return self._keypair.pubkey()

    async def connect(self) -> None:
        if self._keypair is None:
            if self._keypair_path is None or not self._keypair_path.exists():
                raise AdapterUnavailable(f"Keypair file not found: {self._keypair_path}")
            try:
                self._keypair = load_keypair(self._keypair_path)
            except (OSError, ValueError) as e:
                raise AdapterUnavailable(f"Unable to read keypair {self._keypair_path}: {e}") from e
        self._connected = True
        self.emit("connect", self._keypair.pubkey())

    async def disconnect(self) -> None:
        self._connected = False
        self.emit("disconnect")

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        if not self._connected or self._keypair is None:
            raise AdapterUnavailable("Local keypair is not connected")
        transaction.sign([self._keypair], transaction.message.recent_blockhash)
        return transaction

    async def send_transaction(
        self,
        transaction: Transaction,
        connection: Any,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        signed = await self.sign_transaction(transaction)
        return await connection.send_raw_transaction(bytes(signed), options)
