"""
Wallet session facade.

Every caller talks to a session, whether or not wallet support is on.
When it is off the session is a stub whose mutating calls all raise
FeatureDisabled.
"""

import logging
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Union

from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..adapters.base import WalletAdapter
from ..adapters.registry import AdapterRegistry
from ..errors import AdapterUnavailable, FeatureDisabled, MissingAddress, NotConnected, UnsupportedOperation, WalletError
from .tx_builder import FeeTransaction

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "Wallet support is disabled. Set WALLET_ENABLED=true to {action}."


class SessionState(Enum):
    DISABLED = "disabled"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class WalletSession:
    """
    The process-wide wallet facade.

    Follows the selected adapter: an adapter-side disconnect moves the
    session back to DISCONNECTED.
    """

    def __init__(
        self,
        rpc: Any,
        registry: Optional[AdapterRegistry] = None,
        adapter: Optional[WalletAdapter] = None,
        commitment: str = "confirmed",
        confirm_timeout: float = 60.0,
    ):
        """
        Args:
            rpc: Ledger RPC client used to stamp, submit and confirm
            registry: Source of selectable adapters
            adapter: Adapter selected up front
            commitment: Durability level awaited after submission
            confirm_timeout: Seconds to wait for that level
        """
        self.rpc = rpc
        self.registry = registry
        self.commitment = commitment
        self.confirm_timeout = confirm_timeout
        self._state = SessionState.DISCONNECTED
        self._adapter: Optional[WalletAdapter] = None
        self._public_key: Optional[Pubkey] = None
        self._listeners: List[Callable[["WalletSession"], None]] = []
        if adapter is not None:
            self.select(adapter)

    # State

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def enabled(self) -> bool:
        return True

    @property
    def connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def busy(self) -> bool:
        return self._state in (SessionState.CONNECTING, SessionState.DISCONNECTING)

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self._public_key if self.connected else None

    @property
    def address(self) -> Optional[str]:
        key = self.public_key
        return str(key) if key is not None else None

    @property
    def adapter(self) -> Optional[WalletAdapter]:
        return self._adapter

    @property
    def adapters(self) -> List[WalletAdapter]:
        return self.registry.build_adapter_list() if self.registry else []

    def on_change(self, listener: Callable[["WalletSession"], None]) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: SessionState, public_key: Optional[Pubkey] = None) -> None:
        self._state = state
        self._public_key = public_key if state is SessionState.CONNECTED else None
        for listener in list(self._listeners):
            listener(self)

    # Adapter selection

    def select(self, adapter: Union[WalletAdapter, str]) -> WalletAdapter:
        """Choose the adapter the next connect() will use."""
        if isinstance(adapter, str):
            found = self.registry.get(adapter) if self.registry else None
            if found is None:
                raise AdapterUnavailable(f"Unknown wallet: {adapter}")
            adapter = found

        if adapter is self._adapter:
            return adapter
        if self._state is not SessionState.DISCONNECTED:
            raise WalletError("Disconnect the current wallet before switching")

        if self._adapter is not None:
            self._adapter.off("disconnect", self._on_adapter_disconnect)
        self._adapter = adapter
        adapter.on("disconnect", self._on_adapter_disconnect)
        return adapter

    def _on_adapter_disconnect(self, *_args: Any) -> None:
        if self._state is SessionState.CONNECTED:
            logger.info("%s disconnected", self._adapter.name if self._adapter else "Wallet")
            self._set_state(SessionState.DISCONNECTED)

    # Mutating calls

    async def connect(self) -> None:
        if self._state in (SessionState.CONNECTING, SessionState.CONNECTED):
            return
        if self._adapter is None:
            raise AdapterUnavailable("Select a wallet before connecting")

        adapter = self._adapter
        self._set_state(SessionState.CONNECTING)
        try:
            await adapter.connect()
            public_key = adapter.public_key
            if public_key is None:
                raise MissingAddress(f"{adapter.name} wallet did not provide a public key")
        except BaseException:
            self._set_state(SessionState.DISCONNECTED)
            raise
        self._set_state(SessionState.CONNECTED, public_key)
        logger.info("Wallet connected: %s (%s)", public_key, adapter.name)

    async def disconnect(self) -> None:
        if self._state is not SessionState.CONNECTED or self._adapter is None:
            return
        self._set_state(SessionState.DISCONNECTING)
        try:
            await self._adapter.disconnect()
        finally:
            self._set_state(SessionState.DISCONNECTED)

    def _require_connected(self) -> WalletAdapter:
        if not self.connected or self._adapter is None:
            raise NotConnected("Connect a wallet before sending transactions")
        return self._adapter

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        return await self._require_connected().sign_transaction(transaction)

    async def sign_all_transactions(self, transactions: Sequence[Transaction]) -> List[Transaction]:
        return await self._require_connected().sign_all_transactions(transactions)

    async def sign_and_send(self, transaction: FeeTransaction) -> str:
        """
        Stamp, submit and confirm a transaction; return its signature.

        Raises:
            NotConnected: No wallet is connected
            ConfirmationTimeout: Submitted but not confirmed in time; the
                outcome is unknown, not failed
        """
        adapter = self._require_connected()
        payer = self._public_key

        checkpoint = await self.rpc.get_latest_blockhash(self.commitment)
        transaction.stamp(payer, checkpoint.blockhash)
        compiled = transaction.compile()

        signature = await adapter.send_transaction(
            compiled,
            self.rpc,
            {"preflightCommitment": self.commitment},
        )
        if not signature:
            raise UnsupportedOperation(f"{adapter.name} returned no signature")
        logger.info("Submitted transaction %s", signature)

        await self.rpc.confirm_transaction(
            signature,
            commitment=self.commitment,
            last_valid_block_height=checkpoint.last_valid_block_height,
            timeout=self.confirm_timeout,
        )
        return signature


class DisabledWalletSession:
    """Stand-in used when wallet support is administratively off."""

    state = SessionState.DISABLED
    enabled = False
    connected = False
    busy = False
    public_key = None
    address = None
    adapter = None

    @property
    def adapters(self) -> List[WalletAdapter]:
        return []

    def on_change(self, listener: Callable[[Any], None]) -> None:
        pass

    def select(self, adapter: Any) -> WalletAdapter:
        raise FeatureDisabled(DISABLED_MESSAGE.format(action="choose a wallet"))

    async def connect(self) -> None:
        raise FeatureDisabled(DISABLED_MESSAGE.format(action="connect"))

    async def disconnect(self) -> None:
        raise FeatureDisabled(DISABLED_MESSAGE.format(action="disconnect"))

    async def sign_transaction(self, transaction: Any) -> Any:
        raise FeatureDisabled(DISABLED_MESSAGE.format(action="sign transactions"))

    async def sign_all_transactions(self, transactions: Any) -> Any:
        raise FeatureDisabled(DISABLED_MESSAGE.format(action="sign transactions"))

    async def sign_and_send(self, transaction: Any) -> str:
        raise FeatureDisabled(DISABLED_MESSAGE.format(action="sign transactions"))


def create_wallet_session(
    enabled: bool,
    rpc: Any = None,
    registry: Optional[AdapterRegistry] = None,
    **kwargs: Any,
) -> Union[WalletSession, DisabledWalletSession]:
    """Return a live session, or the disabled stub when wallets are off."""
    if not enabled:
        return DisabledWalletSession()
    return WalletSession(rpc, registry=registry, **kwargs)
