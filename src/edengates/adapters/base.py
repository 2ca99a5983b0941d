"""Base Wallet Adapter interface."""

import inspect
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from solders.pubkey import Pubkey
from solders.transaction import Transaction


class ReadyState(Enum):
    """Whether the wallet behind an adapter can be used right now."""
    INSTALLED = "installed"
    NOT_DETECTED = "not_detected"
    LOADABLE = "loadable"


async def maybe_await(value: Any) -> Any:
    """Resolve provider results that may or may not be awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


def coerce_pubkey(value: Any) -> Optional[Pubkey]:
    """Turn a provider's address field into a Pubkey, or None if unusable."""
    if value is None:
        return None
    if isinstance(value, Pubkey):
        return value
    text = value if isinstance(value, str) else str(value)
    try:
        return Pubkey.from_string(text)
    except ValueError:
        return None


class WalletAdapter(ABC):
    """
    Uniform capability set every wallet is normalized into.

    Adapters emit ``connect`` (with the Pubkey) and ``disconnect`` events
    to registered listeners.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable[..., None]]] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    def url(self) -> str:
        return ""

    @property
    @abstractmethod
    def ready_state(self) -> ReadyState:
        pass

    @property
    @abstractmethod
    def public_key(self) -> Optional[Pubkey]:
        pass

    @property
    def connected(self) -> bool:
        return self.public_key is not None

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        pass

    async def sign_all_transactions(self, transactions: Sequence[Transaction]) -> List[Transaction]:
        """Sign in order; the first failure discards everything signed so far."""
        signed = []
        for transaction in transactions:
            signed.append(await self.sign_transaction(transaction))
        return signed

    @abstractmethod
    async def send_transaction(
        self,
        transaction: Transaction,
        connection: Any,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        pass

    def on(self, event: str, listener: Callable[..., None]) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Callable[..., None]) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener(*args)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} {self.ready_state.value}>"
