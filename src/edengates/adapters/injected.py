"""
Adapters for injected wallet providers.

Injected providers are not standardized: each may expose any subset of
connect, disconnect, sign and send. Every capability is looked up on its
own and missing ones fall back in a fixed order.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..errors import (
    AdapterUnavailable,
    MissingAddress,
    MissingSignature,
    UnsupportedOperation,
    UserRejected,
    WalletError,
)
from .base import ReadyState, WalletAdapter, coerce_pubkey, maybe_await
from .detector import detect

logger = logging.getLogger(__name__)

# Wallet providers report a declined request with this code
USER_REJECTED_CODE = 4001


def _capability(provider: Any, name: str) -> Any:
    if provider is None:
        return None
    if isinstance(provider, Mapping):
        return provider.get(name)
    return getattr(provider, name, None)


def _address_from_result(result: Any) -> Any:
    """Pull an address out of whatever a provider's connect() returned."""
    if result is None:
        return None
    if isinstance(result, (str, Pubkey)):
        return result
    return _capability(result, "public_key")


def is_user_rejection(error: BaseException) -> bool:
    """True if a provider error means the user declined the request."""
    code = getattr(error, "code", None)
    if code is None and error.args and isinstance(error.args[0], Mapping):
        code = error.args[0].get("code")
    if code == USER_REJECTED_CODE:
        return True
    message = str(error).lower()
    return "user rejected" in message or "rejected the request" in message


def _signature_from_result(result: Any) -> Optional[str]:
    if result is None:
        return None
    if isinstance(result, str):
        return result or None
    signature = _capability(result, "signature")
    return str(signature) if signature else None


class InjectedAdapter(WalletAdapter):
    """Wraps a loosely-typed provider object found on the provider scope."""

    def __init__(self, provider: Any, name: str = "Injected", url: str = ""):
        super().__init__()
        self.provider = provider
        self._name = name
        self._url = url
        self._cached_key: Optional[Pubkey] = None
        self._connecting = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    @property
    def ready_state(self) -> ReadyState:
        return ReadyState.INSTALLED if self.provider is not None else ReadyState.NOT_DETECTED

    @property
    def public_key(self) -> Optional[Pubkey]:
        # Some providers keep reporting a key after disconnect
        if self._cached_key is None:
            return None
        live = coerce_pubkey(_capability(self.provider, "public_key"))
        return live or self._cached_key

    @property
    def connecting(self) -> bool:
        return self._connecting

    def _require_provider(self) -> Any:
        if self.provider is None:
            raise AdapterUnavailable(f"{self.name} wallet not detected")
        return self.provider

    async def _invoke(self, method: Any, *args: Any) -> Any:
        """Call a provider method, turning a declined prompt into UserRejected."""
        try:
            return await maybe_await(method(*args))
        except WalletError:
            raise
        except Exception as e:
            if is_user_rejection(e):
                raise UserRejected(f"Request rejected in {self.name} wallet") from e
            raise

    async def connect(self) -> None:
        provider = self._require_provider()
        if self._connecting:
            return

        self._connecting = True
        try:
            native_connect = _capability(provider, "connect")
            # Some providers are always connected and have no connect()
            result = await self._invoke(native_connect) if native_connect else None

            resolved = coerce_pubkey(_address_from_result(result)) or coerce_pubkey(
                _capability(provider, "public_key")
            )
            self._cached_key = resolved or self._cached_key
            public_key = self.public_key
            if public_key is None:
                raise MissingAddress(f"{self.name} wallet did not provide a public key")
            logger.debug("Connected %s as %s", self.name, public_key)
            self.emit("connect", public_key)
        finally:
            self._connecting = False

    async def disconnect(self) -> None:
        native_disconnect = _capability(self.provider, "disconnect")
        try:
            if native_disconnect:
                await maybe_await(native_disconnect())
        finally:
            self._cached_key = None
            self.emit("disconnect")

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        sign = _capability(self.provider, "sign_transaction")
        if not sign:
            raise UnsupportedOperation(f"{self.name} wallet cannot sign transactions")
        return await self._invoke(sign, transaction)

    async def sign_all_transactions(self, transactions: Sequence[Transaction]) -> List[Transaction]:
        sign_all = _capability(self.provider, "sign_all_transactions")
        if sign_all:
            return list(await self._invoke(sign_all, list(transactions)))
        return await super().sign_all_transactions(transactions)

    async def send_transaction(
        self,
        transaction: Transaction,
        connection: Any,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        send = _capability(self.provider, "send_transaction")
        if send:
            return str(await self._invoke(send, transaction, connection, options))

        sign_and_send = _capability(self.provider, "sign_and_send_transaction")
        if sign_and_send:
            result = await self._invoke(sign_and_send, transaction, connection, options)
            signature = _signature_from_result(result)
            if not signature:
                raise MissingSignature(f"{self.name} wallet did not return a transaction signature")
            return signature

        signed = await self.sign_transaction(transaction)
        return await connection.send_raw_transaction(bytes(signed), options)


class BrandAdapter(InjectedAdapter):
    """
    A known wallet brand that is always listed.

    The provider is looked up again on every connect so a wallet
    installed or reloaded after startup is found.
    """

    brand_name = ""
    brand_url = ""
    provider_keys: Sequence[str] = ()

    def __init__(self, scope: Any = None):
        super().__init__(None, name=self.brand_name, url=self.brand_url)
        self.scope = scope

    def _detect(self) -> Any:
        return detect(self.provider_keys, self.scope)

    @property
    def ready_state(self) -> ReadyState:
        if self.provider is not None or self._detect() is not None:
            return ReadyState.INSTALLED
        return ReadyState.NOT_DETECTED

    async def connect(self) -> None:
        self.provider = self._detect()
        await super().connect()

    async def disconnect(self) -> None:
        try:
            await super().disconnect()
        finally:
            self.provider = None


class PhantomWalletAdapter(BrandAdapter):
    brand_name = "Phantom"
    brand_url = "https://phantom.app"
    provider_keys = ("phantom.solana", "solana")


class SolflareWalletAdapter(BrandAdapter):
    brand_name = "Solflare"
    brand_url = "https://solflare.com"
    provider_keys = ("solflare",)
