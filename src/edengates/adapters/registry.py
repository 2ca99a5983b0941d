"""
Adapter registry.

Known wallets are listed immediately. Optional wallet packages are
imported in the background, each attempt isolated from the others, and
brands whose package is missing fall back to their injected provider.
"""

import asyncio
import importlib
import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .base import WalletAdapter
from .detector import detect
from .injected import InjectedAdapter, PhantomWalletAdapter, SolflareWalletAdapter

logger = logging.getLogger(__name__)

Importer = Callable[[str], Awaitable[ModuleType]]


@dataclass(frozen=True)
class OptionalAdapterSpec:
    """How to find one optional wallet brand."""
    key: str
    label: str
    url: str
    modules: Sequence[str]
    exports: Sequence[str]
    provider_keys: Sequence[str]


OPTIONAL_ADAPTERS: List[OptionalAdapterSpec] = [
    OptionalAdapterSpec(
        key="backpack",
        label="Backpack (Injected)",
        url="https://www.backpack.app",
        modules=("backpack_wallet_adapter", "solana_wallet_adapter_backpack"),
        exports=("BackpackWalletAdapter", "default"),
        provider_keys=("backpack", "Backpack"),
    ),
    OptionalAdapterSpec(
        key="magic_eden",
        label="Magic Eden (Injected)",
        url="https://magiceden.io",
        modules=("magiceden_wallet_adapter",),
        exports=("MagicEdenWalletAdapter", "default"),
        provider_keys=("magicEden", "magiceden"),
    ),
]


async def import_module(name: str) -> ModuleType:
    return await asyncio.to_thread(importlib.import_module, name)


def extract_adapter_factory(module: Any, exports: Sequence[str]) -> Optional[Callable[[], WalletAdapter]]:
    """Return the first callable export among ``exports``."""
    for export in exports:
        candidate = getattr(module, export, None)
        if callable(candidate):
            return candidate
    return None


class AdapterRegistry:
    """Owns the ordered list of wallet adapters offered to the user."""

    def __init__(
        self,
        scope: Any = None,
        static_adapters: Optional[Sequence[WalletAdapter]] = None,
        optional_specs: Sequence[OptionalAdapterSpec] = tuple(OPTIONAL_ADAPTERS),
        importer: Optional[Importer] = None,
    ):
        """
        Args:
            scope: Provider scope searched for injected wallets
            static_adapters: Always-listed adapters, highest priority first
                (defaults to Phantom then Solflare)
            optional_specs: Optional brands to discover
            importer: Async module loader (defaults to importlib)
        """
        self.scope = scope
        if static_adapters is None:
            static_adapters = [PhantomWalletAdapter(scope), SolflareWalletAdapter(scope)]
        self._static: List[WalletAdapter] = list(static_adapters)
        self._optional_specs = list(optional_specs)
        self._importer = importer or import_module
        self._optional: Dict[str, WalletAdapter] = {}
        self._disposed = False

    def build_adapter_list(self) -> List[WalletAdapter]:
        """Static adapters first, then whatever discovery has added."""
        return self._static + list(self._optional.values())

    def get(self, name: str) -> Optional[WalletAdapter]:
        wanted = name.lower()
        for adapter in self.build_adapter_list():
            if adapter.name.lower() == wanted:
                return adapter
        return None

    async def discover_optional_adapters(self) -> List[WalletAdapter]:
        """
        Try every optional brand concurrently and append the ones found.

        Never raises. Safe to call again: brands already present are kept
        as they are.
        """
        pending = [spec for spec in self._optional_specs if spec.key not in self._optional]
        results = await asyncio.gather(
            *(self._load_optional(spec) for spec in pending),
            return_exceptions=True,
        )

        if self._disposed:
            logger.debug("Registry disposed during discovery, dropping %d results", len(results))
            return self.build_adapter_list()

        for spec, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.warning("Optional wallet %s failed to load: %s", spec.key, result)
                continue
            if result is None or spec.key in self._optional:
                continue
            self._optional[spec.key] = result
            logger.info("Wallet adapter available: %s", result.name)

        return self.build_adapter_list()

    async def _load_optional(self, spec: OptionalAdapterSpec) -> Optional[WalletAdapter]:
        for module_name in spec.modules:
            try:
                module = await self._importer(module_name)
            except ImportError:
                logger.debug("Optional wallet package %s not installed", module_name)
                continue
            except Exception as e:
                logger.warning("Optional wallet package %s failed to import: %s", module_name, e)
                continue

            factory = extract_adapter_factory(module, spec.exports)
            if factory is None:
                logger.debug("%s exports no adapter among %s", module_name, list(spec.exports))
                continue
            try:
                return factory()
            except Exception as e:
                logger.warning("Adapter from %s could not be constructed: %s", module_name, e)

        provider = detect(spec.provider_keys, self.scope)
        if provider is None:
            return None
        return InjectedAdapter(provider, name=spec.label, url=spec.url)

    def dispose(self) -> None:
        """Stop applying discovery results; in-flight imports are left to finish."""
        self._disposed = True
