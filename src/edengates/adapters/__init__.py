"""Wallet adapters for Phantom, Solflare, Backpack, Magic Eden and local keypairs."""

from .base import ReadyState, WalletAdapter, coerce_pubkey
from .detector import detect, is_provider
from .injected import BrandAdapter, InjectedAdapter, PhantomWalletAdapter, SolflareWalletAdapter
from .keypair import LocalKeypairAdapter, load_keypair
from .registry import OPTIONAL_ADAPTERS, AdapterRegistry, OptionalAdapterSpec

__all__ = [
    "ReadyState",
    "WalletAdapter",
    "coerce_pubkey",
    "detect",
    "is_provider",
    "BrandAdapter",
    "InjectedAdapter",
    "PhantomWalletAdapter",
    "SolflareWalletAdapter",
    "LocalKeypairAdapter",
    "load_keypair",
    "OPTIONAL_ADAPTERS",
    "AdapterRegistry",
    "OptionalAdapterSpec",
]
