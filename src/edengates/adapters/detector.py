"""
Injected provider detection.

Wallet extensions expose provider objects on a shared global scope. In a
Python process that scope is whatever the host hands us: a mapping, a
module or any attribute bag. Detection is a single pass with no caching,
so a reloaded extension is picked up on the next call.
"""

from typing import Any, Mapping, Optional, Sequence

# Any one of these marks an object as a wallet provider
PROVIDER_MARKERS = ("public_key", "connect", "sign_transaction", "send_transaction")

_MISSING = object()


def _lookup(scope: Any, key: str) -> Any:
    if isinstance(scope, Mapping):
        return scope.get(key, _MISSING)
    return getattr(scope, key, _MISSING)


def _resolve(scope: Any, dotted_key: str) -> Any:
    current = scope
    for part in dotted_key.split("."):
        if current is None or current is _MISSING:
            return _MISSING
        current = _lookup(current, part)
    return current


def is_provider(value: Any) -> bool:
    """True if ``value`` structurally looks like a wallet provider."""
    if value is None or value is _MISSING or isinstance(value, (str, bytes, int, float, bool)):
        return False
    if isinstance(value, Mapping):
        return any(marker in value for marker in PROVIDER_MARKERS)
    return any(hasattr(value, marker) for marker in PROVIDER_MARKERS)


def detect(candidate_keys: Sequence[str], scope: Any = None) -> Optional[Any]:
    """
    Return the first provider found under ``candidate_keys``.

    Keys may be dotted (``"phantom.solana"``). With no scope, or when no
    key holds a provider, returns None.
    """
    if scope is None:
        return None
    for key in candidate_keys:
        candidate = _resolve(scope, key)
        if is_provider(candidate):
            return candidate
    return None
