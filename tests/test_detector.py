"""Tests for injected provider detection."""

from types import SimpleNamespace

from edengates.adapters.detector import detect, is_provider


class _Provider:
    async def connect(self):
        return None


def test_detect_without_scope_returns_none():
    assert detect(["phantom", "solflare"]) is None


def test_detect_returns_first_matching_key_in_order():
    first, second = _Provider(), _Provider()
    scope = {"backpack": second, "Backpack": first}

    assert detect(["Backpack", "backpack"], scope) is first
    assert detect(["backpack", "Backpack"], scope) is second


def test_detect_skips_values_that_are_not_providers():
    provider = _Provider()
    scope = {"magicEden": "not a provider", "magiceden": provider, "other": object()}

    assert detect(["magicEden", "other", "magiceden"], scope) is provider


def test_detect_follows_dotted_keys_through_objects():
    provider = SimpleNamespace(public_key="11111111111111111111111111111111")
    scope = SimpleNamespace(phantom=SimpleNamespace(solana=provider))

    assert detect(["phantom.solana"], scope) is provider
    assert detect(["phantom.ethereum"], scope) is None


def test_mapping_shaped_provider_is_recognized():
    assert is_provider({"sign_transaction": lambda tx: tx})
    assert not is_provider({"name": "wallet"})
    assert not is_provider(None)
    assert not is_provider(42)
