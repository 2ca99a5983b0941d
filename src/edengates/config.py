"""
Runtime configuration.

Values come from the process environment, optionally seeded from the
nearest ``.env`` file. Wallet-disabled deployments need none of the
token settings.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from .errors import ConfigurationError


DEVNET_RPC = "https://api.devnet.solana.com"
MAINNET_RPC = "https://api.mainnet-beta.solana.com"

DEFAULT_VOTE_FEE = "0.5"
DEFAULT_DECIMALS = 6
DEFAULT_COMPUTE_UNIT_LIMIT = 300_000
DEFAULT_COMPUTE_UNIT_PRICE = 1_000  # micro-lamports per compute unit

_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_env() -> None:
    """Load .env file from parent directories."""
    current = Path.cwd()
    for _ in range(5):  # Check up to 5 parent dirs
        env_file = current / ".env"
        if env_file.exists():
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, value = line.split("=", 1)
                        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
            break
        current = current.parent


def _env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip()


def _env_flag(*names: str) -> bool:
    return any(_env(name).lower() in _TRUE_VALUES for name in names)


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        return int(raw, 10)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = _env(name) or default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(f"{name} must be a decimal number, got {raw!r}")


def _env_csv(name: str) -> Optional[List[str]]:
    raw = _env(name)
    if not raw:
        return None
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Settings:
    """Configuration for the wallet, fee and data-store layers."""
    wallet_enabled: bool = False
    cluster: str = "devnet"
    rpc_url: str = DEVNET_RPC

    # Fee token
    fee_mint: str = ""
    fee_decimals: int = DEFAULT_DECIMALS
    rewards_wallet: str = ""
    vote_fee: Decimal = field(default_factory=lambda: Decimal(DEFAULT_VOTE_FEE))
    compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT
    compute_unit_price: int = DEFAULT_COMPUTE_UNIT_PRICE
    confirm_timeout: float = 60.0

    # Data store
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Device-local state
    state_dir: Path = field(default_factory=lambda: Path.home() / ".edens-gates")
    keypair_path: Optional[Path] = None
    # None means every known optional wallet brand
    optional_adapters: Optional[List[str]] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        cluster = _env("SOLANA_CLUSTER", "devnet")
        rpc_url = _env("SOLANA_RPC") or (MAINNET_RPC if cluster == "mainnet-beta" else DEVNET_RPC)

        state_dir = _env("EDENS_STATE_DIR")
        keypair_path = _env("EDENS_KEYPAIR_PATH")

        return cls(
            # Both spellings are accepted for older deployments
            wallet_enabled=_env_flag("WALLET_ENABLED", "ENABLE_WALLET"),
            cluster=cluster,
            rpc_url=rpc_url,
            fee_mint=_env("ME_MINT"),
            fee_decimals=_env_int("ME_DECIMALS", DEFAULT_DECIMALS),
            rewards_wallet=_env("REWARDS_WALLET") or _env("REWARDS_VAULT"),
            vote_fee=_env_decimal("VOTE_FEE", DEFAULT_VOTE_FEE),
            compute_unit_limit=_env_int("COMPUTE_UNIT_LIMIT", DEFAULT_COMPUTE_UNIT_LIMIT),
            compute_unit_price=_env_int("COMPUTE_UNIT_PRICE", DEFAULT_COMPUTE_UNIT_PRICE),
            confirm_timeout=float(_env_int("CONFIRM_TIMEOUT", 60)),
            supabase_url=_env("SUPABASE_URL"),
            supabase_anon_key=_env("SUPABASE_ANON_KEY"),
            state_dir=Path(state_dir).expanduser() if state_dir else Path.home() / ".edens-gates",
            keypair_path=Path(keypair_path).expanduser() if keypair_path else None,
            optional_adapters=_env_csv("EDENS_OPTIONAL_ADAPTERS"),
        )

    def require_fee_accounts(self) -> None:
        """Raise unless the fee mint and recipient are configured."""
        if not self.fee_mint or not self.rewards_wallet:
            raise ConfigurationError("Wallet voting requires ME_MINT and REWARDS_WALLET.")
