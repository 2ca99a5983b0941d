"""
Transaction Builder: Produces the fee transfer that pays for a vote.

Handles:
- Base-unit amount conversion (round half to even)
- Associated token account derivation and on-demand creation
- Compute budget hints
- SPL TransferChecked encoding
"""

import logging
import struct
from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple, Union

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")

# Instruction tags
SET_COMPUTE_UNIT_LIMIT = 2
SET_COMPUTE_UNIT_PRICE = 3
TRANSFER_CHECKED = 12

MAX_DECIMALS = 255  # u8
MAX_BASE_UNITS = 2**64 - 1  # u64

PubkeyLike = Union[Pubkey, str]
AmountLike = Union[Decimal, str, int, float]


def to_pubkey(value: PubkeyLike, label: str = "address") -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(str(value))
    except ValueError:
        raise ConfigurationError(f"Invalid {label}: {value!r}")


def to_base_units(amount: AmountLike, decimals: Any) -> int:
    """
    Convert a decimal token amount to integer base units.

    Rounds half to even. Raises ConfigurationError for a non-positive
    amount, bad decimals, or a result that is zero or beyond u64.
    """
    if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= MAX_DECIMALS:
        raise ConfigurationError(f"Token decimals must be an integer from 0 to {MAX_DECIMALS}, got {decimals!r}")
    try:
        # str() keeps floats like 0.1 from dragging binary noise along
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        raise ConfigurationError(f"Invalid token amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ConfigurationError(f"Token amount must be positive, got {amount!r}")

    base_units = int((value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_HALF_EVEN))
    if base_units <= 0:
        raise ConfigurationError(
            f"Unable to derive a token amount for {amount} with {decimals} decimals."
        )
    if base_units > MAX_BASE_UNITS:
        raise ConfigurationError(
            f"Token amount {amount} with {decimals} decimals exceeds the largest transferable amount."
        )
    return base_units


def get_associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program_id), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def set_compute_unit_limit(units: int) -> Instruction:
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        data=struct.pack("<BI", SET_COMPUTE_UNIT_LIMIT, units),
        accounts=[],
    )


def set_compute_unit_price(micro_lamports: int) -> Instruction:
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        data=struct.pack("<BQ", SET_COMPUTE_UNIT_PRICE, micro_lamports),
        accounts=[],
    )


def create_associated_token_account(
    payer: Pubkey,
    associated_account: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        data=b"",
        accounts=[
            AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=associated_account, is_signer=False, is_writable=True),
            AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
            AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=token_program_id, is_signer=False, is_writable=False),
        ],
    )


def transfer_checked(
    source: Pubkey,
    mint: Pubkey,
    destination: Pubkey,
    owner: Pubkey,
    amount: int,
    decimals: int,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        program_id=token_program_id,
        data=struct.pack("<BQB", TRANSFER_CHECKED, amount, decimals),
        accounts=[
            AccountMeta(pubkey=source, is_signer=False, is_writable=True),
            AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
            AccountMeta(pubkey=owner, is_signer=True, is_writable=False),
        ],
    )


@dataclass
class FeeStep:
    """One labelled instruction of a fee transaction."""
    kind: str
    instruction: Instruction
    detail: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FeeTransaction:
    """
    Ordered fee instructions plus the payer and checkpoint stamped at send time.

    Once sealed (handed to a signer) the transaction can no longer change.
    """
    steps: List[FeeStep] = field(default_factory=list)
    amount: int = 0
    fee_payer: Optional[Pubkey] = None
    recent_blockhash: Optional[Hash] = None
    _sealed: bool = field(default=False, repr=False)

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def instructions(self) -> List[Instruction]:
        return [step.instruction for step in self.steps]

    @property
    def kinds(self) -> List[str]:
        return [step.kind for step in self.steps]

    def add(self, kind: str, instruction: Instruction, **detail: Any) -> None:
        self._check_mutable()
        self.steps.append(FeeStep(kind=kind, instruction=instruction, detail=detail))

    def stamp(self, fee_payer: Pubkey, recent_blockhash: Union[Hash, str]) -> None:
        self._check_mutable()
        self.fee_payer = fee_payer
        if isinstance(recent_blockhash, str):
            recent_blockhash = Hash.from_string(recent_blockhash)
        self.recent_blockhash = recent_blockhash

    def seal(self) -> None:
        self._sealed = True

    def compile(self) -> Transaction:
        """Seal and return an unsigned legacy transaction."""
        if self.fee_payer is None or self.recent_blockhash is None:
            raise ValueError("Transaction needs a fee payer and recent blockhash before compiling")
        self.seal()
        message = Message.new_with_blockhash(self.instructions, self.fee_payer, self.recent_blockhash)
        return Transaction.new_unsigned(message)

    def _check_mutable(self) -> None:
        if self._sealed:
            raise RuntimeError("Transaction was handed to a signer and can no longer change")


class FeeTransactionBuilder:
    """
    Builds the vote fee transfer.

    The only network calls are the two account existence checks; given
    the same inputs and on-chain state the output is identical.
    """

    def __init__(
        self,
        rpc: Any,
        mint: PubkeyLike,
        compute_unit_limit: int = 300_000,
        compute_unit_price: int = 1_000,
        token_program_id: Pubkey = TOKEN_PROGRAM_ID,
    ):
        """
        Initialize fee builder.

        Args:
            rpc: Anything with ``async account_exists(address)``
            mint: Fee token mint
            compute_unit_limit: Compute units requested for the transaction
            compute_unit_price: Priority price in micro-lamports per unit
            token_program_id: Token program owning the mint
        """
        self.rpc = rpc
        self.mint = to_pubkey(mint, "fee token mint")
        self.compute_unit_limit = compute_unit_limit
        self.compute_unit_price = compute_unit_price
        self.token_program_id = token_program_id

    async def build(
        self,
        payer: PubkeyLike,
        fee_amount: AmountLike,
        decimals: int,
        recipient_owner: PubkeyLike,
    ) -> FeeTransaction:
        # Validate everything before touching the network
        amount = to_base_units(fee_amount, decimals)
        payer_key = to_pubkey(payer, "payer")
        recipient_key = to_pubkey(recipient_owner, "fee recipient")

        payer_account, recipient_account = self.derive_accounts(payer_key, recipient_key)
        missing = await self._missing_accounts(
            [(payer_account, payer_key), (recipient_account, recipient_key)]
        )

        tx = FeeTransaction(amount=amount)
        tx.add("compute_unit_limit", set_compute_unit_limit(self.compute_unit_limit),
               units=self.compute_unit_limit)
        tx.add("compute_unit_price", set_compute_unit_price(self.compute_unit_price),
               micro_lamports=self.compute_unit_price)

        # The payer funds both creations so a new voter is never blocked
        # by the recipient's account not existing yet
        for account, owner in missing:
            tx.add(
                "create_account",
                create_associated_token_account(payer_key, account, owner, self.mint, self.token_program_id),
                account=str(account),
                owner=str(owner),
            )

        tx.add(
            "transfer",
            transfer_checked(
                payer_account, self.mint, recipient_account, payer_key,
                amount, decimals, self.token_program_id,
            ),
            source=str(payer_account),
            destination=str(recipient_account),
            amount=amount,
            decimals=decimals,
        )

        logger.debug("Built fee transaction %s for %s", tx.kinds, payer_key)
        return tx

    def derive_accounts(self, payer: Pubkey, recipient_owner: Pubkey) -> Tuple[Pubkey, Pubkey]:
        return (
            get_associated_token_address(payer, self.mint, self.token_program_id),
            get_associated_token_address(recipient_owner, self.mint, self.token_program_id),
        )

    async def _missing_accounts(
        self,
        accounts: List[Tuple[Pubkey, Pubkey]],
    ) -> List[Tuple[Pubkey, Pubkey]]:
        missing = []
        seen = set()
        for account, owner in accounts:
            # Paying yourself derives the same account twice
            if account in seen:
                continue
            seen.add(account)
            if not await self.rpc.account_exists(str(account)):
                missing.append((account, owner))
        return missing
