"""Error types raised by the wallet, fee and vote layers."""

from typing import Optional


class EdenGatesError(Exception):
    """Base class for all edengates errors."""


class ConfigurationError(EdenGatesError, ValueError):
    """Fee, token or endpoint configuration is missing or invalid."""


class FeatureDisabled(EdenGatesError):
    """Wallet support is administratively turned off."""


class WalletError(EdenGatesError):
    """Base class for wallet adapter failures."""


class AdapterUnavailable(WalletError):
    """The selected wallet is not installed or no wallet is selected."""


class UnsupportedOperation(WalletError):
    """The wallet provider does not expose the requested capability."""


class MissingAddress(WalletError):
    """The wallet connected but never reported a public address."""


class MissingSignature(WalletError):
    """The wallet submitted a transaction but returned no signature."""


class UserRejected(WalletError):
    """The user declined the request in their wallet."""


class NotConnected(WalletError):
    """An operation needs a connected wallet."""


class RpcError(EdenGatesError, RuntimeError):
    """The ledger RPC endpoint returned an error or was unreachable."""


class _SignatureError(EdenGatesError):
    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature

    def __str__(self) -> str:
        message = super().__str__()
        if self.signature:
            return f"{message} (tx: {self.signature})"
        return message


class TransactionFailed(_SignatureError):
    """The ledger executed the transaction and reported an error."""


class ConfirmationTimeout(_SignatureError):
    """
    Confirmation did not arrive in time.

    The on-chain outcome is unknown: the transfer may still land.
    """


class DataStoreError(_SignatureError):
    """
    The data store rejected or failed a request.

    When raised after a fee transfer, ``signature`` names the spent
    transaction so the voter can ask for manual reconciliation.
    """


class VoteRejected(EdenGatesError):
    """A vote was refused before any network call."""

    def __init__(self, message: str, founder_id: str):
        super().__init__(message)
        self.founder_id = founder_id


class AlreadyVoted(VoteRejected):
    """This device already voted for the founder."""


class VoteInProgress(VoteRejected):
    """A vote for the founder is already in flight."""


class VotePendingReconciliation(VoteRejected):
    """
    A fee for the founder was spent but its vote is not recorded yet.

    ``signature`` names that transaction; ``reconcile`` resolves it.
    """

    def __init__(self, message: str, founder_id: str, signature: str):
        super().__init__(message, founder_id)
        self.signature = signature
