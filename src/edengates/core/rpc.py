"""
Async Solana JSON-RPC client.

Covers the calls the fee flow needs: checkpoint fetch, account
existence, raw submission and confirmation polling.
"""

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..errors import ConfirmationTimeout, RpcError, TransactionFailed

logger = logging.getLogger(__name__)

COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


@dataclass(frozen=True)
class Checkpoint:
    """A recent blockhash and the last block height it stays valid for."""
    blockhash: str
    last_valid_block_height: int


def commitment_reached(status: Optional[str], wanted: str) -> bool:
    if status is None:
        return False
    return COMMITMENT_RANK.get(status, -1) >= COMMITMENT_RANK[wanted]


class SolanaRpcClient:
    """
    Simple async Solana RPC client.

    A fresh HTTP session is opened per call so the client can be shared
    across event loops.
    """

    def __init__(self, rpc_url: str, request_timeout: float = 30.0):
        """
        Initialize RPC client.

        Args:
            rpc_url: RPC endpoint URL
            request_timeout: Seconds allowed per HTTP request
        """
        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self._request_id = 0

    async def _call(self, method: str, params: list = None) -> Any:
        """Make an RPC call."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            ) as session:
                async with session.post(self.rpc_url, json=payload) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise RpcError(f"{method} failed with HTTP {response.status}: {body[:200]}")
                    result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RpcError(f"{method} request to {self.rpc_url} failed: {e}") from e

        if "error" in result:
            raise RpcError(f"RPC error: {result['error']}")
        return result.get("result")

    async def get_latest_blockhash(self, commitment: str = "confirmed") -> Checkpoint:
        """Get latest blockhash."""
        result = await self._call("getLatestBlockhash", [{"commitment": commitment}])
        value = result["value"]
        return Checkpoint(
            blockhash=value["blockhash"],
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    async def get_block_height(self, commitment: str = "confirmed") -> int:
        return int(await self._call("getBlockHeight", [{"commitment": commitment}]))

    async def get_account_info(self, pubkey: str, commitment: str = "confirmed") -> Optional[Dict[str, Any]]:
        """Get account info, or None when the account does not exist."""
        result = await self._call(
            "getAccountInfo",
            [str(pubkey), {"encoding": "base64", "commitment": commitment}],
        )
        return result.get("value") if result else None

    async def account_exists(self, pubkey: str) -> bool:
        return await self.get_account_info(pubkey) is not None

    async def get_token_account_balance(self, pubkey: str) -> Dict[str, Any]:
        result = await self._call("getTokenAccountBalance", [str(pubkey)])
        return result.get("value", {})

    async def send_raw_transaction(self, raw: bytes, options: Optional[Dict[str, Any]] = None) -> str:
        """Submit a signed, serialized transaction and return its signature."""
        config = {"encoding": "base64", "preflightCommitment": "confirmed"}
        if options:
            config.update(options)
        encoded = base64.b64encode(raw).decode()
        return await self._call("sendTransaction", [encoded, config])

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[Dict[str, Any]]]:
        """Get status of transaction signatures."""
        result = await self._call(
            "getSignatureStatuses",
            [signatures, {"searchTransactionHistory": True}],
        )
        return result.get("value", [])

    async def confirm_transaction(
        self,
        signature: str,
        commitment: str = "confirmed",
        last_valid_block_height: Optional[int] = None,
        timeout: float = 60.0,
        poll_interval: float = 1.0,
    ) -> Dict[str, Any]:
        """
        Poll until ``signature`` reaches ``commitment``.

        Raises:
            TransactionFailed: The transaction landed with an error
            ConfirmationTimeout: Timed out, or the checkpoint expired first
        """
        deadline = time.monotonic() + timeout

        while True:
            statuses = await self.get_signature_statuses([signature])
            status = statuses[0] if statuses else None

            if status is not None:
                if status.get("err"):
                    raise TransactionFailed(f"Transaction failed: {status['err']}", signature=signature)
                if commitment_reached(status.get("confirmationStatus"), commitment):
                    return status

            if last_valid_block_height is not None:
                height = await self.get_block_height(commitment)
                if height > last_valid_block_height:
                    raise ConfirmationTimeout(
                        "Blockhash expired before the transaction was confirmed",
                        signature=signature,
                    )

            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(
                    f"Transaction not {commitment} after {timeout:.0f}s",
                    signature=signature,
                )

            await asyncio.sleep(poll_interval)
