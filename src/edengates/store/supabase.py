"""
Data store client for the Supabase PostgREST API.

Only row-level select/insert/update over the portal's tables and RPC
calls are supported.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..errors import ConfigurationError, DataStoreError

logger = logging.getLogger(__name__)

TABLES = ("founders", "votes", "winners")


@dataclass
class VoteRecord:
    """A vote row as written to the ``votes`` table."""
    founder_id: str
    wallet: Optional[str] = None
    ip_hash: Optional[str] = None
    tx_sig: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "founder_id": self.founder_id,
            "wallet": self.wallet,
            "ip_hash": self.ip_hash,
            "tx_sig": self.tx_sig,
        }


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "error", "hint"):
            if payload.get(key):
                return str(payload[key])
    return response.reason_phrase or f"HTTP {response.status_code}"


class SupabaseStore:
    """
    Async PostgREST client.

    Filters are PostgREST equality filters: ``{"is_active": True}``
    becomes ``is_active=eq.true``.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        if not url:
            raise ConfigurationError("Missing SUPABASE_URL")
        if not anon_key:
            raise ConfigurationError("Missing SUPABASE_ANON_KEY")
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
            "Content-Type": "application/json",
        }

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SupabaseStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                f"{self.url}/rest/v1/{path}",
                params=params,
                json=json,
                headers={**self.headers, **(headers or {})},
            )
        except httpx.HTTPError as e:
            raise DataStoreError(f"Data store unreachable: {e}") from e

        if response.is_error:
            raise DataStoreError(_error_message(response))
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _filters(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        params = {}
        for column, value in (filters or {}).items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif value is None:
                params[column] = "is.null"
                continue
            params[column] = f"eq.{value}"
        return params

    @staticmethod
    def _table(table: str) -> str:
        if table not in TABLES:
            raise DataStoreError(f"Unknown table: {table}")
        return table

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {"select": columns, **self._filters(filters)}
        if order:
            params["order"] = order
        return await self._request("GET", self._table(table), params=params) or []

    async def insert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._request(
            "POST",
            self._table(table),
            json=row,
            headers={"Prefer": "return=representation"},
        ) or []

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise DataStoreError("Refusing to update without a filter")
        return await self._request(
            "PATCH",
            self._table(table),
            params=self._filters(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        ) or []

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("POST", f"rpc/{function}", json=params or {})

    async def get_active_founders_with_votes(self) -> List[Dict[str, Any]]:
        return await self.rpc("get_active_founders_with_votes") or []

    async def insert_vote(self, record: VoteRecord) -> None:
        try:
            await self.insert("votes", record.to_row())
        except DataStoreError as e:
            raise DataStoreError(f"Failed to record vote: {e}", signature=record.tx_sig) from e
        logger.debug("Recorded vote for founder %s", record.founder_id)
