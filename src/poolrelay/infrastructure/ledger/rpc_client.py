"""JSON-RPC 2.0 client for the ledger gateway."""

from __future__ import annotations

import asyncio
import hashlib
import itertools
import logging
from typing import Any, Optional

import base58
import httpx

from ...domain.errors import TransientLedgerError
from ...domain.shared import LedgerTransaction
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)

STALE_TOKEN_CODE = -32002


def derive_asset_account(owner: str, asset_id: str) -> str:
    """Deterministic asset account address for an owner/asset pair."""
    digest = hashlib.sha256(
        b"poolrelay:asset-account:" + owner.encode() + b":" + asset_id.encode()
    ).digest()
    return base58.b58encode(digest).decode("ascii")


class JsonRpcLedgerClient:
    """Talks to a ledger gateway that exposes balances, submission and lookup.

    Every transport problem surfaces as ``TransientLedgerError`` so callers
    can retry without caring about httpx.
    """

    def __init__(self, client: AsyncHttpClient, *, poll_interval_s: float = 1.0):
        self._client = client
        self._poll_interval_s = poll_interval_s
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._client.post("/", json=body)
            payload = response.json()
        except httpx.HTTPError as e:
            raise TransientLedgerError(f"Ledger {method} failed: {e}") from e
        except ValueError as e:
            raise TransientLedgerError(f"Ledger {method} returned invalid JSON") from e

        error = payload.get("error")
        if error:
            code = error.get("code")
            message = error.get("message", "unknown error")
            if code == STALE_TOKEN_CODE:
                raise TransientLedgerError(f"Stale sequencing token: {message}")
            raise TransientLedgerError(f"Ledger {method} rejected ({code}): {message}")
        return payload.get("result")

    async def get_balance(self, address: str, asset_id: str) -> int:
        result = await self._call(
            "getBalance", {"address": address, "asset_id": asset_id}
        )
        return int(result or 0)

    async def account_exists(self, address: str) -> bool:
        return bool(await self._call("accountExists", {"address": address}))

    def derive_asset_account(self, owner: str, asset_id: str) -> str:
        return derive_asset_account(owner, asset_id)

    async def latest_sequencing_token(self) -> str:
        return str(await self._call("getLatestSequencingToken", {}))

    async def submit(self, signed_tx_b64: str) -> str:
        return str(await self._call("submitTransaction", {"transaction": signed_tx_b64}))

    async def get_transaction(self, tx_ref: str) -> Optional[LedgerTransaction]:
        result = await self._call("getTransaction", {"tx_ref": tx_ref})
        if result is None:
            return None
        return LedgerTransaction.model_validate(result)

    async def wait_for_confirmation(self, tx_ref: str) -> LedgerTransaction:
        """Poll until the transaction lands. Callers bound this with a timeout."""
        while True:
            tx = await self.get_transaction(tx_ref)
            if tx is not None:
                return tx
            await asyncio.sleep(self._poll_interval_s)

    async def aclose(self) -> None:
        await self._client.aclose()
