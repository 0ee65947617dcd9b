"""Tests for the JSON-RPC ledger gateway client."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from poolrelay.domain.errors import TransientLedgerError
from poolrelay.infrastructure.http.http_client import AsyncHttpClient
from poolrelay.infrastructure.ledger.rpc_client import (
    STALE_TOKEN_CODE,
    JsonRpcLedgerClient,
    derive_asset_account,
)


def _client(
    results: dict[str, Callable[[dict], Any]], calls: list[dict] | None = None
) -> JsonRpcLedgerClient:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        outcome = results[body["method"]](body["params"])
        if isinstance(outcome, dict) and "error" in outcome:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **outcome})
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "result": outcome}
        )

    http = AsyncHttpClient("http://ledger.test", transport=httpx.MockTransport(handler))
    return JsonRpcLedgerClient(http, poll_interval_s=0)


class TestJsonRpcLedgerClient:
    async def test_get_balance(self) -> None:
        calls: list[dict] = []
        client = _client({"getBalance": lambda params: 42}, calls)

        assert await client.get_balance("addr", "native") == 42
        assert calls[0]["jsonrpc"] == "2.0"
        assert calls[0]["params"] == {"address": "addr", "asset_id": "native"}

    async def test_request_ids_increase(self) -> None:
        calls: list[dict] = []
        client = _client({"accountExists": lambda params: True}, calls)
        await client.account_exists("a")
        await client.account_exists("b")
        assert calls[1]["id"] > calls[0]["id"]

    async def test_submit_returns_tx_ref(self) -> None:
        client = _client({"submitTransaction": lambda params: "sig-1"})
        assert await client.submit("dGVzdA==") == "sig-1"

    async def test_stale_token_is_transient(self) -> None:
        client = _client(
            {
                "submitTransaction": lambda params: {
                    "error": {"code": STALE_TOKEN_CODE, "message": "blockhash not found"}
                }
            }
        )
        with pytest.raises(TransientLedgerError, match="Stale sequencing token"):
            await client.submit("dGVzdA==")

    async def test_rpc_error_is_transient(self) -> None:
        client = _client(
            {"getBalance": lambda params: {"error": {"code": -32000, "message": "boom"}}}
        )
        with pytest.raises(TransientLedgerError, match="boom"):
            await client.get_balance("addr", "native")

    async def test_transport_failure_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        http = AsyncHttpClient("http://ledger.test", transport=httpx.MockTransport(handler))
        client = JsonRpcLedgerClient(http)
        with pytest.raises(TransientLedgerError):
            await client.latest_sequencing_token()

    async def test_http_status_failure_is_transient(self) -> None:
        http = AsyncHttpClient(
            "http://ledger.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(502)),
        )
        with pytest.raises(TransientLedgerError):
            await JsonRpcLedgerClient(http).get_transaction("sig")

    async def test_get_transaction_missing_is_none(self) -> None:
        client = _client({"getTransaction": lambda params: None})
        assert await client.get_transaction("sig") is None

    async def test_wait_for_confirmation_polls_until_landed(self) -> None:
        replies = iter(
            [None, None, {"tx_ref": "sig", "succeeded": True, "balance_deltas": {"a:native": 5}}]
        )
        client = _client({"getTransaction": lambda params: next(replies)})

        tx = await client.wait_for_confirmation("sig")

        assert tx.succeeded
        assert tx.credited("a", "native") == 5


def test_derive_asset_account_is_stable_and_distinct() -> None:
    a = derive_asset_account("owner", "mint-a")
    assert a == derive_asset_account("owner", "mint-a")
    assert a != derive_asset_account("owner", "mint-b")
    assert a != derive_asset_account("other", "mint-a")
