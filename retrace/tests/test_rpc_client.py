"""Tests for retrace.rpc.client — JSON-RPC framing, retries, and node operations."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from retrace.core.config import Settings
from retrace.core.errors import RpcError, RpcTransportError
from retrace.core.interfaces import NodeClient
from retrace.core.types import CallAction, Transaction
from retrace.rpc.client import EthRpcClient, block_param, call_object

from .conftest import BOT, SENDER, TX_HASH

URL = "http://node.test"


class Recorder:
    """MockTransport handler replaying canned responses and recording requests.

    Each response is given as ``(status, json_body, headers)`` or an exception
    to raise; the last one repeats once the others are used up.
    """

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        status, body, headers = response
        return httpx.Response(status, json=body, headers=headers)


def rpc_result(result) -> tuple:
    return 200, {"jsonrpc": "2.0", "id": 1, "result": result}, {}


def http_status(status: int, headers: dict | None = None) -> tuple:
    return status, None, headers or {}


def make_client(handler: Recorder, max_retries: int = 3) -> EthRpcClient:
    return EthRpcClient(URL, max_retries=max_retries, transport=httpx.MockTransport(handler))


@pytest.fixture
def no_sleep():
    with patch("retrace.rpc.client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestEncoding:

    def test_call_object(self, sample_tx: Transaction):
        assert call_object(sample_tx) == {
            "from": SENDER,
            "to": BOT,
            "value": "0x0",
            "data": "0xdeadbeef",
            "nonce": "0x5",
            "gas": "0x493e0",
            "gasPrice": "0x6fc23ac00",
        }

    def test_call_object_for_creation(self, sample_tx: Transaction):
        tx = sample_tx.model_copy(update={"receiver": None, "gas": None, "gas_price": None})
        assert set(call_object(tx)) == {"from", "value", "data", "nonce"}

    def test_block_param(self):
        assert block_param(None) == "latest"
        assert block_param(17_999_999) == "0x112a87f"


class TestRequest:

    @pytest.mark.asyncio
    async def test_payload_and_result(self):
        handler = Recorder(rpc_result("0x10"))
        async with make_client(handler) as client:
            assert await client.block_number() == 16
            assert await client.block_number() == 16

        assert handler.requests[0] == {"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []}
        assert handler.requests[1]["id"] == 2

    @pytest.mark.asyncio
    async def test_rpc_error_raised_without_retry(self, no_sleep):
        handler = Recorder(
            (200, {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "Method not found"}}, {})
        )
        async with make_client(handler) as client:
            with pytest.raises(RpcError) as exc_info:
                await client.request("trace_call", [])

        assert exc_info.value.code == -32601
        assert "Method not found" in str(exc_info.value)
        assert len(handler.requests) == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_retried(self, no_sleep):
        handler = Recorder(http_status(502), rpc_result("0x1"))
        async with make_client(handler) as client:
            assert await client.block_number() == 1
        assert len(handler.requests) == 2
        no_sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self, no_sleep):
        handler = Recorder(http_status(429, {"Retry-After": "3"}), rpc_result("0x1"))
        async with make_client(handler) as client:
            assert await client.block_number() == 1
        no_sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, no_sleep):
        handler = Recorder(http_status(503))
        async with make_client(handler, max_retries=3) as client:
            with pytest.raises(RpcTransportError) as exc_info:
                await client.request("eth_blockNumber", [])

        assert len(handler.requests) == 3
        assert exc_info.value.status_code == 503
        assert "after 3 attempts" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_errors_retried(self, no_sleep):
        handler = Recorder(httpx.ConnectError("refused"), rpc_result("0x2"))
        async with make_client(handler) as client:
            assert await client.block_number() == 2
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, no_sleep):
        handler = Recorder(http_status(401))
        async with make_client(handler) as client:
            with pytest.raises(RpcTransportError) as exc_info:
                await client.request("eth_blockNumber", [])
        assert exc_info.value.status_code == 401
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["oops"], "oops", 42])
    async def test_non_object_body_rejected(self, body, no_sleep):
        handler = Recorder((200, body, {}))
        async with make_client(handler) as client:
            with pytest.raises(RpcTransportError, match="expected a JSON-RPC object") as exc_info:
                await client.request("eth_blockNumber", [])
        assert exc_info.value.status_code == 200
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_plain_string_error(self):
        handler = Recorder((200, {"jsonrpc": "2.0", "id": 1, "error": "rate limit exceeded"}, {}))
        async with make_client(handler) as client:
            with pytest.raises(RpcError, match="rate limit exceeded") as exc_info:
                await client.request("trace_call", [])
        assert exc_info.value.code is None


class TestNodeOperations:

    @pytest.mark.asyncio
    async def test_get_transaction(self, rpc_transaction):
        handler = Recorder(rpc_result(rpc_transaction))
        async with make_client(handler) as client:
            tx = await client.get_transaction(TX_HASH)

        assert handler.requests[0]["method"] == "eth_getTransactionByHash"
        assert handler.requests[0]["params"] == [TX_HASH]
        assert tx.sender == SENDER
        assert tx.block_number == 18_000_000

    @pytest.mark.asyncio
    async def test_unknown_transaction(self):
        async with make_client(Recorder(rpc_result(None))) as client:
            assert await client.get_transaction(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_trace_call(self, sample_tx, rpc_trace_result):
        handler = Recorder(rpc_result(rpc_trace_result))
        async with make_client(handler) as client:
            trace = await client.trace_call(sample_tx, block=17_999_999)

        method, params = handler.requests[0]["method"], handler.requests[0]["params"]
        assert method == "trace_call"
        assert params[0] == call_object(sample_tx)
        assert params[1:] == [["trace", "stateDiff"], "0x112a87f"]
        assert isinstance(trace.trace[1].action, CallAction)
        assert trace.state_diff[SENDER].balance.after == 150

    @pytest.mark.asyncio
    async def test_trace_call_at_latest(self, sample_tx):
        handler = Recorder(rpc_result({"output": "0x", "trace": [], "stateDiff": None}))
        async with make_client(handler) as client:
            trace = await client.trace_call(sample_tx)

        assert handler.requests[0]["params"][2] == "latest"
        assert trace.trace == []
        assert trace.state_diff is None

    def test_satisfies_node_protocol(self):
        assert isinstance(EthRpcClient(URL), NodeClient)


class TestFromSettings:

    def test_explicit_url(self):
        settings = Settings(rpc_url="http://localhost:8545", rpc_timeout_seconds=5, rpc_max_retries=1)
        client = EthRpcClient.from_settings(settings)
        assert client.url == "http://localhost:8545"
        assert client._max_retries == 1

    def test_templated_url(self):
        client = EthRpcClient.from_settings(Settings(chain="arbitrum", alchemy_api_key="k3y"))
        assert client.url == "https://arb-mainnet.g.alchemy.com/v2/k3y"

    def test_missing_key(self):
        with pytest.raises(ValueError, match="RETRACE_ALCHEMY_API_KEY"):
            EthRpcClient.from_settings(Settings(chain="ethereum", alchemy_api_key=""))
