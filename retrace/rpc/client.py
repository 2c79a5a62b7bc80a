"""Async JSON-RPC client for Ethereum nodes exposing the ``trace_*`` namespace."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Sequence

import httpx

from retrace.core.chains import resolve_rpc_url
from retrace.core.config import Settings, get_settings
from retrace.core.errors import RpcError, RpcTransportError
from retrace.core.interfaces import TRACE_TYPES
from retrace.core.types import BlockTrace, Transaction, parse_quantity, to_quantity

logger = logging.getLogger(__name__)


def call_object(tx: Transaction) -> dict[str, Any]:
    """Encode a transaction as the call object ``trace_call`` expects."""
    obj: dict[str, Any] = {
        "from": tx.sender,
        "value": to_quantity(tx.value),
        "data": tx.input,
        "nonce": to_quantity(tx.nonce),
    }
    if tx.receiver is not None:
        obj["to"] = tx.receiver
    if tx.gas is not None:
        obj["gas"] = to_quantity(tx.gas)
    if tx.gas_price is not None:
        obj["gasPrice"] = to_quantity(tx.gas_price)
    return obj


def block_param(block: int | None) -> str:
    return to_quantity(block) if block is not None else "latest"


class EthRpcClient:
    """Async JSON-RPC client implementing the simulator's ``NodeClient``.

    Usage::

        async with EthRpcClient("https://eth-mainnet.g.alchemy.com/v2/KEY") as client:
            tx = await client.get_transaction("0xabc...")
            trace = await client.trace_call(tx, block=tx.block_number - 1)

    Transport failures, HTTP 429 and 5xx responses are retried with
    exponential backoff; JSON-RPC error objects are raised immediately.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._max_retries = max(1, max_retries)
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            headers={
                "User-Agent": "retrace/0.1.0",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> EthRpcClient:
        settings = settings or get_settings()
        return cls(
            resolve_rpc_url(settings),
            timeout=settings.rpc_timeout_seconds,
            max_retries=settings.rpc_max_retries,
        )

    # ── Context manager ──────────────────────────────────────────────

    async def __aenter__(self) -> EthRpcClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ── JSON-RPC primitive ───────────────────────────────────────────

    async def request(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and return its ``result``."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        last_exc: Exception | None = None
        status_code: int | None = None

        for attempt in range(self._max_retries):
            try:
                resp = await self._client.post(self.url, json=payload)

                if resp.status_code == 429:
                    status_code = 429
                    retry_after = float(resp.headers.get("Retry-After", 2 ** attempt))
                    if attempt < self._max_retries - 1:
                        logger.warning(
                            "Rate limited by node, retrying in %.1fs",
                            retry_after,
                            extra={"rpc_method": method, "attempt": attempt + 1},
                        )
                        await asyncio.sleep(retry_after)
                        continue
                    break
                if resp.status_code >= 500 and attempt < self._max_retries - 1:
                    status_code = resp.status_code
                    await asyncio.sleep(2 ** attempt)
                    continue

                resp.raise_for_status()
                body = resp.json()

            except httpx.HTTPStatusError as exc:
                last_exc = exc
                status_code = exc.response.status_code
                break
            except (httpx.RequestError, ValueError) as exc:
                last_exc = exc
                if attempt < self._max_retries - 1:
                    logger.warning(
                        "RPC request failed: %s",
                        exc,
                        extra={"rpc_method": method, "attempt": attempt + 1},
                    )
                    await asyncio.sleep(2 ** attempt)
                    continue
                break

            if not isinstance(body, dict):
                raise RpcTransportError(
                    f"{method}: expected a JSON-RPC object, got {type(body).__name__}",
                    status_code=resp.status_code,
                )

            error = body.get("error")
            if isinstance(error, dict):
                raise RpcError(
                    f"{method}: {error.get('message', 'unknown error')}",
                    code=error.get("code"),
                    data=error.get("data"),
                )
            if error:
                raise RpcError(f"{method}: {error}")
            return body.get("result")

        raise RpcTransportError(
            f"{method} failed after {self._max_retries} attempts: {last_exc or status_code}",
            status_code=status_code,
        )

    # ── Node operations ──────────────────────────────────────────────

    async def get_transaction(self, tx_hash: str) -> Transaction | None:
        result = await self.request("eth_getTransactionByHash", [tx_hash])
        if result is None:
            return None
        return Transaction.from_rpc(result)

    async def trace_call(
        self,
        tx: Transaction,
        trace_types: Sequence[str] = TRACE_TYPES,
        block: int | None = None,
    ) -> BlockTrace:
        result = await self.request(
            "trace_call",
            [call_object(tx), list(trace_types), block_param(block)],
        )
        return BlockTrace.from_rpc(result or {})

    async def block_number(self) -> int:
        return parse_quantity(await self.request("eth_blockNumber", []))
