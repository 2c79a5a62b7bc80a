"""Shared fixtures for the retrace test suite."""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from retrace.core.config import get_settings
from retrace.core.interfaces import TRACE_TYPES, StaticIdentity
from retrace.core.types import (
    AccountStateDiff,
    BlockTrace,
    CallAction,
    CreateAction,
    Diff,
    OtherAction,
    TraceEntry,
    Transaction,
)

# ── Addresses ────────────────────────────────────────────────────────────────

SENDER = "0x1111111111111111111111111111111111111111"
BOT = "0xb07b07b07b07b07b07b07b07b07b07b07b07b07b"
POOL = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"
SIGNER = "0x5151515151515151515151515151515151515151"
CONTRACT = "0xc0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0"

TX_HASH = "0x" + "ab" * 32


# ── Builders ─────────────────────────────────────────────────────────────────


def call_entry(
    path: list[int],
    subtraces: int = 0,
    sender: str = BOT,
    to: str = POOL,
    data: str = "0x",
    value: int = 0,
) -> TraceEntry:
    return TraceEntry(
        trace_address=path,
        subtraces=subtraces,
        action=CallAction(sender=sender, to=to, input=data, value=value),
    )


def create_entry(path: list[int], sender: str = BOT, init: str = "0x6080", value: int = 0) -> TraceEntry:
    return TraceEntry(
        trace_address=path,
        action=CreateAction(sender=sender, init=init, value=value),
    )


def suicide_entry(path: list[int]) -> TraceEntry:
    return TraceEntry(
        trace_address=path,
        action=OtherAction(kind="suicide", raw={"address": POOL, "refundAddress": BOT}),
    )


def account_diff(balance: tuple[int, int] | None = None, nonce: tuple[int, int] | None = None) -> AccountStateDiff:
    return AccountStateDiff(
        balance=Diff.changed(*balance) if balance else Diff.same(),
        nonce=Diff.changed(*nonce) if nonce else Diff.same(),
    )


class FakeNode:
    """In-memory ``NodeClient`` recording every trace request."""

    def __init__(self, tx: Transaction | None, trace: BlockTrace | None = None) -> None:
        self.tx = tx
        self.trace = trace or BlockTrace()
        self.trace_requests: list[dict[str, Any]] = []

    async def get_transaction(self, tx_hash: str) -> Transaction | None:
        return self.tx

    async def trace_call(
        self,
        tx: Transaction,
        trace_types: Sequence[str] = TRACE_TYPES,
        block: int | None = None,
    ) -> BlockTrace:
        self.trace_requests.append({"tx": tx, "trace_types": tuple(trace_types), "block": block})
        return self.trace


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sample_tx() -> Transaction:
    """A mined transaction from SENDER to the BOT contract."""
    return Transaction(
        hash=TX_HASH,
        sender=SENDER,
        receiver=BOT,
        nonce=5,
        value=0,
        input="0xdeadbeef",
        gas=300_000,
        gas_price=30_000_000_000,
        block_number=18_000_000,
    )


@pytest.fixture
def profitable_state_diff() -> dict[str, AccountStateDiff]:
    """Sender gains 50 wei with the expected nonce transition 5 -> 6."""
    return {SENDER: account_diff(balance=(100, 150), nonce=(5, 6))}


@pytest.fixture
def arb_trace_entries() -> list[TraceEntry]:
    """Root call into BOT with three direct subcalls and nested grandchildren."""
    swap_data = "0x022c0d9f" + "00" * 12 + BOT[2:]
    return [
        call_entry([], subtraces=3, sender=SENDER, to=BOT, data="0xdeadbeef"),
        call_entry([0], subtraces=2, to=POOL, data=swap_data),
        call_entry([0, 0], to=TOKEN, data="0xa9059cbb"),
        call_entry([0, 1], to=BOT, data="0x10d1e85c"),
        call_entry([1], to=TOKEN, data="0x70a08231" + "00" * 12 + BOT[2:]),
        call_entry([2], to=SENDER, value=50),
    ]


@pytest.fixture
def profitable_trace(
    arb_trace_entries: list[TraceEntry],
    profitable_state_diff: dict[str, AccountStateDiff],
) -> BlockTrace:
    return BlockTrace(output="0x", trace=arb_trace_entries, state_diff=profitable_state_diff)


@pytest.fixture
def identity() -> StaticIdentity:
    return StaticIdentity(SIGNER)


@pytest.fixture
def rpc_transaction() -> dict[str, Any]:
    """``eth_getTransactionByHash`` result as a node returns it."""
    return {
        "hash": TX_HASH,
        "from": "0x1111111111111111111111111111111111111111",
        "to": "0xB07B07b07b07b07B07b07b07b07b07b07b07b07B",
        "nonce": "0x5",
        "value": "0x0",
        "input": "0xdeadbeef",
        "gas": "0x493e0",
        "gasPrice": "0x6fc23ac00",
        "blockNumber": "0x112a880",
        "blockHash": "0x" + "cd" * 32,
        "transactionIndex": "0x3",
    }


@pytest.fixture
def rpc_trace_result() -> dict[str, Any]:
    """``trace_call`` result with ``trace`` and ``stateDiff``."""
    return {
        "output": "0x",
        "stateDiff": {
            SENDER: {
                "balance": {"*": {"from": "0x64", "to": "0x96"}},
                "nonce": {"*": {"from": "0x5", "to": "0x6"}},
                "code": "=",
                "storage": {},
            },
            "0xB07B07b07b07b07B07b07b07b07b07b07b07b07B": {
                "balance": "=",
                "nonce": "=",
                "code": "=",
                "storage": {"0x0": {"*": {"from": "0x0", "to": "0x1"}}},
            },
            POOL: {
                "balance": {"+": "0x0"},
                "nonce": {"+": "0x1"},
                "code": {"+": "0x6080"},
                "storage": {},
            },
        },
        "trace": [
            {
                "action": {
                    "callType": "call",
                    "from": SENDER,
                    "to": BOT,
                    "gas": "0x1d4c0",
                    "input": "0xdeadbeef",
                    "value": "0x0",
                },
                "result": {"gasUsed": "0x5208", "output": "0x"},
                "subtraces": 2,
                "traceAddress": [],
                "type": "call",
            },
            {
                "action": {
                    "callType": "delegatecall",
                    "from": BOT,
                    "to": TOKEN,
                    "gas": "0x1d4c0",
                    "input": "0xa9059cbb" + "00" * 12 + BOT[2:],
                    "value": "0x0",
                },
                "result": {"gasUsed": "0x5208", "output": "0x"},
                "subtraces": 0,
                "traceAddress": [0],
                "type": "call",
            },
            {
                "action": {"from": BOT, "gas": "0x1d4c0", "init": "0x6080", "value": "0x0"},
                "result": {"address": POOL, "code": "0x6080", "gasUsed": "0x5208"},
                "subtraces": 0,
                "traceAddress": [1],
                "type": "create",
            },
        ],
        "vmTrace": None,
    }
