"""Shared models for transactions, traces, state diffs and call plans.

Wire-facing records (everything a node hands us, and the replayable calls we
hand back) are pydantic models built through ``from_rpc`` constructors.
Derived per-request results (outcomes, batches, plans) are dataclasses.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_HEX_RE = re.compile(r"^0x[0-9a-f]*$")


# ── Value helpers ────────────────────────────────────────────────────────────


def parse_quantity(value: Any) -> int:
    """Parse a JSON-RPC quantity (``"0x1a"``, decimal string or int) into an int."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.startswith("0x"):
        return int(text, 16) if len(text) > 2 else 0
    return int(text)


def normalize_address(value: str) -> str:
    """Return the lowercase ``0x``-prefixed form of an address.

    Raises:
        ValueError: If the value is not 20 bytes of hex
    """
    text = value.strip().lower()
    if not text.startswith("0x"):
        text = "0x" + text
    if not _ADDRESS_RE.match(text):
        raise ValueError(f"Invalid address: {value}")
    return text


def normalize_hex(value: str | bytes) -> str:
    """Return payload data as a lowercase ``0x``-prefixed hex string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = value.strip().lower()
    if not text.startswith("0x"):
        text = "0x" + text
    if not _HEX_RE.match(text):
        raise ValueError(f"Invalid hex data: {value[:20]}")
    return text


def to_quantity(value: int) -> str:
    """Encode an int as a JSON-RPC hex quantity."""
    return hex(value)


# ── State diffs ──────────────────────────────────────────────────────────────


class DiffKind(str, enum.Enum):
    """Shape of a single state field change, as encoded by ``stateDiff``."""

    SAME = "="
    BORN = "+"
    DIED = "-"
    CHANGED = "*"


class Diff(BaseModel):
    """Before/after record for one account field (balance or nonce)."""

    model_config = ConfigDict(frozen=True)

    kind: DiffKind = DiffKind.SAME
    before: int | None = None
    after: int | None = None

    @classmethod
    def same(cls) -> Diff:
        return cls(kind=DiffKind.SAME)

    @classmethod
    def changed(cls, before: int, after: int) -> Diff:
        return cls(kind=DiffKind.CHANGED, before=before, after=after)

    @classmethod
    def from_rpc(cls, raw: Any) -> Diff:
        """Parse ``"="``, ``{"+": v}``, ``{"-": v}`` or ``{"*": {"from": a, "to": b}}``."""
        if raw is None or raw == "=":
            return cls.same()
        if not isinstance(raw, dict) or len(raw) != 1:
            raise ValueError(f"Unrecognised state diff entry: {raw!r}")

        (marker, payload), = raw.items()
        if marker == "+":
            return cls(kind=DiffKind.BORN, after=parse_quantity(payload))
        if marker == "-":
            return cls(kind=DiffKind.DIED, before=parse_quantity(payload))
        if marker == "*":
            return cls.changed(parse_quantity(payload["from"]), parse_quantity(payload["to"]))
        raise ValueError(f"Unrecognised state diff marker: {marker!r}")

    @property
    def is_changed(self) -> bool:
        return self.kind is DiffKind.CHANGED


class AccountStateDiff(BaseModel):
    """Balance and nonce changes of a single account."""

    model_config = ConfigDict(frozen=True)

    balance: Diff = Field(default_factory=Diff.same)
    nonce: Diff = Field(default_factory=Diff.same)

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> AccountStateDiff:
        # code and storage changes are irrelevant to profit detection
        return cls(
            balance=Diff.from_rpc(raw.get("balance")),
            nonce=Diff.from_rpc(raw.get("nonce")),
        )


# ── Transactions ─────────────────────────────────────────────────────────────


class Transaction(BaseModel):
    """A transaction as returned by ``eth_getTransactionByHash``."""

    model_config = ConfigDict(frozen=True)

    hash: str
    sender: str
    receiver: str | None = None
    nonce: int = Field(ge=0)
    value: int = Field(default=0, ge=0)
    input: str = "0x"
    gas: int | None = None
    gas_price: int | None = None
    block_number: int | None = None

    @field_validator("sender")
    @classmethod
    def _check_sender(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("receiver")
    @classmethod
    def _check_receiver(cls, v: str | None) -> str | None:
        return normalize_address(v) if v else None

    @field_validator("input")
    @classmethod
    def _check_input(cls, v: str) -> str:
        return normalize_hex(v)

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> Transaction:
        block = raw.get("blockNumber")
        gas_price = raw.get("gasPrice")
        gas = raw.get("gas")
        return cls(
            hash=raw["hash"].lower(),
            sender=raw["from"],
            receiver=raw.get("to"),
            nonce=parse_quantity(raw.get("nonce")),
            value=parse_quantity(raw.get("value")),
            input=raw.get("input") or raw.get("data") or "0x",
            gas=parse_quantity(gas) if gas is not None else None,
            gas_price=parse_quantity(gas_price) if gas_price is not None else None,
            block_number=parse_quantity(block) if block is not None else None,
        )

    @property
    def is_mined(self) -> bool:
        return self.block_number is not None


# ── Trace entries ────────────────────────────────────────────────────────────


class CallAction(BaseModel):
    """A message call recorded in the trace."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["call"] = "call"
    sender: str
    to: str
    input: str = "0x"
    value: int = Field(default=0, ge=0)
    call_type: str = "call"

    @field_validator("sender", "to")
    @classmethod
    def _check_address(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("input")
    @classmethod
    def _check_input(cls, v: str) -> str:
        return normalize_hex(v)


class CreateAction(BaseModel):
    """A contract creation recorded in the trace."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["create"] = "create"
    sender: str
    init: str = "0x"
    value: int = Field(default=0, ge=0)

    @field_validator("sender")
    @classmethod
    def _check_address(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("init")
    @classmethod
    def _check_init(cls, v: str) -> str:
        return normalize_hex(v)


class OtherAction(BaseModel):
    """Any other trace action (suicide, reward, ...), kept verbatim."""

    model_config = ConfigDict(frozen=True)

    kind: str
    raw: dict[str, Any] = Field(default_factory=dict)


TraceAction = Union[CallAction, CreateAction, OtherAction]


class TraceEntry(BaseModel):
    """One node of the execution call tree."""

    model_config = ConfigDict(frozen=True)

    trace_address: list[int] = Field(default_factory=list)
    subtraces: int = Field(default=0, ge=0)
    action: TraceAction
    error: str | None = None

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> TraceEntry:
        kind = raw.get("type", "")
        action_raw = raw.get("action") or {}
        action: TraceAction
        if kind == "call":
            action = CallAction(
                sender=action_raw["from"],
                to=action_raw["to"],
                input=action_raw.get("input") or "0x",
                value=parse_quantity(action_raw.get("value")),
                call_type=action_raw.get("callType", "call"),
            )
        elif kind == "create":
            action = CreateAction(
                sender=action_raw["from"],
                init=action_raw.get("init") or "0x",
                value=parse_quantity(action_raw.get("value")),
            )
        else:
            action = OtherAction(kind=kind or "unknown", raw=action_raw)

        return cls(
            trace_address=list(raw.get("traceAddress") or []),
            subtraces=int(raw.get("subtraces") or 0),
            action=action,
            error=raw.get("error"),
        )

    @property
    def is_root(self) -> bool:
        return not self.trace_address


class BlockTrace(BaseModel):
    """Result of ``trace_call``: call trace and per-account state diff."""

    output: str | None = None
    trace: list[TraceEntry] | None = None
    state_diff: dict[str, AccountStateDiff] | None = None

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> BlockTrace:
        trace = raw.get("trace")
        state_diff = raw.get("stateDiff")
        return cls(
            output=raw.get("output"),
            trace=[TraceEntry.from_rpc(t) for t in trace] if trace is not None else None,
            state_diff=(
                {
                    normalize_address(addr): AccountStateDiff.from_rpc(diff)
                    for addr, diff in state_diff.items()
                }
                if state_diff is not None
                else None
            ),
        )

    def account_diff(self, address: str) -> AccountStateDiff | None:
        if not self.state_diff:
            return None
        return self.state_diff.get(normalize_address(address))


# ── Replayable calls and plans ───────────────────────────────────────────────


class ReplayableCall(BaseModel):
    """A call ready to be re-executed from the replaying identity.

    Gas, gas price and nonce are left unset for the caller to populate.
    """

    sender: str
    recipient: str | None = None  # None means contract creation
    data: str = "0x"
    value: int = Field(default=0, ge=0)
    gas: int | None = None
    gas_price: int | None = None
    nonce: int | None = None

    @property
    def is_create(self) -> bool:
        return self.recipient is None

    def to_rpc(self) -> dict[str, Any]:
        """Encode as a JSON-RPC transaction request, omitting unset fields."""
        request: dict[str, Any] = {
            "from": self.sender,
            "data": self.data,
            "value": to_quantity(self.value),
        }
        if self.recipient is not None:
            request["to"] = self.recipient
        for key, attr in (("gas", "gas"), ("gasPrice", "gas_price"), ("nonce", "nonce")):
            val = getattr(self, attr)
            if val is not None:
                request[key] = to_quantity(val)
        return request


@dataclass(frozen=True)
class Translated:
    """A trace entry turned into a replayable call."""

    trace_address: list[int]
    call: ReplayableCall


@dataclass(frozen=True)
class Skipped:
    """A trace entry that could not be turned into a replayable call."""

    trace_address: list[int]
    reason: str


TranslationOutcome = Union[Translated, Skipped]


@dataclass
class CallBatch:
    """Calls meant to be replayed together, in order."""

    calls: list[ReplayableCall] = field(default_factory=list)
    skipped: list[Skipped] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.calls)

    def __iter__(self) -> Iterator[ReplayableCall]:
        return iter(self.calls)

    def __getitem__(self, index: int) -> ReplayableCall:
        return self.calls[index]

    @property
    def complete(self) -> bool:
        return not self.skipped


@dataclass
class CallPlan:
    """Ordered batches rebuilt from a trace.

    Batch 0 is the root call alone; batch 1, when present, holds the
    reconstructable direct subcalls of the root in child order.
    """

    batches: list[CallBatch] = field(default_factory=list)
    skipped: list[Skipped] = field(default_factory=list)
    child_count: int = 0

    def __len__(self) -> int:
        return len(self.batches)

    def __iter__(self) -> Iterator[CallBatch]:
        return iter(self.batches)

    def __getitem__(self, index: int) -> CallBatch:
        return self.batches[index]

    @property
    def call_count(self) -> int:
        return sum(len(b) for b in self.batches)

    @property
    def is_empty(self) -> bool:
        return self.call_count == 0

    @property
    def complete(self) -> bool:
        return not self.skipped

    @property
    def skipped_ratio(self) -> float:
        """Share of the root's direct subcalls that were skipped."""
        if not self.child_count:
            return 0.0
        skipped_children = sum(1 for s in self.skipped if len(s.trace_address) == 1)
        return skipped_children / self.child_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "batches": [
                {"calls": [call.to_rpc() for call in batch], "complete": batch.complete}
                for batch in self.batches
            ],
            "call_count": self.call_count,
            "complete": self.complete,
            "skipped": [
                {"trace_address": s.trace_address, "reason": s.reason} for s in self.skipped
            ],
        }
