"""Collaborator interfaces the simulator depends on."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from retrace.core.types import BlockTrace, Transaction, normalize_address

TRACE_TYPES: tuple[str, ...] = ("trace", "stateDiff")


@runtime_checkable
class NodeClient(Protocol):
    """Node access needed to fetch and trace a transaction."""

    async def get_transaction(self, tx_hash: str) -> Transaction | None: ...

    async def trace_call(
        self,
        tx: Transaction,
        trace_types: Sequence[str] = TRACE_TYPES,
        block: int | None = None,
    ) -> BlockTrace: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Supplies the address that replays the calls."""

    def signer_address(self) -> str: ...


class StaticIdentity:
    """Identity provider for a fixed, externally managed address."""

    def __init__(self, address: str) -> None:
        self._address = normalize_address(address)

    def signer_address(self) -> str:
        return self._address

    def __repr__(self) -> str:
        return f"StaticIdentity({self._address})"
