"""Simulation orchestrator: transaction hash in, replayable call plan out.

Pipeline:
  1. Fetch the transaction from the node
  2. Trace it with ``trace`` + ``stateDiff`` (at the parent block when rewinding)
  3. Detect profit on the state diff
  4. Rebuild the root call and its direct subcalls as replayable batches

Anything short of a usable plan (unknown tx, no diff, no profit, nothing
replayable) yields ``None``. Node failures propagate unchanged; nothing here
retries.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterator

from retrace.core.errors import IncompletePlan
from retrace.core.interfaces import TRACE_TYPES, IdentityProvider, NodeClient
from retrace.core.types import CallPlan, Transaction, normalize_address
from retrace.simulate.profit import ProfitDetector, detect_profit
from retrace.simulate.rewriter import AddressSubstitution, CallRewriter, hex_substitution
from retrace.simulate.trace import reconstruct

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationResult:
    """A replayable plan together with the profit it is expected to reproduce."""

    plan: CallPlan
    profit: int
    transaction: Transaction
    block: int | None = None

    def __iter__(self) -> Iterator:
        # Unpacks as ``plan, profit``
        return iter((self.plan, self.profit))

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.transaction.hash,
            "block": self.block,
            "profit": str(self.profit),
            "plan": self.plan.to_dict(),
        }


def trace_block(tx: Transaction, rewind: bool) -> int | None:
    """Block to trace ``tx`` at; None means the node's latest state."""
    if tx.block_number is None:
        return None
    if rewind:
        return tx.block_number - 1
    return tx.block_number


class Simulator:
    """Replays profitable transactions from another identity.

    Args:
        client: Node access (transaction lookup and ``trace_call``)
        identity: Provides the signer that sends the replayed calls
        contract: Simulation contract address written into calldata instead
            of the signer
        profit_detector: Decides whether a traced transaction made a profit
        substitution: Calldata address substitution strategy
        max_skipped_ratio: Largest share of untranslatable direct subcalls
            tolerated before the plan is rejected; 1.0 never rejects
    """

    def __init__(
        self,
        client: NodeClient,
        identity: IdentityProvider,
        contract: str | None = None,
        profit_detector: ProfitDetector = detect_profit,
        substitution: AddressSubstitution = hex_substitution,
        max_skipped_ratio: float = 1.0,
    ) -> None:
        if not 0.0 <= max_skipped_ratio <= 1.0:
            raise ValueError("max_skipped_ratio must be between 0 and 1")
        self.client = client
        self.identity = identity
        self.contract = normalize_address(contract) if contract else None
        self.profit_detector = profit_detector
        self.substitution = substitution
        self.max_skipped_ratio = max_skipped_ratio

    @property
    def substitute_address(self) -> str:
        return self.contract or self.identity.signer_address()

    def rewriter(self) -> CallRewriter:
        return CallRewriter(
            replayer=self.identity.signer_address(),
            substitute=self.substitute_address,
            substitution=self.substitution,
        )

    async def simulate(self, tx_hash: str, rewind: bool = True) -> SimulationResult | None:
        """Build a replayable plan for ``tx_hash`` if it was profitable.

        Raises:
            RetraceError: On node failures, malformed traces, or a plan whose
                skipped share exceeds ``max_skipped_ratio``
        """
        start = time.monotonic()
        log_ctx = {"tx_hash": tx_hash}

        tx = await self.client.get_transaction(tx_hash)
        if tx is None:
            logger.info("Transaction not found", extra=log_ctx)
            return None

        block = trace_block(tx, rewind)
        trace = await self.client.trace_call(tx, TRACE_TYPES, block)

        if not trace.state_diff:
            logger.info("Trace has no state diff", extra={**log_ctx, "block": block})
            return None

        profit = self.profit_detector(tx, trace.state_diff)
        if profit is None:
            logger.info("No profit detected", extra={**log_ctx, "block": block})
            return None

        if not trace.trace:
            logger.info("Profit detected but trace has no entries", extra=log_ctx)
            return None

        plan = reconstruct(trace.trace, self.rewriter())
        if plan.is_empty:
            logger.info("Profit detected but nothing is replayable", extra=log_ctx)
            return None

        if plan.skipped_ratio > self.max_skipped_ratio:
            raise IncompletePlan(plan, plan.skipped_ratio, self.max_skipped_ratio)

        logger.info(
            "Rebuilt %d calls in %d batches",
            plan.call_count,
            len(plan),
            extra={
                **log_ctx,
                "block": block,
                "profit": profit,
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )
        return SimulationResult(plan=plan, profit=profit, transaction=tx, block=block)
