"""Rebuild a two-level call plan from a flat call trace.

Trace entries arrive as a flat list, each carrying its ``trace_address`` (the
child indices from the root). Instead of linking them into a tree, entries are
indexed by an integer key derived from their path:

    key([])              = 0
    key([i0, ..., in])   = fold(key * radix + (i + 1))

so the i-th direct child of the root (1-based) sits at key ``i``. The radix is
chosen per trace, larger than every child index and every declared subtrace
count, which keeps the mapping injective for that trace.

Only the root and its direct children become batches; replaying the root
re-executes everything nested below it anyway.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from retrace.core.errors import MalformedTrace
from retrace.core.types import CallBatch, CallPlan, TraceEntry, Translated, TranslationOutcome
from retrace.simulate.rewriter import CallRewriter

logger = logging.getLogger(__name__)

DEFAULT_RADIX = 17  # branching up to 16


def trace_key(path: Sequence[int], radix: int = DEFAULT_RADIX) -> int:
    """Integer key of a trace address; the root maps to 0.

    Raises:
        ValueError: If an index does not fit the radix
    """
    key = 0
    for index in path:
        if index < 0 or index + 1 >= radix:
            raise ValueError(f"Trace index {index} out of range for radix {radix}")
        key = key * radix + index + 1
    return key


def trace_radix(entries: Iterable[TraceEntry]) -> int:
    """Smallest radix that keys every entry of this trace without collisions."""
    radix = 2
    for entry in entries:
        if entry.trace_address:
            radix = max(radix, max(entry.trace_address) + 2)
        radix = max(radix, entry.subtraces + 1)
    return radix


def build_trace_index(entries: Sequence[TraceEntry]) -> tuple[dict[int, TraceEntry], int]:
    """Map each entry's key to the entry and return the radix used.

    Raises:
        MalformedTrace: If two entries share a trace address
    """
    radix = trace_radix(entries)
    index: dict[int, TraceEntry] = {}
    for entry in entries:
        key = trace_key(entry.trace_address, radix)
        if key in index:
            raise MalformedTrace(
                f"Duplicate trace address {entry.trace_address}",
                trace_address=list(entry.trace_address),
            )
        index[key] = entry
    return index, radix


def _collect(outcome: TranslationOutcome, batch: CallBatch, plan: CallPlan) -> None:
    if isinstance(outcome, Translated):
        batch.calls.append(outcome.call)
    else:
        batch.skipped.append(outcome)
        plan.skipped.append(outcome)


def reconstruct(entries: Sequence[TraceEntry], rewriter: CallRewriter) -> CallPlan:
    """Rebuild the root call and its direct subcalls as replayable batches.

    Untranslatable entries are skipped and recorded on the plan rather than
    aborting the reconstruction.

    Raises:
        MalformedTrace: If the root entry or a declared direct child is missing
    """
    entries = list(entries)
    if not entries:
        return CallPlan()

    index, _ = build_trace_index(entries)

    root = index.get(0)
    if root is None:
        raise MalformedTrace("Trace has entries but no root entry", trace_address=[])

    plan = CallPlan(child_count=root.subtraces)

    root_batch = CallBatch()
    _collect(rewriter.translate(root), root_batch, plan)
    plan.batches.append(root_batch)

    children = CallBatch()
    for i in range(1, root.subtraces + 1):
        entry = index.get(i)
        if entry is None:
            raise MalformedTrace(
                f"Root declares {root.subtraces} subtraces but [{i - 1}] is missing",
                trace_address=[i - 1],
            )
        _collect(rewriter.translate(entry), children, plan)

    if children.calls:
        plan.batches.append(children)

    if plan.skipped:
        logger.info(
            "Reconstructed %d calls, skipped %d entries",
            plan.call_count,
            len(plan.skipped),
        )
    return plan

