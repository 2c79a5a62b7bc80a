"""Profit detection over a trace's state diff.

Two detectors share the same signature (``ProfitDetector``):

  - ``detect_profit`` reports the sender's gain, falling back to the
    receiver's gain only when it is strictly larger
  - ``native_token_profit`` adds both qualifying gains together
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional

from retrace.core.types import AccountStateDiff, Transaction
from retrace.simulate.diff import DiffAnalysis, analyze_account_diff

logger = logging.getLogger(__name__)

ProfitDetector = Callable[[Transaction, Mapping[str, AccountStateDiff]], Optional[int]]


def _analyze_parties(
    tx: Transaction,
    state_diff: Mapping[str, AccountStateDiff],
) -> tuple[DiffAnalysis, DiffAnalysis | None] | None:
    sender_diff = state_diff.get(tx.sender)
    if sender_diff is None:
        return None
    sender = analyze_account_diff(sender_diff, tx.nonce)

    receiver = None
    if tx.receiver is not None:
        receiver_diff = state_diff.get(tx.receiver)
        if receiver_diff is not None:
            receiver = analyze_account_diff(receiver_diff, None)

    return sender, receiver


def _receiver_qualifies(sender: DiffAnalysis, receiver: DiffAnalysis | None) -> bool:
    return (
        receiver is not None
        and receiver.is_gain
        and receiver.magnitude > sender.magnitude
    )


def detect_profit(
    tx: Transaction,
    state_diff: Mapping[str, AccountStateDiff],
) -> int | None:
    """Return the profit attributable to ``tx``, or None when there is none."""
    parties = _analyze_parties(tx, state_diff)
    if parties is None:
        logger.debug("No state diff for sender %s", tx.sender, extra={"tx_hash": tx.hash})
        return None
    sender, receiver = parties

    if sender.is_gain:
        return sender.magnitude

    if sender.nonce_invalid:
        logger.debug("Sender nonce mismatch, ignoring its balance delta", extra={"tx_hash": tx.hash})

    if _receiver_qualifies(sender, receiver):
        return receiver.magnitude

    return None


def native_token_profit(
    tx: Transaction,
    state_diff: Mapping[str, AccountStateDiff],
) -> int | None:
    """Sum of the sender's gain and the qualifying receiver gain."""
    parties = _analyze_parties(tx, state_diff)
    if parties is None:
        return None
    sender, receiver = parties

    profit = 0
    if sender.is_gain:
        profit += sender.magnitude
    if _receiver_qualifies(sender, receiver):
        profit += receiver.magnitude

    return profit or None


PROFIT_DETECTORS: dict[str, ProfitDetector] = {
    "sender_first": detect_profit,
    "native_token": native_token_profit,
}


def get_profit_detector(mode: str) -> ProfitDetector:
    """Look up a detector by its ``profit_mode`` setting name."""
    try:
        return PROFIT_DETECTORS[mode]
    except KeyError:
        raise ValueError(
            f"Unknown profit mode {mode!r} (expected one of {sorted(PROFIT_DETECTORS)})"
        ) from None
