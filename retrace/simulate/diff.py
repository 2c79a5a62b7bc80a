"""Account-diff analysis: did an account gain value, and is the diff trustworthy?"""

from __future__ import annotations

from dataclasses import dataclass

from retrace.core.types import AccountStateDiff


@dataclass(frozen=True)
class DiffAnalysis:
    """Classification of one account's state diff."""

    increased: bool = False
    magnitude: int = 0
    nonce_invalid: bool = False

    @property
    def is_gain(self) -> bool:
        """Balance went up and the nonce transition is the expected one."""
        return self.increased and not self.nonce_invalid


def analyze_account_diff(
    diff: AccountStateDiff,
    expected_nonce: int | None = None,
) -> DiffAnalysis:
    """Classify an account's balance movement and nonce consistency.

    Args:
        diff: The account's balance/nonce diff from the trace
        expected_nonce: Nonce the account should have had before execution;
            ``None`` disables the nonce check

    Returns:
        DiffAnalysis with the balance direction, the absolute delta and
        whether the recorded pre-nonce contradicts ``expected_nonce``
    """
    increased = False
    magnitude = 0

    balance = diff.balance
    if balance.is_changed:
        increased = balance.after > balance.before
        magnitude = abs(balance.after - balance.before)

    # A different pre-nonce means the tx was not included as assumed (already
    # mined, replaced, reordered); its balance delta is not reliable either.
    nonce_invalid = (
        expected_nonce is not None
        and diff.nonce.is_changed
        and diff.nonce.before != expected_nonce
    )

    return DiffAnalysis(increased=increased, magnitude=magnitude, nonce_invalid=nonce_invalid)
