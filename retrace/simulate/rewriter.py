"""Turn trace entries into replayable calls issued by another identity.

Calldata recorded in a trace was built by the original caller, so any
self-reference encoded in it (callback targets, recipients, ownership checks)
still points at that caller. ``CallRewriter`` remaps those references to the
replaying address through a pluggable ``AddressSubstitution`` strategy.
"""

from __future__ import annotations

import logging
from typing import Callable

from retrace.core.types import (
    CallAction,
    CreateAction,
    ReplayableCall,
    Skipped,
    TraceEntry,
    Translated,
    TranslationOutcome,
    normalize_address,
    normalize_hex,
)

logger = logging.getLogger(__name__)

# (payload, original address, substitute address) -> rewritten payload
AddressSubstitution = Callable[[str, str, str], str]


def hex_substitution(payload: str, original: str, substitute: str) -> str:
    """Replace every occurrence of ``original`` in ``payload`` with ``substitute``.

    Works on the lowercase hex text, not on ABI structure: an address stored in
    another form (mixed case, packed at an odd nibble offset, hashed) is missed,
    and unrelated bytes equal to the address are replaced too. Callers needing
    ABI-aware rewriting should pass their own ``AddressSubstitution``.
    """
    data = normalize_hex(payload)
    needle = normalize_address(original)[2:]
    replacement = normalize_address(substitute)[2:]
    return "0x" + data[2:].replace(needle, replacement)


class CallRewriter:
    """Rebuilds trace entries as calls sent by ``replayer``.

    Args:
        replayer: Address the replayed calls are sent from (the signer)
        substitute: Address written into calldata in place of the original
            caller; defaults to ``replayer``
        substitution: Strategy applied to each payload
    """

    def __init__(
        self,
        replayer: str,
        substitute: str | None = None,
        substitution: AddressSubstitution = hex_substitution,
    ) -> None:
        self.replayer = normalize_address(replayer)
        self.substitute = normalize_address(substitute) if substitute else self.replayer
        self._substitution = substitution

    def translate(self, entry: TraceEntry) -> TranslationOutcome:
        """Rewrite one entry, reporting why it was skipped when it cannot be."""
        action = entry.action

        if isinstance(action, CallAction):
            call = ReplayableCall(
                sender=self.replayer,
                recipient=action.to,
                data=self._substitution(action.input, action.sender, self.substitute),
                value=action.value,
            )
        elif isinstance(action, CreateAction):
            call = ReplayableCall(
                sender=self.replayer,
                recipient=None,
                data=self._substitution(action.init, action.sender, self.substitute),
                value=action.value,
            )
        else:
            logger.debug("Skipping %s action at %s", action.kind, entry.trace_address)
            return Skipped(list(entry.trace_address), f"unsupported action: {action.kind}")

        return Translated(list(entry.trace_address), call)

    def rewrite(self, entry: TraceEntry) -> ReplayableCall | None:
        outcome = self.translate(entry)
        if isinstance(outcome, Translated):
            return outcome.call
        return None
