"""Exception hierarchy for retrace.

Missing data (unknown transaction, no state diff, no trace) is not an error:
the simulator answers ``None``. Everything below is a hard failure surfaced to
the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from retrace.core.types import CallPlan


class RetraceError(Exception):
    """Base exception for retrace errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RpcError(RetraceError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class RpcTransportError(RetraceError):
    """The node could not be reached (HTTP failure, timeout) after retries."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedTrace(RetraceError):
    """The trace is structurally broken (no root, a missing child or a duplicate path)."""

    def __init__(self, message: str, trace_address: list[int] | None = None) -> None:
        super().__init__(message)
        self.trace_address = trace_address


class IncompletePlan(RetraceError):
    """Too many direct subcalls could not be translated into replayable calls."""

    def __init__(self, plan: CallPlan, skipped_ratio: float, threshold: float) -> None:
        super().__init__(
            f"{skipped_ratio:.0%} of subcalls skipped (threshold {threshold:.0%})"
        )
        self.plan = plan
        self.skipped_ratio = skipped_ratio
        self.threshold = threshold
