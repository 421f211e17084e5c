"""Error taxonomy for the orchestration core."""

from __future__ import annotations


class ReacTreeError(Exception):
    """Base class for every error raised by this package."""


class AgentInvocationError(ReacTreeError):
    """The Agent capability errored, timed out, or returned a malformed result."""

    def __init__(self, node_id: str, reason: str, *, timed_out: bool = False) -> None:
        self.node_id = node_id
        self.reason = reason
        self.timed_out = timed_out
        super().__init__(f"agent invocation failed for node '{node_id}': {reason}")


class QualityGateError(ReacTreeError):
    """The QualityGate capability errored or timed out."""

    def __init__(self, gate_name: str, reason: str, *, timed_out: bool = False) -> None:
        self.gate_name = gate_name
        self.reason = reason
        self.timed_out = timed_out
        if timed_out:
            message = f"quality gate '{gate_name}' timed out after {reason}"
        else:
            message = f"quality gate '{gate_name}' invocation error: {reason}"
        super().__init__(message)


class TreeInvariantViolation(ReacTreeError):
    """A task tree breaks a structural invariant. Detected before a run starts."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("invalid task tree: " + "; ".join(self.violations))


class MemoryStoreIOError(ReacTreeError):
    """The episodic store's underlying storage failed."""


class CancellationRequested(ReacTreeError):
    """A run was cancelled. Recorded as a termination reason, not a fault."""

    diagnostic = "cancelled"

    def __init__(self) -> None:
        super().__init__(self.diagnostic)


class InvalidRunTransition(ReacTreeError):
    """A workflow run attempted an illegal state-machine transition."""
