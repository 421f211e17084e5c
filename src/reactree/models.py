"""Pydantic models shared by the executor, memory stores, and capability boundaries."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from reactree.tree.models import NodeKind

# Outcome of executing any single task node.
PhaseStatus = Literal["succeeded", "failed", "skipped"]


class PhaseResult(BaseModel):
    """Outcome record produced by executing one task node."""

    node_id: str
    kind: NodeKind
    status: PhaseStatus
    produced_facts: dict[str, str] = Field(default_factory=dict)
    diagnostics: list[str] = Field(default_factory=list)
    learnings: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    # Results of child nodes, in tree order. Untried children appear as skipped.
    children: list[PhaseResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def iter_results(self) -> Iterator[PhaseResult]:
        yield self
        for child in self.children:
            yield from child.iter_results()

    def find(self, node_id: str) -> PhaseResult | None:
        for result in self.iter_results():
            if result.node_id == node_id:
                return result
        return None

    def leaf_results(self) -> list[PhaseResult]:
        return [result for result in self.iter_results() if result.kind == "leaf"]

    def failed_diagnostics(self) -> list[str]:
        """Diagnostics of every failed leaf visited, depth-first."""
        messages: list[str] = []
        for result in self.leaf_results():
            if result.status == "failed":
                messages.extend(result.diagnostics)
        return messages


class WorkingMemoryEntry(BaseModel):
    """One fact held in working memory."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    writer_node_id: str = ""
    expires_at: datetime


class AgentResult(BaseModel):
    """Reply of the external Agent capability for one leaf."""

    succeeded: bool
    produced_facts: dict[str, str] = Field(default_factory=dict)
    narrative: str = ""


class GateCheck(BaseModel):
    """Raw reply of the external QualityGate capability."""

    passed: bool
    messages: list[str] = Field(default_factory=list)


class QualityGateVerdict(BaseModel):
    """Normalized quality-gate decision for one phase completion."""

    gate_name: str
    passed: bool
    messages: list[str] = Field(default_factory=list)
