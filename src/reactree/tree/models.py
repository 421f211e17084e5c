"""Task tree schema.

Trees use arena storage: every node lives in one flat ``nodes`` mapping and
composite nodes reference their children by id. A tree is built once, validated,
and then only read while a run executes it.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NodeKind = Literal["leaf", "sequence", "parallel", "fallback"]
COMPOSITE_KINDS: frozenset[str] = frozenset({"sequence", "parallel", "fallback"})

# "advisory" gates report problems without failing the node.
GateMode = Literal["blocking", "advisory"]


class TaskNode(BaseModel):
    """One node of the execution tree."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    kind: NodeKind
    goal_description: str = ""
    children: list[str] = Field(default_factory=list)
    required_facts: frozenset[str] = Field(default_factory=frozenset)
    produced_facts: frozenset[str] = Field(default_factory=frozenset)
    quality_gate: str | None = None
    gate_mode: GateMode = "blocking"
    # Named specialist agent; None selects the invoker's default agent.
    agent: str | None = None
    fact_ttl_s: float | None = Field(default=None, ge=0.0)
    patterns: list[str] = Field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return self.kind == "leaf"


class TaskTree(BaseModel):
    """Arena of task nodes rooted at ``root_id``."""

    model_config = ConfigDict(frozen=True)

    root_id: str
    nodes: dict[str, TaskNode]

    @property
    def root(self) -> TaskNode:
        return self.node(self.root_id)

    def node(self, node_id: str) -> TaskNode:
        try:
            return self.nodes[node_id]
        except KeyError as exc:
            raise KeyError(f"Unknown task node: {node_id}") from exc

    def children(self, node_id: str) -> list[TaskNode]:
        return [self.node(child_id) for child_id in self.node(node_id).children]

    def walk(self, start_id: str | None = None) -> Iterator[TaskNode]:
        """Pre-order traversal. Each node is yielded at most once."""
        seen: set[str] = set()
        stack = [start_id or self.root_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen or node_id not in self.nodes:
                continue
            seen.add(node_id)
            node = self.nodes[node_id]
            yield node
            stack.extend(reversed(node.children))

    def leaves(self, start_id: str | None = None) -> list[TaskNode]:
        return [node for node in self.walk(start_id) if node.is_leaf]

    def subtree_facts(self, node_id: str) -> tuple[frozenset[str], frozenset[str]]:
        """Return (required, produced) fact keys declared anywhere under ``node_id``."""
        required: set[str] = set()
        produced: set[str] = set()
        for node in self.walk(node_id):
            required.update(node.required_facts)
            produced.update(node.produced_facts)
        return frozenset(required), frozenset(produced)

    def patterns_applied(self) -> list[str]:
        seen: set[str] = set()
        ordered: list[str] = []
        for node in self.walk():
            for pattern in node.patterns:
                if pattern in seen:
                    continue
                seen.add(pattern)
                ordered.append(pattern)
        return ordered
