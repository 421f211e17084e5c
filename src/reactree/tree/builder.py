"""Tree construction and static validation.

Validation happens before a run starts. Any structural problem is fatal and
reported as a single ``TreeInvariantViolation`` listing every violation found.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from reactree.errors import TreeInvariantViolation
from reactree.tree.models import COMPOSITE_KINDS, GateMode, NodeKind, TaskNode, TaskTree

logger = logging.getLogger(__name__)


class TreeBuilder:
    """Accumulate nodes into an arena and produce a validated ``TaskTree``."""

    def __init__(self) -> None:
        self._nodes: dict[str, TaskNode] = {}

    def leaf(
        self,
        node_id: str,
        goal_description: str,
        *,
        required_facts: Iterable[str] = (),
        produced_facts: Iterable[str] = (),
        quality_gate: str | None = None,
        gate_mode: GateMode = "blocking",
        agent: str | None = None,
        fact_ttl_s: float | None = None,
        patterns: Iterable[str] = (),
    ) -> str:
        return self._add(
            TaskNode(
                id=node_id,
                kind="leaf",
                goal_description=goal_description,
                required_facts=frozenset(required_facts),
                produced_facts=frozenset(produced_facts),
                quality_gate=quality_gate,
                gate_mode=gate_mode,
                agent=agent,
                fact_ttl_s=fact_ttl_s,
                patterns=list(patterns),
            )
        )

    def sequence(self, node_id: str, goal_description: str, children: Iterable[str], **extra) -> str:
        return self._composite("sequence", node_id, goal_description, children, **extra)

    def parallel(self, node_id: str, goal_description: str, children: Iterable[str], **extra) -> str:
        return self._composite("parallel", node_id, goal_description, children, **extra)

    def fallback(self, node_id: str, goal_description: str, children: Iterable[str], **extra) -> str:
        return self._composite("fallback", node_id, goal_description, children, **extra)

    def build(self, root_id: str) -> TaskTree:
        tree = TaskTree(root_id=root_id, nodes=dict(self._nodes))
        validate_tree(tree)
        return tree

    def _composite(
        self,
        kind: NodeKind,
        node_id: str,
        goal_description: str,
        children: Iterable[str],
        *,
        required_facts: Iterable[str] = (),
        produced_facts: Iterable[str] = (),
        quality_gate: str | None = None,
        gate_mode: GateMode = "blocking",
        patterns: Iterable[str] = (),
    ) -> str:
        return self._add(
            TaskNode(
                id=node_id,
                kind=kind,
                goal_description=goal_description,
                children=list(children),
                required_facts=frozenset(required_facts),
                produced_facts=frozenset(produced_facts),
                quality_gate=quality_gate,
                gate_mode=gate_mode,
                patterns=list(patterns),
            )
        )

    def _add(self, node: TaskNode) -> str:
        if node.id in self._nodes:
            raise TreeInvariantViolation([f"duplicate node id '{node.id}'"])
        self._nodes[node.id] = node
        return node.id


def validate_tree(tree: TaskTree) -> None:
    """Raise ``TreeInvariantViolation`` unless ``tree`` satisfies every invariant."""
    violations: list[str] = []

    if tree.root_id not in tree.nodes:
        raise TreeInvariantViolation([f"root node '{tree.root_id}' is not defined"])

    parents: dict[str, str] = {}
    for node_id, node in tree.nodes.items():
        if node_id != node.id:
            violations.append(f"node registered as '{node_id}' declares id '{node.id}'")
        if node.is_leaf and node.children:
            violations.append(f"leaf '{node.id}' has children")
        if node.kind in COMPOSITE_KINDS and not node.children:
            violations.append(f"{node.kind} '{node.id}' has no children")
        for child_id in node.children:
            if child_id not in tree.nodes:
                violations.append(f"'{node.id}' references unknown child '{child_id}'")
                continue
            if child_id in parents:
                violations.append(
                    f"node '{child_id}' has more than one parent "
                    f"('{parents[child_id]}' and '{node.id}')"
                )
                continue
            parents[child_id] = node.id

    if tree.root_id in parents:
        violations.append(
            f"root '{tree.root_id}' is referenced as a child of '{parents[tree.root_id]}'"
        )

    violations.extend(_cycle_violations(tree))

    if not violations:
        reachable = {node.id for node in tree.walk()}
        unreachable = sorted(set(tree.nodes) - reachable)
        if unreachable:
            violations.append(f"nodes unreachable from root: {', '.join(unreachable)}")

    if not violations:
        for node in tree.walk():
            if node.kind == "parallel":
                violations.extend(_parallel_fact_conflicts(tree, node))
            elif node.kind == "sequence":
                _warn_sequence_overwrites(tree, node)

    if violations:
        raise TreeInvariantViolation(violations)


def sequence_dependencies(tree: TaskTree, node_id: str) -> list[tuple[int, int]]:
    """Return (i, j) pairs where child i requires a fact produced by earlier child j."""
    footprints = [tree.subtree_facts(child.id) for child in tree.children(node_id)]
    pairs: list[tuple[int, int]] = []
    for i, (required_i, _) in enumerate(footprints):
        for j in range(i):
            _, produced_j = footprints[j]
            if required_i & produced_j:
                pairs.append((i, j))
    return pairs


def _cycle_violations(tree: TaskTree) -> list[str]:
    violations: list[str] = []
    done: set[str] = set()
    for start_id in tree.nodes:
        if start_id in done:
            continue
        on_path: set[str] = set()
        # Iterative DFS; entries are (node_id, entered).
        stack: list[tuple[str, bool]] = [(start_id, False)]
        while stack:
            node_id, entered = stack.pop()
            if entered:
                on_path.discard(node_id)
                done.add(node_id)
                continue
            if node_id in done:
                continue
            on_path.add(node_id)
            stack.append((node_id, True))
            for child_id in tree.nodes[node_id].children:
                if child_id not in tree.nodes:
                    continue
                if child_id in on_path:
                    violations.append(f"cycle detected through '{node_id}' -> '{child_id}'")
                    continue
                if child_id not in done:
                    stack.append((child_id, False))
    return violations


def _parallel_fact_conflicts(tree: TaskTree, node: TaskNode) -> list[str]:
    violations: list[str] = []
    footprints = [(child.id, *tree.subtree_facts(child.id)) for child in tree.children(node.id)]
    for index, (left_id, left_required, left_produced) in enumerate(footprints):
        for right_id, right_required, right_produced in footprints[index + 1 :]:
            shared_writes = left_produced & right_produced
            if shared_writes:
                violations.append(
                    f"parallel '{node.id}': children '{left_id}' and '{right_id}' both produce "
                    f"{_keys(shared_writes)}"
                )
            cross_reads = (left_produced & right_required) | (right_produced & left_required)
            if cross_reads:
                violations.append(
                    f"parallel '{node.id}': children '{left_id}' and '{right_id}' depend on each "
                    f"other through {_keys(cross_reads)}"
                )
    return violations


def _warn_sequence_overwrites(tree: TaskTree, node: TaskNode) -> None:
    seen: dict[str, str] = {}
    for child in tree.children(node.id):
        _, produced = tree.subtree_facts(child.id)
        for key in sorted(produced):
            if key in seen:
                logger.warning(
                    "tree event=sequence_overwrite node_id=%s key=%s first=%s later=%s",
                    node.id,
                    key,
                    seen[key],
                    child.id,
                )
            seen[key] = child.id


def _keys(keys: Iterable[str]) -> str:
    return ", ".join(f"'{key}'" for key in sorted(keys))
