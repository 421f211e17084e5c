"""Nested JSON form of a task tree, as produced by external planners.

Example::

    {
        "id": "root",
        "kind": "sequence",
        "goal": "Ship feature",
        "children": [
            {"id": "plan", "kind": "leaf", "goal": "Plan", "producedFacts": ["design"]},
            {"id": "build", "kind": "leaf", "goal": "Build", "requiredFacts": ["design"]},
        ],
    }
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from reactree.errors import TreeInvariantViolation
from reactree.tree.builder import validate_tree
from reactree.tree.models import TaskNode, TaskTree

# payload key -> TaskNode field
_FIELD_ALIASES = {
    "goal": "goal_description",
    "goalDescription": "goal_description",
    "requiredFacts": "required_facts",
    "producedFacts": "produced_facts",
    "qualityGate": "quality_gate",
    "gateMode": "gate_mode",
    "agent": "agent",
    "factTtlS": "fact_ttl_s",
    "patterns": "patterns",
}


def tree_from_payload(payload: dict[str, Any]) -> TaskTree:
    """Flatten a nested payload into arena form and validate it."""
    if not isinstance(payload, dict):
        raise TreeInvariantViolation(["tree payload must be a JSON object"])

    nodes: dict[str, TaskNode] = {}
    violations: list[str] = []
    stack: list[dict[str, Any]] = [payload]
    while stack:
        raw = stack.pop()
        raw_children = raw.get("children") or []
        if not isinstance(raw_children, list):
            violations.append(f"children of '{raw.get('id')}' must be a list")
            raw_children = []
        child_ids: list[str] = []
        for child in raw_children:
            if not isinstance(child, dict) or not child.get("id"):
                violations.append(f"'{raw.get('id')}' has a child without an id")
                continue
            child_ids.append(str(child["id"]))
            stack.append(child)

        fields: dict[str, Any] = {"id": raw.get("id"), "kind": raw.get("kind"), "children": child_ids}
        for key, field_name in _FIELD_ALIASES.items():
            if key in raw:
                fields[field_name] = raw[key]
        try:
            node = TaskNode.model_validate(fields)
        except ValidationError as exc:
            violations.append(f"node '{raw.get('id')}' is malformed: {exc.errors()[0]['msg']}")
            continue
        if node.id in nodes:
            violations.append(f"duplicate node id '{node.id}'")
            continue
        nodes[node.id] = node

    if violations:
        raise TreeInvariantViolation(violations)

    tree = TaskTree(root_id=str(payload.get("id")), nodes=nodes)
    validate_tree(tree)
    return tree


def tree_to_payload(tree: TaskTree, node_id: str | None = None) -> dict[str, Any]:
    node = tree.node(node_id or tree.root_id)
    payload: dict[str, Any] = {
        "id": node.id,
        "kind": node.kind,
        "goal": node.goal_description,
    }
    if node.required_facts:
        payload["requiredFacts"] = sorted(node.required_facts)
    if node.produced_facts:
        payload["producedFacts"] = sorted(node.produced_facts)
    if node.quality_gate:
        payload["qualityGate"] = node.quality_gate
        payload["gateMode"] = node.gate_mode
    if node.agent:
        payload["agent"] = node.agent
    if node.fact_ttl_s is not None:
        payload["factTtlS"] = node.fact_ttl_s
    if node.patterns:
        payload["patterns"] = list(node.patterns)
    if node.children:
        payload["children"] = [tree_to_payload(tree, child_id) for child_id in node.children]
    return payload
