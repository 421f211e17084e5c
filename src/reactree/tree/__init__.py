"""Task tree schema, construction, and validation."""

from reactree.tree.builder import TreeBuilder, sequence_dependencies, validate_tree
from reactree.tree.models import GateMode, NodeKind, TaskNode, TaskTree
from reactree.tree.serialization import tree_from_payload, tree_to_payload

__all__ = [
    "GateMode",
    "NodeKind",
    "TaskNode",
    "TaskTree",
    "TreeBuilder",
    "sequence_dependencies",
    "tree_from_payload",
    "tree_to_payload",
    "validate_tree",
]
