"""Hierarchical task-tree orchestration with working and episodic memory."""

from reactree.context import RunContext
from reactree.errors import (
    AgentInvocationError,
    CancellationRequested,
    InvalidRunTransition,
    MemoryStoreIOError,
    QualityGateError,
    ReacTreeError,
    TreeInvariantViolation,
)
from reactree.models import AgentResult, GateCheck, PhaseResult, QualityGateVerdict
from reactree.orchestration import (
    Orchestrator,
    StaticPlanner,
    WorkflowResult,
    build_orchestrator,
)
from reactree.tree import TaskNode, TaskTree, TreeBuilder
from reactree.tree.executor import ControlFlowExecutor

__all__ = [
    "AgentInvocationError",
    "AgentResult",
    "CancellationRequested",
    "ControlFlowExecutor",
    "GateCheck",
    "InvalidRunTransition",
    "MemoryStoreIOError",
    "Orchestrator",
    "PhaseResult",
    "QualityGateError",
    "QualityGateVerdict",
    "ReacTreeError",
    "RunContext",
    "StaticPlanner",
    "TaskNode",
    "TaskTree",
    "TreeBuilder",
    "WorkflowResult",
    "build_orchestrator",
]
