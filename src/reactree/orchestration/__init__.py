"""Workflow orchestration: recall, plan, execute, record."""

from reactree.orchestration.factory import build_episodic_store, build_orchestrator
from reactree.orchestration.orchestrator import Orchestrator
from reactree.orchestration.planner import StaticPlanner, TreePlanner
from reactree.orchestration.run import WorkflowResult, WorkflowRun, WorkflowStatus

__all__ = [
    "Orchestrator",
    "StaticPlanner",
    "TreePlanner",
    "WorkflowResult",
    "WorkflowRun",
    "WorkflowStatus",
    "build_episodic_store",
    "build_orchestrator",
]
