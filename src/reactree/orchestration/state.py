"""Typed state contract for the orchestration graph."""

from typing import TypedDict

from reactree.context import RunContext
from reactree.memory.episodic.models import EpisodicRecord
from reactree.models import PhaseResult
from reactree.orchestration.run import WorkflowRun
from reactree.tree.models import TaskTree


class OrchestrationState(TypedDict, total=False):
    context: RunContext
    workflow: WorkflowRun
    similar_episodes: list[EpisodicRecord]
    tree: TaskTree | None
    root: PhaseResult
    diagnostics: list[str]
    episode: EpisodicRecord


def initial_state(
    context: RunContext,
    workflow: WorkflowRun,
    tree: TaskTree | None = None,
) -> OrchestrationState:
    return {
        "context": context,
        "workflow": workflow,
        "similar_episodes": [],
        "tree": tree,
        "diagnostics": [],
    }
