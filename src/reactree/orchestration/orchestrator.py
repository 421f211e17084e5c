"""Orchestrator: recall, plan, execute, and record one workflow run.

The pipeline is a LangGraph state graph::

    recall -> plan -> execute -> record -> END

Each node returns a partial state update. Per-run state lives in a
``RunContext`` carried in the graph state, so one Orchestrator can serve
concurrent runs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from langgraph.graph import END, StateGraph

from reactree.context import RunContext
from reactree.errors import CancellationRequested, ReacTreeError
from reactree.memory.episodic.base import EpisodicStore
from reactree.memory.episodic.models import EpisodicRecord
from reactree.memory.working import utc_now
from reactree.orchestration.planner import TreePlanner
from reactree.orchestration.run import WorkflowResult, WorkflowRun
from reactree.orchestration.state import OrchestrationState, initial_state
from reactree.tree.builder import validate_tree
from reactree.tree.executor import ControlFlowExecutor
from reactree.tree.models import TaskTree

logger = logging.getLogger(__name__)


class Orchestrator:
    def __init__(
        self,
        executor: ControlFlowExecutor,
        episodic_store: EpisodicStore,
        *,
        planner: TreePlanner | None = None,
        similar_episode_limit: int = 5,
    ) -> None:
        self.executor = executor
        self.episodic_store = episodic_store
        self.planner = planner
        self.similar_episode_limit = similar_episode_limit
        self._graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(OrchestrationState)

        graph.add_node("recall", self._recall)
        graph.add_node("plan", self._plan)
        graph.add_node("execute", self._execute)
        graph.add_node("record", self._record)

        graph.set_entry_point("recall")
        graph.add_edge("recall", "plan")
        graph.add_edge("plan", "execute")
        graph.add_edge("execute", "record")
        graph.add_edge("record", END)

        return graph.compile()

    async def run(
        self,
        root_goal: str,
        *,
        context_tags: Sequence[str] = (),
        tree: TaskTree | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkflowResult:
        """Execute one run and record exactly one episode for it.

        Raises ``TreeInvariantViolation`` before anything executes when the
        tree is malformed, and ``MemoryStoreIOError`` when the episodic store
        fails. A failed or cancelled run is a normal ``WorkflowResult``.
        """
        if tree is None and self.planner is None:
            raise ReacTreeError("no task tree was supplied and no planner is configured")
        if tree is not None:
            validate_tree(tree)

        context = RunContext(
            root_goal=root_goal,
            context_tags=tuple(context_tags),
            cancel_event=cancel_event if cancel_event is not None else asyncio.Event(),
        )
        workflow = WorkflowRun(context.run_id)
        logger.info(
            "workflow event=start run_id=%s tags=%s",
            context.run_id,
            ",".join(context.context_tags),
        )

        try:
            state = await self._graph.ainvoke(initial_state(context, workflow, tree))
            snapshot = await context.working_memory.snapshot()
        except Exception:
            if not workflow.finished:
                workflow.transition("failed")
            logger.exception("workflow event=aborted run_id=%s", context.run_id)
            raise
        finally:
            await context.working_memory.clear()

        episode = state["episode"]
        result = WorkflowResult(
            run_id=context.run_id,
            status=workflow.status,
            root=state["root"],
            episode_id=episode.episode_id,
            diagnostics=list(state.get("diagnostics", [])),
            similar_episode_ids=[item.episode_id for item in state.get("similar_episodes", [])],
            facts={entry.key: entry.value for entry in snapshot},
            duration_ms=episode.duration_ms,
        )
        logger.info(
            "workflow event=finish run_id=%s status=%s duration_ms=%s episode_id=%s",
            result.run_id,
            result.status,
            result.duration_ms,
            result.episode_id,
        )
        return result

    async def _recall(self, state: OrchestrationState) -> OrchestrationState:
        context = state["context"]
        similar = await asyncio.to_thread(
            self.episodic_store.find_similar,
            context.root_goal,
            list(context.context_tags),
            self.similar_episode_limit,
        )
        context.similar_episodes = list(similar)
        logger.info(
            "workflow event=recalled run_id=%s similar_episodes=%d", context.run_id, len(similar)
        )
        return {"similar_episodes": list(similar)}

    async def _plan(self, state: OrchestrationState) -> OrchestrationState:
        tree = state.get("tree")
        if tree is not None:
            return {"tree": tree}

        context = state["context"]
        if self.planner is None:
            raise ReacTreeError("no task tree was supplied and no planner is configured")
        tree = await self.planner.plan(context.root_goal, state.get("similar_episodes", []))
        validate_tree(tree)
        logger.info(
            "workflow event=planned run_id=%s root_id=%s nodes=%d",
            context.run_id,
            tree.root_id,
            len(tree.nodes),
        )
        return {"tree": tree}

    async def _execute(self, state: OrchestrationState) -> OrchestrationState:
        context = state["context"]
        workflow: WorkflowRun = state["workflow"]
        tree = state["tree"]

        workflow.transition("running")
        root = await self.executor.execute(tree, context)

        diagnostics = list(root.diagnostics)
        succeeded = root.status == "succeeded"
        if context.cancelled:
            succeeded = False
            if CancellationRequested.diagnostic not in diagnostics:
                diagnostics.append(CancellationRequested.diagnostic)
        workflow.transition("succeeded" if succeeded else "failed")
        return {"root": root, "diagnostics": diagnostics}

    async def _record(self, state: OrchestrationState) -> OrchestrationState:
        context = state["context"]
        workflow: WorkflowRun = state["workflow"]
        root = state["root"]
        tree = state["tree"]

        learnings: list[str] = []
        for leaf in root.leaf_results():
            learnings.extend(leaf.learnings)
        if workflow.status == "failed":
            # Composite gate failures and cancellation only show up in diagnostics.
            for message in state.get("diagnostics", []):
                if message not in learnings:
                    learnings.append(message)

        elapsed_ms = (utc_now() - context.started_at).total_seconds() * 1000.0
        episode = EpisodicRecord(
            goal_description=context.root_goal,
            context_tags=list(context.context_tags),
            patterns_applied=tree.patterns_applied(),
            outcome="succeeded" if workflow.status == "succeeded" else "failed",
            duration_ms=round(max(elapsed_ms, 0.0), 2),
            learnings=learnings,
        )
        await asyncio.to_thread(self.episodic_store.record, episode)
        logger.info(
            "workflow event=episode_recorded run_id=%s episode_id=%s outcome=%s",
            context.run_id,
            episode.episode_id,
            episode.outcome,
        )
        return {"episode": episode}
