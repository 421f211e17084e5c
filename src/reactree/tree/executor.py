"""Control-Flow Executor: walk a task tree and produce a PhaseResult for its root.

Combinator semantics:

- sequence: children one at a time, in order; the first failure stops the walk
  and every later child is reported as skipped.
- parallel: all children at once against the same working memory; succeeds
  only if every child succeeds.
- fallback: children in order until one succeeds; that child's result becomes
  the fallback's result.

No failure is retried here. Intermediate successes are never rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass

from reactree.context import RunContext
from reactree.errors import AgentInvocationError, CancellationRequested
from reactree.invocation.agent import AgentInvoker
from reactree.invocation.quality_gate import QualityGateRunner
from reactree.metrics.phase_metrics import PhaseMetric, PhaseMetricsLog
from reactree.models import PhaseResult, QualityGateVerdict
from reactree.tree.models import TaskNode, TaskTree

logger = logging.getLogger(__name__)

CANCELLED = CancellationRequested.diagnostic


@dataclass(frozen=True)
class _Walk:
    tree: TaskTree
    context: RunContext
    # Worker pool: bounds concurrent leaf executions for one run.
    workers: asyncio.Semaphore


class ControlFlowExecutor:
    def __init__(
        self,
        invoker: AgentInvoker,
        gate_runner: QualityGateRunner | None = None,
        *,
        fact_ttl_s: float = 3600.0,
        max_parallel_workers: int = 8,
        metrics: PhaseMetricsLog | None = None,
    ) -> None:
        if max_parallel_workers < 1:
            raise ValueError("max_parallel_workers must be >= 1")
        if fact_ttl_s < 0:
            raise ValueError("fact_ttl_s must be >= 0")
        self.invoker = invoker
        self.gate_runner = gate_runner
        self.fact_ttl_s = fact_ttl_s
        self.max_parallel_workers = max_parallel_workers
        self.metrics = metrics

    async def execute(self, tree: TaskTree, context: RunContext) -> PhaseResult:
        walk = _Walk(
            tree=tree,
            context=context,
            workers=asyncio.Semaphore(self.max_parallel_workers),
        )
        return await self._execute(walk, tree.root_id)

    async def _execute(self, walk: _Walk, node_id: str) -> PhaseResult:
        node = walk.tree.node(node_id)
        started_at = time.perf_counter()
        if node.kind == "leaf":
            result = await self._execute_leaf(walk, node)
        elif node.kind == "sequence":
            result = await self._execute_sequence(walk, node)
        elif node.kind == "parallel":
            result = await self._execute_parallel(walk, node)
        else:
            result = await self._execute_fallback(walk, node)

        if not node.is_leaf and node.quality_gate and result.status == "succeeded":
            await self._apply_gate(walk, node, result, narrative="")

        result.duration_ms = _duration_ms(started_at)
        logger.info(
            "phase event=completed run_id=%s node_id=%s kind=%s status=%s duration_ms=%s",
            walk.context.run_id,
            node.id,
            node.kind,
            result.status,
            result.duration_ms,
        )
        await self._record_metric(walk, result)
        return result

    async def _execute_leaf(self, walk: _Walk, node: TaskNode) -> PhaseResult:
        if walk.context.cancelled:
            return _failed(node, [CANCELLED])

        async with walk.workers:
            # Cancellation may have arrived while waiting for a worker slot.
            if walk.context.cancelled:
                return _failed(node, [CANCELLED])

            memory = walk.context.working_memory
            available_facts = await memory.get_many(node.required_facts)
            missing = sorted(set(node.required_facts) - set(available_facts))
            if missing:
                logger.info(
                    "phase event=facts_absent node_id=%s keys=%s", node.id, ",".join(missing)
                )

            try:
                agent_result = await self.invoker.invoke(node, available_facts)
            except AgentInvocationError as exc:
                return _failed(node, [str(exc)])

            if not agent_result.succeeded:
                reason = agent_result.narrative.strip() or f"agent reported failure for '{node.id}'"
                return _failed(node, [reason])

            diagnostics: list[str] = []
            written: dict[str, str] = {}
            ttl_s = node.fact_ttl_s if node.fact_ttl_s is not None else self.fact_ttl_s
            for key in sorted(agent_result.produced_facts):
                value = agent_result.produced_facts[key]
                if key not in node.produced_facts:
                    diagnostics.append(f"undeclared fact '{key}' from '{node.id}' was dropped")
                    logger.warning("phase event=undeclared_fact node_id=%s key=%s", node.id, key)
                    continue
                await memory.put(key, value, ttl_s, writer_node_id=node.id)
                written[key] = value

            result = PhaseResult(
                node_id=node.id,
                kind=node.kind,
                status="succeeded",
                produced_facts=written,
                diagnostics=diagnostics,
                learnings=[agent_result.narrative] if agent_result.narrative.strip() else [],
            )
            if node.quality_gate:
                await self._apply_gate(
                    walk,
                    node,
                    result,
                    narrative=agent_result.narrative,
                    available_facts=available_facts,
                )
            return result

    async def _execute_sequence(self, walk: _Walk, node: TaskNode) -> PhaseResult:
        results: list[PhaseResult] = []
        failed = False
        for child_id in node.children:
            if failed:
                results.append(_skipped(walk.tree, child_id))
                continue
            child = await self._execute(walk, child_id)
            results.append(child)
            failed = child.status == "failed"

        return PhaseResult(
            node_id=node.id,
            kind=node.kind,
            status="failed" if failed else "succeeded",
            produced_facts=_merge_produced(results),
            diagnostics=[message for child in results for message in child.diagnostics],
            children=results,
        )

    async def _execute_parallel(self, walk: _Walk, node: TaskNode) -> PhaseResult:
        results = list(
            await asyncio.gather(*(self._execute(walk, child_id) for child_id in node.children))
        )
        failed = [child for child in results if child.status != "succeeded"]
        return PhaseResult(
            node_id=node.id,
            kind=node.kind,
            status="failed" if failed else "succeeded",
            produced_facts=_merge_produced(results),
            diagnostics=[message for child in failed for message in child.diagnostics],
            children=results,
        )

    async def _execute_fallback(self, walk: _Walk, node: TaskNode) -> PhaseResult:
        attempts: list[PhaseResult] = []
        winner: PhaseResult | None = None
        stopped_by_cancel = False
        for child_id in node.children:
            if winner is not None or stopped_by_cancel:
                attempts.append(_skipped(walk.tree, child_id))
                continue
            if attempts and walk.context.cancelled:
                stopped_by_cancel = True
                attempts.append(_skipped(walk.tree, child_id))
                continue
            child = await self._execute(walk, child_id)
            attempts.append(child)
            if child.status == "succeeded":
                winner = child

        if winner is not None:
            return PhaseResult(
                node_id=node.id,
                kind=node.kind,
                status="succeeded",
                produced_facts=dict(winner.produced_facts),
                diagnostics=list(winner.diagnostics),
                children=attempts,
            )

        # Every attempt failed: diagnostics from each attempt, most recent last.
        diagnostics = [message for child in attempts for message in child.diagnostics]
        if stopped_by_cancel and CANCELLED not in diagnostics:
            diagnostics.append(CANCELLED)
        return PhaseResult(
            node_id=node.id,
            kind=node.kind,
            status="failed",
            diagnostics=diagnostics,
            children=attempts,
        )

    async def _apply_gate(
        self,
        walk: _Walk,
        node: TaskNode,
        result: PhaseResult,
        *,
        narrative: str,
        available_facts: Mapping[str, str] | None = None,
    ) -> None:
        """Run the node's gate and fold its verdict into ``result`` in place."""
        gate_name = node.quality_gate or ""
        verdict = await self._run_gate(walk, node, result, narrative, available_facts or {})
        if verdict.passed:
            return

        messages = [f"quality gate '{gate_name}' failed: {message}" for message in verdict.messages]
        if not messages:
            messages = [f"quality gate '{gate_name}' failed"]
        result.diagnostics.extend(messages)
        if node.gate_mode == "advisory":
            logger.warning(
                "phase event=advisory_gate_failed node_id=%s gate=%s", node.id, gate_name
            )
            return
        result.status = "failed"
        result.learnings = list(result.diagnostics)

    async def _run_gate(
        self,
        walk: _Walk,
        node: TaskNode,
        result: PhaseResult,
        narrative: str,
        available_facts: Mapping[str, str],
    ) -> QualityGateVerdict:
        gate_name = node.quality_gate or ""
        if self.gate_runner is None:
            return QualityGateVerdict(
                gate_name=gate_name,
                passed=False,
                messages=["no quality gate capability is configured"],
            )
        phase_context = {
            "run_id": walk.context.run_id,
            "node_id": node.id,
            "goal_description": node.goal_description,
            "narrative": narrative,
        }
        for key, value in {**available_facts, **result.produced_facts}.items():
            phase_context[f"fact.{key}"] = value
        return await self.gate_runner.run(gate_name, phase_context)

    async def _record_metric(self, walk: _Walk, result: PhaseResult) -> None:
        if self.metrics is None:
            return
        metric = PhaseMetric(
            phase=result.node_id,
            kind=result.kind,
            status=result.status,
            duration_ms=result.duration_ms,
            run_id=walk.context.run_id,
        )
        try:
            await asyncio.to_thread(self.metrics.record, metric)
        except OSError as exc:
            logger.warning(
                "metrics event=record_failed node_id=%s path=%s reason=%s",
                result.node_id,
                self.metrics.path,
                exc,
            )


def _failed(node: TaskNode, diagnostics: list[str]) -> PhaseResult:
    return PhaseResult(
        node_id=node.id,
        kind=node.kind,
        status="failed",
        diagnostics=list(diagnostics),
        learnings=list(diagnostics),
    )


def _skipped(tree: TaskTree, node_id: str) -> PhaseResult:
    node = tree.node(node_id)
    return PhaseResult(
        node_id=node.id,
        kind=node.kind,
        status="skipped",
        children=[_skipped(tree, child_id) for child_id in node.children],
    )


def _merge_produced(results: list[PhaseResult]) -> dict[str, str]:
    merged: dict[str, str] = {}
    for child in results:
        if child.status == "succeeded":
            merged.update(child.produced_facts)
    return merged


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
