"""Wire an Orchestrator from Settings."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from reactree.config.settings import Settings, get_settings
from reactree.invocation.agent import Agent, AgentInvoker
from reactree.invocation.quality_gate import QualityGate, QualityGateRunner
from reactree.memory.episodic.base import EpisodicStore
from reactree.memory.episodic.jsonl import JsonlEpisodicStore
from reactree.memory.episodic.memory import InMemoryEpisodicStore
from reactree.memory.episodic.postgres import PostgresEpisodicStore
from reactree.metrics.phase_metrics import PhaseMetricsLog
from reactree.orchestration.orchestrator import Orchestrator
from reactree.orchestration.planner import TreePlanner
from reactree.tree.executor import ControlFlowExecutor

logger = logging.getLogger(__name__)


def build_episodic_store(settings: Settings) -> EpisodicStore:
    if settings.episodic_backend == "postgres":
        store = PostgresEpisodicStore(settings.resolved_database_url())
        store.migrate()
        return store
    if settings.episodic_backend == "memory":
        return InMemoryEpisodicStore()
    return JsonlEpisodicStore(settings.resolved_episodic_log_path())


def build_orchestrator(
    agent: Agent,
    quality_gate: QualityGate | None = None,
    *,
    planner: TreePlanner | None = None,
    settings: Settings | None = None,
    episodic_store: EpisodicStore | None = None,
    specialists: Mapping[str, Agent] | None = None,
) -> Orchestrator:
    settings = settings or get_settings()
    store = episodic_store if episodic_store is not None else build_episodic_store(settings)

    metrics_path = settings.resolved_phase_metrics_path()
    executor = ControlFlowExecutor(
        AgentInvoker(agent, specialists=specialists, timeout_s=settings.agent_timeout_s),
        (
            QualityGateRunner(quality_gate, timeout_s=settings.quality_gate_timeout_s)
            if quality_gate is not None
            else None
        ),
        fact_ttl_s=settings.fact_ttl_s,
        max_parallel_workers=settings.max_parallel_workers,
        metrics=PhaseMetricsLog(metrics_path) if metrics_path is not None else None,
    )
    logger.info(
        "orchestrator event=built app=%s episodic_backend=%s specialists=%d metrics=%s",
        settings.app_name,
        "override" if episodic_store is not None else settings.episodic_backend,
        len(specialists or {}),
        metrics_path or "off",
    )
    return Orchestrator(
        executor,
        store,
        planner=planner,
        similar_episode_limit=settings.similar_episode_limit,
    )
