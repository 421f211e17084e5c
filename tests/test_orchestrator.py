from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest
from conftest import ScriptedAgent, ScriptedGate, failed, make_executor, ok

from reactree.errors import (
    InvalidRunTransition,
    MemoryStoreIOError,
    ReacTreeError,
    TreeInvariantViolation,
)
from reactree.memory.episodic import EpisodicRecord, InMemoryEpisodicStore
from reactree.models import GateCheck
from reactree.orchestration import Orchestrator, StaticPlanner, WorkflowRun
from reactree.tree import TaskNode, TaskTree, TreeBuilder


def _feature_tree() -> TaskTree:
    builder = TreeBuilder()
    builder.leaf("design", "design", produced_facts=["schema"], patterns=["migration-first"])
    builder.leaf("models", "models", required_facts=["schema"], produced_facts=["models"])
    builder.leaf("api", "api", required_facts=["schema"], produced_facts=["endpoints"])
    builder.parallel("build", "build", ["models", "api"], patterns=["service-object"])
    builder.sequence("root", "Add user profiles", ["design", "build"])
    return builder.build("root")


def _orchestrator(
    agent: ScriptedAgent,
    store: InMemoryEpisodicStore,
    gate: ScriptedGate | None = None,
    **kwargs,
) -> Orchestrator:
    return Orchestrator(make_executor(agent, gate), store, **kwargs)


@pytest.mark.asyncio
async def test_successful_run_records_one_succeeded_episode() -> None:
    agent = ScriptedAgent(
        {
            "design": ok("designed profiles table", schema="profiles"),
            "models": ok(models="Profile"),
            "api": ok(endpoints="/profiles"),
        }
    )
    store = InMemoryEpisodicStore()

    result = await _orchestrator(agent, store).run(
        "Add user profiles", context_tags=["rails", "profiles"], tree=_feature_tree()
    )

    assert result.status == "succeeded"
    assert result.facts == {"endpoints": "/profiles", "models": "Profile", "schema": "profiles"}
    assert result.diagnostics == []
    episodes = store.records()
    assert len(episodes) == 1
    episode = episodes[0]
    assert episode.episode_id == result.episode_id
    assert episode.outcome == "succeeded"
    assert episode.context_tags == ["rails", "profiles"]
    assert episode.patterns_applied == ["migration-first", "service-object"]
    assert episode.learnings == ["designed profiles table"]
    assert episode.duration_ms >= 0


@pytest.mark.asyncio
async def test_failed_run_records_failed_episode_with_leaf_diagnostics() -> None:
    agent = ScriptedAgent({"design": failed("schema conflicts with existing users table")})
    store = InMemoryEpisodicStore()

    result = await _orchestrator(agent, store).run("Add user profiles", tree=_feature_tree())

    assert result.status == "failed"
    assert result.diagnostics == ["schema conflicts with existing users table"]
    assert result.root.find("build").status == "skipped"
    episodes = store.records()
    assert len(episodes) == 1
    assert episodes[0].outcome == "failed"
    assert episodes[0].learnings == ["schema conflicts with existing users table"]


@pytest.mark.asyncio
async def test_gate_failure_fails_the_run() -> None:
    builder = TreeBuilder()
    builder.leaf("impl", "impl", quality_gate="rspec")
    builder.sequence("root", "Implement", ["impl"])
    gate = ScriptedGate({"rspec": GateCheck(passed=False, messages=["2 examples, 1 failure"])})
    store = InMemoryEpisodicStore()

    result = await _orchestrator(ScriptedAgent(), store, gate).run(
        "Implement", tree=builder.build("root")
    )

    assert result.status == "failed"
    assert result.diagnostics == ["quality gate 'rspec' failed: 2 examples, 1 failure"]
    assert store.records()[0].learnings == result.diagnostics


@pytest.mark.asyncio
async def test_recalls_similar_episodes_before_planning() -> None:
    store = InMemoryEpisodicStore()
    earlier = EpisodicRecord(
        goal_description="Add user profiles",
        context_tags=["rails"],
        outcome="failed",
        duration_ms=5.0,
        learnings=["run migrations first"],
    )
    store.record(earlier)
    seen: list[list[str]] = []

    class RecordingPlanner:
        async def plan(
            self, root_goal: str, similar_episodes: Sequence[EpisodicRecord]
        ) -> TaskTree:
            seen.append([episode.episode_id for episode in similar_episodes])
            return _feature_tree()

    orchestrator = _orchestrator(ScriptedAgent(), store, planner=RecordingPlanner())

    result = await orchestrator.run("Add user profiles", context_tags=["rails"])

    assert seen == [[earlier.episode_id]]
    assert result.similar_episode_ids == [earlier.episode_id]
    assert len(store.records()) == 2


@pytest.mark.asyncio
async def test_static_planner_supplies_tree() -> None:
    agent = ScriptedAgent()
    store = InMemoryEpisodicStore()
    orchestrator = _orchestrator(agent, store, planner=StaticPlanner(_feature_tree()))

    result = await orchestrator.run("Add user profiles")

    assert result.status == "succeeded"
    assert sorted(agent.calls) == ["api", "design", "models"]


@pytest.mark.asyncio
async def test_invalid_tree_aborts_before_anything_runs() -> None:
    tree = TaskTree(
        root_id="root",
        nodes={
            "root": TaskNode(id="root", kind="parallel", children=["a", "b"]),
            "a": TaskNode(id="a", kind="leaf", produced_facts=frozenset({"x"})),
            "b": TaskNode(id="b", kind="leaf", produced_facts=frozenset({"x"})),
        },
    )
    agent = ScriptedAgent()
    store = InMemoryEpisodicStore()

    with pytest.raises(TreeInvariantViolation):
        await _orchestrator(agent, store).run("Conflicting work", tree=tree)

    assert agent.calls == []
    assert store.records() == []


@pytest.mark.asyncio
async def test_invalid_planned_tree_records_no_episode() -> None:
    tree = TaskTree(
        root_id="root",
        nodes={"root": TaskNode(id="root", kind="sequence")},
    )
    store = InMemoryEpisodicStore()

    with pytest.raises(TreeInvariantViolation, match="has no children"):
        await _orchestrator(ScriptedAgent(), store, planner=StaticPlanner(tree)).run("Nothing")

    assert store.records() == []


@pytest.mark.asyncio
async def test_run_without_tree_or_planner_is_rejected() -> None:
    with pytest.raises(ReacTreeError, match="no planner is configured"):
        await _orchestrator(ScriptedAgent(), InMemoryEpisodicStore()).run("Anything")


@pytest.mark.asyncio
async def test_cancelled_run_is_failed_with_cancelled_diagnostic() -> None:
    agent = ScriptedAgent()
    store = InMemoryEpisodicStore()
    cancel_event = asyncio.Event()
    cancel_event.set()

    result = await _orchestrator(agent, store).run(
        "Add user profiles", tree=_feature_tree(), cancel_event=cancel_event
    )

    assert result.status == "failed"
    assert "cancelled" in result.diagnostics
    assert agent.calls == []
    assert [episode.outcome for episode in store.records()] == ["failed"]


@pytest.mark.asyncio
async def test_cancel_mid_run_stops_later_leaves() -> None:
    cancel_event = asyncio.Event()

    class CancellingAgent(ScriptedAgent):
        async def invoke(self, goal_description, available_facts, timeout_s):
            cancel_event.set()
            return await super().invoke(goal_description, available_facts, timeout_s)

    agent = CancellingAgent({"design": ok(schema="profiles")})
    store = InMemoryEpisodicStore()

    result = await _orchestrator(agent, store).run(
        "Add user profiles", tree=_feature_tree(), cancel_event=cancel_event
    )

    assert agent.calls == ["design"]
    assert result.status == "failed"
    assert result.diagnostics == ["cancelled", "cancelled"]
    assert result.root.find("design").status == "succeeded"


@pytest.mark.asyncio
async def test_episodic_store_failure_reaches_caller() -> None:
    class BrokenStore(InMemoryEpisodicStore):
        def record(self, episode: EpisodicRecord) -> None:
            raise MemoryStoreIOError("disk full")

    with pytest.raises(MemoryStoreIOError, match="disk full"):
        await _orchestrator(ScriptedAgent(), BrokenStore()).run(
            "Add user profiles", tree=_feature_tree()
        )


@pytest.mark.asyncio
async def test_concurrent_runs_do_not_share_working_memory() -> None:
    builder = TreeBuilder()
    builder.leaf("write", "write", produced_facts=["owner"])
    builder.sequence("root", "write", ["write"])
    tree = builder.build("root")

    class EchoAgent(ScriptedAgent):
        async def invoke(self, goal_description, available_facts, timeout_s):
            number = len(self.calls) + 1
            await super().invoke(goal_description, available_facts, timeout_s)
            return ok(owner=str(number))

    orchestrator = _orchestrator(EchoAgent(delay_s=0.01), InMemoryEpisodicStore())

    first, second = await asyncio.gather(
        orchestrator.run("one", tree=tree),
        orchestrator.run("two", tree=tree),
    )

    assert first.run_id != second.run_id
    assert {first.facts["owner"], second.facts["owner"]} == {"1", "2"}


def test_workflow_run_enforces_transitions() -> None:
    run = WorkflowRun("run-1")
    assert run.status == "pending"

    with pytest.raises(InvalidRunTransition):
        run.transition("succeeded")

    run.transition("running")
    run.transition("failed")
    assert run.finished is True

    with pytest.raises(InvalidRunTransition):
        run.transition("running")


@pytest.mark.asyncio
async def test_composite_gate_failure_reaches_episode_learnings() -> None:
    builder = TreeBuilder()
    builder.leaf("impl", "impl", produced_facts=["code"])
    builder.sequence("root", "Implement", ["impl"], quality_gate="rubocop")
    agent = ScriptedAgent({"impl": ok("wrote the service", code="class Profile; end")})
    gate = ScriptedGate({"rubocop": GateCheck(passed=False, messages=["3 offenses"])})
    store = InMemoryEpisodicStore()

    result = await _orchestrator(agent, store, gate).run("Implement", tree=builder.build("root"))

    assert result.status == "failed"
    assert store.records()[0].learnings == [
        "wrote the service",
        "quality gate 'rubocop' failed: 3 offenses",
    ]
