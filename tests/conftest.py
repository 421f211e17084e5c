from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from reactree.context import RunContext
from reactree.invocation.agent import AgentInvoker
from reactree.invocation.quality_gate import QualityGateRunner
from reactree.models import AgentResult, GateCheck
from reactree.tree.executor import ControlFlowExecutor


class ScriptedAgent:
    """Test-only Agent double. Replies are keyed by goal description."""

    def __init__(
        self,
        replies: Mapping[str, AgentResult | Mapping[str, Any] | Exception] | None = None,
        *,
        delay_s: float = 0.0,
    ) -> None:
        self.replies = dict(replies or {})
        self.delay_s = delay_s
        self.calls: list[str] = []
        self.seen_facts: dict[str, dict[str, str]] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def invoke(
        self,
        goal_description: str,
        available_facts: Mapping[str, str],
        timeout_s: float,
    ) -> AgentResult | Mapping[str, Any]:
        self.calls.append(goal_description)
        self.seen_facts[goal_description] = dict(available_facts)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            reply = self.replies.get(goal_description, AgentResult(succeeded=True))
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


class ScriptedGate:
    """Test-only QualityGate double. Unknown gates pass."""

    def __init__(self, verdicts: Mapping[str, GateCheck | Exception] | None = None) -> None:
        self.verdicts = dict(verdicts or {})
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def check(
        self,
        gate_name: str,
        context: Mapping[str, str],
        timeout_s: float,
    ) -> GateCheck:
        self.calls.append((gate_name, dict(context)))
        verdict = self.verdicts.get(gate_name, GateCheck(passed=True))
        if isinstance(verdict, Exception):
            raise verdict
        return verdict


def ok(narrative: str = "", **facts: str) -> AgentResult:
    return AgentResult(succeeded=True, produced_facts=facts, narrative=narrative)


def failed(narrative: str) -> AgentResult:
    return AgentResult(succeeded=False, narrative=narrative)


def make_executor(
    agent: ScriptedAgent,
    gate: ScriptedGate | None = None,
    **kwargs: Any,
) -> ControlFlowExecutor:
    return ControlFlowExecutor(
        AgentInvoker(agent, timeout_s=kwargs.pop("agent_timeout_s", 1.0)),
        QualityGateRunner(gate, timeout_s=1.0) if gate is not None else None,
        **kwargs,
    )


@pytest.fixture
def run_context() -> RunContext:
    return RunContext(root_goal="ship the release")
