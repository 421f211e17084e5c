"""Agent Invoker: hands a leaf's goal and facts to an external worker capability."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from reactree.errors import AgentInvocationError
from reactree.models import AgentResult
from reactree.tree.models import TaskNode

logger = logging.getLogger(__name__)


class Agent(Protocol):
    async def invoke(
        self,
        goal_description: str,
        available_facts: Mapping[str, str],
        timeout_s: float,
    ) -> AgentResult | Mapping[str, Any]: ...


class AgentInvoker:
    """Dispatch leaves to the default agent or a named specialist, with a timeout.

    The invoker never retries. Retry policy, if any, belongs to the agent
    implementation itself.
    """

    def __init__(
        self,
        agent: Agent,
        *,
        specialists: Mapping[str, Agent] | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self.agent = agent
        self.specialists = dict(specialists or {})
        self.timeout_s = timeout_s

    def agent_for(self, node: TaskNode) -> Agent:
        if node.agent is None:
            return self.agent
        specialist = self.specialists.get(node.agent)
        if specialist is None:
            raise AgentInvocationError(node.id, f"unknown specialist agent '{node.agent}'")
        return specialist

    async def invoke(
        self,
        node: TaskNode,
        available_facts: Mapping[str, str],
        *,
        timeout_s: float | None = None,
    ) -> AgentResult:
        agent = self.agent_for(node)
        effective_timeout = timeout_s if timeout_s is not None else self.timeout_s
        started_at = time.perf_counter()
        try:
            raw_result = await asyncio.wait_for(
                agent.invoke(node.goal_description, dict(available_facts), effective_timeout),
                timeout=effective_timeout,
            )
        except TimeoutError as exc:
            raise AgentInvocationError(
                node.id, f"timed out after {effective_timeout:.2f}s", timed_out=True
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise AgentInvocationError(node.id, str(exc) or type(exc).__name__) from exc

        try:
            result = (
                raw_result
                if isinstance(raw_result, AgentResult)
                else AgentResult.model_validate(raw_result)
            )
        except ValidationError as exc:
            raise AgentInvocationError(
                node.id, f"malformed agent result: {exc.errors()[0]['msg']}"
            ) from exc

        logger.info(
            "agent event=invoked node_id=%s agent=%s succeeded=%s facts=%d duration_ms=%s",
            node.id,
            node.agent or "default",
            result.succeeded,
            len(result.produced_facts),
            _duration_ms(started_at),
        )
        return result


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
