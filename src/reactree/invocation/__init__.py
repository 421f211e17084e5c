"""Boundaries to the external Agent and QualityGate capabilities."""

from reactree.invocation.agent import Agent, AgentInvoker
from reactree.invocation.quality_gate import QualityGate, QualityGateRunner

__all__ = ["Agent", "AgentInvoker", "QualityGate", "QualityGateRunner"]
