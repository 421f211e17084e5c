"""Workflow run lifecycle and result shape."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from reactree.errors import InvalidRunTransition
from reactree.models import PhaseResult

logger = logging.getLogger(__name__)

WorkflowStatus = Literal["pending", "running", "succeeded", "failed"]

_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "failed"}),
    "running": frozenset({"succeeded", "failed"}),
    "succeeded": frozenset(),
    "failed": frozenset(),
}


class WorkflowRun:
    """State machine for one run: pending -> running -> succeeded | failed."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self.status: WorkflowStatus = "pending"

    @property
    def finished(self) -> bool:
        return self.status in {"succeeded", "failed"}

    def transition(self, target: WorkflowStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidRunTransition(
                f"run '{self.run_id}' cannot move from {self.status} to {target}"
            )
        logger.debug(
            "workflow event=transition run_id=%s from=%s to=%s", self.run_id, self.status, target
        )
        self.status = target


class WorkflowResult(BaseModel):
    run_id: str
    status: WorkflowStatus
    root: PhaseResult
    episode_id: str
    diagnostics: list[str] = Field(default_factory=list)
    similar_episode_ids: list[str] = Field(default_factory=list)
    # Working-memory snapshot taken when the tree walk finished.
    facts: dict[str, str] = Field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"
