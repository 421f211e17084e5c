"""Explicit per-run state threaded through the orchestrator and executor."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from reactree.memory.episodic.models import EpisodicRecord
from reactree.memory.working import WorkingMemoryStore, utc_now


@dataclass
class RunContext:
    """Everything one workflow run shares. Never shared between runs."""

    root_goal: str
    working_memory: WorkingMemoryStore = field(default_factory=WorkingMemoryStore)
    run_id: str = field(default_factory=lambda: str(uuid4()))
    context_tags: tuple[str, ...] = ()
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    similar_episodes: list[EpisodicRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Stop issuing new leaf invocations. In-flight calls are allowed to finish."""
        self.cancel_event.set()
