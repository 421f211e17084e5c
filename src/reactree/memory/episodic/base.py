"""Storage interface for episodic memory."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from reactree.memory.episodic.models import EpisodicRecord


class EpisodicStore(Protocol):
    def record(self, episode: EpisodicRecord) -> None: ...

    def find_similar(
        self,
        goal_description: str,
        context_tags: Sequence[str],
        limit: int,
    ) -> list[EpisodicRecord]: ...

    def records(self) -> list[EpisodicRecord]: ...
