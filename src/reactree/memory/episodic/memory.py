"""In-memory episodic store for tests and ephemeral runs."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from reactree.memory.episodic.models import EpisodicRecord
from reactree.memory.episodic.similarity import SimilarityScorer, rank_similar


class InMemoryEpisodicStore:
    """List-backed append-only store. Contents are lost with the process."""

    def __init__(self, *, scorer: SimilarityScorer | None = None) -> None:
        self._records: list[EpisodicRecord] = []
        self._lock = threading.Lock()
        self.scorer = scorer

    def record(self, episode: EpisodicRecord) -> None:
        with self._lock:
            self._records.append(episode)

    def find_similar(
        self,
        goal_description: str,
        context_tags: Sequence[str],
        limit: int,
    ) -> list[EpisodicRecord]:
        return rank_similar(
            self.records(), goal_description, context_tags, limit, scorer=self.scorer
        )

    def records(self) -> list[EpisodicRecord]:
        with self._lock:
            return list(self._records)
