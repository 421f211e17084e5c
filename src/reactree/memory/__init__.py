"""Working and episodic memory stores."""

from reactree.memory.episodic import (
    EpisodicRecord,
    EpisodicStore,
    InMemoryEpisodicStore,
    JsonlEpisodicStore,
    PostgresEpisodicStore,
)
from reactree.memory.working import WorkingMemoryStore

__all__ = [
    "EpisodicRecord",
    "EpisodicStore",
    "InMemoryEpisodicStore",
    "JsonlEpisodicStore",
    "PostgresEpisodicStore",
    "WorkingMemoryStore",
]
