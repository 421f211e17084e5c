"""Episodic memory: a cross-run log of past goal executions."""

from reactree.memory.episodic.base import EpisodicStore
from reactree.memory.episodic.jsonl import JsonlEpisodicStore
from reactree.memory.episodic.memory import InMemoryEpisodicStore
from reactree.memory.episodic.models import EpisodeOutcome, EpisodicRecord
from reactree.memory.episodic.postgres import PostgresEpisodicStore
from reactree.memory.episodic.similarity import (
    SimilarityScorer,
    TagOverlapScorer,
    keyword_overlap,
    rank_similar,
)

__all__ = [
    "EpisodeOutcome",
    "EpisodicRecord",
    "EpisodicStore",
    "InMemoryEpisodicStore",
    "JsonlEpisodicStore",
    "PostgresEpisodicStore",
    "SimilarityScorer",
    "TagOverlapScorer",
    "keyword_overlap",
    "rank_similar",
]
