"""Pluggable similarity ranking for episodic recall."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Protocol

from reactree.memory.episodic.models import EpisodicRecord


class SimilarityScorer(Protocol):
    def score(
        self,
        goal_description: str,
        context_tags: Sequence[str],
        record: EpisodicRecord,
    ) -> float: ...


class TagOverlapScorer:
    """Shared tag count plus a weighted keyword overlap of goal descriptions.

    Tag overlap dominates: keyword overlap contributes at most
    ``keyword_weight`` (< 1), so one extra shared tag always ranks higher.
    """

    def __init__(self, *, keyword_weight: float = 0.5) -> None:
        if not 0.0 <= keyword_weight < 1.0:
            raise ValueError("keyword_weight must be in [0, 1)")
        self.keyword_weight = keyword_weight

    def score(
        self,
        goal_description: str,
        context_tags: Sequence[str],
        record: EpisodicRecord,
    ) -> float:
        query_tags = _normalized_tags(context_tags)
        record_tags = _normalized_tags(record.context_tags)
        shared_tags = len(query_tags & record_tags)
        return shared_tags + self.keyword_weight * keyword_overlap(
            goal_description, record.goal_description
        )


def keyword_overlap(query: str, content: str) -> float:
    """Fraction of query words that also appear in ``content``."""
    query_words = set(re.findall(r"\w+", query.lower()))
    if not query_words:
        return 0.0
    content_words = set(re.findall(r"\w+", content.lower()))
    return len(query_words & content_words) / len(query_words)


def rank_similar(
    records: Iterable[EpisodicRecord],
    goal_description: str,
    context_tags: Sequence[str],
    limit: int,
    *,
    scorer: SimilarityScorer | None = None,
) -> list[EpisodicRecord]:
    """Rank by score (desc), breaking ties most-recent-first. Zero-score records are dropped."""
    if limit <= 0:
        return []
    active_scorer = scorer or TagOverlapScorer()
    scored: list[tuple[float, EpisodicRecord]] = []
    for record in records:
        score = active_scorer.score(goal_description, context_tags, record)
        if score > 0:
            scored.append((score, record))
    scored.sort(key=lambda item: (-item[0], -item[1].timestamp.timestamp()))
    return [record for _, record in scored[:limit]]


def _normalized_tags(tags: Iterable[str]) -> set[str]:
    return {tag.strip().lower() for tag in tags if tag and tag.strip()}
