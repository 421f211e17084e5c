"""Planner seam: turns a root goal into a task tree."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from reactree.memory.episodic.models import EpisodicRecord
from reactree.tree.models import TaskTree


class TreePlanner(Protocol):
    async def plan(
        self,
        root_goal: str,
        similar_episodes: Sequence[EpisodicRecord],
    ) -> TaskTree: ...


class StaticPlanner:
    """Always returns the same tree, whatever the goal."""

    def __init__(self, tree: TaskTree) -> None:
        self.tree = tree

    async def plan(
        self,
        root_goal: str,
        similar_episodes: Sequence[EpisodicRecord],
    ) -> TaskTree:
        return self.tree
