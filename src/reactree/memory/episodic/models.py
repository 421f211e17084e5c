"""Episodic record shape, persisted with camelCase field names."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EpisodeOutcome = Literal["succeeded", "failed"]


class EpisodicRecord(BaseModel):
    """One completed workflow execution. Never mutated after creation."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    episode_id: str = Field(default_factory=lambda: str(uuid4()))
    goal_description: str
    context_tags: list[str] = Field(default_factory=list)
    patterns_applied: list[str] = Field(default_factory=list)
    outcome: EpisodeOutcome
    duration_ms: float = Field(ge=0.0)
    learnings: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    def to_json_line(self) -> str:
        """Serialize as one JSON object with the persisted field names, no trailing newline."""
        return json.dumps(self.model_dump(mode="json", by_alias=True), separators=(",", ":"))
