"""PostgreSQL-backed episodic store with automatic table migration."""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from reactree.errors import MemoryStoreIOError
from reactree.memory.episodic.models import EpisodicRecord
from reactree.memory.episodic.similarity import SimilarityScorer, rank_similar


class PostgresEpisodicStore:
    """Persist episodes in PostgreSQL. Rows are inserted once and never updated."""

    def __init__(
        self,
        database_url: str,
        *,
        scorer: SimilarityScorer | None = None,
        candidate_window: int = 500,
    ) -> None:
        if not database_url:
            raise ValueError("REACTREE_DATABASE_URL is required for the postgres episodic backend")
        self.database_url = database_url
        self.scorer = scorer
        # Similarity is ranked in Python over the most recent rows.
        self.candidate_window = candidate_window
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._guarded("migrate episodes table"), self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS episodes (
                    episode_id TEXT PRIMARY KEY,
                    goal_description TEXT NOT NULL,
                    context_tags JSONB NOT NULL DEFAULT '[]'::jsonb,
                    patterns_applied JSONB NOT NULL DEFAULT '[]'::jsonb,
                    outcome TEXT NOT NULL,
                    duration_ms DOUBLE PRECISION NOT NULL,
                    learnings JSONB NOT NULL DEFAULT '[]'::jsonb,
                    recorded_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_episodes_recorded_at
                ON episodes(recorded_at DESC)
                """)
            conn.commit()

    def record(self, episode: EpisodicRecord) -> None:
        with self._guarded(f"insert episode {episode.episode_id}"), self._connect() as conn:
            conn.execute(
                """
                INSERT INTO episodes (
                    episode_id,
                    goal_description,
                    context_tags,
                    patterns_applied,
                    outcome,
                    duration_ms,
                    learnings,
                    recorded_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    episode.episode_id,
                    episode.goal_description,
                    self._json_wrapper(list(episode.context_tags)),
                    self._json_wrapper(list(episode.patterns_applied)),
                    episode.outcome,
                    episode.duration_ms,
                    self._json_wrapper(list(episode.learnings)),
                    episode.timestamp,
                ),
            )
            conn.commit()

    def find_similar(
        self,
        goal_description: str,
        context_tags: Sequence[str],
        limit: int,
    ) -> list[EpisodicRecord]:
        if limit <= 0:
            return []
        return rank_similar(
            self._recent(self.candidate_window),
            goal_description,
            context_tags,
            limit,
            scorer=self.scorer,
        )

    def records(self) -> list[EpisodicRecord]:
        with self._guarded("read episodes"), self._connect() as conn:
            rows = conn.execute("SELECT * FROM episodes ORDER BY recorded_at ASC").fetchall()
        return [self._row_to_record(row) for row in rows]

    def _recent(self, window: int) -> list[EpisodicRecord]:
        with self._guarded("read recent episodes"), self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM episodes ORDER BY recorded_at DESC LIMIT %s",
                (window,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    def _guarded(self, action: str) -> _StorageGuard:
        return _StorageGuard(self._lock, self._psycopg.Error, action)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL episodic storage requires psycopg. "
                'Install with: python -m pip install "reactree-orchestrator[postgres]"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json_list(raw: Any) -> list[str]:
        if raw is None:
            return []
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(parsed, list):
            return []
        return [str(item) for item in parsed]

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_record(cls, row: Any) -> EpisodicRecord:
        return EpisodicRecord(
            episode_id=str(row["episode_id"]),
            goal_description=row["goal_description"],
            context_tags=cls._parse_json_list(row["context_tags"]),
            patterns_applied=cls._parse_json_list(row["patterns_applied"]),
            outcome=row["outcome"],
            duration_ms=float(row["duration_ms"]),
            learnings=cls._parse_json_list(row["learnings"]),
            timestamp=cls._parse_datetime(row["recorded_at"]),
        )


class _StorageGuard:
    """Hold the store lock and surface driver errors as ``MemoryStoreIOError``."""

    def __init__(self, lock: threading.Lock, driver_error: type[BaseException], action: str) -> None:
        self._lock = lock
        self._driver_error = driver_error
        self._action = action

    def __enter__(self) -> None:
        self._lock.acquire()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._lock.release()
        if exc is not None and isinstance(exc, (self._driver_error, OSError)):
            raise MemoryStoreIOError(f"failed to {self._action}: {exc}") from exc
        return False
