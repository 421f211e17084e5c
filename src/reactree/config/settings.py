"""Runtime settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

EpisodicBackend = Literal["jsonl", "postgres", "memory"]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "reactree-orchestrator"
    agent_timeout_s: float = Field(default=30.0, gt=0.0)
    quality_gate_timeout_s: float = Field(default=10.0, gt=0.0)
    fact_ttl_s: float = Field(default=3600.0, ge=0.0)
    max_parallel_workers: int = Field(default=8, ge=1)
    episodic_backend: EpisodicBackend = "jsonl"
    episodic_log_path: str = ""
    database_url: str = ""
    similar_episode_limit: int = Field(default=5, ge=0)
    phase_metrics_path: str = ""

    model_config = SettingsConfigDict(
        env_prefix="REACTREE_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_episodic_log_path(self) -> Path:
        if self.episodic_log_path:
            return Path(self.episodic_log_path).expanduser().resolve()
        return (PROJECT_ROOT / "data" / "episodes.jsonl").resolve()

    def resolved_phase_metrics_path(self) -> Path | None:
        if not self.phase_metrics_path:
            return None
        return Path(self.phase_metrics_path).expanduser().resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
