from __future__ import annotations

from pathlib import Path

import pytest
from conftest import ScriptedAgent, ScriptedGate

from reactree.config.settings import PROJECT_ROOT, Settings
from reactree.memory.episodic import (
    InMemoryEpisodicStore,
    JsonlEpisodicStore,
    PostgresEpisodicStore,
)
from reactree.orchestration import build_episodic_store, build_orchestrator


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REACTREE_AGENT_TIMEOUT_S", "12.5")
    monkeypatch.setenv("REACTREE_MAX_PARALLEL_WORKERS", "3")
    monkeypatch.setenv("REACTREE_EPISODIC_BACKEND", "memory")

    settings = Settings(_env_file=None)

    assert settings.agent_timeout_s == 12.5
    assert settings.max_parallel_workers == 3
    assert settings.episodic_backend == "memory"


def test_settings_reject_invalid_values() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, max_parallel_workers=0)


def test_episodic_log_path_defaults_under_project_root() -> None:
    settings = Settings(_env_file=None, episodic_log_path="")

    expected = (PROJECT_ROOT / "data" / "episodes.jsonl").resolve()
    assert settings.resolved_episodic_log_path() == expected


def test_database_url_falls_back_to_plain_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REACTREE_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://fallback/reactree")

    assert Settings(_env_file=None).resolved_database_url() == "postgresql://fallback/reactree"


def test_phase_metrics_are_off_unless_configured(tmp_path: Path) -> None:
    assert Settings(_env_file=None).resolved_phase_metrics_path() is None
    configured = Settings(_env_file=None, phase_metrics_path=str(tmp_path / "m.jsonl"))
    assert configured.resolved_phase_metrics_path() == (tmp_path / "m.jsonl").resolve()


def test_build_episodic_store_selects_backend(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    jsonl = build_episodic_store(
        Settings(_env_file=None, episodic_log_path=str(tmp_path / "episodes.jsonl"))
    )
    assert isinstance(jsonl, JsonlEpisodicStore)
    assert jsonl.path == (tmp_path / "episodes.jsonl").resolve()

    memory = build_episodic_store(Settings(_env_file=None, episodic_backend="memory"))
    assert isinstance(memory, InMemoryEpisodicStore)

    migrated: list[str] = []

    class FakePostgresStore:
        def __init__(self, database_url: str) -> None:
            self.database_url = database_url

        def migrate(self) -> None:
            migrated.append(self.database_url)

    from reactree.orchestration import factory as factory_module

    monkeypatch.setattr(factory_module, "PostgresEpisodicStore", FakePostgresStore)
    postgres = build_episodic_store(
        Settings(
            _env_file=None,
            episodic_backend="postgres",
            database_url="postgresql://db/reactree",
        )
    )
    assert isinstance(postgres, FakePostgresStore)
    assert migrated == ["postgresql://db/reactree"]


def test_postgres_backend_without_url_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REACTREE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(
        PostgresEpisodicStore,
        "_load_psycopg",
        staticmethod(lambda: (object(), object(), object())),
    )

    with pytest.raises(ValueError, match="REACTREE_DATABASE_URL is required"):
        build_episodic_store(Settings(_env_file=None, episodic_backend="postgres"))


def test_build_orchestrator_wires_settings(tmp_path: Path) -> None:
    settings = Settings(
        _env_file=None,
        agent_timeout_s=4.0,
        quality_gate_timeout_s=2.0,
        fact_ttl_s=90.0,
        max_parallel_workers=3,
        similar_episode_limit=7,
        phase_metrics_path=str(tmp_path / "metrics.jsonl"),
    )
    store = InMemoryEpisodicStore()
    specialist = ScriptedAgent()

    orchestrator = build_orchestrator(
        ScriptedAgent(),
        ScriptedGate(),
        settings=settings,
        episodic_store=store,
        specialists={"db-specialist": specialist},
    )

    executor = orchestrator.executor
    assert orchestrator.episodic_store is store
    assert orchestrator.similar_episode_limit == 7
    assert executor.invoker.timeout_s == 4.0
    assert executor.invoker.specialists == {"db-specialist": specialist}
    assert executor.gate_runner is not None
    assert executor.gate_runner.timeout_s == 2.0
    assert executor.fact_ttl_s == 90.0
    assert executor.max_parallel_workers == 3
    assert executor.metrics is not None
    assert executor.metrics.path == (tmp_path / "metrics.jsonl").resolve()


def test_build_orchestrator_without_gate() -> None:
    orchestrator = build_orchestrator(
        ScriptedAgent(),
        settings=Settings(_env_file=None, episodic_backend="memory"),
    )

    assert orchestrator.executor.gate_runner is None
    assert orchestrator.executor.metrics is None
