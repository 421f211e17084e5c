"""Per-phase execution metrics in a JSON Lines file.

Every executed node appends one line with its duration and status. The summary
reports, per phase, how often it ran, its mean duration, and its success rate,
slowest phases first.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from reactree.models import PhaseStatus
from reactree.tree.models import NodeKind

logger = logging.getLogger(__name__)


class PhaseMetric(BaseModel):
    phase: str
    kind: NodeKind
    status: PhaseStatus
    duration_ms: float = Field(ge=0.0)
    run_id: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class PhaseStats(BaseModel):
    phase: str
    runs: int
    failures: int
    avg_duration_ms: float
    success_rate: float


class PhaseMetricsLog:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def record(self, metric: PhaseMetric) -> None:
        line = json.dumps(metric.model_dump(mode="json"), separators=(",", ":")) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)

    def read(self) -> list[PhaseMetric]:
        if not self.path.exists():
            return []
        metrics: list[PhaseMetric] = []
        for number, line in enumerate(self.path.read_text(encoding="utf-8").splitlines(), 1):
            if not line.strip():
                continue
            try:
                metrics.append(PhaseMetric.model_validate_json(line))
            except ValidationError:
                logger.warning("metrics event=bad_line path=%s line=%d", self.path, number)
        return metrics

    def summarize(self) -> list[PhaseStats]:
        grouped: dict[str, list[PhaseMetric]] = defaultdict(list)
        for metric in self.read():
            # Skipped phases never ran.
            if metric.status == "skipped":
                continue
            grouped[metric.phase].append(metric)

        stats: list[PhaseStats] = []
        for phase, items in grouped.items():
            successes = sum(1 for item in items if item.status == "succeeded")
            stats.append(
                PhaseStats(
                    phase=phase,
                    runs=len(items),
                    failures=len(items) - successes,
                    avg_duration_ms=round(sum(item.duration_ms for item in items) / len(items), 2),
                    success_rate=round(successes / len(items), 4),
                )
            )
        stats.sort(key=lambda item: (-item.avg_duration_ms, item.phase))
        return stats
