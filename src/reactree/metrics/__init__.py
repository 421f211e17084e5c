"""Phase execution metrics."""

from reactree.metrics.phase_metrics import PhaseMetric, PhaseMetricsLog, PhaseStats

__all__ = ["PhaseMetric", "PhaseMetricsLog", "PhaseStats"]
