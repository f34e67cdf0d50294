"""
Metrics Collection and Export.

Provides metrics for referential integrity validation:
- Validation latency tracking (p50, p95, p99)
- Validation outcomes per entity type
- Prometheus-compatible export
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ValidationOutcome(str, Enum):
    """Outcome of a validation call."""
    VALID = "valid"
    VIOLATION = "violation"
    FAILURE = "failure"
    DISABLED = "disabled"


@dataclass
class PercentileStats:
    """Statistical percentiles for a metric."""
    count: int = 0
    sum: float = 0.0
    min: float = float("inf")
    max: float = 0.0
    mean: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

    _values: list[float] = field(default_factory=list, repr=False)

    def add(self, value: float) -> None:
        """Add a value to the distribution."""
        self._values.append(value)
        self.count += 1
        self.sum += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)

    def compute(self) -> None:
        """Compute percentiles."""
        if not self._values:
            return

        self.mean = self.sum / self.count
        sorted_values = sorted(self._values)
        n = len(sorted_values)

        self.p50 = sorted_values[int(n * 0.50)]
        self.p95 = sorted_values[min(int(n * 0.95), n - 1)]
        self.p99 = sorted_values[min(int(n * 0.99), n - 1)]

    def to_dict(self) -> dict[str, Any]:
        self.compute()
        return {
            "count": self.count,
            "sum": round(self.sum, 2),
            "min": round(self.min, 2) if self.min != float("inf") else 0,
            "max": round(self.max, 2),
            "mean": round(self.mean, 2),
            "p50": round(self.p50, 2),
            "p95": round(self.p95, 2),
            "p99": round(self.p99, 2),
        }


class ValidationMetricsCollector:
    """
    Collects referential integrity validation metrics.

    Usage:
        collector = ValidationMetricsCollector()
        collector.record("Protocol", ValidationOutcome.VIOLATION, latency_ms=12.5)
        summary = collector.get_summary()
    """

    def __init__(self, max_samples: int = 10000):
        self._max_samples = max_samples
        self._latency = PercentileStats()
        self._latency_by_type: dict[str, PercentileStats] = defaultdict(PercentileStats)
        self._outcomes: dict[tuple[str, str], int] = defaultdict(int)
        self._window_start = datetime.utcnow()

    def record(
        self,
        entity_type: str,
        outcome: ValidationOutcome,
        latency_ms: float = 0.0,
    ) -> None:
        """Record one validation call."""
        self._outcomes[(entity_type, outcome.value)] += 1

        if outcome == ValidationOutcome.DISABLED:
            return

        if self._latency.count >= self._max_samples:
            self.reset()

        self._latency.add(latency_ms)
        self._latency_by_type[entity_type].add(latency_ms)

    def count(self, entity_type: str, outcome: ValidationOutcome) -> int:
        return self._outcomes.get((entity_type, outcome.value), 0)

    def get_summary(self) -> dict[str, Any]:
        """Get metrics summary."""
        window_seconds = (datetime.utcnow() - self._window_start).total_seconds()

        outcomes: dict[str, dict[str, int]] = defaultdict(dict)
        for (entity_type, outcome), value in self._outcomes.items():
            outcomes[entity_type][outcome] = value

        return {
            "window_seconds": round(window_seconds, 2),
            "total_validations": sum(self._outcomes.values()),
            "latency_ms": self._latency.to_dict(),
            "latency_by_type_ms": {
                entity_type: stats.to_dict()
                for entity_type, stats in self._latency_by_type.items()
            },
            "outcomes": dict(outcomes),
        }

    def get_prometheus_metrics(self) -> str:
        """Export metrics in Prometheus format."""
        lines = []

        lines.append("# HELP integrity_validations_total Referential integrity validations")
        lines.append("# TYPE integrity_validations_total counter")
        for (entity_type, outcome), value in sorted(self._outcomes.items()):
            lines.append(
                f'integrity_validations_total{{entity_type="{entity_type}",outcome="{outcome}"}} {value}'
            )
        lines.append("")

        self._latency.compute()
        lines.append("# HELP integrity_validation_latency_ms Validation latency in milliseconds")
        lines.append("# TYPE integrity_validation_latency_ms summary")
        lines.append(f'integrity_validation_latency_ms{{quantile="0.5"}} {self._latency.p50}')
        lines.append(f'integrity_validation_latency_ms{{quantile="0.95"}} {self._latency.p95}')
        lines.append(f'integrity_validation_latency_ms{{quantile="0.99"}} {self._latency.p99}')
        lines.append(f"integrity_validation_latency_ms_sum {self._latency.sum}")
        lines.append(f"integrity_validation_latency_ms_count {self._latency.count}")

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset latency distributions; outcome counters are cumulative."""
        self._latency = PercentileStats()
        self._latency_by_type.clear()
        self._window_start = datetime.utcnow()

        logger.info("Validation latency metrics reset")


class MetricsRegistry:
    """Central registry for all metrics collectors."""

    def __init__(self):
        self.validation_metrics = ValidationMetricsCollector()
        self._start_time = datetime.utcnow()

    def get_all_metrics(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        uptime = (datetime.utcnow() - self._start_time).total_seconds()

        return {
            "uptime_seconds": round(uptime, 2),
            "validation_metrics": self.validation_metrics.get_summary(),
        }

    def get_prometheus_output(self) -> str:
        """Get all metrics in Prometheus format."""
        lines = []

        uptime = (datetime.utcnow() - self._start_time).total_seconds()
        lines.append("# HELP entities_manager_uptime_seconds Time since service start")
        lines.append("# TYPE entities_manager_uptime_seconds gauge")
        lines.append(f"entities_manager_uptime_seconds {uptime}")
        lines.append("")

        lines.append(self.validation_metrics.get_prometheus_metrics())

        return "\n".join(lines)


# Global metrics registry
_metrics_registry: MetricsRegistry | None = None


def get_metrics_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics_registry
    if _metrics_registry is None:
        _metrics_registry = MetricsRegistry()
    return _metrics_registry


class ValidationTimer:
    """
    Context manager for timing validation calls.

    Usage:
        async with ValidationTimer() as timer:
            ...
        print(timer.elapsed_ms)
    """

    def __init__(self) -> None:
        self._start_time: float = 0
        self.elapsed_ms: float = 0.0

    async def __aenter__(self):
        self._start_time = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._start_time) * 1000
        return False
