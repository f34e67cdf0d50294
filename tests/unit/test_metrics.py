"""
Unit Tests for Validation Metrics.
"""

import pytest

from src.observability.metrics import (
    MetricsRegistry,
    ValidationMetricsCollector,
    ValidationOutcome,
    ValidationTimer,
)


class TestValidationMetricsCollector:
    """Test cases for ValidationMetricsCollector."""

    def test_outcome_counts(self) -> None:
        collector = ValidationMetricsCollector()

        collector.record("Protocol", ValidationOutcome.VIOLATION, 5.0)
        collector.record("Protocol", ValidationOutcome.VALID, 3.0)
        collector.record("Protocol", ValidationOutcome.VIOLATION, 4.0)
        collector.record("Flow", ValidationOutcome.DISABLED)

        assert collector.count("Protocol", ValidationOutcome.VIOLATION) == 2
        assert collector.count("Protocol", ValidationOutcome.VALID) == 1
        assert collector.count("Flow", ValidationOutcome.DISABLED) == 1
        assert collector.count("Flow", ValidationOutcome.VALID) == 0

    def test_disabled_calls_have_no_latency(self) -> None:
        collector = ValidationMetricsCollector()

        collector.record("Flow", ValidationOutcome.DISABLED)
        summary = collector.get_summary()

        assert summary["total_validations"] == 1
        assert summary["latency_ms"]["count"] == 0
        assert summary["outcomes"] == {"Flow": {"disabled": 1}}

    def test_reset_keeps_outcomes(self) -> None:
        collector = ValidationMetricsCollector(max_samples=2)

        collector.record("Step", ValidationOutcome.VALID, 1.0)
        collector.record("Step", ValidationOutcome.VALID, 2.0)
        collector.record("Step", ValidationOutcome.VALID, 3.0)

        summary = collector.get_summary()
        assert summary["latency_ms"]["count"] == 1
        assert collector.count("Step", ValidationOutcome.VALID) == 3

    def test_prometheus_export(self) -> None:
        collector = ValidationMetricsCollector()
        collector.record("Protocol", ValidationOutcome.VIOLATION, 7.5)

        output = collector.get_prometheus_metrics()

        assert "# TYPE integrity_validations_total counter" in output
        assert 'integrity_validations_total{entity_type="Protocol",outcome="violation"} 1' in output
        assert "integrity_validation_latency_ms_count 1" in output


class TestMetricsRegistry:
    """Test cases for MetricsRegistry."""

    def test_all_metrics(self) -> None:
        registry = MetricsRegistry()
        registry.validation_metrics.record("Flow", ValidationOutcome.VALID, 1.0)

        metrics = registry.get_all_metrics()

        assert metrics["validation_metrics"]["total_validations"] == 1
        assert "entities_manager_uptime_seconds" in registry.get_prometheus_output()


class TestValidationTimer:
    """Test cases for ValidationTimer."""

    @pytest.mark.asyncio
    async def test_elapsed_set_on_error(self) -> None:
        timer = ValidationTimer()

        with pytest.raises(RuntimeError):
            async with timer:
                raise RuntimeError("boom")

        assert timer.elapsed_ms >= 0
