"""
Observability Module.

Provides observability for the Workflow Entities Manager:
- Structured logging with JSON output and correlation IDs
- Validation metrics with Prometheus export
"""

from src.observability.logging import (
    configure_logging,
    get_logger,
    LogContext,
    correlation_id_var,
    current_log_context,
)
from src.observability.correlation import CorrelationMiddleware
from src.observability.metrics import (
    MetricsRegistry,
    ValidationMetricsCollector,
    ValidationOutcome,
    get_metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "LogContext",
    "correlation_id_var",
    "current_log_context",
    # Correlation
    "CorrelationMiddleware",
    # Metrics
    "MetricsRegistry",
    "ValidationMetricsCollector",
    "ValidationOutcome",
    "get_metrics_registry",
]
