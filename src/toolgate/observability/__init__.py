"""In-process observability helpers."""

from toolgate.observability.metrics import (
    GatewayMetrics,
    MetricsRegistry,
    get_metrics_registry,
    reset_metrics,
)

__all__ = ["GatewayMetrics", "MetricsRegistry", "get_metrics_registry", "reset_metrics"]
