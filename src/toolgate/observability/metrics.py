"""Lightweight in-process counters for tool calls and denials."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class GatewayMetrics:
    """Aggregated counters reported at shutdown."""

    calls_total: int = 0
    errors_total: int = 0
    duration_ms_total: float = 0.0
    tool_usage: Dict[str, int] = field(default_factory=dict)
    error_categories: Dict[str, int] = field(default_factory=dict)
    denials_by_stage: Dict[str, int] = field(default_factory=dict)
    process_statuses: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, float | int | dict[str, int]]:
        error_rate = (self.errors_total / self.calls_total) if self.calls_total else 0.0
        avg_duration = (self.duration_ms_total / self.calls_total) if self.calls_total else 0.0
        return {
            "calls_total": self.calls_total,
            "errors_total": self.errors_total,
            "error_rate": error_rate,
            "duration_ms_total": self.duration_ms_total,
            "avg_duration_ms": avg_duration,
            "tool_usage": dict(self.tool_usage),
            "error_categories": dict(self.error_categories),
            "denials_by_stage": dict(self.denials_by_stage),
            "process_statuses": dict(self.process_statuses),
        }


def _bump(counter: Dict[str, int], key: str) -> None:
    counter[key] = counter.get(key, 0) + 1


class MetricsRegistry:
    """Thread-safe accumulator for gateway activity."""

    def __init__(self) -> None:
        self._metrics = GatewayMetrics()
        self._lock = threading.RLock()

    def record_call(
        self,
        tool: str,
        *,
        is_error: bool,
        duration_ms: float,
        category: str | None = None,
    ) -> None:
        with self._lock:
            self._metrics.calls_total += 1
            self._metrics.duration_ms_total += max(0.0, duration_ms)
            _bump(self._metrics.tool_usage, tool)
            if is_error:
                self._metrics.errors_total += 1
                _bump(self._metrics.error_categories, category or "error")

    def record_denial(self, stage: str) -> None:
        with self._lock:
            _bump(self._metrics.denials_by_stage, stage)

    def record_process(self, status: str) -> None:
        with self._lock:
            _bump(self._metrics.process_statuses, status)

    def snapshot(self) -> GatewayMetrics:
        with self._lock:
            return GatewayMetrics(
                calls_total=self._metrics.calls_total,
                errors_total=self._metrics.errors_total,
                duration_ms_total=self._metrics.duration_ms_total,
                tool_usage=dict(self._metrics.tool_usage),
                error_categories=dict(self._metrics.error_categories),
                denials_by_stage=dict(self._metrics.denials_by_stage),
                process_statuses=dict(self._metrics.process_statuses),
            )


_GLOBAL_METRICS = MetricsRegistry()


def get_metrics_registry() -> MetricsRegistry:
    return _GLOBAL_METRICS


def reset_metrics() -> None:
    global _GLOBAL_METRICS
    _GLOBAL_METRICS = MetricsRegistry()


__all__ = ["GatewayMetrics", "MetricsRegistry", "get_metrics_registry", "reset_metrics"]
