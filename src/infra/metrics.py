"""Prometheus metric sink helpers."""

from __future__ import annotations

from typing import Callable, Mapping

from prometheus_client import Counter, Gauge, Histogram, start_http_server

MetricSink = Callable[[str, float, Mapping[str, object] | None], None]

_STRESS_DURATION = Histogram(
    "aegis_stress_test_duration_seconds",
    "Wall-clock duration of stress-test computations",
    ["scenario"],
)
_CACHE_LOOKUPS = Counter(
    "aegis_result_cache_lookups_total",
    "Result cache lookups by outcome",
    ["result"],
)
_MC_ITERATIONS = Counter(
    "aegis_monte_carlo_iterations_total",
    "Monte Carlo iterations evaluated",
)
_ENGINE_ERRORS = Counter(
    "aegis_engine_errors_total",
    "Risk engine operations that raised",
    ["operation"],
)
_GENERIC_GAUGES: dict[str, Gauge] = {}
_SERVER_STARTED = False


class PrometheusMetricSink:
    """Callable sink used by the engine facade that forwards to Prometheus."""

    def __call__(self, name: str, value: float, tags: Mapping[str, object] | None = None) -> None:
        tags = tags or {}
        if name == "stress_duration_seconds":
            _STRESS_DURATION.labels(scenario=str(tags.get("scenario", "unknown"))).observe(value)
            return
        if name in ("cache_hit", "cache_miss"):
            _CACHE_LOOKUPS.labels(result=name.removeprefix("cache_")).inc(value)
            return
        if name == "monte_carlo_iterations":
            _MC_ITERATIONS.inc(value)
            return
        if name == "engine_error":
            _ENGINE_ERRORS.labels(operation=str(tags.get("operation", "unknown"))).inc(value)
            return
        gauge = _GENERIC_GAUGES.get(name)
        if gauge is None:
            gauge = Gauge(f"aegis_{name}", f"Risk engine metric {name}", ["operation"])
            _GENERIC_GAUGES[name] = gauge
        gauge.labels(operation=str(tags.get("operation", "unknown"))).set(value)


def null_sink(name: str, value: float, tags: Mapping[str, object] | None = None) -> None:
    return None


def ensure_metrics_server(port: int = 9464) -> None:
    """Start the Prometheus scrape endpoint if it is not already running."""

    global _SERVER_STARTED
    if _SERVER_STARTED:
        return
    start_http_server(port)
    _SERVER_STARTED = True


__all__ = ["MetricSink", "PrometheusMetricSink", "ensure_metrics_server", "null_sink"]
