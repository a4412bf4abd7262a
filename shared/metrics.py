"""
Prometheus metrics for the hotel backend services.
"""

import time
from contextlib import contextmanager
from typing import Dict, Optional, Sequence, Tuple, Union

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest

Metric = Union[Counter, Histogram]

# name -> (type, help, labels)
COMMON_METRICS: Dict[str, Tuple[type, str, Sequence[str]]] = {
    "http_requests_total": (Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    "health_check_total": (Counter, "Total health check requests", ("status",)),
    "errors_total": (Counter, "Total errors by code", ("error_type", "service")),
}

HOTEL_METRICS: Dict[str, Tuple[type, str, Sequence[str]]] = {
    "cache_requests_total": (Counter, "Response cache lookups by decorator and outcome", ("decorator", "result")),
    "upstream_request_duration_seconds": (
        Histogram,
        "Upstream hotel API request duration in seconds",
        ("operation",),
    ),
}


class MetricsCollector:
    """Metrics for one service instance.

    Each collector owns its registry so several service instances (tests,
    workers) can coexist in one process without duplicate registrations.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()

        Info("service", "Service information", registry=self.registry).info(
            {"service": service_name, "version": "1.0.0"}
        )
        definitions = dict(COMMON_METRICS)
        if service_name == "hotels":
            definitions.update(HOTEL_METRICS)
        self._metrics: Dict[str, Metric] = {
            name: kind(name, help_text, list(labels), registry=self.registry)
            for name, (kind, help_text, labels) in definitions.items()
        }

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self._metrics["http_requests_total"].labels(method, endpoint, str(status_code)).inc()
        self._metrics["http_request_duration_seconds"].labels(method, endpoint).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status).inc()

    def record_error(self, error_type: str):
        self._metrics["errors_total"].labels(error_type, self.service_name).inc()

    def record_cache_event(self, decorator: str, result: str):
        """Count one response cache lookup (hit, miss, coalesced, bypass, ...)."""
        metric = self._metrics.get("cache_requests_total")
        if metric is not None:
            metric.labels(decorator, result).inc()

    @contextmanager
    def time_operation(self, metric_name: str, **labels):
        """Observe the duration of the enclosed block on a histogram."""
        started = time.perf_counter()
        try:
            yield
        finally:
            metric = self._metrics.get(metric_name)
            if metric is not None:
                metric.labels(**labels).observe(time.perf_counter() - started)

    def get_sample_value(self, name: str, **labels) -> Optional[float]:
        """Read back a sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Create the metrics collector for a service."""
    return MetricsCollector(service_name, registry)
