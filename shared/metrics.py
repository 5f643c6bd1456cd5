"""
Shared metrics configuration for the offline cache layer.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, Gauge, Info, start_http_server, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_cache_metrics()

    def _setup_cache_metrics(self):
        """Set up offline cache metrics."""
        self._metrics["offline_cache_hits_total"] = Counter(
            "offline_cache_hits_total",
            "Total entities served from local storage",
            ["kind"],
            registry=self.registry
        )

        self._metrics["offline_cache_misses_total"] = Counter(
            "offline_cache_misses_total",
            "Total requested ids not found in local storage",
            ["kind"],
            registry=self.registry
        )

        self._metrics["offline_remote_fetch_total"] = Counter(
            "offline_remote_fetch_total",
            "Total remote fetches",
            ["kind", "result"],
            registry=self.registry
        )

        self._metrics["offline_remote_fetch_duration_seconds"] = Histogram(
            "offline_remote_fetch_duration_seconds",
            "Remote fetch duration in seconds",
            ["kind"],
            registry=self.registry
        )

        self._metrics["offline_cache_writes_total"] = Counter(
            "offline_cache_writes_total",
            "Total write-backs of fetched entities",
            ["kind", "result"],
            registry=self.registry
        )

        self._metrics["offline_cache_sweeps_total"] = Counter(
            "offline_cache_sweeps_total",
            "Total expiration sweeps",
            ["kind", "result"],
            registry=self.registry
        )

        self._metrics["offline_connectivity_online"] = Gauge(
            "offline_connectivity_online",
            "1 when the remote source is reachable",
            registry=self.registry
        )

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        if self.registry is not None:
            start_http_server(port, registry=self.registry)
        else:
            start_http_server(port)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_connectivity(self, online: bool):
        """Record current reachability."""
        self._metrics["offline_connectivity_online"].set(1 if online else 0)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics and amount:
            self._metrics[metric_name].labels(**labels).inc(amount)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).observe(value)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors bound to the default registry are shared per service name,
    since prometheus_client refuses to register the same metric twice.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]

