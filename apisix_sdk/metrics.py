"""
Prometheus metrics for APISIX client monitoring
"""
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest

from core.logging import get_logger


class GatewayMetrics:
    """Prometheus metrics collector, one registry per client instance"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.logger = get_logger("apisix.metrics", domain="apisix")

        # API call metrics
        self.api_calls_total = Counter(
            "apisix_client_api_calls_total",
            "Total number of requests sent to APISIX",
            ["surface", "method", "status_code"],
            registry=self.registry,
        )

        self.api_latency_seconds = Histogram(
            "apisix_client_api_latency_seconds",
            "Request latency in seconds",
            ["surface", "method"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
            registry=self.registry,
        )

        self.retries_total = Counter(
            "apisix_client_retries_total",
            "Total number of retried attempts",
            ["surface"],
            registry=self.registry,
        )

        # Cache metrics
        self.cache_hits_total = Counter(
            "apisix_client_cache_hits_total",
            "Total number of cache hits",
            ["surface"],
            registry=self.registry,
        )

        self.cache_misses_total = Counter(
            "apisix_client_cache_misses_total",
            "Total number of cache misses",
            ["surface"],
            registry=self.registry,
        )

        self.tracked_connections = Gauge(
            "apisix_client_tracked_connections",
            "Connection records currently held in the registry",
            ["surface"],
            registry=self.registry,
        )

        self.client_info = Info("apisix_client", "Client version info", registry=self.registry)

    def set_info(self, **info: str) -> None:
        self.client_info.info({k: str(v) for k, v in info.items()})

    def record_api_call(self, surface: str, method: str, status_code: int, duration: float) -> None:
        """Record an API call with metrics"""
        try:
            self.api_calls_total.labels(surface=surface, method=method, status_code=str(status_code)).inc()
            self.api_latency_seconds.labels(surface=surface, method=method).observe(duration)

            self.logger.debug(f"Recorded API call: {surface} {method} status={status_code} duration={duration:.3f}s")

        except Exception as e:
            self.logger.error(f"Failed to record API call metrics: {e}")

    def record_retry(self, surface: str) -> None:
        try:
            self.retries_total.labels(surface=surface).inc()
        except Exception as e:
            self.logger.error(f"Failed to record retry: {e}")

    def record_cache_hit(self, surface: str) -> None:
        """Record cache hit"""
        try:
            self.cache_hits_total.labels(surface=surface).inc()
        except Exception as e:
            self.logger.error(f"Failed to record cache hit: {e}")

    def record_cache_miss(self, surface: str) -> None:
        """Record cache miss"""
        try:
            self.cache_misses_total.labels(surface=surface).inc()
        except Exception as e:
            self.logger.error(f"Failed to record cache miss: {e}")

    def update_tracked_connections(self, surface: str, count: int) -> None:
        try:
            self.tracked_connections.labels(surface=surface).set(count)
        except Exception as e:
            self.logger.error(f"Failed to update connection gauge: {e}")

    def get_sample(self, name: str, **labels) -> Optional[float]:
        """Current value of one sample, mostly useful in tests"""
        return self.registry.get_sample_value(name, labels)

    def render(self) -> str:
        """Prometheus exposition text for this client's registry"""
        return generate_latest(self.registry).decode("utf-8")
