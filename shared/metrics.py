"""
Prometheus metrics for the Wallet Gateway client.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY


class ClientMetrics:
    """Request and token-refresh metrics for one gateway client."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        self.requests_total = Counter(
            "wallet_client_requests_total",
            "Backend requests issued by the gateway client",
            ["backend", "method", "outcome"],
            registry=self.registry
        )
        self.request_duration = Histogram(
            "wallet_client_request_duration_seconds",
            "Backend request latency",
            ["backend"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry
        )
        self.token_refresh_total = Counter(
            "wallet_client_token_refresh_total",
            "Access token refresh attempts",
            ["result"],
            registry=self.registry
        )

    def record_request(self, backend: str, method: str, outcome: str, duration: float):
        """Record one request attempt."""
        self.requests_total.labels(backend=backend, method=method, outcome=outcome).inc()
        self.request_duration.labels(backend=backend).observe(duration)

    def record_refresh(self, result: str):
        """Record one refresh attempt (``success``, ``rejected`` or ``transport_error``)."""
        self.token_refresh_total.labels(result=result).inc()


_default_metrics: Optional[ClientMetrics] = None


def get_client_metrics() -> ClientMetrics:
    """Get the process-wide metrics bound to the default registry."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = ClientMetrics()
    return _default_metrics
