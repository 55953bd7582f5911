"""Prometheus metrics for model invocation and response resolution."""

from prometheus_client import Counter, Histogram

# Model attempt metrics
model_attempt_latency_ms = Histogram(
    "model_attempt_latency_ms",
    "Upstream model attempt latency in milliseconds",
    ["model", "outcome"],
    buckets=[250, 500, 1000, 2500, 5000, 10000, 20000, 40000, 60000, 120000],
)

model_attempts_total = Counter(
    "model_attempts_total",
    "Total upstream model attempts",
    ["model", "outcome"],
)

# Resolution metrics
resolution_outcomes_total = Counter(
    "resolution_outcomes_total",
    "Response resolution outcomes (ok, truncated, or error kind)",
    ["endpoint", "outcome"],
)


class PrometheusInvocationMetrics:
    """Prometheus-based invocation metrics implementation."""

    def record_attempt(self, model: str, outcome: str, latency_ms: float) -> None:
        """Record attempt latency and count."""
        model_attempt_latency_ms.labels(model=model, outcome=outcome).observe(latency_ms)
        model_attempts_total.labels(model=model, outcome=outcome).inc()


def record_resolution(endpoint: str, outcome: str) -> None:
    """Count one resolution outcome for an endpoint."""
    resolution_outcomes_total.labels(endpoint=endpoint, outcome=outcome).inc()
