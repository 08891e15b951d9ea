"""
Prometheus Metrics Integration.

Provides metrics collection and export for TokenMesh.
"""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest


class MetricsCollector:
    """
    Prometheus metrics collector for TokenMesh.

    Exposes metrics:
    - tokenmesh_credential_issued_total{client_id="..."}
    - tokenmesh_authentication_failed_total
    - tokenmesh_credential_revoked_total
    - tokenmesh_callback_delivery_total{status="success|fail"}
    - tokenmesh_cache_refresh_total{client_id="...", status="success|fail"}

    Each collector owns its own registry, so several services (or tests)
    can coexist in one process.
    """

    def __init__(self, prefix: str = "tokenmesh"):
        """Initialize metrics collector."""
        self.registry = CollectorRegistry()

        self.credential_issued_total = Counter(
            f"{prefix}_credential_issued_total",
            "Total number of credentials issued",
            ["client_id"],
            registry=self.registry,
        )

        self.authentication_failed_total = Counter(
            f"{prefix}_authentication_failed_total",
            "Rejected client authentications",
            registry=self.registry,
        )

        self.credential_revoked_total = Counter(
            f"{prefix}_credential_revoked_total",
            "Total number of credentials revoked",
            registry=self.registry,
        )

        self.callback_delivery_total = Counter(
            f"{prefix}_callback_delivery_total",
            "Callback deliveries by final outcome",
            ["status"],
            registry=self.registry,
        )

        self.cache_refresh_total = Counter(
            f"{prefix}_cache_refresh_total",
            "Consumer credential refreshes by outcome",
            ["client_id", "status"],
            registry=self.registry,
        )

    def record_credential_issued(self, client_id: str):
        """Record credential issuance."""
        self.credential_issued_total.labels(client_id=client_id).inc()

    def record_authentication_failure(self):
        self.authentication_failed_total.inc()

    def record_credential_revoked(self):
        """Record credential revocation."""
        self.credential_revoked_total.inc()

    def record_delivery(self, success: bool):
        """Record the final outcome of a callback delivery."""
        status = "success" if success else "fail"
        self.callback_delivery_total.labels(status=status).inc()

    def record_cache_refresh(self, client_id: str, success: bool):
        status = "success" if success else "fail"
        self.cache_refresh_total.labels(client_id=client_id, status=status).inc()

    def render(self) -> tuple[bytes, str]:
        """Return the exposition body and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
