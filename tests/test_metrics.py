"""Tests for TokenMesh Prometheus metrics."""

from prometheus_client import Counter

from tokenmesh.observability.metrics import MetricsCollector


class TestMetricsCollector:
    def test_counters_created(self):
        m = MetricsCollector()
        assert isinstance(m.credential_issued_total, Counter)
        assert isinstance(m.cache_refresh_total, Counter)

    def test_collectors_are_isolated(self):
        a, b = MetricsCollector(), MetricsCollector()
        a.record_credential_revoked()
        assert a.registry.get_sample_value("tokenmesh_credential_revoked_total") == 1
        assert b.registry.get_sample_value("tokenmesh_credential_revoked_total") == 0

    def test_delivery_outcomes(self):
        m = MetricsCollector()
        m.record_delivery(True)
        m.record_delivery(False)
        m.record_delivery(False)
        success = m.registry.get_sample_value(
            "tokenmesh_callback_delivery_total", {"status": "success"}
        )
        fail = m.registry.get_sample_value("tokenmesh_callback_delivery_total", {"status": "fail"})
        assert (success, fail) == (1, 2)

    def test_cache_refresh_outcomes(self):
        m = MetricsCollector()
        m.record_cache_refresh("svc", False)
        labels = {"client_id": "svc", "status": "fail"}
        assert m.registry.get_sample_value("tokenmesh_cache_refresh_total", labels) == 1

    def test_render(self):
        m = MetricsCollector()
        m.record_credential_issued("svc")
        body, content_type = m.render()
        assert content_type.startswith("text/plain")
        assert b'tokenmesh_credential_issued_total{client_id="svc"} 1.0' in body

    def test_custom_prefix(self):
        m = MetricsCollector(prefix="issuer")
        m.record_authentication_failure()
        assert m.registry.get_sample_value("issuer_authentication_failed_total") == 1
