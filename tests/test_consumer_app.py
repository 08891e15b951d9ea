"""Tests for the consuming service and its callback receiver."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from tokenmesh.config import ConsumerConfig, RetryPolicy
from tokenmesh.consumer.app import create_consumer_app
from tokenmesh.consumer.cache import CacheState
from tokenmesh.consumer.service import ConsumerService
from tokenmesh.exceptions import AcquisitionTimeoutError
from tokenmesh.issuer.models import TokenResponse


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

TOKEN_BODY = {"accessValue": "issued.jwt.value", "tokenType": "Bearer", "expiresIn": 3600}


class FakeIssuer:
    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/register-callback":
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "clientId": body["clientId"],
                    "callbackUrl": body["callbackUrl"],
                    "status": "success",
                    "message": "Callback registered successfully",
                },
            )
        return httpx.Response(200, json=TOKEN_BODY)

    def paths(self):
        return [r.url.path for r in self.requests]


def _config(**overrides):
    values = dict(
        client_id="svc",
        client_secret="pw",
        token_service_url="http://issuer.test",
        retry=RetryPolicy(max_attempts=1),
    )
    values.update(overrides)
    return ConsumerConfig(**values)


class TestConsumerService:
    def test_sync_mode_uses_issuance_response(self):
        issuer = FakeIssuer()
        service = ConsumerService(_config(), transport=httpx.MockTransport(issuer))
        assert service.get_access_value() == "issued.jwt.value"
        assert service.get_access_value() == "issued.jwt.value"
        assert issuer.paths() == ["/token"]
        service.close()

    def test_callback_mode_ignores_issuance_response(self):
        issuer = FakeIssuer()
        config = _config(mode="callback", poll_interval_seconds=0.02, max_poll_attempts=3)
        service = ConsumerService(config, transport=httpx.MockTransport(issuer))
        with pytest.raises(AcquisitionTimeoutError):
            service.get_access_value()
        assert issuer.paths() == ["/token"]
        service.close()

    def test_start_registers_callback(self):
        issuer = FakeIssuer()
        config = _config(callback_url="http://consumer.test/callback")
        service = ConsumerService(config, transport=httpx.MockTransport(issuer))
        service.start()
        assert issuer.paths() == ["/register-callback"]
        assert json.loads(issuer.requests[0].content)["callbackUrl"] == "http://consumer.test/callback"
        service.close()

    def test_start_without_callback_url(self):
        issuer = FakeIssuer()
        service = ConsumerService(_config(), transport=httpx.MockTransport(issuer))
        service.start()
        assert issuer.requests == []
        service.close()


class TestConsumerApp:
    def test_callback_stores_credential(self):
        service = ConsumerService(_config(), transport=httpx.MockTransport(FakeIssuer()))
        with TestClient(create_consumer_app(service)) as client:
            resp = client.post(
                "/callback",
                json={"accessValue": "pushed.jwt.value", "tokenType": "Bearer", "expiresIn": 3600},
            )
            assert resp.status_code == 200
            assert resp.json() == "Token received successfully"
            assert service.cache.state("svc") is CacheState.cached

            data = client.get("/api/v1/token").json()
            assert data["accessValue"] == "pushed.jwt.value"

    def test_push_during_issuance_completes_read(self):
        config = _config(mode="callback", poll_interval_seconds=0.5, max_poll_attempts=10)
        service = ConsumerService(config, transport=httpx.MockTransport(FakeIssuer()))
        with TestClient(create_consumer_app(service)) as client:

            def issue_and_push(client_id):
                client.post("/callback", json={"accessValue": "pushed", "expiresIn": 600})

            service.cache._fetcher = issue_and_push
            assert service.get_access_value() == "pushed"

    def test_token_endpoint_acquires_credential(self):
        issuer = FakeIssuer()
        service = ConsumerService(_config(), transport=httpx.MockTransport(issuer))
        with TestClient(create_consumer_app(service)) as client:
            resp = client.get("/api/v1/token")
            assert resp.status_code == 200
            assert resp.json()["accessValue"] == "issued.jwt.value"
            assert resp.json()["expiresAt"] > 0
            client.get("/api/v1/token")
        assert issuer.paths() == ["/token"]

    def test_token_endpoint_refreshes_short_lived_credential(self):
        issuer = FakeIssuer()
        service = ConsumerService(_config(), transport=httpx.MockTransport(issuer))
        with TestClient(create_consumer_app(service)) as client:
            service.cache.store_from_callback(
                "svc", TokenResponse(access_value="expiring", expires_in=5)
            )
            assert client.get("/api/v1/token").json()["accessValue"] == "issued.jwt.value"
        assert issuer.paths() == ["/token"]

    def test_token_endpoint_callback_timeout(self):
        config = _config(mode="callback", poll_interval_seconds=0.02, max_poll_attempts=3)
        service = ConsumerService(config, transport=httpx.MockTransport(FakeIssuer()))
        with TestClient(create_consumer_app(service)) as client:
            resp = client.get("/api/v1/token")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "callback delivery timed out"}

    def test_invalid_callback_body(self):
        service = ConsumerService(_config(), transport=httpx.MockTransport(FakeIssuer()))
        with TestClient(create_consumer_app(service)) as client:
            assert client.post("/callback", json={"tokenType": "Bearer"}).status_code == 400

    def test_registers_on_startup(self):
        issuer = FakeIssuer()
        config = _config(callback_url="http://consumer.test/callback")
        service = ConsumerService(config, transport=httpx.MockTransport(issuer))
        with TestClient(create_consumer_app(service)):
            assert issuer.paths() == ["/register-callback"]

    def test_startup_survives_failed_registration(self):
        def down(request):
            raise httpx.ConnectError("refused")

        config = _config(callback_url="http://consumer.test/callback")
        service = ConsumerService(config, transport=httpx.MockTransport(down))
        with TestClient(create_consumer_app(service)) as client:
            assert client.get("/api/v1/token").status_code == 500

    def test_startup_survives_dropped_connection(self):
        def hangs_up(request):
            raise httpx.RemoteProtocolError("Server disconnected without sending a response.")

        config = _config(callback_url="http://consumer.test/callback")
        service = ConsumerService(config, transport=httpx.MockTransport(hangs_up))
        with TestClient(create_consumer_app(service)) as client:
            resp = client.get("/api/v1/token")
        assert resp.status_code == 500
        assert "Issuer unreachable" in resp.json()["detail"]

    def test_metrics(self):
        service = ConsumerService(_config(), transport=httpx.MockTransport(FakeIssuer()))
        service.get_access_value()
        with TestClient(create_consumer_app(service, register_on_startup=False)) as client:
            body = client.get("/metrics").text
        assert 'tokenmesh_cache_refresh_total{client_id="svc",status="success"} 1.0' in body
