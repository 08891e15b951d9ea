"""Tests for configuration loading."""

import pytest
import yaml

from tokenmesh.config import ConsumerConfig, IssuerConfig, RetryPolicy
from tokenmesh.exceptions import ConfigurationError


class TestIssuerConfig:
    def test_defaults(self):
        config = IssuerConfig()
        assert config.issuer == "token-service"
        assert config.audience == "data-client-service"
        assert config.token_ttl_seconds == 3600
        assert config.revocation_cleanup_interval_seconds == 3600
        assert config.callback_max_attempts == 3
        assert config.callback_backoff_seconds == 1.0
        assert config.callback_workers == 5
        assert config.pre_registered_client.client_id == "data-client-service"
        assert config.pre_registered_client.scopes == ["read", "write"]

    def test_key_paths_set_together(self):
        with pytest.raises(ValueError, match="set together"):
            IssuerConfig(private_key_path="k.pem")

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "issuer.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "token_ttl_seconds": 600,
                    "pre_registered_client": {"client_id": "svc", "client_secret": "pw"},
                }
            )
        )
        config = IssuerConfig.from_yaml(path)
        assert config.token_ttl_seconds == 600
        assert config.pre_registered_client.client_id == "svc"

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "issuer.yaml"
        path.write_text(yaml.safe_dump({"token_ttl_seconds": 600}))
        monkeypatch.setenv("TOKENMESH_TOKEN_TTL_SECONDS", "120")
        assert IssuerConfig.from_yaml(path).token_ttl_seconds == 120

    def test_invalid_value(self, monkeypatch):
        monkeypatch.setenv("TOKENMESH_CALLBACK_WORKERS", "0")
        with pytest.raises(ConfigurationError):
            IssuerConfig.from_env()

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "issuer.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            IssuerConfig.from_yaml(path)

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "issuer.yaml"
        path.write_text("")
        assert IssuerConfig.from_yaml(path).issuer == "token-service"


class TestConsumerConfig:
    def test_defaults(self):
        config = ConsumerConfig()
        assert config.token_service_url == "http://localhost:8081"
        assert config.mode == "sync"
        assert config.refresh_skew_seconds == 60
        assert config.poll_interval_seconds == 0.5
        assert config.max_poll_attempts == 10
        assert config.callback_url is None

    def test_mode_env_override(self, monkeypatch):
        monkeypatch.setenv("TOKENMESH_MODE", "callback")
        assert ConsumerConfig.from_env().mode == "callback"

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            ConsumerConfig.from_env({"mode": "push"})

    def test_nested_retry(self, tmp_path):
        path = tmp_path / "consumer.yaml"
        path.write_text(yaml.safe_dump({"retry": {"max_attempts": 5, "max_delay_seconds": 3}}))
        retry = ConsumerConfig.from_yaml(path).retry
        assert retry.max_attempts == 5
        assert retry.delay_for(4) == 3


class TestRetryPolicy:
    def test_first_delay(self):
        assert RetryPolicy().delay_for(1) == 1.0

    def test_capped(self):
        assert RetryPolicy(max_delay_seconds=5).delay_for(10) == 5
