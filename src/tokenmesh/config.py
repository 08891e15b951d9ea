"""
Service Configuration

Pydantic configuration models for the token issuer and the consuming
client, with YAML loading and ``TOKENMESH_*`` environment overrides.
"""

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from tokenmesh.exceptions import ConfigurationError

ENV_PREFIX = "TOKENMESH_"


class PreRegisteredClient(BaseModel):
    """The client seeded into the directory at issuer start-up."""

    client_id: str = Field(default="data-client-service")
    client_secret: str = Field(default="secret123")
    callback_url: Optional[str] = Field(default="http://localhost:8082/callback")
    scopes: list[str] = Field(default_factory=lambda: ["read", "write"])


class IssuerConfig(BaseModel):
    """Configuration for the token issuing service."""

    issuer: str = Field(default="token-service", description="Value of the iss claim")
    audience: str = Field(default="data-client-service", description="Value of the aud claim")
    token_ttl_seconds: int = Field(default=3600, gt=0)
    default_scope: str = Field(default="default")

    private_key_path: Optional[str] = Field(default=None, description="PEM PKCS#8 private key")
    public_key_path: Optional[str] = Field(default=None, description="PEM SubjectPublicKeyInfo")

    revocation_cleanup_interval_seconds: float = Field(default=3600, gt=0)
    revocation_retention_seconds: float = Field(
        default=3600,
        gt=0,
        description="How long a revocation record is kept before the sweep drops it",
    )

    callback_max_attempts: int = Field(default=3, ge=1)
    callback_backoff_seconds: float = Field(default=1.0, ge=0)
    callback_workers: int = Field(default=5, ge=1)
    callback_timeout_seconds: float = Field(default=10.0, gt=0)
    shutdown_grace_seconds: float = Field(default=5.0, ge=0)

    pre_registered_client: PreRegisteredClient = Field(default_factory=PreRegisteredClient)

    @model_validator(mode="after")
    def _check_key_paths(self) -> "IssuerConfig":
        if bool(self.private_key_path) != bool(self.public_key_path):
            raise ValueError("private_key_path and public_key_path must be set together")
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "IssuerConfig":
        """Load an IssuerConfig from a YAML file, then apply env overrides."""
        return cls.from_env(_read_yaml(path))

    @classmethod
    def from_env(cls, base: Optional[dict[str, Any]] = None) -> "IssuerConfig":
        """Build a config from ``base`` with ``TOKENMESH_<FIELD>`` overrides."""
        return _build(cls, base)


class RetryPolicy(BaseModel):
    """Transport-level retry for calls to the issuer."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_seconds: float = Field(default=10.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows failed ``attempt`` (1-based)."""
        delay = self.initial_delay_seconds * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


class ConsumerConfig(BaseModel):
    """Configuration for a service that consumes issued credentials."""

    token_service_url: str = Field(default="http://localhost:8081")
    client_id: str = Field(default="data-client-service")
    client_secret: str = Field(default="secret123")
    scope: Optional[str] = Field(default="read")
    mode: Literal["sync", "callback"] = Field(default="sync")
    refresh_skew_seconds: float = Field(default=60, ge=0)
    poll_interval_seconds: float = Field(default=0.5, gt=0)
    max_poll_attempts: int = Field(default=10, ge=1)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    callback_url: Optional[str] = Field(
        default=None, description="Registered with the issuer on start-up when set"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ConsumerConfig":
        """Load a ConsumerConfig from a YAML file, then apply env overrides."""
        return cls.from_env(_read_yaml(path))

    @classmethod
    def from_env(cls, base: Optional[dict[str, Any]] = None) -> "ConsumerConfig":
        """Build a config from ``base`` with ``TOKENMESH_<FIELD>`` overrides."""
        return _build(cls, base)


def _read_yaml(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top-level YAML in {path} must be a mapping")
    return data


def _build(model: type[BaseModel], base: Optional[dict[str, Any]]) -> Any:
    data = dict(base or {})
    for name, field in model.model_fields.items():
        # nested sections are only configurable through YAML
        if isinstance(field.annotation, type) and issubclass(field.annotation, BaseModel):
            continue
        value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            data[name] = value
    try:
        return model.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
