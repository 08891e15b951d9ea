"""Consumer wiring: an issuance client plus a credential cache built from config."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from tokenmesh.config import ConsumerConfig
from tokenmesh.consumer.cache import CachedCredential, CredentialCache, RefreshMode
from tokenmesh.consumer.client import IssuanceClient
from tokenmesh.issuer.models import TokenResponse
from tokenmesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class ConsumerService:
    """Owns the consumer-side components for one configured client.

    Args:
        config: Consumer configuration.
        client: Optional prebuilt issuance client.
        transport: Optional httpx transport for the default issuance client.
    """

    def __init__(
        self,
        config: ConsumerConfig,
        client: Optional[IssuanceClient] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config
        self.metrics = MetricsCollector()
        self.client = client or IssuanceClient.from_config(config, transport=transport)
        self.cache = CredentialCache(
            self._fetch,
            mode=RefreshMode(config.mode),
            refresh_skew_seconds=config.refresh_skew_seconds,
            poll_interval_seconds=config.poll_interval_seconds,
            max_poll_attempts=config.max_poll_attempts,
            metrics=self.metrics,
        )
        logger.info("Token service initialized for client: %s (mode=%s)", config.client_id, config.mode)

    @property
    def client_id(self) -> str:
        return self.config.client_id

    def _fetch(self, client_id: str) -> Optional[TokenResponse]:
        response = self.client.request_token(client_id)
        if self.cache.mode is RefreshMode.callback:
            # the pushed copy is authoritative in callback mode
            return None
        return response

    def start(self) -> None:
        """Register the configured callback URL with the issuer, if any."""
        if self.config.callback_url:
            self.client.register_callback(self.config.client_id, self.config.callback_url)

    def get_access_value(self) -> str:
        return self.cache.get_credential(self.config.client_id)

    def acquire(self) -> CachedCredential:
        """The current credential entry, refreshed through the cache when needed."""
        return self.cache.acquire(self.config.client_id)

    def receive_callback(self, credential: TokenResponse) -> None:
        self.cache.store_from_callback(self.config.client_id, credential)

    def close(self) -> None:
        self.client.close()
