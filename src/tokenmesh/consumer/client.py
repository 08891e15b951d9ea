"""HTTP client for the issuer, used by the consumer cache to request credentials.

Transport failures and 5xx responses are retried with exponential delay
capped at ``max_delay_seconds``; 4xx responses fail immediately.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Mapping, Optional, Sequence

import httpx

from tokenmesh.config import ConsumerConfig, RetryPolicy
from tokenmesh.exceptions import AcquisitionError, AuthenticationError
from tokenmesh.issuer.models import TokenResponse

logger = logging.getLogger(__name__)


class IssuanceClient:
    """Blocking client for the issuer's ``/token`` and ``/register-callback`` endpoints.

    Args:
        base_url: Issuer base URL.
        credentials: Mapping of client id to client secret.
        scope: Scope requested on every issuance, or None for the issuer default.
        retry: Transport-level retry policy.
        timeout_seconds: Per-request timeout.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
        http_client: Optional preconfigured ``httpx.Client``; its own base URL
            and timeout apply. Created and owned here when omitted.
        sleep: Sleep function used between retries.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Mapping[str, str],
        scope: Optional[str] = None,
        retry: Optional[RetryPolicy] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._credentials = dict(credentials)
        self._scope = scope
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=base_url, timeout=timeout_seconds, transport=transport
        )

    @classmethod
    def from_config(
        cls, config: ConsumerConfig, transport: Optional[httpx.BaseTransport] = None
    ) -> IssuanceClient:
        return cls(
            config.token_service_url,
            {config.client_id: config.client_secret},
            scope=config.scope,
            retry=config.retry,
            timeout_seconds=config.request_timeout_seconds,
            transport=transport,
        )

    def __enter__(self) -> IssuanceClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _secret_for(self, client_id: str) -> str:
        try:
            return self._credentials[client_id]
        except KeyError:
            raise AcquisitionError(f"No client secret configured for client: {client_id}") from None

    def request_token(self, client_id: str) -> TokenResponse:
        """Request a credential for ``client_id``.

        Raises:
            AuthenticationError: If the issuer rejects the client credentials.
            AcquisitionError: On any other failure after retries.
        """
        body: dict[str, Any] = {
            "clientId": client_id,
            "clientSecret": self._secret_for(client_id),
            "grantType": "client_credentials",
        }
        if self._scope:
            body["scope"] = self._scope

        response = self._post_with_retry("/token", body)
        if response.status_code == 401:
            raise AuthenticationError(f"Issuer rejected credentials for client: {client_id}")
        if not response.is_success:
            raise AcquisitionError(f"Failed to fetch token, status: {response.status_code}")
        try:
            token = TokenResponse.model_validate(response.json())
        except ValueError as e:
            raise AcquisitionError(f"Issuer returned an unreadable token response: {e}") from e
        logger.info("Fetched new token from token service for client: %s", client_id)
        return token

    def register_callback(
        self, client_id: str, callback_url: str, scopes: Optional[Sequence[str]] = None
    ) -> dict:
        """Register ``callback_url`` for ``client_id`` with the issuer.

        Raises:
            AuthenticationError: If the issuer rejects the client credentials.
            AcquisitionError: If registration fails.
        """
        body: dict[str, Any] = {
            "clientId": client_id,
            "clientSecret": self._secret_for(client_id),
            "callbackUrl": callback_url,
        }
        if scopes:
            body["scopes"] = list(scopes)
        response = self._post_with_retry("/register-callback", body)
        if response.status_code == 401:
            raise AuthenticationError(f"Issuer rejected credentials for client: {client_id}")
        if not response.is_success:
            raise AcquisitionError(
                f"Callback registration failed, status: {response.status_code}"
            )
        logger.info("Callback URL registered for client: %s at %s", client_id, callback_url)
        return response.json()

    def _post_with_retry(self, path: str, body: dict[str, Any]) -> httpx.Response:
        trace_id = uuid.uuid4().hex
        max_attempts = self._retry.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            try:
                response = self._client.post(path, json=body, headers={"X-Trace-Id": trace_id})
                if response.status_code < 500 or attempt == max_attempts:
                    return response
                logger.warning(
                    "Issuer returned %d on %s (attempt %d/%d), trace_id=%s",
                    response.status_code,
                    path,
                    attempt,
                    max_attempts,
                    trace_id,
                )
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning(
                    "Connection error on %s: %s (attempt %d/%d), trace_id=%s",
                    path,
                    exc,
                    attempt,
                    max_attempts,
                    trace_id,
                )
                if attempt == max_attempts:
                    break
            self._sleep(self._retry.delay_for(attempt))

        raise AcquisitionError(
            f"Issuer unreachable after {max_attempts} attempts: {last_error}"
        ) from last_error
