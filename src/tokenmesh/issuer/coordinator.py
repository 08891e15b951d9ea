"""
Issuance Coordinator

Single entry point the HTTP layer calls: authenticates clients, mints
credentials, hands them to callback delivery, and answers revocation,
validation and key discovery requests.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Optional

from tokenmesh.config import IssuerConfig
from tokenmesh.delivery.callback import CallbackDelivery
from tokenmesh.exceptions import AuthenticationError, InvalidRequestError
from tokenmesh.identity.clients import ClientDirectory
from tokenmesh.identity.keys import KeyMaterial
from tokenmesh.identity.revocation import RevocationRegistry
from tokenmesh.identity.signer import CredentialSigner, CredentialStatus, credential_identifier
from tokenmesh.issuer.models import (
    CallbackRegistrationRequest,
    CallbackRegistrationResponse,
    PublicKeyResponse,
    RevokeTokenResponse,
    TokenRequest,
    TokenResponse,
)
from tokenmesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

REVOCATION_REASON = "Manual revocation via API"


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class IssuanceCoordinator:
    """Orchestrates credential issuance and management.

    Args:
        directory: Registered clients.
        signer: Credential signer bound to the active key.
        revocations: Revocation registry consulted by :meth:`validate`.
        delivery: Callback sender for asynchronous pushes.
        default_scope: Scope used when a request names none.
        metrics: Metrics collector; a private one is created when omitted.
    """

    def __init__(
        self,
        directory: ClientDirectory,
        signer: CredentialSigner,
        revocations: RevocationRegistry,
        delivery: CallbackDelivery,
        default_scope: str = "default",
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.directory = directory
        self.signer = signer
        self.revocations = revocations
        self.delivery = delivery
        self.default_scope = default_scope
        self.metrics = metrics if metrics is not None else MetricsCollector()
        revocations.cover_ttl(signer.ttl_seconds)

    @classmethod
    def from_config(
        cls,
        config: IssuerConfig,
        clock: Callable[[], float] = time.time,
        delivery: Optional[CallbackDelivery] = None,
    ) -> IssuanceCoordinator:
        """Wire up every issuer component from ``config``.

        The pre-registered client is seeded into a fresh directory.
        """
        metrics = MetricsCollector()
        if config.revocation_retention_seconds < config.token_ttl_seconds:
            logger.warning(
                "Revocation retention (%ss) is shorter than the credential TTL (%ss); "
                "it will be raised so swept revocations cannot revive live credentials",
                config.revocation_retention_seconds,
                config.token_ttl_seconds,
            )

        keys = KeyMaterial.from_paths(config.private_key_path, config.public_key_path)
        signer = CredentialSigner(
            keys,
            issuer=config.issuer,
            audience=config.audience,
            ttl_seconds=config.token_ttl_seconds,
            clock=clock,
        )
        revocations = RevocationRegistry(
            retention_seconds=config.revocation_retention_seconds,
            cleanup_interval_seconds=config.revocation_cleanup_interval_seconds,
            clock=clock,
        )
        if delivery is None:
            delivery = CallbackDelivery(
                max_attempts=config.callback_max_attempts,
                backoff_seconds=config.callback_backoff_seconds,
                workers=config.callback_workers,
                timeout_seconds=config.callback_timeout_seconds,
                shutdown_grace_seconds=config.shutdown_grace_seconds,
                metrics=metrics,
            )

        directory = ClientDirectory()
        seed = config.pre_registered_client
        directory.register_client(
            seed.client_id, seed.client_secret, callback_url=seed.callback_url, scopes=seed.scopes
        )
        logger.info("Pre-registered client initialized: %s", seed.client_id)

        return cls(
            directory,
            signer,
            revocations,
            delivery,
            default_scope=config.default_scope,
            metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_token(
        self, request: TokenRequest, correlation_id: Optional[str] = None
    ) -> TokenResponse:
        """Authenticate the client and mint a credential.

        If the client has a callback URL the credential is also queued for
        asynchronous delivery; this call does not wait for it.

        Raises:
            AuthenticationError: On unknown client or wrong secret.
            SigningError: If the credential cannot be minted.
        """
        correlation_id = correlation_id or new_correlation_id()
        logger.info(
            "Token request received from client: %s, trace_id=%s",
            request.client_id,
            correlation_id,
        )
        if not self.directory.authenticate(request.client_id, request.client_secret):
            self.metrics.record_authentication_failure()
            raise AuthenticationError(f"Invalid client credentials for client: {request.client_id}")

        scope = request.scope or self.default_scope
        credential = self.signer.issue(request.client_id, scope, correlation_id)
        response = TokenResponse(
            access_value=credential.token,
            expires_in=credential.expires_in,
            scope=scope,
            issued_at=credential.issued_at.isoformat().replace("+00:00", "Z"),
        )
        self.metrics.record_credential_issued(request.client_id)

        callback_url = self.directory.get_callback_url(request.client_id)
        if callback_url:
            self.delivery.deliver_async(callback_url, response.to_wire(), correlation_id)

        logger.info(
            "Token issued for client: %s, trace_id=%s", request.client_id, correlation_id
        )
        return response

    def register_callback(
        self, request: CallbackRegistrationRequest
    ) -> CallbackRegistrationResponse:
        """Authenticate the client and overwrite its callback registration.

        Raises:
            AuthenticationError: On unknown client or wrong secret.
            InvalidRequestError: If the callback URL is malformed.
        """
        correlation_id = new_correlation_id()
        logger.info(
            "Callback registration request from client: %s, trace_id=%s",
            request.client_id,
            correlation_id,
        )
        if not self.directory.authenticate(request.client_id, request.client_secret):
            self.metrics.record_authentication_failure()
            raise AuthenticationError(
                f"Invalid client credentials for callback registration: {request.client_id}"
            )

        self.directory.register_callback(request.client_id, request.callback_url, request.scopes)
        return CallbackRegistrationResponse(
            client_id=request.client_id,
            callback_url=request.callback_url,
            status="success",
            message="Callback registered successfully",
        )

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def public_key(self) -> PublicKeyResponse:
        keys = self.signer.keys
        return PublicKeyResponse(
            public_key=keys.public_key_b64(), algorithm=keys.algorithm, key_id=keys.key_id
        )

    def jwks(self) -> dict:
        return self.signer.keys.to_jwks()

    def revoke(
        self, token: Optional[str], token_type_hint: Optional[str] = None
    ) -> RevokeTokenResponse:
        """Blacklist ``token``. Idempotent.

        ``token_type_hint`` is advisory and only recorded in the log.

        Raises:
            InvalidRequestError: If ``token`` is empty.
        """
        if not token:
            raise InvalidRequestError("Token is required")

        credential_id = credential_identifier(token)
        if self.revocations.is_revoked(credential_id):
            logger.warning("Token already revoked")
            return RevokeTokenResponse(revoked=True, message="Token already revoked")

        self.revocations.revoke(credential_id, REVOCATION_REASON)
        self.metrics.record_credential_revoked()
        logger.info(
            "Token revoked, id: %s..., type hint: %s", credential_id[:12], token_type_hint or "none"
        )
        return RevokeTokenResponse(revoked=True, message="Token revoked successfully")

    def check(self, token: str) -> CredentialStatus:
        """Detailed status of ``token``, revocation included."""
        if self.revocations.is_revoked(credential_identifier(token)):
            return CredentialStatus.revoked
        return self.signer.check(token)

    def validate(self, token: Optional[str]) -> bool:
        """True only for a well-formed, correctly signed, unexpired, unrevoked token.

        Raises:
            InvalidRequestError: If ``token`` is empty.
        """
        if not token:
            raise InvalidRequestError("Token is required")
        status = self.check(token)
        if status is not CredentialStatus.valid:
            logger.info("Token rejected: %s", status.value)
            return False
        return True

    def blacklist_count(self) -> int:
        return self.revocations.count()

    def shutdown(self) -> None:
        self.delivery.shutdown()
        self.revocations.shutdown()
