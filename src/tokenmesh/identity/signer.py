"""
Credential Signing

Mints and verifies compact signed bearer credentials (JWS compact
serialization, EdDSA over Ed25519). Cryptographic verification is kept
separate from expiry and revocation so callers can layer those on top.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from tokenmesh.exceptions import (
    ExpiredCredentialError,
    InvalidSignatureError,
    MalformedCredentialError,
    SigningError,
)
from tokenmesh.identity.keys import KeyMaterial, base64url_decode, base64url_encode

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class CredentialStatus(str, Enum):
    """Outcome of checking a presented credential."""

    valid = "valid"
    expired = "expired"
    malformed = "malformed"
    invalid_signature = "invalid_signature"
    # only assigned by callers that consult a revocation registry
    revoked = "revoked"


class Claims(BaseModel):
    """Verified payload of a credential."""

    sub: str
    client_id: str
    scope: str
    iss: str
    aud: str
    iat: float
    exp: float
    jti: str
    trace_id: Optional[str] = None
    kid: str = Field(..., description="Key id from the protected header")

    @property
    def subject(self) -> str:
        return self.sub

    def is_expired(self, now: float) -> bool:
        return now >= self.exp


class Credential(BaseModel):
    """An issued credential. Immutable once minted."""

    model_config = {"frozen": True}

    token: str = Field(..., description="Compact serialized credential")
    subject: str
    scope: str
    issued_at: datetime
    expires_at: datetime
    key_id: str
    correlation_id: str
    token_id: str
    signature: str

    @property
    def expires_in(self) -> int:
        return int(round((self.expires_at - self.issued_at).total_seconds()))

    @property
    def identifier(self) -> str:
        return credential_identifier(self.token)


def credential_identifier(token: str) -> str:
    """Stable identifier of a presented credential string, used for revocation."""
    return hashlib.sha256(token.encode()).hexdigest()


class CredentialSigner:
    """Issues and verifies credentials with the active key.

    Args:
        keys: The process key material.
        issuer: Value of the ``iss`` claim.
        audience: Value of the ``aud`` claim.
        ttl_seconds: Lifetime of issued credentials.
        clock: Wall-clock source returning epoch seconds.
    """

    def __init__(
        self,
        keys: KeyMaterial,
        issuer: str = "token-service",
        audience: str = "data-client-service",
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._keys = keys
        self._issuer = issuer
        self._audience = audience
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @property
    def keys(self) -> KeyMaterial:
        return self._keys

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue(self, client_id: str, scope: str, correlation_id: str) -> Credential:
        """Mint a credential for ``client_id``.

        ``iat`` carries millisecond precision and every credential gets a
        fresh ``jti``, so two credentials issued back to back never share a
        signature.

        Raises:
            SigningError: If encoding or signing fails.
        """
        now = round(self._clock(), 3)
        expires = now + self._ttl_seconds
        header = {"alg": self._keys.algorithm, "typ": "JWT", "kid": self._keys.key_id}
        payload = {
            "sub": client_id,
            "client_id": client_id,
            "aud": self._audience,
            "iss": self._issuer,
            "scope": scope,
            "trace_id": correlation_id,
            "iat": now,
            "exp": expires,
            "jti": uuid.uuid4().hex,
        }
        try:
            signing_input = ".".join(
                base64url_encode(_json_bytes(part)) for part in (header, payload)
            )
        except (TypeError, ValueError) as e:
            raise SigningError(f"Failed to encode credential: {e}") from e

        signature = base64url_encode(self._keys.sign(signing_input.encode("ascii")))
        token = f"{signing_input}.{signature}"

        logger.debug("Credential issued for client: %s, trace_id=%s", client_id, correlation_id)
        return Credential(
            token=token,
            subject=client_id,
            scope=scope,
            issued_at=datetime.fromtimestamp(now, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
            key_id=self._keys.key_id,
            correlation_id=correlation_id,
            token_id=payload["jti"],
            signature=signature,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, token: str) -> Claims:
        """Cryptographically verify ``token`` and return its claims.

        Expiry is not checked here.

        Raises:
            MalformedCredentialError: If the token cannot be parsed.
            InvalidSignatureError: If the signature or key id does not match.
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise MalformedCredentialError("Credential must have three dot-separated parts")

        header_b64, payload_b64, signature_b64 = token.split(".")
        try:
            header = json.loads(base64url_decode(header_b64))
            payload = json.loads(base64url_decode(payload_b64))
            signature = base64url_decode(signature_b64)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedCredentialError(f"Credential is not valid base64url JSON: {e}") from e

        if not isinstance(header, dict) or not isinstance(payload, dict):
            raise MalformedCredentialError("Credential header and payload must be objects")
        if header.get("alg") != self._keys.algorithm:
            raise InvalidSignatureError(f"Unsupported algorithm: {header.get('alg')}")
        if header.get("kid") != self._keys.key_id:
            raise InvalidSignatureError(f"Unknown key id: {header.get('kid')}")

        signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
        if not self._keys.verify(signature, signing_input):
            raise InvalidSignatureError("Signature verification failed")

        try:
            return Claims.model_validate({**payload, "kid": header["kid"]})
        except ValueError as e:
            raise MalformedCredentialError(f"Credential claims are incomplete: {e}") from e

    def verify_unexpired(self, token: str) -> Claims:
        """Verify ``token`` and additionally reject it once expired.

        Raises:
            ExpiredCredentialError: If the signature is good but ``exp`` has passed.
        """
        claims = self.verify(token)
        if claims.is_expired(self._clock()):
            raise ExpiredCredentialError(f"Credential expired at {claims.exp}")
        return claims

    def check(self, token: str) -> CredentialStatus:
        """Classify ``token`` without raising."""
        try:
            self.verify_unexpired(token)
        except ExpiredCredentialError:
            return CredentialStatus.expired
        except InvalidSignatureError:
            return CredentialStatus.invalid_signature
        except MalformedCredentialError:
            return CredentialStatus.malformed
        return CredentialStatus.valid

    def is_expired(self, token: str) -> bool:
        """True unless ``token`` verifies and has not yet expired.

        Any verification failure counts as expired.
        """
        status = self.check(token)
        if status not in (CredentialStatus.valid, CredentialStatus.expired):
            logger.debug("Credential treated as expired: %s", status.value)
        return status is not CredentialStatus.valid


def _json_bytes(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), sort_keys=True).encode()
