"""
Signing Key Material

Holds the single active Ed25519 key pair for this process, either generated
at start-up or loaded from PEM files, together with a process-stable key id.
Also provides RFC 7517 JWK export of the public half for discovery.
"""

from __future__ import annotations

import base64
import logging
import uuid
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from tokenmesh.exceptions import ConfigurationError, SigningError

logger = logging.getLogger(__name__)

ALGORITHM = "EdDSA"


def base64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding per RFC 7515."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(s: str) -> bytes:
    """Decode base64url string without padding per RFC 7515."""
    # Add padding back
    padding = 4 - len(s) % 4
    if padding != 4:
        s += "=" * padding
    return base64.urlsafe_b64decode(s)


class KeyMaterial:
    """The active signing key pair and its key id.

    The key id is generated once per instance and appears in the header of
    every credential signed with this key, so verifiers could select among
    rotated keys. Only one key is ever active here.

    Args:
        private_key: An existing Ed25519 private key. A new one is generated
            when omitted.
        key_id: Explicit key id; defaults to a random 32-char hex string.
    """

    def __init__(
        self,
        private_key: Optional[ed25519.Ed25519PrivateKey] = None,
        key_id: Optional[str] = None,
    ) -> None:
        self._private_key = private_key or ed25519.Ed25519PrivateKey.generate()
        self._public_key = self._private_key.public_key()
        self._key_id = key_id or uuid.uuid4().hex

    @classmethod
    def generate(cls) -> KeyMaterial:
        """Create key material with a freshly generated key pair."""
        logger.info("Generating new Ed25519 key pair")
        return cls()

    @classmethod
    def load(cls, private_key_path: str | Path, public_key_path: str | Path) -> KeyMaterial:
        """Load a PEM key pair from disk.

        Raises:
            ConfigurationError: If either file is unreadable, is not an
                Ed25519 key, or the two halves do not belong together.
        """
        logger.info("Loading Ed25519 key pair from files")
        try:
            private_key = serialization.load_pem_private_key(
                Path(private_key_path).read_bytes(), password=None
            )
            public_key = serialization.load_pem_public_key(Path(public_key_path).read_bytes())
        except (OSError, ValueError, TypeError) as e:
            raise ConfigurationError(f"Unable to load key pair: {e}") from e

        if not isinstance(private_key, ed25519.Ed25519PrivateKey) or not isinstance(
            public_key, ed25519.Ed25519PublicKey
        ):
            raise ConfigurationError("Key files must contain an Ed25519 key pair")

        material = cls(private_key=private_key)
        if material.public_key_bytes() != public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        ):
            raise ConfigurationError("Public key does not match private key")
        return material

    @classmethod
    def from_paths(
        cls, private_key_path: Optional[str], public_key_path: Optional[str]
    ) -> KeyMaterial:
        """Load from the configured paths, or generate when none are set."""
        if private_key_path and public_key_path:
            material = cls.load(private_key_path, public_key_path)
        else:
            material = cls.generate()
        logger.info("Key pair initialized with key ID: %s", material.key_id)
        return material

    @property
    def key_id(self) -> str:
        return self._key_id

    @property
    def algorithm(self) -> str:
        return ALGORITHM

    def sign(self, data: bytes) -> bytes:
        """Sign ``data`` with the active private key."""
        try:
            return self._private_key.sign(data)
        except Exception as e:
            raise SigningError(f"Signing failed: {e}") from e

    def verify(self, signature: bytes, data: bytes) -> bool:
        """Return True if ``signature`` over ``data`` verifies."""
        try:
            self._public_key.verify(signature, data)
            return True
        except InvalidSignature:
            return False

    def public_key_bytes(self) -> bytes:
        """Raw 32-byte public key."""
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def public_key_b64(self) -> str:
        """Base64 of the DER SubjectPublicKeyInfo encoding."""
        der = self._public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return base64.b64encode(der).decode()

    def private_key_pem(self) -> bytes:
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def public_key_pem(self) -> bytes:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def write_pem(self, private_key_path: str | Path, public_key_path: str | Path) -> None:
        """Write the key pair as PEM files, private key with mode 0600."""
        private_path = Path(private_key_path)
        private_path.write_bytes(self.private_key_pem())
        private_path.chmod(0o600)
        Path(public_key_path).write_bytes(self.public_key_pem())

    def to_jwk(self) -> dict:
        """Export the public key as a JWK (JSON Web Key)."""
        return {
            "kty": "OKP",
            "crv": "Ed25519",
            "x": base64url_encode(self.public_key_bytes()),
            "kid": self._key_id,
            "alg": ALGORITHM,
            "use": "sig",
        }

    def to_jwks(self) -> dict:
        """Export the public key as a JWK Set ({"keys": [jwk]})."""
        return {"keys": [self.to_jwk()]}
