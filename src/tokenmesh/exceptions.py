# Copyright (c) TokenMesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for TokenMesh.

All TokenMesh exceptions inherit from TokenMeshError, so the HTTP layer
can map each family to a status code in one place.
"""


class TokenMeshError(Exception):
    """Base exception for all TokenMesh errors."""


class ConfigurationError(TokenMeshError):
    """Invalid or inconsistent configuration."""


class AuthenticationError(TokenMeshError):
    """Bad client id or secret. Surfaced as 401 and never retried."""


class InvalidRequestError(TokenMeshError):
    """Malformed request body or parameter. Surfaced as 400."""


class ClientNotFoundError(InvalidRequestError):
    """The referenced client id is not registered."""

    def __init__(self, client_id: str) -> None:
        super().__init__(f"Client not found: {client_id}")
        self.client_id = client_id


class SigningError(TokenMeshError):
    """Internal key or crypto failure while minting a credential."""


class CredentialError(TokenMeshError):
    """A presented credential could not be accepted."""


class MalformedCredentialError(CredentialError):
    """The credential is not a well-formed signed token."""


class InvalidSignatureError(CredentialError):
    """The credential signature does not verify under the active key."""


class ExpiredCredentialError(CredentialError):
    """The credential verified but its expiry has passed."""


class DeliveryError(TokenMeshError):
    """A single callback delivery attempt failed."""


class AcquisitionError(TokenMeshError):
    """The consumer could not obtain a credential."""


class AcquisitionTimeoutError(AcquisitionError):
    """No callback delivered a credential within the wait bound."""


__all__ = [
    "TokenMeshError",
    "ConfigurationError",
    "AuthenticationError",
    "InvalidRequestError",
    "ClientNotFoundError",
    "SigningError",
    "CredentialError",
    "MalformedCredentialError",
    "InvalidSignatureError",
    "ExpiredCredentialError",
    "DeliveryError",
    "AcquisitionError",
    "AcquisitionTimeoutError",
]
