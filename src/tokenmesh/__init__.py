"""
TokenMesh - Client-Credentials Token Issuance

Issue · Deliver · Revoke · Cache

Short-lived signed bearer credentials for registered machine clients,
pushed asynchronously to client callbacks, with a revocation registry and
a single-flight consumer-side cache.

Version: 0.1.0
"""

__version__ = "0.1.0"

from .identity import (
    KeyMaterial,
    Credential,
    CredentialSigner,
    CredentialStatus,
    RevocationRegistry,
    ClientDirectory,
)
from .delivery import CallbackDelivery
from .issuer import IssuanceCoordinator
from .consumer import CredentialCache, IssuanceClient

from .exceptions import (
    TokenMeshError,
    ConfigurationError,
    AuthenticationError,
    InvalidRequestError,
    ClientNotFoundError,
    SigningError,
    CredentialError,
    MalformedCredentialError,
    InvalidSignatureError,
    ExpiredCredentialError,
    DeliveryError,
    AcquisitionError,
    AcquisitionTimeoutError,
)

__all__ = [
    "__version__",

    # Issuer
    "KeyMaterial",
    "Credential",
    "CredentialSigner",
    "CredentialStatus",
    "RevocationRegistry",
    "ClientDirectory",
    "CallbackDelivery",
    "IssuanceCoordinator",

    # Consumer
    "CredentialCache",
    "IssuanceClient",

    # Exceptions
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
