"""
Issuer Identity Core

- Ed25519 key material with a process-stable key id
- Signed, time-bounded bearer credentials
- Revocation registry with background expiry reclamation
- Registered machine clients and their callback URLs
"""

from .keys import KeyMaterial
from .signer import Claims, Credential, CredentialSigner, CredentialStatus, credential_identifier
from .revocation import RevocationEntry, RevocationRegistry
from .clients import Client, ClientDirectory

__all__ = [
    "KeyMaterial",
    "Claims",
    "Credential",
    "CredentialSigner",
    "CredentialStatus",
    "credential_identifier",
    "RevocationEntry",
    "RevocationRegistry",
    "Client",
    "ClientDirectory",
]
