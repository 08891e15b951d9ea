"""Consumer side: single-flight credential cache and issuer client."""

from .cache import CachedCredential, CacheState, CredentialCache, RefreshMode
from .client import IssuanceClient
from .service import ConsumerService

__all__ = [
    "CachedCredential",
    "CacheState",
    "CredentialCache",
    "RefreshMode",
    "IssuanceClient",
    "ConsumerService",
]
