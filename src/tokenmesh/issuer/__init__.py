"""Token issuer: coordinator, wire models and HTTP application."""

from .coordinator import IssuanceCoordinator
from .models import (
    CallbackRegistrationRequest,
    CallbackRegistrationResponse,
    PublicKeyResponse,
    RevokeTokenRequest,
    RevokeTokenResponse,
    TokenRequest,
    TokenResponse,
)

__all__ = [
    "IssuanceCoordinator",
    "CallbackRegistrationRequest",
    "CallbackRegistrationResponse",
    "PublicKeyResponse",
    "RevokeTokenRequest",
    "RevokeTokenResponse",
    "TokenRequest",
    "TokenResponse",
]
