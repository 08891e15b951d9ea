"""
Client Directory

Registry of machine clients allowed to request credentials: their shared
secret, scopes, and the callback URL newly issued credentials are pushed to.
"""

from __future__ import annotations

import hmac
import logging
import threading
from datetime import datetime, timezone
from typing import Optional, Sequence

from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter, ValidationError

from tokenmesh.exceptions import ClientNotFoundError, InvalidRequestError

logger = logging.getLogger(__name__)

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


def validate_callback_url(url: str) -> str:
    """Return ``url`` unchanged if it is a well-formed absolute http(s) URL.

    Raises:
        InvalidRequestError: If the URL is relative or otherwise malformed.
    """
    try:
        _URL_ADAPTER.validate_python(url)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid callback URL: {url!r}") from e
    return url


class Client(BaseModel):
    """A registered machine client."""

    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., repr=False)
    callback_url: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ClientDirectory:
    """Thread-safe registry of known clients.

    Clients are never deleted. A callback URL can only be changed through
    :meth:`register_callback`, which never creates a client implicitly.
    """

    def __init__(self) -> None:
        self._clients: dict[str, Client] = {}
        self._lock = threading.Lock()

    def register_client(
        self,
        client_id: str,
        client_secret: str,
        callback_url: Optional[str] = None,
        scopes: Sequence[str] = (),
    ) -> Client:
        """Add a client to the directory.

        Raises:
            InvalidRequestError: If the id is taken or the callback URL is invalid.
        """
        if callback_url:
            validate_callback_url(callback_url)
        client = Client(
            client_id=client_id,
            client_secret=client_secret,
            callback_url=callback_url or None,
            scopes=list(scopes),
        )
        with self._lock:
            if client_id in self._clients:
                raise InvalidRequestError(f"Client already registered: {client_id}")
            self._clients[client_id] = client
        logger.info("Client registered: %s", client_id)
        return client

    def authenticate(self, client_id: str, client_secret: str) -> bool:
        """True iff ``client_id`` exists and ``client_secret`` matches exactly."""
        client = self._clients.get(client_id)
        if client is None:
            logger.warning("Client not found: %s", client_id)
            return False
        valid = hmac.compare_digest(
            client.client_secret.encode("utf-8"), (client_secret or "").encode("utf-8")
        )
        if not valid:
            logger.warning("Invalid client secret for client: %s", client_id)
        return valid

    def register_callback(
        self,
        client_id: str,
        callback_url: str,
        scopes: Optional[Sequence[str]] = None,
    ) -> Client:
        """Overwrite the callback URL and, when non-empty, the scopes.

        Raises:
            ClientNotFoundError: If ``client_id`` is unknown.
            InvalidRequestError: If ``callback_url`` is not an absolute URL.
        """
        validate_callback_url(callback_url)
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                raise ClientNotFoundError(client_id)
            update: dict = {"callback_url": callback_url}
            if scopes:
                update["scopes"] = list(scopes)
            client = client.model_copy(update=update)
            self._clients[client_id] = client
        logger.info("Callback registered for client: %s at URL: %s", client_id, callback_url)
        return client

    def get_callback_url(self, client_id: str) -> Optional[str]:
        client = self._clients.get(client_id)
        return client.callback_url if client else None

    def get_client(self, client_id: str) -> Optional[Client]:
        return self._clients.get(client_id)

    def list_clients(self) -> list[Client]:
        with self._lock:
            return list(self._clients.values())

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients
