"""
Consumer Credential Cache

Caches one credential per client id and refreshes it before expiry with a
single in-flight refresh per process. Two refresh modes are supported:

- ``sync``: the issuance call returns the credential directly.
- ``callback``: the issuance call only starts issuance; the credential
  arrives later through :meth:`CredentialCache.store_from_callback`, which
  wakes the waiting refresh.

Reads of a fresh entry never take the refresh lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from tokenmesh.exceptions import AcquisitionError, AcquisitionTimeoutError
from tokenmesh.issuer.models import TokenResponse
from tokenmesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_SKEW_SECONDS = 60.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.5
DEFAULT_MAX_POLL_ATTEMPTS = 10


class CacheState(str, Enum):
    """Per-client refresh state."""

    absent = "absent"
    fetching = "fetching"
    cached = "cached"
    expiring = "expiring"


class RefreshMode(str, Enum):
    sync = "sync"
    callback = "callback"


class CredentialFetcher(Protocol):
    """Requests issuance for a client.

    In sync mode it returns the issued credential; in callback mode the
    return value is ignored and the credential arrives via callback.
    """

    def __call__(self, client_id: str) -> Optional[TokenResponse]: ...


@dataclass(frozen=True)
class CachedCredential:
    """A cached access value with its absolute expiry (epoch seconds)."""

    client_id: str
    access_value: str
    expires_at: float

    def is_stale(self, now: float, skew: float) -> bool:
        return now >= self.expires_at - skew


class CredentialCache:
    """Single-flight credential cache.

    Args:
        fetcher: Issues (or initiates issuance of) a credential for a client.
        mode: ``sync`` or ``callback``.
        refresh_skew_seconds: Entries this close to expiry count as absent.
        poll_interval_seconds: Callback-mode wait granularity; together with
            ``max_poll_attempts`` it bounds how long a refresh waits.
        max_poll_attempts: See ``poll_interval_seconds``.
        clock: Wall-clock source returning epoch seconds.
        metrics: Optional metrics collector.
    """

    def __init__(
        self,
        fetcher: CredentialFetcher,
        mode: RefreshMode | str = RefreshMode.sync,
        refresh_skew_seconds: float = DEFAULT_REFRESH_SKEW_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._fetcher = fetcher
        self._mode = RefreshMode(mode)
        self._skew = refresh_skew_seconds
        self._wait_timeout = poll_interval_seconds * max_poll_attempts
        self._clock = clock
        self._metrics = metrics

        self._entries: dict[str, CachedCredential] = {}
        # Bumped on every store; a callback-mode refresh waits for it to move.
        self._generations: dict[str, int] = {}
        self._fetching: set[str] = set()
        # Serializes refreshes; never taken on the fast path.
        self._refresh_lock = threading.Lock()
        # Guards writes to _entries and signals callback arrivals.
        self._arrived = threading.Condition()

    @property
    def mode(self) -> RefreshMode:
        return self._mode

    @property
    def wait_timeout(self) -> float:
        return self._wait_timeout

    def _fresh(self, client_id: str) -> Optional[CachedCredential]:
        entry = self._entries.get(client_id)
        if entry is not None and not entry.is_stale(self._clock(), self._skew):
            return entry
        return None

    def state(self, client_id: str) -> CacheState:
        if client_id in self._fetching:
            return CacheState.fetching
        entry = self._entries.get(client_id)
        if entry is None:
            return CacheState.absent
        if entry.is_stale(self._clock(), self._skew):
            return CacheState.expiring
        return CacheState.cached

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_credential(self, client_id: str) -> str:
        """Return a fresh access value for ``client_id``, refreshing if needed.

        Raises:
            AcquisitionError: If issuance fails.
            AcquisitionTimeoutError: In callback mode, if no callback stores
                a credential within the wait bound.
        """
        return self.acquire(client_id).access_value

    def acquire(self, client_id: str) -> CachedCredential:
        """Like :meth:`get_credential` but returns the whole cache entry."""
        entry = self._fresh(client_id)
        if entry is not None:
            logger.debug("Using cached credential for client: %s", client_id)
            return entry

        with self._refresh_lock:
            entry = self._fresh(client_id)
            if entry is not None:
                logger.debug("Using cached credential after lock for client: %s", client_id)
                return entry

            self._fetching.add(client_id)
            try:
                entry = self._refresh(client_id)
            except AcquisitionError:
                self._record_refresh(client_id, False)
                raise
            finally:
                self._fetching.discard(client_id)

        self._record_refresh(client_id, True)
        return entry

    def peek(self, client_id: str) -> Optional[CachedCredential]:
        """Current entry for ``client_id`` if it has not expired, without refreshing."""
        entry = self._entries.get(client_id)
        if entry is None or self._clock() >= entry.expires_at:
            return None
        return entry

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store_from_callback(self, client_id: str, credential: TokenResponse) -> CachedCredential:
        """Store a pushed credential unconditionally and wake any waiting refresh."""
        entry = self._store(client_id, credential)
        logger.info(
            "Credential stored from callback for client: %s, expires in: %ss",
            client_id,
            credential.expires_in,
        )
        return entry

    def invalidate(self, client_id: str) -> None:
        """Drop the entry so the next read refreshes."""
        with self._arrived:
            self._entries.pop(client_id, None)
        logger.info("Credential invalidated for client: %s", client_id)

    def _store(self, client_id: str, credential: TokenResponse) -> CachedCredential:
        entry = CachedCredential(
            client_id=client_id,
            access_value=credential.access_value,
            expires_at=self._clock() + credential.expires_in,
        )
        with self._arrived:
            self._entries[client_id] = entry
            self._generations[client_id] = self._generations.get(client_id, 0) + 1
            self._arrived.notify_all()
        return entry

    # ------------------------------------------------------------------
    # Refresh (called with _refresh_lock held)
    # ------------------------------------------------------------------

    def _refresh(self, client_id: str) -> CachedCredential:
        # taken before issuance starts so a push that beats the response counts
        with self._arrived:
            generation = self._generations.get(client_id, 0)
        try:
            response = self._fetcher(client_id)
        except AcquisitionError:
            raise
        except Exception as e:
            logger.error("Credential fetch failed for client: %s: %s", client_id, e)
            raise AcquisitionError(f"Failed to acquire access credential: {e}") from e

        if self._mode is RefreshMode.sync:
            if response is None:
                raise AcquisitionError("Issuer returned no credential")
            entry = self._store(client_id, response)
            logger.info(
                "New credential acquired for client: %s, expires at: %s",
                client_id,
                entry.expires_at,
            )
            return entry

        return self._await_callback(client_id, generation)

    def _await_callback(self, client_id: str, generation: int) -> CachedCredential:
        """Wait for any store newer than ``generation``, however close to expiry."""
        with self._arrived:
            arrived = self._arrived.wait_for(
                lambda: self._generations.get(client_id, 0) > generation,
                timeout=self._wait_timeout,
            )
            entry = self._entries.get(client_id)
        if not arrived or entry is None:
            logger.error(
                "No callback delivered a credential for client: %s within %ss",
                client_id,
                self._wait_timeout,
            )
            raise AcquisitionTimeoutError("callback delivery timed out")
        logger.info("Credential received via callback for client: %s", client_id)
        return entry

    def _record_refresh(self, client_id: str, success: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_cache_refresh(client_id, success)
