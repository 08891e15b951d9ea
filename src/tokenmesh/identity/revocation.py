"""
Credential Revocation Registry

In-memory blacklist of revoked credential identifiers with a background
sweep that drops records older than the retention window.

Operational constraint: once a record is swept, the credential it named
would validate again if it had not also expired on its own. The retention
window must therefore stay at least as long as the longest credential TTL
ever issued. ``cover_ttl`` raises the window to enforce this.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 3600
DEFAULT_CLEANUP_INTERVAL_SECONDS = 3600


class RevocationEntry(BaseModel):
    """A single revocation record.

    Attributes:
        credential_id: Identifier of the revoked credential.
        revoked_at: Timestamp when the revocation was recorded.
        reason: Human-readable reason for revocation.
    """

    credential_id: str = Field(..., description="Identifier of the revoked credential")
    revoked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reason: str = Field(default="", description="Reason for revocation")


class RevocationRegistry:
    """Thread-safe revocation set with periodic expiry reclamation.

    Args:
        retention_seconds: Age after which a record is dropped by the sweep.
        cleanup_interval_seconds: Period of the background sweep.
        clock: Wall-clock source returning epoch seconds.
        start_sweeper: Start the background sweep thread immediately.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
        start_sweeper: bool = True,
    ) -> None:
        self._entries: dict[str, RevocationEntry] = {}
        self._lock = threading.Lock()
        self._retention_seconds = retention_seconds
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if start_sweeper:
            self.start()
        logger.info(
            "Revocation registry initialized with cleanup interval: %ss, retention: %ss",
            cleanup_interval_seconds,
            retention_seconds,
        )

    @property
    def retention_seconds(self) -> float:
        return self._retention_seconds

    def cover_ttl(self, ttl_seconds: float) -> None:
        """Ensure the retention window is at least ``ttl_seconds``."""
        with self._lock:
            if ttl_seconds > self._retention_seconds:
                logger.warning(
                    "Raising revocation retention from %ss to %ss to cover credential TTL",
                    self._retention_seconds,
                    ttl_seconds,
                )
                self._retention_seconds = ttl_seconds

    # ------------------------------------------------------------------
    # Registry operations
    # ------------------------------------------------------------------

    def revoke(self, credential_id: str, reason: str = "") -> RevocationEntry:
        """Record ``credential_id`` as revoked.

        Idempotent: revoking an already revoked id keeps the original record.

        Returns:
            The stored RevocationEntry.
        """
        with self._lock:
            entry = self._entries.get(credential_id)
            if entry is not None:
                return entry
            entry = RevocationEntry(
                credential_id=credential_id,
                revoked_at=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
                reason=reason,
            )
            self._entries[credential_id] = entry
        logger.info("Credential revoked at: %s, reason: %s", entry.revoked_at.isoformat(), reason)
        return entry

    def is_revoked(self, credential_id: str) -> bool:
        return credential_id in self._entries

    def get_entry(self, credential_id: str) -> RevocationEntry | None:
        """Get the revocation record for ``credential_id``, or None."""
        return self._entries.get(credential_id)

    def list_revoked(self) -> list[RevocationEntry]:
        with self._lock:
            return list(self._entries.values())

    def count(self) -> int:
        return len(self._entries)

    def cleanup_expired(self) -> int:
        """Remove records older than the retention window.

        Returns:
            Number of entries removed.
        """
        threshold = self._clock() - self._retention_seconds
        with self._lock:
            expired = [
                cid
                for cid, entry in self._entries.items()
                if entry.revoked_at.timestamp() < threshold
            ]
            for cid in expired:
                del self._entries[cid]
        if expired:
            logger.info("Cleaned up %d expired revoked credentials", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep thread if it is not already running."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="revocation-sweeper", daemon=True
        )
        self._sweeper.start()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._cleanup_interval_seconds):
            try:
                self.cleanup_expired()
            except Exception:
                logger.exception("Error during revocation cleanup")

    def shutdown(self) -> None:
        """Stop the sweep thread."""
        if self._sweeper is None:
            return
        self._stop.set()
        self._sweeper.join(timeout=5.0)
        self._sweeper = None
        logger.info("Revocation registry shutdown")

    def __len__(self) -> int:
        return len(self._entries)
