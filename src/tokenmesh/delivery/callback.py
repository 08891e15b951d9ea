"""
Callback Delivery

Fire-and-forget push of freshly issued credentials to client callback URLs.
Work runs on a fixed-size thread pool with bounded retries and exponential
backoff; the caller of :meth:`CallbackDelivery.deliver_async` never waits on
the outcome and never sees a delivery exception.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Callable, Optional

import httpx

from tokenmesh.exceptions import DeliveryError
from tokenmesh.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0
DEFAULT_WORKERS = 5
DEFAULT_SHUTDOWN_GRACE_SECONDS = 5.0


class CallbackDelivery:
    """Asynchronous sender that POSTs JSON payloads to callback URLs.

    Args:
        max_attempts: Attempts per delivery before it is dropped.
        backoff_seconds: Base delay; retry ``n`` waits ``backoff * 2**(n-1)``.
        workers: Size of the worker pool.
        timeout_seconds: Per-request HTTP timeout.
        shutdown_grace_seconds: How long :meth:`shutdown` waits for
            outstanding deliveries before cancelling them.
        http_client: Optional preconfigured ``httpx.Client`` (e.g. with a
            mock transport). Created and owned here when omitted.
        sleep: Sleep function used between retries; runs on the worker.
        metrics: Optional metrics collector.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        workers: int = DEFAULT_WORKERS,
        timeout_seconds: float = 10.0,
        shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._shutdown_grace_seconds = shutdown_grace_seconds
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout_seconds)
        self._sleep = sleep
        self._metrics = metrics
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="callback-delivery"
        )
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self._closed = False
        logger.info(
            "Callback delivery initialized with max attempts: %d, backoff: %ss, workers: %d",
            max_attempts,
            backoff_seconds,
            workers,
        )

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based)."""
        return self._backoff_seconds * (2 ** (attempt - 1))

    def deliver_async(
        self, url: str, payload: dict[str, Any], correlation_id: str
    ) -> Optional[Future]:
        """Queue a delivery and return immediately.

        Returns:
            A Future resolving to True on success and False once all attempts
            are exhausted, or None if the sender is already shut down.
        """
        # closed-check and submit are atomic with respect to shutdown()
        with self._pending_lock:
            if self._closed:
                logger.warning(
                    "Callback delivery is shut down, dropping delivery to %s, trace_id=%s",
                    url,
                    correlation_id,
                )
                return None
            future = self._executor.submit(self._run, url, payload, correlation_id)
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _run(self, url: str, payload: dict[str, Any], correlation_id: str) -> bool:
        try:
            delivered = self.deliver(url, payload, correlation_id)
        except Exception:
            logger.exception(
                "Failed to deliver credential to callback URL: %s, trace_id=%s",
                url,
                correlation_id,
            )
            delivered = False
        if self._metrics is not None:
            self._metrics.record_delivery(delivered)
        return delivered

    def deliver(self, url: str, payload: dict[str, Any], correlation_id: str) -> bool:
        """Deliver ``payload`` synchronously with retries.

        Returns:
            True on the first 2xx response, False after ``max_attempts``
            failures.
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._attempt(url, payload, correlation_id)
                logger.info(
                    "Credential delivered to callback URL: %s on attempt: %d, trace_id=%s",
                    url,
                    attempt,
                    correlation_id,
                )
                return True
            except DeliveryError as e:
                last_error = e
                logger.warning(
                    "Delivery to %s failed on attempt %d/%d: %s, trace_id=%s",
                    url,
                    attempt,
                    self._max_attempts,
                    e,
                    correlation_id,
                )
            if attempt < self._max_attempts:
                delay = self.backoff_for(attempt)
                logger.debug("Waiting %ss before retry, trace_id=%s", delay, correlation_id)
                self._sleep(delay)

        logger.error(
            "Failed to deliver credential after %d attempts to URL: %s, trace_id=%s, last error: %s",
            self._max_attempts,
            url,
            correlation_id,
            last_error,
        )
        return False

    def _attempt(self, url: str, payload: dict[str, Any], correlation_id: str) -> None:
        try:
            response = self._client.post(
                url, json=payload, headers={"X-Trace-Id": correlation_id}
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Transport error: {e}") from e
        if not 200 <= response.status_code < 300:
            raise DeliveryError(f"Callback returned status {response.status_code}")

    def pending(self) -> int:
        """Number of deliveries queued or in flight."""
        with self._pending_lock:
            return len(self._pending)

    def shutdown(self) -> None:
        """Drain outstanding deliveries, cancelling what is left after the grace period."""
        with self._pending_lock:
            if self._closed:
                return
            self._closed = True
            self._executor.shutdown(wait=False)
            outstanding = list(self._pending)
        deadline = time.monotonic() + self._shutdown_grace_seconds
        for future in outstanding:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                future.result(timeout=remaining)
            except (FuturesTimeout, CancelledError):
                break
        cancelled = sum(1 for future in outstanding if future.cancel())
        if cancelled:
            logger.warning("Cancelled %d queued callback deliveries on shutdown", cancelled)
        if self._owns_client:
            self._client.close()
        logger.info("Callback delivery shutdown")
