"""Concurrent fan-out of one notification to every configured endpoint.

Each endpoint gets its own send on a shared thread pool. A failing or raising
endpoint never cancels or delays its siblings; failures are logged and the
notification counts as delivered either way. There are no retries.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as futures_wait
from typing import List, Sequence, Tuple

from ..config import WebhookEndpoint
from .types import DeliveryResult, DeliveryTransport, Notification

LOGGER = logging.getLogger(__name__)

Outcome = List[Tuple[WebhookEndpoint, DeliveryResult]]


class FanOutDispatcher:
    def __init__(
        self,
        transport: DeliveryTransport,
        endpoints: Sequence[WebhookEndpoint],
        *,
        max_workers: int = 8,
    ) -> None:
        if not endpoints:
            raise ValueError("At least one endpoint is required")
        self._transport = transport
        self._endpoints = tuple(endpoints)
        # At least one worker per endpoint so a single group always fans out at once.
        self._max_workers = max(max_workers, len(self._endpoints))
        self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="plexcord-delivery")
        self._inflight: set[Future] = set()
        self._lock = threading.Lock()

    @property
    def endpoints(self) -> Tuple[WebhookEndpoint, ...]:
        return self._endpoints

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def inflight(self) -> int:
        with self._lock:
            return len(self._inflight)

    def submit(self, notification: Notification) -> Future:
        """Start delivery to every endpoint and return a future of the per-endpoint outcome.

        Returns immediately; the future resolves once every send has finished.
        """
        aggregate: Future = Future()
        aggregate.set_running_or_notify_cancel()
        results: list[DeliveryResult | None] = [None] * len(self._endpoints)
        remaining = [len(self._endpoints)]
        state_lock = threading.Lock()

        with self._lock:
            self._inflight.add(aggregate)

        def _finished(index: int, future: Future) -> None:
            endpoint = self._endpoints[index]
            exc = future.exception()
            if exc is not None:
                result = DeliveryResult(endpoint=endpoint, ok=False, reason=f"{type(exc).__name__}: {exc}")
            else:
                result = future.result()
            if not result.ok:
                LOGGER.warning(
                    "Delivery to %s failed | title=%s reason=%s",
                    endpoint.name,
                    notification.title,
                    result.reason,
                )
            with state_lock:
                results[index] = result
                remaining[0] -= 1
                done = remaining[0] == 0
            if done:
                self._complete(aggregate, notification, results)

        for index, endpoint in enumerate(self._endpoints):
            future = self._executor.submit(self._transport.send, endpoint, notification)
            future.add_done_callback(lambda fut, index=index: _finished(index, fut))

        return aggregate

    def dispatch(self, notification: Notification) -> Outcome:
        """Deliver to every endpoint concurrently and wait for all of them."""
        return self.submit(notification).result()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until in-flight deliveries finish. Returns False on timeout."""
        with self._lock:
            pending = list(self._inflight)
        if not pending:
            return True
        _, not_done = futures_wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _complete(self, aggregate: Future, notification: Notification, results: list) -> None:
        outcome: Outcome = [(endpoint, result) for endpoint, result in zip(self._endpoints, results)]
        failed = [endpoint.name for endpoint, result in outcome if not result.ok]
        if failed:
            LOGGER.warning(
                "Notification delivered to %d/%d endpoints | title=%s failed=%s",
                len(outcome) - len(failed),
                len(outcome),
                notification.title,
                ", ".join(failed),
            )
        else:
            LOGGER.info(
                "Notification delivered to %d endpoint(s) | title=%s",
                len(outcome),
                notification.title,
            )
        with self._lock:
            self._inflight.discard(aggregate)
        aggregate.set_result(outcome)
