from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from queue import Empty, Full, Queue
from typing import Callable, List, Optional

from ..config import RelaySettings
from .builder import build_notification
from .dispatcher import FanOutDispatcher
from .table import CoalescingTable, CoalescingTableFull
from .types import Event, PendingGroup

LOGGER = logging.getLogger(__name__)

_CLOSE = object()


class IngestionQueueFull(RuntimeError):
    """Raised when the bounded ingestion queue cannot accept another event."""


class IngestionClosed(RuntimeError):
    """Raised when submitting after the scheduler has been closed."""


class CoalescingScheduler:
    """Single control loop that coalesces events per key and hands flushed groups to the dispatcher.

    Producers only call ``submit``; the loop thread is the sole owner of the
    coalescing table. Each iteration waits for either the next event or the
    earliest flush deadline, whichever comes first. Delivery runs on the
    dispatcher's pool so slow endpoints never stall ingestion.

    Closing the scheduler lets the loop drain queued events, flush every pending
    group, and wait for in-flight deliveries before ``run`` returns.
    """

    def __init__(
        self,
        settings: RelaySettings,
        dispatcher: FanOutDispatcher,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._clock = clock
        self._queue: Queue = Queue(maxsize=settings.queue_capacity)
        self._table = CoalescingTable(
            settings.debounce_seconds,
            max_groups=settings.max_pending_groups,
            overflow_policy=settings.overflow_policy,
            max_age=settings.max_age_seconds,
        )
        self._ready: List[PendingGroup] = []
        self._closed = False
        self._submit_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.flushed_groups = 0

    @property
    def table(self) -> CoalescingTable:
        return self._table

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def pending(self) -> int:
        """Groups waiting to flush, including immediate ones not yet handed off."""
        return len(self._table) + len(self._ready)

    def submit(self, event: Event, *, block: bool = False, timeout: float | None = None) -> None:
        """Enqueue an event for the loop.

        Raises ``IngestionQueueFull`` when the queue stays full and
        ``IngestionClosed`` once ``close`` has been called.
        """
        with self._submit_lock:
            if self._closed:
                raise IngestionClosed("Scheduler is closed; no further events are accepted")
            try:
                self._queue.put(event, block=block, timeout=timeout)
            except Full as exc:
                raise IngestionQueueFull(
                    f"Ingestion queue is full ({self._settings.queue_capacity} events)"
                ) from exc

    def close(self) -> None:
        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_CLOSE)
        LOGGER.debug("Scheduler closed; draining %d queued event(s)", self._queue.qsize() - 1)

    def start(self) -> threading.Thread:
        if self._thread is not None:
            raise RuntimeError("Scheduler loop already started")
        self._thread = threading.Thread(target=self.run, name="plexcord-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def stop(self, timeout: float | None = None) -> bool:
        self.close()
        return self.join(timeout)

    def run(self) -> None:
        LOGGER.info(
            "Scheduler loop started | window=%ss endpoints=%d",
            self._settings.debounce_seconds,
            len(self._dispatcher.endpoints),
        )
        while True:
            timeout = self._next_timeout(self._clock())
            try:
                item = self._queue.get(timeout=timeout)
            except Empty:
                item = None

            if item is _CLOSE:
                break
            if item is not None:
                self.handle_event(item, self._clock())
            self.flush_due(self._clock())

        self._drain_queue()
        remaining = self.flush_all()
        if remaining:
            LOGGER.info("Flushed %d pending group(s) on shutdown", len(remaining))
        self._dispatcher.wait()
        LOGGER.info("Scheduler loop stopped after %d flush(es)", self.flushed_groups)

    def handle_event(self, event: Event, now: float) -> None:
        """Apply one event to the coalescing state."""
        if not event.key:
            self._ready.append(PendingGroup(key="", items=[event.payload], last_update=now, created_at=now))
            return
        try:
            evicted = self._table.upsert(event.key, event.payload, now)
        except CoalescingTableFull as exc:
            LOGGER.warning("Dropping event: %s", exc)
            return
        self._ready.extend(evicted)
        LOGGER.debug(
            "Coalesced event | key=%s items=%d",
            event.key,
            len(self._table.get(event.key).items),
        )

    def flush_due(self, now: float) -> List[Future]:
        """Flush immediate groups and every group whose window has elapsed."""
        groups = self._ready + self._table.take_ready(now)
        self._ready = []
        return [self._flush(group) for group in groups]

    def flush_all(self) -> List[Future]:
        groups = self._ready + self._table.drain()
        self._ready = []
        return [self._flush(group) for group in groups]

    def _flush(self, group: PendingGroup) -> Future:
        notification = build_notification(group)
        LOGGER.debug(
            "Flushing group | key=%s items=%d title=%s",
            group.key or "<none>",
            len(group.items),
            notification.title,
        )
        self.flushed_groups += 1
        return self._dispatcher.submit(notification)

    def _next_timeout(self, now: float) -> Optional[float]:
        if self._ready:
            return 0.0
        deadline = self._table.earliest_deadline()
        if deadline is None:
            return None
        return max(0.0, deadline - now)

    def _drain_queue(self) -> None:
        now = self._clock()
        drained = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except Empty:
                break
            if item is _CLOSE:
                continue
            self.handle_event(item, now)
            drained += 1
        if drained:
            LOGGER.debug("Drained %d queued event(s) after close", drained)
