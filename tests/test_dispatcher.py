from __future__ import annotations

import threading
from typing import List

import pytest

from plexcord.config import WebhookEndpoint
from plexcord.notifications import DeliveryResult, DeliveryTransport, FanOutDispatcher, NotificationFragment

ENDPOINTS = [
    WebhookEndpoint(name=f"e{index}", url=f"https://discord.test/api/webhooks/{index}/token")
    for index in range(1, 4)
]


class BarrierTransport(DeliveryTransport):
    """Every send waits for all sends to arrive, so it only succeeds when they run concurrently."""

    def __init__(self, parties: int) -> None:
        self.barrier = threading.Barrier(parties, timeout=5)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def send(self, endpoint, notification) -> DeliveryResult:
        self.barrier.wait()
        with self._lock:
            self.calls.append(endpoint.name)
        return DeliveryResult(endpoint=endpoint, ok=True, status=204)


class MixedTransport(DeliveryTransport):
    def __init__(self) -> None:
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def send(self, endpoint, notification) -> DeliveryResult:
        with self._lock:
            self.calls.append(endpoint.name)
        if endpoint.name == "e1":
            return DeliveryResult(endpoint=endpoint, ok=False, status=404, reason="Unknown Webhook")
        if endpoint.name == "e2":
            raise ConnectionError("network unreachable")
        return DeliveryResult(endpoint=endpoint, ok=True, status=204)


def test_dispatch_sends_to_every_endpoint_concurrently() -> None:
    transport = BarrierTransport(len(ENDPOINTS))
    dispatcher = FanOutDispatcher(transport, ENDPOINTS, max_workers=len(ENDPOINTS))
    try:
        outcome = dispatcher.dispatch(NotificationFragment(title="hello"))
    finally:
        dispatcher.shutdown()

    assert sorted(transport.calls) == ["e1", "e2", "e3"]
    assert [endpoint.name for endpoint, _ in outcome] == ["e1", "e2", "e3"]
    assert all(result.ok for _, result in outcome)


def test_pool_grows_to_cover_every_endpoint() -> None:
    transport = BarrierTransport(len(ENDPOINTS))
    dispatcher = FanOutDispatcher(transport, ENDPOINTS, max_workers=1)
    try:
        assert dispatcher.max_workers == len(ENDPOINTS)
        outcome = dispatcher.dispatch(NotificationFragment(title="hello"))
    finally:
        dispatcher.shutdown()

    assert sorted(transport.calls) == ["e1", "e2", "e3"]
    assert all(result.ok for _, result in outcome)


def test_failures_do_not_stop_sibling_deliveries(caplog) -> None:
    transport = MixedTransport()
    dispatcher = FanOutDispatcher(transport, ENDPOINTS, max_workers=3)
    try:
        with caplog.at_level("WARNING"):
            outcome = dispatcher.dispatch(NotificationFragment(title="Show – Season 1"))
    finally:
        dispatcher.shutdown()

    assert sorted(transport.calls) == ["e1", "e2", "e3"]
    results = {endpoint.name: result for endpoint, result in outcome}
    assert results["e1"].ok is False
    assert results["e1"].reason == "Unknown Webhook"
    assert results["e2"].ok is False
    assert "ConnectionError" in results["e2"].reason
    assert results["e3"].ok is True
    assert "Delivery to e1 failed" in caplog.text
    assert "delivered to 1/3 endpoints" in caplog.text


def test_submit_returns_before_delivery_completes() -> None:
    release = threading.Event()

    class SlowTransport(DeliveryTransport):
        def send(self, endpoint, notification) -> DeliveryResult:
            release.wait(timeout=5)
            return DeliveryResult(endpoint=endpoint, ok=True, status=204)

    dispatcher = FanOutDispatcher(SlowTransport(), ENDPOINTS[:1], max_workers=1)
    try:
        future = dispatcher.submit(NotificationFragment(title="slow"))
        assert not future.done()
        assert dispatcher.inflight == 1
        assert dispatcher.wait(timeout=0.01) is False

        release.set()
        assert dispatcher.wait(timeout=5) is True
        assert future.result(timeout=5)[0][1].ok is True
        assert dispatcher.inflight == 0
    finally:
        release.set()
        dispatcher.shutdown()


def test_dispatcher_requires_endpoints() -> None:
    with pytest.raises(ValueError):
        FanOutDispatcher(MixedTransport(), [])
