"""
Tests for the readiness gate state machine and its wait bound.
"""

import asyncio

import pytest

from chat_relay.errors import NotReadyError
from chat_relay.readiness import ReadinessGate, ReadinessState
from chat_relay.storage import Collections, InMemoryDocumentStore, StorageError, StorageUnavailableError


class FlakyStore(InMemoryDocumentStore):
    """Store whose reachability can change without a connection event."""

    def __init__(self):
        super().__init__(connected=False)
        self.reachable = True
        self.hang = False
        self.products_countable = True

    @property
    def is_connected(self) -> bool:
        return self.reachable and super().is_connected

    async def connect(self) -> None:
        if not self.reachable:
            raise StorageUnavailableError("connection refused")
        await super().connect()

    async def ping(self) -> None:
        if self.hang:
            await asyncio.sleep(10)
        if not self.reachable:
            raise StorageUnavailableError("no reply")
        await super().ping()

    async def count_documents(self, collection, limit=1):
        if collection == Collections.PRODUCTS and not self.products_countable:
            raise StorageError("products not readable")
        return await super().count_documents(collection, limit)


@pytest.mark.asyncio
async def test_connect_reaches_ready_and_notifies():
    gate = ReadinessGate(FlakyStore())
    seen = []
    gate.subscribe(lambda previous, current: seen.append((previous, current)))

    await gate.connect()

    assert gate.state == ReadinessState.READY
    assert seen == [
        (ReadinessState.DISCONNECTED, ReadinessState.CONNECTING),
        (ReadinessState.CONNECTING, ReadinessState.READY),
    ]


@pytest.mark.asyncio
async def test_connect_failure_propagates():
    store = FlakyStore()
    store.reachable = False
    gate = ReadinessGate(store)

    with pytest.raises(StorageUnavailableError):
        await gate.connect()
    assert gate.state == ReadinessState.DISCONNECTED


@pytest.mark.asyncio
async def test_unreadable_products_only_warns():
    store = FlakyStore()
    store.products_countable = False
    gate = ReadinessGate(store)

    await gate.connect()

    assert gate.is_ready


@pytest.mark.asyncio
async def test_await_ready_returns_when_probe_succeeds():
    gate = ReadinessGate(FlakyStore())
    await gate.connect()
    await gate.await_ready(max_attempts=3, interval=0.01)


@pytest.mark.asyncio
async def test_await_ready_is_bounded_when_never_ready():
    gate = ReadinessGate(FlakyStore())
    loop = asyncio.get_running_loop()
    started = loop.time()

    with pytest.raises(NotReadyError, match="Database not connected"):
        await gate.await_ready(max_attempts=3, interval=0.05)

    assert loop.time() - started < 0.15 + 0.1


@pytest.mark.asyncio
async def test_await_ready_clips_hanging_probe():
    store = FlakyStore()
    gate = ReadinessGate(store, probe_timeout_seconds=5.0)
    await gate.connect()
    store.hang = True
    loop = asyncio.get_running_loop()
    started = loop.time()

    with pytest.raises(NotReadyError):
        await gate.await_ready(max_attempts=2, interval=0.05)

    assert loop.time() - started < 0.1 + 0.1


@pytest.mark.asyncio
async def test_backend_events_degrade_and_recover():
    store = FlakyStore()
    gate = ReadinessGate(store)
    await gate.connect()

    store.set_connected(False)
    assert gate.state == ReadinessState.DEGRADED
    with pytest.raises(NotReadyError):
        await gate.await_ready(max_attempts=2, interval=0.01)

    store.set_connected(True)
    assert gate.state == ReadinessState.READY


@pytest.mark.asyncio
async def test_health_check_follows_reachability():
    store = FlakyStore()
    gate = ReadinessGate(store)
    await gate.connect()

    store.reachable = False
    await gate.check_health()
    assert gate.state == ReadinessState.DEGRADED

    store.reachable = True
    await gate.check_health()
    assert gate.state == ReadinessState.READY


@pytest.mark.asyncio
async def test_poller_degrades_in_background():
    store = FlakyStore()
    gate = ReadinessGate(store, poll_interval_seconds=0.01)
    await gate.connect()
    await gate.start()
    try:
        store.reachable = False
        await asyncio.sleep(0.1)
        assert gate.state == ReadinessState.DEGRADED
    finally:
        await gate.stop()


@pytest.mark.asyncio
async def test_close_disconnects():
    gate = ReadinessGate(FlakyStore())
    await gate.connect()
    await gate.close()
    assert gate.state == ReadinessState.DISCONNECTED
