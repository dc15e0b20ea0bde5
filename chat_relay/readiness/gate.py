"""
Readiness Gate

Tracks whether the shared document database is usable and mediates every
persistence-dependent operation.

State machine:
    DISCONNECTED -> CONNECTING -> READY <-> DEGRADED

Transitions come from three places:
1. connect() at startup
2. Connection events reported asynchronously by the storage adapter
3. A background poller that re-evaluates connectivity on a fixed interval

A READY flag can be stale relative to real connectivity, so await_ready()
always confirms it with a liveness probe before letting a caller through.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable

from chat_relay.errors import NotReadyError, OperationTimeout
from chat_relay.storage.ports import (
    Collections,
    ConnectionEvent,
    DocumentStore,
    StorageError,
)
from chat_relay.timing import bounded

logger = logging.getLogger(__name__)


class ReadinessState(str, Enum):
    """Persistence availability as seen by the relay."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    DEGRADED = "degraded"


# (previous, current)
StateListener = Callable[[ReadinessState, ReadinessState], None]


class ReadinessGate:
    """
    Owns the process-wide ReadinessState.

    Observers read `state` or subscribe() to changes; nothing else mutates it.
    """

    def __init__(
        self,
        store: DocumentStore,
        poll_interval_seconds: float = 30.0,
        probe_timeout_seconds: float = 5.0,
    ):
        """
        Initialize the gate.

        Args:
            store: Document store to probe
            poll_interval_seconds: Background health poll period
            probe_timeout_seconds: Bound for a single liveness probe
        """
        self._store = store
        self._poll_interval = poll_interval_seconds
        self._probe_timeout = probe_timeout_seconds
        self._state = ReadinessState.DISCONNECTED
        self._listeners: list[StateListener] = []
        self._poll_task: asyncio.Task | None = None
        self._remove_store_listener = store.add_connection_listener(self.notify_backend_event)

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ReadinessState.READY

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe to state changes. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def _transition(self, new_state: ReadinessState, reason: str) -> None:
        previous = self._state
        if previous == new_state:
            return
        self._state = new_state
        logger.info(f"Readiness {previous.value} -> {new_state.value} ({reason})")
        for listener in list(self._listeners):
            try:
                listener(previous, new_state)
            except Exception as e:
                logger.error(f"Readiness listener failed: {e}")

    def notify_backend_event(self, event: ConnectionEvent) -> None:
        """Apply a connectivity change reported by the storage adapter."""
        if event == ConnectionEvent.DISCONNECTED:
            if self._state == ReadinessState.READY:
                self._transition(ReadinessState.DEGRADED, "backend reported disconnection")
        elif event == ConnectionEvent.CONNECTED:
            if self._state == ReadinessState.DEGRADED:
                self._transition(ReadinessState.READY, "backend reconnected")

    async def connect(self) -> None:
        """
        Open the backend connection and verify it.

        Raises:
            StorageError: If the backend cannot be reached (fatal at startup)
        """
        self._transition(ReadinessState.CONNECTING, "startup")
        try:
            await self._store.connect()
            await self._store.ping()
        except StorageError:
            self._transition(ReadinessState.DISCONNECTED, "startup connection failed")
            raise

        try:
            await self._store.count_documents(Collections.PRODUCTS, limit=1)
            logger.info("Collections verified and ready")
        except StorageError as e:
            logger.warning(f"Collection verification warning: {e}")

        self._transition(ReadinessState.READY, "startup connection verified")

    async def _probe_backend(self) -> None:
        await self._store.ping()
        await self._store.count_documents(Collections.USERS, limit=1)

    async def probe(self, timeout: float | None = None) -> bool:
        """Run the liveness probe once. Returns False on any failure."""
        try:
            await bounded(
                self._probe_backend(),
                timeout if timeout is not None else self._probe_timeout,
                "Readiness probe",
            )
            return True
        except (OperationTimeout, StorageError) as e:
            logger.warning(f"Readiness probe failed: {e}")
            return False

    async def await_ready(self, max_attempts: int = 15, interval: float = 1.0) -> None:
        """
        Block until the backend is verified ready, or fail.

        The call never takes longer than max_attempts * interval: probes and
        pauses are clipped to the remaining budget.

        Raises:
            NotReadyError: If the attempts are exhausted
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max_attempts * interval

        for attempt in range(1, max_attempts + 1):
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            if self._state == ReadinessState.READY:
                if await self.probe(timeout=min(self._probe_timeout, remaining)):
                    logger.debug(f"Backend ready (attempt {attempt})")
                    return
                logger.warning(f"Backend probe missed (attempt {attempt}/{max_attempts})")
            else:
                logger.info(
                    f"Waiting for backend (state: {self._state.value}, "
                    f"attempt {attempt}/{max_attempts})"
                )

            if attempt == max_attempts:
                break
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval, remaining))

        logger.error("Max retries reached. Backend not ready.")
        raise NotReadyError()

    async def check_health(self) -> None:
        """One poll: degrade on reported disconnection, recover after a good probe."""
        if not self._store.is_connected:
            if self._state == ReadinessState.READY:
                logger.warning(
                    f"Connection health check: backend disconnected (state {self._state.value})"
                )
                self._transition(ReadinessState.DEGRADED, "health check found backend disconnected")
            return

        if self._state == ReadinessState.DEGRADED and await self.probe():
            self._transition(ReadinessState.READY, "health check probe succeeded")

    async def start(self) -> None:
        """Start the background health poller."""
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())
            logger.info("Readiness poller started")

    async def stop(self) -> None:
        """Stop the background health poller."""
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
            logger.info("Readiness poller stopped")

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._poll_interval)
                await self.check_health()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in readiness poll loop: {e}")

    async def close(self) -> None:
        """Stop polling, detach from the store and close it."""
        await self.stop()
        self._remove_store_listener()
        await self._store.close()
        self._transition(ReadinessState.DISCONNECTED, "shutdown")
