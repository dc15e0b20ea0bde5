"""
Outbound Queues

Per-connection async outgoing queue with a single writer task.

Design:
- Each attached connection gets a dedicated asyncio.Queue of serialized frames
- A single writer coroutine drains it, so sends to one socket never interleave
- Delivery is fire-and-forget: a full queue or an unknown connection drops
  the frame with a warning, nothing is retried
- Stopping a queue discards whatever was still pending
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

SendFn = Callable[[str], Awaitable[None]]


class OutboundQueue:
    """Outbound frames of a single connection."""

    def __init__(self, conn_id: str, send_fn: SendFn, max_size: int = 200):
        """
        Args:
            conn_id: Connection identifier
            send_fn: Async function writing one text frame to the socket
            max_size: Frames buffered before new ones are dropped
        """
        self.conn_id = conn_id
        self._send_fn = send_fn
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_size)
        self._writer_task: asyncio.Task | None = None
        self._closed = False

    def start(self) -> None:
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(
                self._writer_loop(),
                name=f"outbound_writer_{self.conn_id}"
            )

    async def stop(self) -> None:
        self._closed = True
        if self._writer_task:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
            self._writer_task = None
        self._discard_pending()

    def offer(self, frame: str) -> bool:
        """Enqueue a frame without blocking. Returns False if it was dropped."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            logger.warning(
                f"Outbound queue full for {self.conn_id} "
                f"({self._queue.maxsize} frames), dropping frame"
            )
            return False

    async def drain(self) -> None:
        """Wait until every queued frame has been written (or dropped)."""
        await self._queue.join()

    @property
    def qsize(self) -> int:
        return self._queue.qsize()

    async def _writer_loop(self) -> None:
        while not self._closed:
            try:
                frame = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                await self._send_fn(frame)
            except asyncio.CancelledError:
                self._queue.task_done()
                break
            except Exception as e:
                logger.warning(f"Send failed for {self.conn_id}: {e}")
                self._closed = True
                self._queue.task_done()
                self._discard_pending()
                break
            self._queue.task_done()

    def _discard_pending(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()


class OutboundQueueManager:
    """
    Manages per-connection outbound queues.

    Queues are registered when a session attaches and removed on disconnect.
    """

    def __init__(self, max_queue_size: int = 200):
        self._max_queue_size = max_queue_size
        self._queues: dict[str, OutboundQueue] = {}

    def register(self, conn_id: str, send_fn: SendFn) -> OutboundQueue:
        """Create and start the queue of a connection (idempotent)."""
        queue = self._queues.get(conn_id)
        if queue is None:
            queue = OutboundQueue(conn_id, send_fn, self._max_queue_size)
            queue.start()
            self._queues[conn_id] = queue
        return queue

    async def remove(self, conn_id: str) -> None:
        queue = self._queues.pop(conn_id, None)
        if queue:
            await queue.stop()

    def deliver(self, conn_id: str, frame: str) -> bool:
        """
        Hand a serialized frame to a connection's queue.

        Returns:
            True if queued, False if the connection is unknown or its queue is full
        """
        queue = self._queues.get(conn_id)
        if queue is None:
            logger.warning(f"No outbound queue for {conn_id}, dropping frame")
            return False
        return queue.offer(frame)

    def get(self, conn_id: str) -> OutboundQueue | None:
        return self._queues.get(conn_id)

    async def shutdown(self) -> None:
        """Stop all queues."""
        queues = list(self._queues.values())
        self._queues.clear()
        for queue in queues:
            await queue.stop()

    def connection_count(self) -> int:
        return len(self._queues)
