"""
Bounded awaits.

A timeout is a race between the operation and a timer. The losing operation
is not cancelled at the backend: it is shielded and abandoned locally, and
its late result (or exception) is consumed and ignored.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from chat_relay.errors import OperationTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_late_result(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Abandoned operation finished late with error: {exc}")


async def bounded(operation: Awaitable[T], timeout: float, description: str) -> T:
    """
    Await `operation` for at most `timeout` seconds.

    Raises:
        OperationTimeout: If the timer wins the race
    """
    task = asyncio.ensure_future(operation)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.TimeoutError:
        task.add_done_callback(_discard_late_result)
        raise OperationTimeout(
            f"{description} timeout after {timeout:g} seconds",
            details=f"{description} exceeded {timeout:g}s",
        )
