"""Observability bus — fan-out of SystemEvents to in-process observers.

The registry and the notifier emit an event for every status write, failed
refresh and notification attempt; the application lifespan adds startup and
shutdown. Observers (today only the log observer) receive every event.

While the bus is running, ``emit`` only enqueues and a single worker task
delivers in emission order, so a slow observer never delays a status write.
Outside a running bus (scripts, tests) events are delivered inline.

Usage:
    subscribe(log_on_event)
    await start_event_system()
    await emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP))
    ...
    await stop_event_system()
    unsubscribe(log_on_event)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from src.schemas.events import SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Awaitable[None]]

_observers: list[EventHandler] = []
_queue: asyncio.Queue[SystemEvent] | None = None
_worker: asyncio.Task[None] | None = None


def subscribe(handler: EventHandler) -> None:
    """Register an observer. Registering the same handler twice is a no-op."""
    if handler in _observers:
        return
    _observers.append(handler)
    logger.info("Event observer registered: %s", handler.__name__)


def unsubscribe(handler: EventHandler) -> None:
    if handler in _observers:
        _observers.remove(handler)
        logger.info("Event observer removed: %s", handler.__name__)


def is_running() -> bool:
    return _worker is not None and not _worker.done()


async def emit(event: SystemEvent) -> None:
    """Hand ``event`` to every observer. Never raises on observer failure."""
    if _queue is not None and is_running():
        await _queue.put(event)
        return
    await _deliver(event)


async def _deliver(event: SystemEvent) -> None:
    for handler in list(_observers):
        try:
            await handler(event)
        except Exception:
            logger.exception("Observer %s failed on %s", handler.__name__, event.event_type.value)


async def _drain(queue: asyncio.Queue[SystemEvent]) -> None:
    while True:
        event = await queue.get()
        try:
            await _deliver(event)
        finally:
            queue.task_done()


async def start_event_system() -> None:
    """Start the delivery worker on the running loop. Idempotent."""
    global _queue, _worker
    if is_running():
        return
    _queue = asyncio.Queue()
    _worker = asyncio.create_task(_drain(_queue))
    logger.info("Event bus started with %d observer(s)", len(_observers))


async def stop_event_system() -> None:
    """Deliver whatever is still queued, then stop the worker."""
    global _queue, _worker
    queue, worker = _queue, _worker
    _queue, _worker = None, None
    if worker is None:
        return

    if queue is not None and not worker.done():
        await queue.join()
    worker.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await worker
    logger.info("Event bus stopped")
