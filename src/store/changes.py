"""Appointment change feed over Redis pub/sub.

Every writer of the ``appointments`` table (this service and the booking
flow) publishes a small JSON message on the change channel after it commits:

    {"type": "insert" | "update" | "delete", "id": "<uuid>"}

Subscribers receive a bare ``on_change()`` call per message. The payload is
not passed on: every change is handled the same way, by a full resync.

Usage:
    feed = ChangeFeed(redis_client, "appointments:changes")
    subscription = await feed.subscribe(registry.on_external_change)
    ...
    await subscription.unsubscribe()
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from redis.exceptions import RedisError

from src.models.enums import ChangeType
from src.store.errors import StoreError

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[], Awaitable[None]]

# Pause before re-reading after a dropped connection; redis-py re-subscribes on reconnect.
_RECONNECT_DELAY_SECONDS = 1.0


class Subscription:
    """Handle for a live change-feed subscription.

    Owns one pub/sub connection and one listener task. ``unsubscribe()``
    releases both and is safe to call more than once.
    """

    def __init__(self, pubsub: Any, channel: str, on_change: ChangeHandler) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def start(self) -> None:
        """Start the listener task on the running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._listen())

    async def unsubscribe(self) -> None:
        """Stop listening and close the underlying connection."""
        if self._closed:
            return
        self._closed = True

        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

        try:
            await self._pubsub.unsubscribe(self._channel)
        except RedisError:
            logger.warning("Failed to unsubscribe from %s cleanly", self._channel, exc_info=True)
        finally:
            await self._pubsub.aclose()
        logger.info("Change feed subscription on %s closed", self._channel)

    async def _listen(self) -> None:
        while not self._closed:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await self._deliver(message)
                return
            except RedisError:
                logger.warning(
                    "Change feed connection lost on %s, retrying in %.1fs",
                    self._channel,
                    _RECONNECT_DELAY_SECONDS,
                    exc_info=True,
                )
                await asyncio.sleep(_RECONNECT_DELAY_SECONDS)

    async def _deliver(self, message: dict[str, Any]) -> None:
        logger.debug("Change received on %s: %s", self._channel, message.get("data"))
        try:
            await self._on_change()
        except Exception:
            logger.exception("Change handler failed for message on %s", self._channel)


class ChangeFeed:
    """Publishes and subscribes to appointment change events."""

    def __init__(self, redis: Any, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel

    async def publish(self, change: ChangeType, appointment_id: uuid.UUID) -> None:
        """Announce a committed change. Failures are logged, never raised.

        The write this announces has already committed, so a lost
        announcement only delays other dashboards until their next refresh.
        """
        payload = json.dumps({"type": change.value, "id": str(appointment_id)})
        try:
            await self._redis.publish(self._channel, payload)
        except RedisError:
            logger.exception("Failed to publish %s change for %s", change.value, appointment_id)

    async def subscribe(self, on_change: ChangeHandler) -> Subscription:
        """Open a pub/sub connection and start delivering change events.

        Raises:
            StoreError: the subscription could not be established.
        """
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(self._channel)
        except RedisError as exc:
            await pubsub.aclose()
            raise StoreError(f"Could not subscribe to {self._channel}") from exc

        subscription = Subscription(pubsub, self._channel, on_change)
        subscription.start()
        logger.info("Subscribed to appointment changes on %s", self._channel)
        return subscription
