"""Fan-out of task, pipeline and filesystem notifications to subscribers.

Delivery is best-effort and at most once: nothing is retried, and a
notification published while nobody listens is simply gone. Publishing is
safe from any thread; watchdog calls in from its observer thread while task
runners publish from the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Any, Callable

from .models import EventKind, Notification

logger = logging.getLogger(__name__)

NotificationCallback = Callable[[Notification], None]


class Subscription:
    """Handle returned by :meth:`EventBridge.subscribe`."""

    def __init__(self, bridge: "EventBridge", callback: NotificationCallback) -> None:
        self._bridge = bridge
        self._callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, notification: Notification) -> None:
        self._callback(notification)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._bridge._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class QueueSubscription(Subscription):
    """Subscription that buffers notifications in an asyncio queue.

    The queue belongs to the loop the subscription was created on; deliveries
    from other threads are handed over with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        bridge: "EventBridge",
        loop: asyncio.AbstractEventLoop,
        *,
        maxsize: int = 0,
    ) -> None:
        super().__init__(bridge, self._put)
        self._loop = loop
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, notification: Notification) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._put(notification)
            return
        try:
            self._loop.call_soon_threadsafe(self._put, notification)
        except RuntimeError:
            self.dropped += 1
            logger.debug("Dropped notification for closed loop", extra={"kind": notification.kind.value})

    def _put(self, notification: Notification) -> None:
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Dropped notification for full queue", extra={"kind": notification.kind.value})

    async def get(self) -> Notification:
        return await self._queue.get()

    def get_nowait(self) -> Notification:
        return self._queue.get_nowait()

    def empty(self) -> bool:
        return self._queue.empty()

    def __aiter__(self) -> "QueueSubscription":
        return self

    async def __anext__(self) -> Notification:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()


class EventBridge:
    """Thread-safe, in-process notification channel."""

    def __init__(self, *, history_size: int = 200) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Subscription] = []
        self._history: deque[Notification] = deque(maxlen=history_size)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: NotificationCallback) -> Subscription:
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def queue(
        self,
        *,
        maxsize: int = 0,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> QueueSubscription:
        """Subscribe with an asyncio queue bound to ``loop`` (default: the running loop)."""

        subscription = QueueSubscription(self, loop or asyncio.get_running_loop(), maxsize=maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                pass

    def publish(self, notification: Notification) -> None:
        with self._lock:
            self._history.append(notification)
            subscribers = list(self._subscribers)

        for subscription in subscribers:
            try:
                subscription.deliver(notification)
            except Exception:
                logger.exception(
                    "Notification subscriber failed",
                    extra={"kind": notification.kind.value, "task": notification.task},
                )

    def emit(
        self,
        kind: EventKind,
        *,
        task: str | None = None,
        note: str | None = None,
        **payload: Any,
    ) -> Notification:
        notification = Notification(kind=kind, task=task, note=note, payload=payload)
        self.publish(notification)
        return notification

    def recent(self, limit: int | None = None) -> list[Notification]:
        with self._lock:
            items = list(self._history)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items


__all__ = ["EventBridge", "NotificationCallback", "QueueSubscription", "Subscription"]
