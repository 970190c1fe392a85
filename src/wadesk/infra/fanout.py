"""Process-wide event fan-out to realtime observers.

``publish`` never awaits: each observer owns a bounded queue drained by its
own task, so a slow websocket cannot hold up the session state machine or a
request handler. Delivery is at-most-once; a full queue drops the event.

Only two things are remembered between publishes: the latest ``status``
snapshot and the pending ``qr`` payload. Both are replayed to an observer the
moment it registers.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from typing import Any

from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import safe_log_context

logger = get_logger(__name__)

Observer = Callable[[str, Any], Awaitable[None]]

STATUS_TOPIC = "status"
QR_TOPIC = "qr"
MESSAGE_TOPIC = "message"
LOADING_TOPIC = "loading"

DEFAULT_QUEUE_SIZE = 1000


class Subscription:
    """A registered observer and the task that feeds it."""

    def __init__(self, sub_id: int, observer: Observer, hub: "EventHub", queue_size: int) -> None:
        self.id = sub_id
        self._observer = observer
        self._hub = hub
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task[None] | None = None
        self.dropped = 0

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._pump())

    def offer(self, topic: str, payload: Any) -> bool:
        try:
            self._queue.put_nowait((topic, payload))
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def _pump(self) -> None:
        while True:
            topic, payload = await self._queue.get()
            try:
                await self._observer(topic, payload)
            except Exception as exc:
                logger.warning(
                    "observer delivery failed, unregistering",
                    extra={
                        "extra_fields": safe_log_context(
                            subscription=self.id, topic=topic, error_type=type(exc).__name__
                        )
                    },
                )
                self._hub.unregister(self)
                return

    def close(self) -> None:
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


class EventHub:
    """Registry of observers with a ``publish(topic, payload)`` operation."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._last_status: Any = None
        self._pending_qr: str | None = None

    def __len__(self) -> int:
        return len(self._subscriptions)

    @property
    def last_status(self) -> Any:
        return self._last_status

    @property
    def pending_qr(self) -> str | None:
        return self._pending_qr

    def register(self, observer: Observer) -> Subscription:
        """Add an observer and queue the cached status/QR for it.

        Must be called from within the running event loop.
        """
        sub = Subscription(next(self._ids), observer, self, self._queue_size)
        if self._last_status is not None:
            sub.offer(STATUS_TOPIC, self._last_status)
        if self._pending_qr:
            sub.offer(QR_TOPIC, self._pending_qr)
        self._subscriptions[sub.id] = sub
        sub.start()
        logger.info(
            "observer registered",
            extra={"extra_fields": safe_log_context(subscription=sub.id, observers=len(self._subscriptions))},
        )
        return sub

    def unregister(self, sub: Subscription) -> None:
        if self._subscriptions.pop(sub.id, None) is not None:
            logger.info(
                "observer unregistered",
                extra={"extra_fields": safe_log_context(subscription=sub.id, observers=len(self._subscriptions))},
            )
        sub.close()

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver ``payload`` to every current observer.

        Returns:
            Number of observers the event was queued for.
        """
        if topic == STATUS_TOPIC:
            self._last_status = payload
        elif topic == QR_TOPIC:
            self._pending_qr = payload or None

        delivered = 0
        for sub in list(self._subscriptions.values()):
            if sub.offer(topic, payload):
                delivered += 1
            else:
                logger.warning(
                    "observer queue full, event dropped",
                    extra={"extra_fields": safe_log_context(subscription=sub.id, topic=topic)},
                )
        return delivered

    def close(self) -> None:
        for sub in list(self._subscriptions.values()):
            self.unregister(sub)
