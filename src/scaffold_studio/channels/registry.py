"""Process-wide routing of output events to per-project subscribers."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable, Protocol

from .models import OutputEvent, OutputKind

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Receives events for one project. ``deliver`` must not block."""

    def deliver(self, event: OutputEvent) -> None:
        ...

    def close(self) -> None:
        ...


class QueueSubscriber:
    """Buffers events on an asyncio queue owned by one event loop.

    Safe to feed from any thread; the consumer drains it with ``events()``.
    """

    _CLOSED = object()

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item: object) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def deliver(self, event: OutputEvent) -> None:
        if self._closed:
            return
        self._put(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(self._CLOSED)

    async def events(self) -> AsyncIterator[OutputEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class CallbackSubscriber:
    """Adapts a plain callable into a subscriber."""

    def __init__(self, callback: Callable[[OutputEvent], None]) -> None:
        self._callback = callback
        self.closed = False

    def deliver(self, event: OutputEvent) -> None:
        if not self.closed:
            self._callback(event)

    def close(self) -> None:
        self.closed = True


class LogChannelRegistry:
    """Maps project ids to at most one live subscriber.

    All operations are safe to call concurrently. Publishing with no subscriber is
    a silent no-op and never raises.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, Subscriber] = {}

    def register(self, project_id: str, subscriber: Subscriber) -> Subscriber | None:
        """Install ``subscriber``; the previous one is dropped without notice and returned."""

        with self._lock:
            previous = self._subscribers.get(project_id)
            self._subscribers[project_id] = subscriber
        if previous is not None and previous is not subscriber:
            logger.debug("Replaced log subscriber", extra={"project_id": project_id})
            return previous
        return None

    def unregister(self, project_id: str, subscriber: Subscriber | None = None) -> Subscriber | None:
        """Remove the subscriber for ``project_id``.

        When ``subscriber`` is given, only that exact subscriber is removed, so a
        stale connection cannot evict its replacement.
        """

        with self._lock:
            current = self._subscribers.get(project_id)
            if current is None:
                return None
            if subscriber is not None and current is not subscriber:
                return None
            del self._subscribers[project_id]
        return current

    def subscriber_for(self, project_id: str) -> Subscriber | None:
        with self._lock:
            return self._subscribers.get(project_id)

    def publish(self, project_id: str, event: OutputEvent) -> bool:
        """Deliver ``event`` to the current subscriber, returning whether anyone received it."""

        subscriber = self.subscriber_for(project_id)
        if subscriber is None:
            return False
        try:
            subscriber.deliver(event)
        except Exception:
            logger.warning(
                "Log subscriber raised while receiving an event",
                extra={"project_id": project_id, "event_type": event.type},
                exc_info=True,
            )
            return False
        return True

    def emit(self, project_id: str, kind: OutputKind, data: str) -> OutputEvent:
        """Build and publish an event in one step."""

        event = OutputEvent(type=kind, data=data)
        self.publish(project_id, event)
        return event

    def __contains__(self, project_id: object) -> bool:
        with self._lock:
            return project_id in self._subscribers

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


__all__ = ["CallbackSubscriber", "LogChannelRegistry", "QueueSubscriber", "Subscriber"]
