"""In-order fan-out of published values to subscribers.

No history is replayed: a subscriber only sees values published after it
subscribed. Delivery never blocks the publisher; stream subscribers get an
unbounded queue and keeping up is their responsibility.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Broadcaster(Generic[T]):
    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: list[Callable[[T], None]] = []
        self._queues: list[asyncio.Queue[object]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks) + len(self._queues)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        if self._closed:
            return
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception:
                _logger.warning("%s subscriber %r failed", self._name, callback, exc_info=True)
        for queue in self._queues:
            queue.put_nowait(value)

    def stream(self) -> AsyncIterator[T]:
        """Iterate over values published from now on, until :meth:`close`.

        The subscription starts when ``stream()`` is called, not on the
        first iteration.
        """
        queue: asyncio.Queue[object] = asyncio.Queue()
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[object]) -> AsyncIterator[T]:
        try:
            while True:
                value = await queue.get()
                if value is _CLOSED:
                    return
                yield value  # type: ignore[misc]
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def close(self) -> None:
        """End every stream. Further publishes are dropped."""
        if self._closed:
            return
        self._closed = True
        self._callbacks.clear()
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
