"""Broadcast channels for the backend's inbound streams.

Each subscriber gets its own unbounded queue, so a slow consumer never drops
chunks and items are seen in publish order. Nothing is replayed: a subscriber
only sees items published after it subscribed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription(Generic[T]):
    """Async iterator over one subscriber's queue.

    ``close()`` may be called any number of times; iteration ends once the
    subscription or its channel is closed.
    """

    def __init__(self, name: str, on_close: Callable[["Subscription[T]"], None]) -> None:
        self.name = name
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, item: object) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        self._on_close(self)

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class Channel(Generic[T]):
    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Subscription[T]] = []

    def subscribe(self) -> Subscription[T]:
        subscription: Subscription[T] = Subscription(self.name, self._remove)
        self._subscribers.append(subscription)
        return subscription

    def publish(self, item: T) -> None:
        for subscription in list(self._subscribers):
            subscription._deliver(item)

    def close(self) -> None:
        for subscription in list(self._subscribers):
            subscription.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _remove(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
