from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from .models.events import AdminEvent

logger = logging.getLogger(__name__)

DEFAULT_EVENT_CAPACITY = 1024


class EventPublisher:
    """Outbound event channel backed by a bounded :class:`asyncio.Queue`.

    ``publish`` never blocks the producer: when the queue is full the oldest
    pending event is discarded.
    """

    def __init__(self, capacity: int = DEFAULT_EVENT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._queue: asyncio.Queue[AdminEvent] = asyncio.Queue(maxsize=capacity)
        self.dropped = 0

    def publish(self, event: AdminEvent) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                break
            except asyncio.QueueFull:
                discarded = self._queue.get_nowait()
                self.dropped += 1
                logger.warning("Event queue full; dropped %s event", discarded.type)
        logger.debug("Published %s event", event.type)

    def drain(self) -> list[AdminEvent]:
        """Return and remove every pending event."""

        events: list[AdminEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    async def stream(self) -> AsyncIterator[AdminEvent]:
        while True:
            yield await self._queue.get()

    def __len__(self) -> int:
        return self._queue.qsize()


__all__ = ["DEFAULT_EVENT_CAPACITY", "EventPublisher"]
