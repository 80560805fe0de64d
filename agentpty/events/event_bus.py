"""Async queue bridging hub callbacks to `async for` consumers.

The session manager publishes synchronously from the event loop's I/O
callbacks. EventBus subscribes to every channel of an EventHub and
queues the events for a consumer coroutine (a transport, the CLI).
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable

from .events import EventCategory, TerminalEvent
from .hub import EventHub, Subscription

logger = logging.getLogger(__name__)


class EventBus:
    """Bounded asyncio.Queue fed by an EventHub."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[TerminalEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._subscriptions: list[Subscription] = []
        self._task_filter: str | None = None

    def attach(
        self,
        hub: EventHub,
        task_id: str | None = None,
        categories: Iterable[EventCategory] | None = None,
    ) -> None:
        """Start receiving events from *hub* (one task, or all tasks)."""
        self._task_filter = task_id
        for category in categories or EventCategory:
            if task_id is None:
                sub = hub.subscribe_all(category, self._callback)
            else:
                sub = hub.subscribe(category, task_id, self._callback)
            self._subscriptions.append(sub)

    def detach(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()

    def _callback(self, event: TerminalEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "EventBus queue full, dropping: %s for %s (queue size: %d)",
                event.event_type, event.task_id, self._queue.qsize(),
            )

    async def emit(self, event: TerminalEvent) -> None:
        """Manually emit an event (for consumer-generated events)."""
        if self._closed:
            return
        try:
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type, self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[TerminalEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            yield event

    def close(self) -> None:
        """Stop the consumer loop permanently and detach from the hub."""
        self._closed = True
        self.detach()

    def reset(self) -> None:
        """Drain leftover events and re-open the bus."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()
