"""Per-category publish/subscribe hub for terminal events.

The hub knows nothing about the session registry. Subscribers register
per task id (or for every task) on one category channel. Adding or
removing a subscriber is O(1) and safe while an event is being
delivered: delivery iterates over a snapshot of the subscriber table.
A raising callback is logged and skipped; it never prevents delivery
to the remaining subscribers.
"""
from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable

from .events import EventCategory, TerminalEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[TerminalEvent], None]


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to detach."""

    def __init__(
        self,
        hub: EventHub,
        category: EventCategory,
        task_id: str | None,
        token: int,
    ) -> None:
        self._hub = hub
        self.category = category
        self.task_id = task_id
        self.token = token
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._hub.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.unsubscribe()


class _Channel:
    def __init__(self, category: EventCategory) -> None:
        self.category = category
        self._by_task: dict[str, dict[int, EventCallback]] = {}
        self._wildcard: dict[int, EventCallback] = {}
        self._lock = threading.Lock()

    def add(self, task_id: str | None, token: int, callback: EventCallback) -> None:
        with self._lock:
            if task_id is None:
                self._wildcard[token] = callback
            else:
                self._by_task.setdefault(task_id, {})[token] = callback

    def remove(self, task_id: str | None, token: int) -> None:
        with self._lock:
            if task_id is None:
                self._wildcard.pop(token, None)
                return
            subs = self._by_task.get(task_id)
            if subs is None:
                return
            subs.pop(token, None)
            if not subs:
                del self._by_task[task_id]

    def targets(self, task_id: str) -> list[EventCallback]:
        with self._lock:
            callbacks = list(self._by_task.get(task_id, {}).values())
            callbacks.extend(self._wildcard.values())
        return callbacks

    def count(self, task_id: str | None) -> int:
        with self._lock:
            if task_id is None:
                return len(self._wildcard)
            return len(self._by_task.get(task_id, {}))


class EventHub:
    """Typed fan-out with one channel per EventCategory."""

    def __init__(self) -> None:
        self._channels = {c: _Channel(c) for c in EventCategory}
        self._tokens = itertools.count(1)

    def subscribe(
        self,
        category: EventCategory | str,
        task_id: str,
        callback: EventCallback,
    ) -> Subscription:
        """Receive *category* events for one task."""
        return self._add(EventCategory(category), task_id, callback)

    def subscribe_all(
        self,
        category: EventCategory | str,
        callback: EventCallback,
    ) -> Subscription:
        """Receive *category* events for every task."""
        return self._add(EventCategory(category), None, callback)

    def _add(
        self,
        category: EventCategory,
        task_id: str | None,
        callback: EventCallback,
    ) -> Subscription:
        token = next(self._tokens)
        self._channels[category].add(task_id, token, callback)
        return Subscription(self, category, task_id, token)

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        self._channels[subscription.category].remove(
            subscription.task_id, subscription.token,
        )

    def subscriber_count(
        self, category: EventCategory | str, task_id: str | None = None,
    ) -> int:
        return self._channels[EventCategory(category)].count(task_id)

    def publish(self, event: TerminalEvent) -> int:
        """Deliver *event* synchronously. Returns the number of callbacks run."""
        delivered = 0
        for callback in self._channels[event.category].targets(event.task_id):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Subscriber failed on %s event for %s",
                    event.event_type, event.task_id,
                )
                continue
            delivered += 1
        return delivered
