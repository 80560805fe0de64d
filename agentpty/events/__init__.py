"""Events package - typed events and fan-out toward UI consumers.

Contains the event dataclasses, the per-category subscription hub, and
the async queue bridge used by transports that consume events in a
coroutine.
"""
from __future__ import annotations

__all__ = [
    "DataReceived",
    "EventBus",
    "EventCategory",
    "EventHub",
    "ProcessExited",
    "PromptDetected",
    "PromptInfo",
    "PromptKind",
    "SessionDetected",
    "SessionIdle",
    "SessionNotFound",
    "StateChanged",
    "Subscription",
    "TerminalEvent",
    "dict_to_event",
    "event_to_dict",
]

from agentpty.events.events import (
    DataReceived,
    EventCategory,
    ProcessExited,
    PromptDetected,
    SessionDetected,
    SessionIdle,
    SessionNotFound,
    StateChanged,
    TerminalEvent,
    dict_to_event,
    event_to_dict,
)
from agentpty.events.event_bus import EventBus
from agentpty.events.hub import EventHub, Subscription
from agentpty.events.prompts import PromptInfo, PromptKind
