"""Event types emitted by the session manager.

Every event carries the task id and the generation of the session that
produced it, so a consumer can tell a restarted session's events apart
from its predecessor's.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .prompts import PromptInfo, PromptKind


class EventCategory(str, Enum):
    """One publish/subscribe channel per category."""
    DATA = "data"
    EXIT = "exit"
    SESSION_NOT_FOUND = "session_not_found"
    IDLE = "idle"
    STATE_CHANGE = "state_change"
    PROMPT = "prompt"
    SESSION_DETECTED = "session_detected"


@dataclass
class TerminalEvent:
    """Base event from a task terminal."""
    event_type: str = ""
    task_id: str = ""
    generation: int = 0

    @property
    def category(self) -> EventCategory:
        return EventCategory(self.event_type)


@dataclass
class DataReceived(TerminalEvent):
    event_type: str = EventCategory.DATA.value
    chunk: bytes = b""
    seq: int = -1


@dataclass
class ProcessExited(TerminalEvent):
    event_type: str = EventCategory.EXIT.value
    exit_code: int = 0


@dataclass
class SessionNotFound(TerminalEvent):
    """The conversation id passed for resume is unknown to the agent."""
    event_type: str = EventCategory.SESSION_NOT_FOUND.value


@dataclass
class SessionIdle(TerminalEvent):
    """The session was hibernated; presentation resources may be released."""
    event_type: str = EventCategory.IDLE.value


@dataclass
class StateChanged(TerminalEvent):
    event_type: str = EventCategory.STATE_CHANGE.value
    new_state: str = ""
    old_state: str = ""


@dataclass
class PromptDetected(TerminalEvent):
    event_type: str = EventCategory.PROMPT.value
    kind: str = ""
    text: str = ""
    position: int = 0

    @property
    def prompt(self) -> PromptInfo:
        return PromptInfo(kind=PromptKind(self.kind), text=self.text, position=self.position)


@dataclass
class SessionDetected(TerminalEvent):
    """A conversation id was discovered in the session's output."""
    event_type: str = EventCategory.SESSION_DETECTED.value
    conversation_id: str = ""


# Map of event type strings to dataclass constructors
_EVENT_MAP: dict[str, type[TerminalEvent]] = {
    EventCategory.DATA.value: DataReceived,
    EventCategory.EXIT.value: ProcessExited,
    EventCategory.SESSION_NOT_FOUND.value: SessionNotFound,
    EventCategory.IDLE.value: SessionIdle,
    EventCategory.STATE_CHANGE.value: StateChanged,
    EventCategory.PROMPT.value: PromptDetected,
    EventCategory.SESSION_DETECTED.value: SessionDetected,
}


def event_to_dict(event: TerminalEvent) -> dict[str, Any]:
    """Convert a typed event dataclass to a plain dict for JSON serialization."""
    d: dict[str, Any] = {}
    for f in event.__dataclass_fields__:
        val = getattr(event, f)
        if val is None:
            continue
        if isinstance(val, bytes):
            val = val.decode("utf-8", errors="replace")
        d[f] = val
    # Transport messages use "event" rather than "event_type"
    if "event_type" in d:
        d["event"] = d.pop("event_type")
    return d


def dict_to_event(data: dict[str, Any]) -> TerminalEvent:
    """Convert a transport dict back to a typed event dataclass."""
    event_type = data.get("event", data.get("event_type", ""))
    cls = _EVENT_MAP.get(event_type, TerminalEvent)
    valid_fields = set(cls.__dataclass_fields__)
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    filtered["event_type"] = event_type
    if isinstance(filtered.get("chunk"), str):
        filtered["chunk"] = filtered["chunk"].encode("utf-8")
    return cls(**filtered)
