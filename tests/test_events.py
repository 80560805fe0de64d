"""Event dataclasses, the per-category hub, and the async bus."""
from __future__ import annotations

import asyncio
import os
import subprocess
import sys
from pathlib import Path

import pytest

from agentpty.engine import models
from agentpty.events import (
    DataReceived,
    EventBus,
    EventCategory,
    EventHub,
    ProcessExited,
    PromptDetected,
    PromptInfo,
    PromptKind,
    SessionDetected,
    StateChanged,
    TerminalEvent,
    dict_to_event,
    event_to_dict,
)


# ── Serialization ──


def test_event_to_dict_uses_event_key():
    d = event_to_dict(StateChanged(task_id="t1", generation=3, new_state="idle", old_state="running"))
    assert d == {
        "event": "state_change",
        "task_id": "t1",
        "generation": 3,
        "new_state": "idle",
        "old_state": "running",
    }


def test_dict_to_event_restores_type():
    event = dict_to_event({"event": "session_detected", "task_id": "t1", "conversation_id": "c"})
    assert isinstance(event, SessionDetected)
    assert event.conversation_id == "c"
    assert event.category is EventCategory.SESSION_DETECTED


def test_data_chunk_survives_transport():
    original = DataReceived(task_id="t1", generation=1, chunk="héllo".encode(), seq=4)
    restored = dict_to_event(event_to_dict(original))
    assert restored == original


def test_unknown_fields_and_types():
    event = dict_to_event({"event": "exit", "task_id": "t", "exit_code": 1, "extra": True})
    assert event == ProcessExited(task_id="t", exit_code=1)
    assert type(dict_to_event({"event": "mystery"})) is TerminalEvent


# ── Hub ──


def test_per_task_and_wildcard_delivery():
    hub = EventHub()
    t1, t2, everything = [], [], []
    hub.subscribe(EventCategory.DATA, "t1", t1.append)
    hub.subscribe(EventCategory.DATA, "t2", t2.append)
    hub.subscribe_all(EventCategory.DATA, everything.append)

    hub.publish(DataReceived(task_id="t1", chunk=b"a"))
    hub.publish(DataReceived(task_id="t2", chunk=b"b"))
    hub.publish(ProcessExited(task_id="t1"))

    assert [e.chunk for e in t1] == [b"a"]
    assert [e.chunk for e in t2] == [b"b"]
    assert [e.chunk for e in everything] == [b"a", b"b"]


def test_multiple_subscribers_and_unsubscribe():
    hub = EventHub()
    a, b = [], []
    sub_a = hub.subscribe("exit", "t1", a.append)
    hub.subscribe("exit", "t1", b.append)
    assert hub.subscriber_count("exit", "t1") == 2

    sub_a.unsubscribe()
    sub_a.unsubscribe()
    hub.publish(ProcessExited(task_id="t1", exit_code=0))

    assert a == []
    assert len(b) == 1
    assert hub.subscriber_count(EventCategory.EXIT, "t1") == 1


def test_unsubscribe_during_delivery_is_safe():
    hub = EventHub()
    seen = []
    subs = []

    def first(event):
        seen.append("first")
        for sub in subs:
            sub.unsubscribe()

    def second(event):
        seen.append("second")

    subs.append(hub.subscribe(EventCategory.PROMPT, "t1", first))
    subs.append(hub.subscribe(EventCategory.PROMPT, "t1", second))

    hub.publish(PromptDetected(task_id="t1", kind="question", text="?"))
    hub.publish(PromptDetected(task_id="t1", kind="question", text="?"))

    # the snapshot for the first publish still includes `second`
    assert seen == ["first", "second"]


def test_raising_subscriber_is_isolated(caplog):
    hub = EventHub()
    received = []

    def broken(event):
        raise ValueError("boom")

    hub.subscribe(EventCategory.IDLE, "t1", broken)
    hub.subscribe(EventCategory.IDLE, "t1", received.append)

    delivered = hub.publish(dict_to_event({"event": "idle", "task_id": "t1"}))

    assert delivered == 1
    assert len(received) == 1
    assert "Subscriber failed" in caplog.text


def test_subscription_context_manager():
    hub = EventHub()
    got = []
    with hub.subscribe(EventCategory.DATA, "t1", got.append):
        hub.publish(DataReceived(task_id="t1"))
    hub.publish(DataReceived(task_id="t1"))
    assert len(got) == 1


def test_prompt_property():
    event = PromptDetected(task_id="t", kind="permission", text="Allow?", position=3)
    assert event.prompt == PromptInfo(kind=PromptKind.PERMISSION, text="Allow?", position=3)


def test_prompt_types_are_shared_with_engine_models():
    assert models.PromptInfo is PromptInfo
    assert models.PromptKind is PromptKind


def test_events_import_without_the_engine():
    root = Path(__file__).resolve().parents[1]
    env = {**os.environ, "PYTHONPATH": str(root)}
    code = (
        "import sys, agentpty.events; "
        "sys.exit(any(m.startswith('agentpty.engine') for m in sys.modules))"
    )
    assert subprocess.run([sys.executable, "-c", code], env=env).returncode == 0


# ── EventBus ──


@pytest.mark.asyncio
async def test_event_bus_consumes_hub_events():
    hub = EventHub()
    bus = EventBus()
    bus.attach(hub, task_id="t1")

    hub.publish(DataReceived(task_id="t1", chunk=b"x"))
    hub.publish(DataReceived(task_id="other", chunk=b"y"))
    hub.publish(ProcessExited(task_id="t1", exit_code=0))

    received = []

    async def drain():
        async for event in bus.consume():
            received.append(event)
            if isinstance(event, ProcessExited):
                bus.close()

    await asyncio.wait_for(drain(), timeout=5)

    assert [e.event_type for e in received] == ["data", "exit"]
    assert hub.subscriber_count(EventCategory.DATA, "t1") == 0


@pytest.mark.asyncio
async def test_event_bus_drops_when_full():
    hub = EventHub()
    bus = EventBus(maxsize=2)
    bus.attach(hub)

    for i in range(5):
        hub.publish(DataReceived(task_id="t1", seq=i))

    assert bus.pending == 2


@pytest.mark.asyncio
async def test_event_bus_reset_and_emit():
    bus = EventBus()
    await bus.emit(ProcessExited(task_id="t1"))
    assert bus.pending == 1

    bus.close()
    await bus.emit(ProcessExited(task_id="t1"))
    assert bus.pending == 1

    bus.reset()
    assert bus.pending == 0
    await bus.emit(ProcessExited(task_id="t1"))
    assert bus.pending == 1
