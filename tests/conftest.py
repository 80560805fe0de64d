from __future__ import annotations

import asyncio
import itertools

import pytest

from agentpty.engine.adapters.registry import build_adapter_registry
from agentpty.engine.config import ManagerConfig
from agentpty.engine.errors import SpawnError
from agentpty.engine.session_manager import SessionManager
from agentpty.events import EventCategory, EventHub

_pids = itertools.count(4000)


class FakeProcess:
    """In-memory stand-in for PtyProcess."""

    def __init__(self, task_id, config, cwd, env, cols, rows) -> None:
        self.task_id = task_id
        self.config = config
        self.cwd = cwd
        self.env = env
        self.size = (cols, rows)
        self.pid = next(_pids)
        self.on_data = None
        self.on_exit = None
        self.writes: list[bytes] = []
        self.resizes: list[tuple[int, int]] = []
        self.killed = False

    def start(self, on_data, on_exit) -> None:
        self.on_data = on_data
        self.on_exit = on_exit

    def emit(self, data: bytes | str) -> None:
        """Simulate the process printing *data* (even after being killed)."""
        if isinstance(data, str):
            data = data.encode()
        if self.on_data is not None:
            self.on_data(data)

    def exit(self, code: int) -> None:
        if self.on_exit is not None:
            self.on_exit(code)

    def write(self, data: bytes) -> None:
        self.writes.append(data)

    def resize(self, cols: int, rows: int) -> None:
        self.resizes.append((cols, rows))

    def kill(self) -> None:
        self.killed = True


class FakeSpawner:
    def __init__(self) -> None:
        self.processes: list[FakeProcess] = []
        self.fail_with: str | None = None
        self.gate: asyncio.Event | None = None

    async def __call__(self, task_id, config, *, cwd, env, cols=80, rows=24):
        if self.fail_with is not None:
            raise SpawnError(task_id, self.fail_with)
        proc = FakeProcess(task_id, config, cwd, env, cols, rows)
        self.processes.append(proc)
        if self.gate is not None:
            await self.gate.wait()
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Recorder:
    """Collects every event published on a hub, in delivery order."""

    def __init__(self, hub: EventHub) -> None:
        self.events = []
        self.subs = [hub.subscribe_all(c, self.events.append) for c in EventCategory]

    def of(self, category: EventCategory) -> list:
        return [e for e in self.events if e.event_type == category.value]

    @property
    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def hub() -> EventHub:
    return EventHub()


@pytest.fixture
def recorder(hub) -> Recorder:
    return Recorder(hub)


@pytest.fixture
def config() -> ManagerConfig:
    return ManagerConfig(
        max_buffer_bytes=1024,
        idle_threshold_seconds=60.0,
        idle_check_interval_seconds=10.0,
        stale_session_window_seconds=5.0,
        session_id_watch_seconds=5.0,
        post_spawn_delay_seconds=0.0,
    )


@pytest.fixture
def manager(config, hub, spawner, clock) -> SessionManager:
    return SessionManager(
        config=config,
        hub=hub,
        adapters=build_adapter_registry(),
        spawner=spawner,
        clock=clock,
    )
