"""End-to-end checks against a real pseudo-terminal (POSIX only)."""
from __future__ import annotations

import asyncio
import errno
import os
import sys

import pytest

from agentpty.engine import pty_process
from agentpty.engine.adapters import ShellAdapter
from agentpty.engine.adapters.registry import AdapterRegistry
from agentpty.engine.config import ManagerConfig
from agentpty.engine.errors import SpawnError
from agentpty.engine.models import SpawnConfig, TerminalMode
from agentpty.engine.pty_process import normalize_exit_code
from agentpty.engine.session_manager import SessionManager
from agentpty.events import EventCategory, EventHub

pytestmark = pytest.mark.skipif(
    sys.platform == "win32" or not os.path.exists("/bin/sh"),
    reason="requires a POSIX pty and /bin/sh",
)


def _manager(adapter: ShellAdapter | None = None) -> SessionManager:
    registry = AdapterRegistry()
    registry.register(adapter or ShellAdapter(command="/bin/sh"))
    return SessionManager(config=ManagerConfig(), hub=EventHub(), adapters=registry)


def test_normalize_exit_code():
    assert normalize_exit_code(0) == 0
    assert normalize_exit_code(3) == 3
    assert normalize_exit_code(-9) == 137


@pytest.mark.asyncio
async def test_shell_round_trip(tmp_path):
    manager = _manager()
    loop = asyncio.get_running_loop()
    exited: asyncio.Future[int] = loop.create_future()
    output = bytearray()

    manager.subscribe(EventCategory.DATA, "t1", lambda e: output.extend(e.chunk))
    manager.subscribe(
        EventCategory.EXIT, "t1",
        lambda e: exited.done() or exited.set_result(e.exit_code),
    )

    result = await manager.create("t1", str(tmp_path), mode=TerminalMode.TERMINAL)
    assert result.success, result.error
    assert manager.get_info("t1").pid > 0

    manager.write("t1", "echo agentpty-$((40+2)); exit 3\n")
    code = await asyncio.wait_for(exited, timeout=10)

    assert code == 3
    assert b"agentpty-42" in bytes(output)
    assert not manager.exists("t1")


@pytest.mark.asyncio
async def test_kill_stops_events(tmp_path):
    manager = _manager(ShellAdapter(command="/bin/sh", flags=["-c", "while :; do echo tick; sleep 0.05; done"]))
    events = []
    for category in (EventCategory.DATA, EventCategory.EXIT):
        manager.subscribe(category, "t1", events.append)

    result = await manager.create("t1", str(tmp_path), mode=TerminalMode.TERMINAL)
    assert result.success, result.error
    await asyncio.sleep(0.3)

    assert manager.kill("t1") is True
    seen = len(events)
    await asyncio.sleep(0.5)

    assert len(events) == seen
    assert not manager.exists("t1")


@pytest.mark.asyncio
async def test_bad_working_directory(tmp_path):
    manager = _manager()

    result = await manager.create("t1", str(tmp_path / "missing"), mode=TerminalMode.TERMINAL)

    assert result.success is False
    assert "working directory" in result.error
    assert not manager.exists("t1")


@pytest.mark.asyncio
async def test_missing_binary(tmp_path):
    manager = _manager(ShellAdapter(command="/nonexistent/agent-binary"))

    result = await manager.create("t1", str(tmp_path), mode=TerminalMode.TERMINAL)

    assert result.success is False
    assert "agent-binary" in result.error
    assert not manager.exists("t1")


@pytest.mark.asyncio
async def test_pty_exhaustion_is_a_failed_create(tmp_path, monkeypatch):
    manager = _manager()
    first = await manager.create("t1", str(tmp_path), mode=TerminalMode.TERMINAL)
    assert first.success, first.error

    def no_pty():
        raise OSError(errno.EAGAIN, "out of pty devices")

    monkeypatch.setattr(pty_process.pty, "openpty", no_pty)

    with pytest.raises(SpawnError, match="cannot allocate a pty"):
        await pty_process.PtyProcess.spawn(
            "t2", SpawnConfig(command="/bin/sh"), cwd=str(tmp_path), env={},
        )

    result = await manager.create("t1", str(tmp_path), mode=TerminalMode.TERMINAL)

    assert result.success is False
    assert "out of pty devices" in result.error
    assert not manager.exists("t1")
