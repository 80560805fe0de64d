"""Child process attached to a pseudo-terminal.

The master side of the pty is non-blocking and read through the asyncio
loop's reader callbacks, so no command ever waits on process I/O. POSIX
only.
"""
from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from collections.abc import Awaitable, Callable

from .errors import SpawnError
from .models import SpawnConfig

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes], None]
ExitCallback = Callable[[int], None]

# Signature of PtyProcess.spawn; the session manager accepts any callable
# with this shape so tests can substitute an in-memory process.
Spawner = Callable[..., Awaitable["PtyProcess"]]

READ_SIZE = 65536
# After the process exits, wait this long for the reader to hit EOF so
# the tail of the output is delivered before the exit notification.
EOF_DRAIN_TIMEOUT = 1.0


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    winsize = struct.pack("HHHH", max(1, rows), max(1, cols), 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _become_session_leader() -> None:
    # Runs in the child between fork and exec: new session, and the pty
    # on fd 0 becomes the controlling terminal so shells get job control.
    os.setsid()
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


def normalize_exit_code(returncode: int) -> int:
    """Map asyncio's negative signal return codes to shell-style codes."""
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


class PtyProcess:
    """One OS process on a pty. Owned exclusively by the session manager."""

    def __init__(
        self,
        task_id: str,
        proc: asyncio.subprocess.Process,
        master_fd: int,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._task_id = task_id
        self._proc = proc
        self._master_fd = master_fd
        self._loop = loop
        self._on_data: DataCallback | None = None
        self._on_exit: ExitCallback | None = None
        self._eof = asyncio.Event()
        self._watch_task: asyncio.Task | None = None
        self._pending = bytearray()
        self._closed = False
        self._killed = False

    @classmethod
    async def spawn(
        cls,
        task_id: str,
        config: SpawnConfig,
        *,
        cwd: str,
        env: dict[str, str],
        cols: int = 80,
        rows: int = 24,
    ) -> PtyProcess:
        """Start ``config.command`` on a fresh pty. Raises SpawnError."""
        if not os.path.isdir(cwd):
            raise SpawnError(task_id, f"working directory does not exist: {cwd}")

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as exc:
            raise SpawnError(task_id, f"cannot allocate a pty: {exc}") from exc

        try:
            _set_winsize(slave_fd, cols, rows)
            os.set_blocking(master_fd, False)
            proc = await asyncio.create_subprocess_exec(
                config.command,
                *config.args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                env=env,
                preexec_fn=_become_session_leader,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            os.close(master_fd)
            raise SpawnError(task_id, f"{config.command}: {exc}") from exc
        finally:
            os.close(slave_fd)

        logger.info(
            "Spawned %s for %s (pid=%d, cwd=%s)",
            config.command, task_id, proc.pid, cwd,
        )
        return cls(task_id, proc, master_fd, asyncio.get_running_loop())

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    def start(self, on_data: DataCallback, on_exit: ExitCallback) -> None:
        """Begin delivering output. Called once the session is registered."""
        self._on_data = on_data
        self._on_exit = on_exit
        self._loop.add_reader(self._master_fd, self._on_readable)
        self._watch_task = self._loop.create_task(self._watch_exit())

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once every slave descriptor is closed
            data = b""
        if not data:
            self._stop_reading()
            self._eof.set()
            return
        if self._on_data is not None:
            self._on_data(data)

    async def _watch_exit(self) -> None:
        returncode = await self._proc.wait()
        if not self._closed:
            try:
                await asyncio.wait_for(self._eof.wait(), timeout=EOF_DRAIN_TIMEOUT)
            except asyncio.TimeoutError:
                logger.debug(
                    "pty for %s still open %.1fs after exit (orphaned children?)",
                    self._task_id, EOF_DRAIN_TIMEOUT,
                )
        self._close()
        code = normalize_exit_code(returncode)
        logger.info("Process for %s exited with code %d", self._task_id, code)
        if self._on_exit is not None:
            self._on_exit(code)

    def write(self, data: bytes) -> None:
        """Queue *data* for the process. Never blocks."""
        if self._closed:
            return
        if self._pending:
            self._pending.extend(data)
            return
        try:
            written = os.write(self._master_fd, data)
        except BlockingIOError:
            written = 0
        except OSError:
            logger.debug("Write to %s failed", self._task_id, exc_info=True)
            return
        if written < len(data):
            self._pending.extend(data[written:])
            self._loop.add_writer(self._master_fd, self._flush_pending)

    def _flush_pending(self) -> None:
        if self._closed:
            return
        try:
            written = os.write(self._master_fd, bytes(self._pending))
        except BlockingIOError:
            return
        except OSError:
            logger.debug("Flush to %s failed", self._task_id, exc_info=True)
            written = len(self._pending)
        del self._pending[:written]
        if not self._pending:
            self._loop.remove_writer(self._master_fd)

    def resize(self, cols: int, rows: int) -> None:
        if self._closed:
            return
        try:
            _set_winsize(self._master_fd, cols, rows)
        except OSError:
            logger.debug("Resize of %s failed", self._task_id, exc_info=True)

    def kill(self) -> None:
        """SIGKILL the whole process group and release the pty. Idempotent."""
        if self._killed:
            return
        self._killed = True
        try:
            os.killpg(self._proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
        self._close()

    def _stop_reading(self) -> None:
        if not self._closed:
            self._loop.remove_reader(self._master_fd)

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._eof.set()
        self._loop.remove_reader(self._master_fd)
        self._loop.remove_writer(self._master_fd)
        self._pending.clear()
        try:
            os.close(self._master_fd)
        except OSError:
            pass
