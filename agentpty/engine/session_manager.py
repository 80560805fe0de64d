"""Session manager: creates, tracks, and kills task terminals.

Central registry for all live sessions, one per task id. Every session
is tagged with a generation number that strictly increases each time
the task's terminal is (re)created or killed. Output and exit callbacks
carry the generation they were spawned with and are dropped at dispatch
time when it no longer matches, so a superseded or killed process can
never talk to subscribers.

Locking: the registry lock guards ``_sessions`` and ``_generations``;
each session's own lock guards its fields and serializes dispatch. A
session lock is never acquired while the registry lock is held.
"""
from __future__ import annotations

import asyncio
import functools
import getpass
import logging
import os
import re
import threading
import time
from collections.abc import Callable

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
)
from agentpty.events.hub import EventCallback, EventHub, Subscription

from .adapters.base import strip_ansi
from .adapters.registry import AdapterRegistry, build_adapter_registry
from .config import ManagerConfig
from .errors import AgentPtyError, SpawnError
from .lifecycle import can_transition, is_terminal
from .models import (
    Availability,
    BufferChunk,
    CodeMode,
    CreateResult,
    Presentation,
    SessionInfo,
    SpawnConfig,
    TerminalMode,
    TerminalState,
)
from .pty_process import PtyProcess, Spawner
from .ring_buffer import RingBuffer
from .session import MAX_INPUT_LINE, MAX_PENDING_LINE, MAX_WATCH_BUFFER, Session
from .shell_env import check_binary

logger = logging.getLogger(__name__)

# Wording the agent prints when asked to resume an unknown conversation.
STALE_SESSION_TEXT = "No conversation found with session ID"

SUPERSEDED = "superseded"

_UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)
# Sequences that must not be replayed into a fresh renderer: OSC
# (titles, cwd, hyperlinks) and device-attribute responses.
_OSC_BYTES_RE = re.compile(rb"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
_DA_BYTES_RE = re.compile(rb"\x1b\[\?[0-9;]*c")


def filter_buffer_data(data: bytes) -> bytes:
    """Strip OSC and DA sequences from *data* before it is buffered."""
    return _DA_BYTES_RE.sub(b"", _OSC_BYTES_RE.sub(b"", data))


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


class SessionManager:
    """Registry of pty-backed task sessions.

    One instance is created at startup and shared by everything that
    issues terminal commands. Events are published on the injected
    EventHub; nothing is delivered for a task once ``kill`` returns.
    """

    def __init__(
        self,
        config: ManagerConfig | None = None,
        hub: EventHub | None = None,
        adapters: AdapterRegistry | None = None,
        spawner: Spawner | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or ManagerConfig()
        self._hub = hub or EventHub()
        self._adapters = adapters or build_adapter_registry()
        self._spawner = spawner or PtyProcess.spawn
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._generations: dict[str, int] = {}
        self._lock = threading.RLock()

    @property
    def hub(self) -> EventHub:
        return self._hub

    @property
    def config(self) -> ManagerConfig:
        return self._config

    @property
    def adapters(self) -> AdapterRegistry:
        return self._adapters

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ── Registry helpers ──

    def _get(self, task_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(task_id)

    def _bump_generation(self, task_id: str) -> tuple[int, Session | None]:
        """Take a new generation and deregister the current session."""
        with self._lock:
            generation = self._generations.get(task_id, 0) + 1
            self._generations[task_id] = generation
            return generation, self._sessions.pop(task_id, None)

    def _close_session(self, session: Session) -> None:
        with session.lock:
            session.closed = True
        session.process.kill()

    # ── Commands ──

    async def create(
        self,
        task_id: str,
        cwd: str,
        *,
        mode: TerminalMode | str,
        resume_id: str | None = None,
        fresh_session_id: str | None = None,
        shell_override: str | None = None,
        initial_prompt: str | None = None,
        code_mode: CodeMode | None = None,
        skip_permissions: bool = False,
    ) -> CreateResult:
        """Spawn the terminal for *task_id*, replacing any existing one.

        Never raises for spawn problems: a missing binary, an invalid
        working directory or an unknown mode come back as
        ``CreateResult(success=False)`` and leave no registry entry.
        """
        resuming = resume_id is not None
        conversation_id = resume_id or fresh_session_id
        try:
            adapter = self._adapters.get(mode)
            spawn_config = adapter.build_spawn_config(
                cwd,
                conversation_id=conversation_id,
                resuming=resuming,
                shell_override=shell_override,
                initial_prompt=initial_prompt,
                code_mode=code_mode,
                skip_permissions=skip_permissions,
            )
        except AgentPtyError as exc:
            logger.warning("Cannot create terminal for %s: %s", task_id, exc)
            return CreateResult(success=False, error=str(exc))

        generation, previous = self._bump_generation(task_id)
        if previous is not None:
            logger.info(
                "Replacing %s session for %s (generation %d -> %d)",
                previous.mode.value, task_id, previous.generation, generation,
            )
            self._close_session(previous)

        try:
            process = await self._spawner(
                task_id,
                spawn_config,
                cwd=cwd,
                env=self._build_env(spawn_config),
                cols=self._config.default_cols,
                rows=self._config.default_rows,
            )
        except SpawnError as exc:
            logger.warning("Spawn failed for %s: %s", task_id, exc.reason)
            return CreateResult(success=False, error=exc.reason)

        now = self._clock()
        session = Session(
            task_id=task_id,
            process=process,
            mode=adapter.mode,
            adapter=adapter,
            buffer=RingBuffer(self._config.max_buffer_bytes),
            generation=generation,
            conversation_id=conversation_id,
            last_output_at=now,
        )
        if resuming:
            session.checking_for_stale_session = True
            session.stale_check_deadline = now + self._config.stale_session_window_seconds

        with self._lock:
            superseded = self._generations.get(task_id) != generation
            if not superseded:
                self._sessions[task_id] = session
        if superseded:
            logger.info(
                "Create for %s (generation %d) superseded while spawning",
                task_id, generation,
            )
            process.kill()
            return CreateResult(success=False, error=SUPERSEDED)

        process.start(
            functools.partial(self._on_output, task_id, generation),
            functools.partial(self._on_exit, task_id, generation),
        )
        if spawn_config.post_spawn_command:
            asyncio.get_running_loop().call_later(
                self._config.post_spawn_delay_seconds,
                self._send_post_spawn_command,
                task_id,
                generation,
                spawn_config.post_spawn_command,
            )

        logger.info(
            "Created %s session for %s (generation %d, %s)",
            adapter.mode.value, task_id, generation,
            f"resume={resume_id}" if resuming else f"session={conversation_id}",
        )
        return CreateResult(success=True)

    def _build_env(self, spawn_config: SpawnConfig) -> dict[str, str]:
        env = dict(os.environ)
        env.update(spawn_config.env)
        env["TERM"] = "xterm-256color"
        env["COLORTERM"] = "truecolor"
        if not env.get("HOME"):
            env["HOME"] = os.path.expanduser("~")
        if not env.get("USER"):
            env["USER"] = _current_user()
        return env

    def _send_post_spawn_command(
        self, task_id: str, generation: int, command: str,
    ) -> None:
        session = self._get(task_id)
        if session is None or session.generation != generation:
            return
        with session.lock:
            if session.closed:
                return
            logger.debug("Sending post-spawn command to %s: %s", task_id, command)
            session.process.write(f"{command}\r".encode())

    def write(self, task_id: str, data: str | bytes) -> bool:
        """Send input to the process. Returns False if there is no session."""
        session = self._get(task_id)
        if session is None:
            return False
        if isinstance(data, str):
            text, raw = data, data.encode()
        else:
            text, raw = data.decode("utf-8", errors="replace"), data
        with session.lock:
            if session.closed:
                return False
            self._track_input(session, text)
            session.process.write(raw)
        return True

    def _track_input(self, session: Session, text: str) -> None:
        """Arm the conversation-id watch when `/status` is submitted."""
        session.input_line = (session.input_line + text)[-MAX_INPUT_LINE:]
        if "\r" not in text and "\n" not in text:
            return
        if "/status" in session.input_line:
            logger.debug("/status submitted for %s; watching for session id", session.task_id)
            session.watching_for_session_id = True
            session.session_id_watch_deadline = (
                self._clock() + self._config.session_id_watch_seconds
            )
            session.watch_output = ""
        session.input_line = ""

    def resize(self, task_id: str, cols: int, rows: int) -> bool:
        session = self._get(task_id)
        if session is None:
            return False
        with session.lock:
            if session.closed:
                return False
            session.process.resize(cols, rows)
        return True

    def kill(self, task_id: str) -> bool:
        """Deregister and SIGKILL the session. Idempotent.

        The generation is invalidated first, so a create still spawning
        for this id is superseded as well. Once this returns, no event
        for *task_id* is delivered until the next create.
        """
        _, session = self._bump_generation(task_id)
        if session is None:
            return False
        self._close_session(session)
        logger.info("Killed session for %s (generation %d)", task_id, session.generation)
        return True

    def kill_all(self) -> int:
        """Kill every session (shutdown). Returns how many were killed."""
        with self._lock:
            task_ids = list(self._sessions)
        return sum(1 for task_id in task_ids if self.kill(task_id))

    # ── Queries ──

    def exists(self, task_id: str) -> bool:
        return self._get(task_id) is not None

    def get_state(self, task_id: str) -> TerminalState | None:
        session = self._get(task_id)
        if session is None:
            return None
        with session.lock:
            return session.state

    def get_info(self, task_id: str) -> SessionInfo | None:
        session = self._get(task_id)
        return session.snapshot() if session is not None else None

    def list(self) -> list[SessionInfo]:
        """Snapshot of every registered session."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.snapshot() for s in sessions]

    def get_buffer(self, task_id: str) -> bytes | None:
        """Full replay buffer. Wakes a hibernated session."""
        session = self._get(task_id)
        if session is None:
            return None
        with session.lock:
            self._wake(session)
            return session.buffer.to_bytes()

    def get_buffer_since(self, task_id: str, after_seq: int) -> list[BufferChunk] | None:
        """Buffered chunks newer than *after_seq*. Wakes a hibernated session."""
        session = self._get(task_id)
        if session is None:
            return None
        with session.lock:
            self._wake(session)
            return session.buffer.get_chunks_since(after_seq)

    def clear_buffer(self, task_id: str) -> bool:
        session = self._get(task_id)
        if session is None:
            return False
        with session.lock:
            session.buffer.clear()
        return True

    def subscribe(
        self,
        category: EventCategory | str,
        task_id: str,
        callback: EventCallback,
    ) -> Subscription:
        """Subscribe on the hub, waking the session if it is hibernated."""
        session = self._get(task_id)
        if session is not None:
            with session.lock:
                self._wake(session)
        return self._hub.subscribe(category, task_id, callback)

    def _wake(self, session: Session) -> None:
        if session.presentation is Presentation.HIBERNATED:
            session.presentation = Presentation.ATTACHED
            logger.debug("Session %s reattached", session.task_id)

    async def check_availability(self, mode: TerminalMode | str) -> Availability:
        """Probe the binary behind *mode* on the login-shell PATH."""
        adapter = self._adapters.get(mode)
        return await asyncio.to_thread(check_binary, adapter.binary)

    # ── Hibernation ──

    def hibernate(
        self,
        task_id: str,
        generation: int | None = None,
        idle_before: float | None = None,
    ) -> bool:
        """Mark the session hibernated and emit ``idle``.

        With *idle_before* (the idle sweep), the session only qualifies
        if its last output is at or before that instant, no output
        arrived since the previous sweep, and it is not waiting on the
        user. The process and buffer are untouched either way.
        """
        session = self._get(task_id)
        if session is None:
            return False
        with session.lock:
            if session.closed:
                return False
            if generation is not None and session.generation != generation:
                return False
            if session.presentation is Presentation.HIBERNATED:
                return False
            if idle_before is not None:
                had_output = session.output_since_sweep
                session.output_since_sweep = False
                if (
                    had_output
                    or session.last_output_at > idle_before
                    or session.state is TerminalState.AWAITING_INPUT
                    or is_terminal(session.state)
                ):
                    return False
            session.presentation = Presentation.HIBERNATED
            logger.info("Hibernating idle session %s", task_id)
            self._dispatch(session, [SessionIdle(task_id=task_id, generation=session.generation)])
        return True

    # ── Process callbacks ──

    def _current_session(self, task_id: str, generation: int) -> Session | None:
        session = self._get(task_id)
        if session is None or session.generation != generation:
            return None
        return session

    def _on_output(self, task_id: str, generation: int, data: bytes) -> None:
        session = self._current_session(task_id, generation)
        if session is None:
            logger.debug(
                "Dropping %d bytes from stale process for %s (generation %d)",
                len(data), task_id, generation,
            )
            return
        with session.lock:
            if session.closed or session.generation != generation:
                return
            self._dispatch(session, self._handle_output(session, data))

    def _handle_output(self, session: Session, data: bytes) -> list[TerminalEvent]:
        """Buffer and classify one chunk; return events in delivery order."""
        now = self._clock()
        task_id, generation = session.task_id, session.generation

        filtered = filter_buffer_data(data)
        seq = session.buffer.append(filtered) if filtered else session.buffer.current_seq
        session.last_output_at = now
        session.output_since_sweep = True

        text = session.decoder.decode(data)
        state_events: list[TerminalEvent] = []
        notices: list[TerminalEvent] = []

        if not is_terminal(session.state):
            self._classify(session, self._frame(session, text), state_events, notices)

        if session.checking_for_stale_session:
            if now > session.stale_check_deadline:
                session.checking_for_stale_session = False
                logger.debug("Stale-session window closed for %s", task_id)
            elif STALE_SESSION_TEXT in strip_ansi(text):
                session.checking_for_stale_session = False
                logger.warning(
                    "Conversation %s not found for %s", session.conversation_id, task_id,
                )
                self._transition(session, TerminalState.ERROR, state_events)
                notices.append(SessionNotFound(task_id=task_id, generation=generation))

        if session.watching_for_session_id:
            self._scan_for_session_id(session, text, now, notices)

        return [
            *state_events,
            *notices,
            DataReceived(task_id=task_id, generation=generation, chunk=data, seq=seq),
        ]

    def _frame(self, session: Session, text: str) -> str:
        """Text the adapter should classify for this chunk.

        Line-framed adapters only see complete lines; a trailing partial
        line that looks like the start of a JSON event is held back
        until the next chunk. Plain-text tails are classified at once so
        unterminated prompts are not delayed.
        """
        if not session.adapter.line_framed:
            return text
        combined = session.pending_line + text
        tail = combined[combined.rfind("\n") + 1:]
        if tail.lstrip().startswith("{") and len(tail) <= MAX_PENDING_LINE:
            session.pending_line = tail
            return combined[:len(combined) - len(tail)]
        session.pending_line = ""
        return combined

    def _classify(
        self,
        session: Session,
        text: str,
        state_events: list[TerminalEvent],
        notices: list[TerminalEvent],
    ) -> None:
        adapter = session.adapter
        detected = adapter.detect_state(text, session.state) if text else None
        if detected is not None:
            self._transition(session, detected, state_events)
        elif session.state is TerminalState.STARTING:
            self._transition(session, TerminalState.RUNNING, state_events)
        elif session.state is TerminalState.IDLE and adapter.output_implies_running:
            self._transition(session, TerminalState.RUNNING, state_events)

        if not text:
            return

        prompt = adapter.detect_prompt(text)
        if prompt is not None:
            notices.append(PromptDetected(
                task_id=session.task_id,
                generation=session.generation,
                kind=prompt.kind.value,
                text=prompt.text,
                position=prompt.position,
            ))

        for line in text.splitlines() if adapter.line_framed else [text]:
            event = adapter.parse_event(line)
            if event is None:
                continue
            conversation_id = adapter.conversation_id_of(event)
            if conversation_id and conversation_id != session.conversation_id:
                self._set_conversation_id(session, conversation_id, notices)

    def _scan_for_session_id(
        self,
        session: Session,
        text: str,
        now: float,
        notices: list[TerminalEvent],
    ) -> None:
        if now > session.session_id_watch_deadline:
            logger.debug("/status watch for %s timed out", session.task_id)
            session.watching_for_session_id = False
            session.watch_output = ""
            return
        session.watch_output = (session.watch_output + strip_ansi(text))[-MAX_WATCH_BUFFER:]
        match = _UUID_RE.search(session.watch_output)
        if match is None:
            return
        session.watching_for_session_id = False
        session.watch_output = ""
        self._set_conversation_id(session, match.group(0), notices)

    def _set_conversation_id(
        self,
        session: Session,
        conversation_id: str,
        notices: list[TerminalEvent],
    ) -> None:
        logger.info("Session id detected for %s: %s", session.task_id, conversation_id)
        session.conversation_id = conversation_id
        notices.append(SessionDetected(
            task_id=session.task_id,
            generation=session.generation,
            conversation_id=conversation_id,
        ))

    def _transition(
        self,
        session: Session,
        target: TerminalState,
        events: list[TerminalEvent],
    ) -> None:
        old = session.state
        if old is target:
            return
        if not can_transition(old, target):
            logger.debug(
                "Ignoring transition %s -> %s for %s",
                old.value, target.value, session.task_id,
            )
            return
        session.state = target
        events.append(StateChanged(
            task_id=session.task_id,
            generation=session.generation,
            new_state=target.value,
            old_state=old.value,
        ))

    def _on_exit(self, task_id: str, generation: int, exit_code: int) -> None:
        session = self._current_session(task_id, generation)
        if session is None:
            logger.debug(
                "Ignoring exit of stale process for %s (generation %d)",
                task_id, generation,
            )
            return
        with session.lock:
            if session.closed:
                return
            events: list[TerminalEvent] = []
            self._transition(session, TerminalState.DEAD, events)
            session.closed = True
            with self._lock:
                if self._sessions.get(task_id) is session:
                    del self._sessions[task_id]
            logger.info("Session for %s exited with code %d", task_id, exit_code)
            events.append(ProcessExited(
                task_id=task_id, generation=generation, exit_code=exit_code,
            ))
            self._publish(events)

    def _dispatch(self, session: Session, events: list[TerminalEvent]) -> None:
        # A subscriber may kill the session mid-chunk; stop right there.
        for event in events:
            if session.closed:
                return
            self._hub.publish(event)

    def _publish(self, events: list[TerminalEvent]) -> None:
        for event in events:
            self._hub.publish(event)
