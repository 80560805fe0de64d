"""Per-task session record.

A Session pairs one task with one live pty-backed process. Only the
session manager mutates it, always while holding ``lock``; the idle
monitor reaches presentation fields through the manager as well.
"""
from __future__ import annotations

import codecs
import threading
from dataclasses import dataclass, field
from typing import Any

from .adapters.base import Adapter
from .models import Presentation, SessionInfo, TerminalMode, TerminalState
from .ring_buffer import RingBuffer

# Longest partial line held back for line-framed adapters before it is
# classified as-is.
MAX_PENDING_LINE = 64 * 1024
# Cap on text accumulated while watching for a conversation id.
MAX_WATCH_BUFFER = 16 * 1024
MAX_INPUT_LINE = 4096


@dataclass
class Session:
    """State for a single task terminal."""

    task_id: str
    process: Any
    mode: TerminalMode
    adapter: Adapter
    buffer: RingBuffer
    generation: int
    conversation_id: str | None = None
    state: TerminalState = TerminalState.STARTING
    last_output_at: float = 0.0
    presentation: Presentation = Presentation.ATTACHED
    # Output seen since the last idle sweep ("mid-burst" proxy)
    output_since_sweep: bool = False

    # Stale resume detection, armed only when resuming
    checking_for_stale_session: bool = False
    stale_check_deadline: float = 0.0

    # `/status` conversation id watch
    input_line: str = ""
    watching_for_session_id: bool = False
    session_id_watch_deadline: float = 0.0
    watch_output: str = ""

    # Trailing partial line for line-framed adapters
    pending_line: str = ""

    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        repr=False,
    )
    # Set once the session is deregistered; nothing is dispatched after
    closed: bool = False

    def snapshot(self) -> SessionInfo:
        with self.lock:
            return SessionInfo(
                task_id=self.task_id,
                state=self.state,
                last_output_at=self.last_output_at,
                generation=self.generation,
                mode=self.mode,
                presentation=self.presentation,
                pid=getattr(self.process, "pid", None),
            )
