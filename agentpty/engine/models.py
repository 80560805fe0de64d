"""Core data models for the session engine.

All dataclasses, enums, and type aliases used by the engine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Prompt types live with the events that carry them; re-exported here
from agentpty.events.prompts import PromptInfo, PromptKind  # noqa: F401


class TerminalMode(str, Enum):
    """Which agent (or plain shell) a session runs."""
    CLAUDE_CODE = "claude-code"
    CODEX = "codex"
    TERMINAL = "terminal"


class TerminalState(str, Enum):
    """Session states. See lifecycle.py for transition rules."""
    STARTING = "starting"
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    IDLE = "idle"
    ERROR = "error"
    DEAD = "dead"


class CodeMode(str, Enum):
    """Permission posture requested for an agent session."""
    NORMAL = "normal"
    PLAN = "plan"
    ACCEPT_EDITS = "accept-edits"
    BYPASS = "bypass"


class Presentation(str, Enum):
    """Whether the consumer is expected to hold rendering resources."""
    ATTACHED = "attached"
    HIBERNATED = "hibernated"


@dataclass
class SpawnConfig:
    """How to start the process for one session.

    ``post_spawn_command`` is typed into the process after a short settle
    delay, for agents that are launched from inside an interactive shell.
    """
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    post_spawn_command: str | None = None


@dataclass(frozen=True)
class StructuredEvent:
    """One decoded event from an agent's structured output stream."""
    type: str
    data: Any = None


@dataclass(frozen=True)
class BufferChunk:
    seq: int
    data: bytes


@dataclass(frozen=True)
class SessionInfo:
    """Point-in-time snapshot of a registered session."""
    task_id: str
    state: TerminalState
    last_output_at: float
    generation: int
    mode: TerminalMode
    presentation: Presentation
    pid: int | None = None


@dataclass(frozen=True)
class CreateResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class Availability:
    """Result of probing an agent CLI on the user's PATH."""
    available: bool
    path: str | None = None
    version: str | None = None
