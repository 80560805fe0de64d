"""Abstract base for terminal adapters.

Each adapter wraps one agent CLI (or a plain shell). The session
manager asks it how to spawn the process and how to read the output;
the manager's own control loop never looks at agent-specific text.

Adapters are pure: no side effects, no state shared between sessions.
"""
from __future__ import annotations

import abc
import logging
import re
import shutil

from ..models import (
    CodeMode,
    PromptInfo,
    SpawnConfig,
    StructuredEvent,
    TerminalMode,
    TerminalState,
)

logger = logging.getLogger(__name__)

_OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
_CSI_RE = re.compile(r"\x1b\[[?0-9;:]*[ -/]*[@-~]")
_CHARSET_RE = re.compile(r"\x1b[()][AB012]")


def strip_ansi(text: str) -> str:
    """Remove OSC, CSI and charset escape sequences from *text*."""
    text = _OSC_RE.sub("", text)
    text = _CSI_RE.sub("", text)
    return _CHARSET_RE.sub("", text)


class Adapter(abc.ABC):
    """Per-mode spawn and classification strategy.

    Implementations:
    - ClaudeAdapter: structured (newline-delimited JSON) event stream
    - CodexAdapter: passthrough until the protocol is known
    - ShellAdapter: raw shell, no detection at all
    """

    # Hand complete lines to the detect_* methods instead of raw chunks.
    line_framed: bool = False
    # With no adapter opinion, any output means the session is working.
    output_implies_running: bool = False

    def __init__(self, command: str | None = None, flags: list[str] | None = None) -> None:
        self._command_override = command
        self._flags = list(flags or [])

    @property
    @abc.abstractmethod
    def mode(self) -> TerminalMode:
        """The terminal mode this adapter serves."""

    @property
    def flags(self) -> list[str]:
        return list(self._flags)

    @property
    @abc.abstractmethod
    def binary(self) -> str:
        """Executable looked up by availability checks."""

    @abc.abstractmethod
    def build_spawn_config(
        self,
        cwd: str,
        conversation_id: str | None = None,
        resuming: bool = False,
        shell_override: str | None = None,
        initial_prompt: str | None = None,
        code_mode: CodeMode | None = None,
        skip_permissions: bool = False,
    ) -> SpawnConfig:
        """Build the spawn configuration. Deterministic for given inputs."""

    def detect_prompt(self, text: str) -> PromptInfo | None:
        """Return a prompt that needs the user, or None."""
        return None

    def parse_event(self, text: str) -> StructuredEvent | None:
        """Return the structured event carried by *text*, or None."""
        return None

    def detect_state(
        self, text: str, current_state: TerminalState,
    ) -> TerminalState | None:
        """Return the state *text* implies, or None for no opinion."""
        return None

    def conversation_id_of(self, event: StructuredEvent) -> str | None:
        """Conversation id announced by *event*, if the protocol has one."""
        return None

    def resolve_command(self, command: str, fallback: str | None = None) -> str:
        """Resolve a binary by preferring an explicit command, then a fallback.

        The command may not be on PATH when it is a custom wrapper; in
        that case the raw value is kept so spawn errors name it.
        """
        if command:
            if shutil.which(command):
                return command
            if fallback and shutil.which(fallback):
                logger.debug(
                    "Command %s not found; falling back to %s for mode %s",
                    command, fallback, self.mode.value,
                )
                return fallback
            return command
        return fallback or command
