"""Claude Code CLI adapter.

The agent emits newline-delimited JSON events. Each line is decoded on
its own. When a chunk carries no known event, the remaining plain text
is read the way the interactive UI draws it: Y/n and menu prompts,
spinner frames, tool headers, and the input line.
"""
from __future__ import annotations

import json
import logging
import os
import re
import sys

from ..models import (
    CodeMode,
    PromptInfo,
    PromptKind,
    SpawnConfig,
    StructuredEvent,
    TerminalMode,
    TerminalState,
)
from .base import Adapter, strip_ansi

logger = logging.getLogger(__name__)

# Event type -> state. Types missing here leave the state unchanged.
EVENT_STATE_TABLE: dict[str, TerminalState] = {
    "thinking": TerminalState.RUNNING,
    "reasoning": TerminalState.RUNNING,
    "tool_use": TerminalState.RUNNING,
    "tool_result": TerminalState.RUNNING,
    "assistant": TerminalState.RUNNING,
    "input_request": TerminalState.AWAITING_INPUT,
    "permission_request": TerminalState.AWAITING_INPUT,
    "error": TerminalState.ERROR,
    "result": TerminalState.IDLE,
    "done": TerminalState.IDLE,
}

ACCEPT_EDITS_TOOLS = "Edit,Write,MultiEdit,NotebookEdit"

_YES_NO_RE = re.compile(r"\[Y/n\]|\[y/N\]", re.IGNORECASE)
_MENU_RE = re.compile(r"^\s*❯\s*\d+\.", re.MULTILINE)
_QUESTION_RE = re.compile(r"[^\n]*\?\s*$", re.MULTILINE)
# Braille spinner frames drawn while the agent works
_SPINNER_RE = re.compile(r"[⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏]")
_TOOL_RE = re.compile(r"\b(?:Read|Write|Edit|Bash|Glob|Grep|Task|WebFetch|WebSearch)\s*[:(]")
# The agent's own input line
_INPUT_LINE_RE = re.compile(r"(?:^|\n)>\s")


def _default_binary() -> str:
    if sys.platform == "win32":
        return "claude"
    return os.path.join(os.path.expanduser("~"), ".local", "bin", "claude")


def _decode_line(line: str) -> dict | None:
    line = line.strip()
    if not line.startswith("{"):
        return None
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    return obj


class ClaudeAdapter(Adapter):
    """Adapter for the Claude Code CLI (structured event stream)."""

    line_framed = True

    def __init__(self, command: str | None = None, flags: list[str] | None = None) -> None:
        super().__init__(command, flags)
        self._binary = self.resolve_command(command or _default_binary(), "claude")

    @property
    def mode(self) -> TerminalMode:
        return TerminalMode.CLAUDE_CODE

    @property
    def binary(self) -> str:
        return self._binary

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
        args: list[str] = []

        if resuming and conversation_id:
            args.extend(["--resume", conversation_id])
        elif conversation_id:
            args.extend(["--session-id", conversation_id])

        if skip_permissions or code_mode == CodeMode.BYPASS:
            args.append("--dangerously-skip-permissions")
        if code_mode == CodeMode.ACCEPT_EDITS:
            args.extend(["--allowedTools", ACCEPT_EDITS_TOOLS])

        args.extend(self._flags)

        # Positional prompt keeps the session interactive; -p would print and exit
        if initial_prompt:
            args.append(initial_prompt)

        return SpawnConfig(command=self._binary, args=args)

    def parse_event(self, text: str) -> StructuredEvent | None:
        """Decode the last JSON event in *text*. Malformed lines are skipped."""
        event: StructuredEvent | None = None
        for line in text.splitlines():
            obj = _decode_line(line)
            if obj is None:
                continue
            event_type = obj.get("type")
            if not isinstance(event_type, str):
                continue
            event = StructuredEvent(type=event_type, data=obj)
        return event

    def detect_state(
        self, text: str, current_state: TerminalState,
    ) -> TerminalState | None:
        detected: TerminalState | None = None
        for line in text.splitlines():
            event = self.parse_event(line)
            if event is None:
                continue
            state = EVENT_STATE_TABLE.get(event.type)
            if state is None:
                logger.debug("Unknown claude event type %r; state unchanged", event.type)
                continue
            detected = state
        if detected is not None:
            return detected

        plain = "\n".join(
            line for line in text.splitlines() if _decode_line(line) is None
        )
        return self._detect_text_state(strip_ansi(plain))

    @staticmethod
    def _detect_text_state(text: str) -> TerminalState | None:
        """Fallback for the interactive UI, which prints no JSON events."""
        if not text.strip():
            return None
        if _YES_NO_RE.search(text) or _MENU_RE.search(text):
            return TerminalState.AWAITING_INPUT
        if _SPINNER_RE.search(text) or _TOOL_RE.search(text):
            return TerminalState.RUNNING
        if _INPUT_LINE_RE.search(text):
            return TerminalState.IDLE
        return None

    def detect_prompt(self, text: str) -> PromptInfo | None:
        for line in text.splitlines():
            event = self.parse_event(line)
            if event is None:
                continue
            data = event.data if isinstance(event.data, dict) else {}
            if event.type == "permission_request":
                message = data.get("message") or data.get("tool_name") or ""
                return PromptInfo(kind=PromptKind.PERMISSION, text=str(message))
            if event.type == "input_request":
                message = data.get("prompt") or data.get("question") or ""
                return PromptInfo(kind=PromptKind.INPUT, text=str(message))

        plain = "\n".join(
            line for line in text.splitlines() if _decode_line(line) is None
        )
        return self._detect_text_prompt(strip_ansi(plain))

    @staticmethod
    def _detect_text_prompt(text: str) -> PromptInfo | None:
        if not text.strip():
            return None
        if _YES_NO_RE.search(text):
            return PromptInfo(kind=PromptKind.PERMISSION, text=text.strip())
        menu = _MENU_RE.search(text)
        if menu:
            return PromptInfo(
                kind=PromptKind.INPUT, text=text.strip(), position=menu.start(),
            )
        question = _QUESTION_RE.search(text)
        if question:
            return PromptInfo(
                kind=PromptKind.QUESTION,
                text=question.group(0).strip(),
                position=question.start(),
            )
        return None

    def conversation_id_of(self, event: StructuredEvent) -> str | None:
        """Conversation id carried by *event* (e.g. the init event), if any."""
        if not isinstance(event.data, dict):
            return None
        value = event.data.get("session_id") or event.data.get("conversation_id")
        return value if isinstance(value, str) and value else None
