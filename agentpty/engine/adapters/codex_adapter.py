"""OpenAI Codex CLI adapter.

Codex runs a full-screen TUI whose output format is not documented, so
this adapter is a passthrough: it only knows how to launch the CLI from
inside the user's shell. Codex has no resume flag; every session starts
fresh.
"""
from __future__ import annotations

from ..models import CodeMode, SpawnConfig, TerminalMode
from ..shell_env import build_exec_command, get_shell_startup_args, resolve_user_shell
from .base import Adapter


class CodexAdapter(Adapter):
    """Adapter for the Codex CLI. Detection methods all return None."""

    def __init__(self, command: str | None = None, flags: list[str] | None = None) -> None:
        super().__init__(command, flags)
        self._binary = command or "codex"

    @property
    def mode(self) -> TerminalMode:
        return TerminalMode.CODEX

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
        shell = resolve_user_shell(shell_override)
        return SpawnConfig(
            command=shell,
            args=get_shell_startup_args(shell),
            post_spawn_command=build_exec_command(self._binary, self._flags),
        )
