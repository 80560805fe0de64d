"""Adapter for a raw terminal shell.

Passthrough with no parsing and no prompt detection. The session
manager treats any output as activity.
"""
from __future__ import annotations

from ..models import CodeMode, SpawnConfig, TerminalMode
from ..shell_env import resolve_user_shell
from .base import Adapter


class ShellAdapter(Adapter):

    output_implies_running = True

    @property
    def mode(self) -> TerminalMode:
        return TerminalMode.TERMINAL

    @property
    def binary(self) -> str:
        return resolve_user_shell(self._command_override)

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
        shell = resolve_user_shell(shell_override or self._command_override)
        return SpawnConfig(command=shell, args=list(self._flags))
