"""Adapter registry: maps terminal modes to Adapter instances."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import UnknownModeError
from ..models import TerminalMode
from .base import Adapter
from .claude_adapter import ClaudeAdapter
from .codex_adapter import CodexAdapter
from .shell_adapter import ShellAdapter

if TYPE_CHECKING:
    from ..yaml_config import ModeConfig

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: dict[TerminalMode, type[Adapter]] = {
    TerminalMode.CLAUDE_CODE: ClaudeAdapter,
    TerminalMode.CODEX: CodexAdapter,
    TerminalMode.TERMINAL: ShellAdapter,
}

# Every mode needs an adapter; fail at import rather than at first spawn.
_missing = set(TerminalMode) - set(ADAPTER_CLASSES)
if _missing:
    raise RuntimeError(
        "No adapter registered for mode(s): "
        + ", ".join(sorted(m.value for m in _missing))
    )


class AdapterRegistry:
    """One adapter instance per terminal mode."""

    def __init__(self) -> None:
        self._adapters: dict[TerminalMode, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        """Register (or replace) the adapter for its mode."""
        self._adapters[adapter.mode] = adapter
        logger.debug("Adapter registered: %s", adapter.mode.value)

    def get(self, mode: TerminalMode | str) -> Adapter:
        """Adapter for *mode*; raises UnknownModeError."""
        try:
            key = TerminalMode(mode)
        except ValueError:
            raise UnknownModeError(str(mode), self.list_modes()) from None
        adapter = self._adapters.get(key)
        if adapter is None:
            raise UnknownModeError(key.value, self.list_modes())
        return adapter

    def list_modes(self) -> list[str]:
        return [m.value for m in self._adapters]

    @property
    def count(self) -> int:
        return len(self._adapters)


def build_adapter_registry(
    mode_configs: dict[str, ModeConfig] | None = None,
) -> AdapterRegistry:
    """Build an AdapterRegistry covering every mode.

    *mode_configs* (from YAML) may override the command and extra flags
    per mode; modes without an entry use the adapter defaults.
    """
    mode_configs = mode_configs or {}
    registry = AdapterRegistry()
    for mode, cls in ADAPTER_CLASSES.items():
        cfg = mode_configs.get(mode.value)
        if cfg is None:
            registry.register(cls())
            continue
        logger.info(
            "Adapter %s configured: command=%s flags=%s",
            mode.value, cfg.command or "<default>", cfg.flags,
        )
        registry.register(cls(command=cfg.command, flags=cfg.flags))
    return registry
