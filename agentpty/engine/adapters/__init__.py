"""Adapter abstraction for per-agent spawn and output classification."""
from .base import Adapter, strip_ansi
from .claude_adapter import EVENT_STATE_TABLE, ClaudeAdapter
from .codex_adapter import CodexAdapter
from .shell_adapter import ShellAdapter
from .registry import ADAPTER_CLASSES, AdapterRegistry, build_adapter_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ADAPTER_CLASSES",
    "build_adapter_registry",
    "ClaudeAdapter",
    "CodexAdapter",
    "EVENT_STATE_TABLE",
    "ShellAdapter",
    "strip_ansi",
]
