"""Exception hierarchy for the session engine.

Specific exceptions for each failure mode. The session manager converts
these into typed results at its public boundary; nothing here is meant
to reach the UI layer as a raised exception.
"""
from __future__ import annotations


class AgentPtyError(Exception):
    """Base exception for all session engine errors."""


class SpawnError(AgentPtyError):
    """Failed to start the process backing a session."""
    def __init__(self, task_id: str, reason: str):
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"Failed to spawn session {task_id}: {reason}")


class UnknownModeError(AgentPtyError):
    """Requested terminal mode has no adapter."""
    def __init__(self, mode: str, available: list[str]):
        self.mode = mode
        self.available = available
        avail_str = ", ".join(available) if available else "none"
        super().__init__(
            f"Unknown terminal mode '{mode}'. Available modes: {avail_str}"
        )


class FlagParseError(AgentPtyError):
    """A configured flag string could not be split into arguments."""
    def __init__(self, flags: str, reason: str):
        self.flags = flags
        self.reason = reason
        super().__init__(f"Cannot parse flags {flags!r}: {reason}")


class ConfigError(AgentPtyError):
    """Configuration file or environment value is invalid."""
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
