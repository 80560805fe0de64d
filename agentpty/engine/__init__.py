"""agentpty engine: pty-backed agent sessions behind a stable task API."""
from .models import (
    Availability,
    BufferChunk,
    CodeMode,
    CreateResult,
    Presentation,
    PromptInfo,
    PromptKind,
    SessionInfo,
    SpawnConfig,
    StructuredEvent,
    TerminalMode,
    TerminalState,
)
from .config import ManagerConfig
from .errors import (
    AgentPtyError,
    ConfigError,
    FlagParseError,
    SpawnError,
    UnknownModeError,
)
from .ring_buffer import RESET_SEQUENCE, RingBuffer
from .session_manager import SessionManager
from .idle_monitor import IdleMonitor
from .yaml_config import AgentPtyConfig, ModeConfig, load_yaml_config

__all__ = [
    # Manager
    "SessionManager",
    "IdleMonitor",
    # Models
    "Availability",
    "BufferChunk",
    "CodeMode",
    "CreateResult",
    "Presentation",
    "PromptInfo",
    "PromptKind",
    "SessionInfo",
    "SpawnConfig",
    "StructuredEvent",
    "TerminalMode",
    "TerminalState",
    # Buffer
    "RESET_SEQUENCE",
    "RingBuffer",
    # Config
    "ManagerConfig",
    "AgentPtyConfig",
    "ModeConfig",
    "load_yaml_config",
    # Errors
    "AgentPtyError",
    "ConfigError",
    "FlagParseError",
    "SpawnError",
    "UnknownModeError",
]
