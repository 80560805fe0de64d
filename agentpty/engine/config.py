"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via AGENTPTY_* env vars.
The idle threshold and sweep interval are operational tuning values,
not part of the session contract.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ManagerConfig:
    """Session manager configuration."""

    # Replay buffer ceiling per session (bytes)
    max_buffer_bytes: int = 5 * 1024 * 1024

    # Hibernation: sessions quiet for this long are reported idle
    idle_threshold_seconds: float = 60.0
    idle_check_interval_seconds: float = 10.0

    # How long after a resume attempt the "conversation not found"
    # text is treated as a stale resume id.
    stale_session_window_seconds: float = 5.0
    # How long after `/status` is submitted to scan output for an id.
    session_id_watch_seconds: float = 5.0

    # Grace period before a post-spawn command is typed into the shell.
    # The shell is assumed ready after this delay; nothing verifies it.
    post_spawn_delay_seconds: float = 0.1

    # Initial pty size
    default_cols: int = 80
    default_rows: int = 24

    # Logging
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.max_buffer_bytes <= len(b"\x1b[0m"):
            raise ConfigError(
                "max_buffer_bytes",
                f"must be larger than the reset prefix, got {self.max_buffer_bytes}",
            )
        if self.idle_check_interval_seconds <= 0:
            raise ConfigError(
                "idle_check_interval_seconds",
                f"must be positive, got {self.idle_check_interval_seconds}",
            )

    @classmethod
    def from_env(cls) -> ManagerConfig:
        """Load configuration from AGENTPTY_* environment variables."""
        env_vars = {
            k: v for k, v in os.environ.items() if k.startswith("AGENTPTY_")
        }
        if env_vars:
            logger.info(
                "ManagerConfig.from_env: AGENTPTY_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(env_vars.items())),
            )
        else:
            logger.debug("ManagerConfig.from_env: no AGENTPTY_* env vars set, using defaults")

        try:
            config = cls(
                max_buffer_bytes=int(os.getenv(
                    "AGENTPTY_MAX_BUFFER_BYTES", str(cls.max_buffer_bytes)
                )),
                idle_threshold_seconds=float(os.getenv(
                    "AGENTPTY_IDLE_THRESHOLD", str(cls.idle_threshold_seconds)
                )),
                idle_check_interval_seconds=float(os.getenv(
                    "AGENTPTY_IDLE_CHECK_INTERVAL",
                    str(cls.idle_check_interval_seconds),
                )),
                stale_session_window_seconds=float(os.getenv(
                    "AGENTPTY_STALE_SESSION_WINDOW",
                    str(cls.stale_session_window_seconds),
                )),
                session_id_watch_seconds=float(os.getenv(
                    "AGENTPTY_SESSION_ID_WATCH",
                    str(cls.session_id_watch_seconds),
                )),
                post_spawn_delay_seconds=float(os.getenv(
                    "AGENTPTY_POST_SPAWN_DELAY",
                    str(cls.post_spawn_delay_seconds),
                )),
                default_cols=int(os.getenv(
                    "AGENTPTY_COLS", str(cls.default_cols)
                )),
                default_rows=int(os.getenv(
                    "AGENTPTY_ROWS", str(cls.default_rows)
                )),
                log_level=os.getenv("AGENTPTY_LOG_LEVEL", cls.log_level),
            )
        except ValueError as exc:
            raise ConfigError("environment", str(exc)) from exc

        logger.info(
            "ManagerConfig.from_env: buffer=%d idle=%.1fs sweep=%.1fs log_level=%s",
            config.max_buffer_bytes, config.idle_threshold_seconds,
            config.idle_check_interval_seconds, config.log_level,
        )
        return config
