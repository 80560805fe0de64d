"""YAML configuration loader.

Loads a single YAML file that overrides env vars and configures the
per-mode agent commands. When no YAML is provided, ManagerConfig.from_env()
works on its own.

Example YAML:
    manager:
      max_buffer_bytes: 2097152
      idle_threshold_seconds: 120
      idle_check_interval_seconds: 15
      stale_session_window_seconds: 5

    modes:
      claude-code:
        command: /opt/bin/claude
        flags: --model opus
      codex:
        flags: ["--sandbox", "workspace-write"]
      terminal:
        command: /bin/zsh
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from .config import ManagerConfig
from .errors import ConfigError
from .flag_parser import coerce_flags
from .models import TerminalMode

logger = logging.getLogger(__name__)


@dataclass
class ModeConfig:
    """Command override and extra flags for one terminal mode."""
    command: str | None = None
    flags: list[str] = field(default_factory=list)


@dataclass
class AgentPtyConfig:
    """Complete parsed YAML configuration."""
    manager: ManagerConfig
    modes: dict[str, ModeConfig] = field(default_factory=dict)


def _parse_manager(raw: dict, base: ManagerConfig, source: str) -> ManagerConfig:
    known = {f.name: f for f in fields(ManagerConfig)}
    values = {f: getattr(base, f) for f in known}
    for key, value in raw.items():
        if key not in known:
            logger.warning("load_yaml_config: ignoring unknown manager key %r in %s", key, source)
            continue
        default = values[key]
        try:
            values[key] = type(default)(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(source, f"manager.{key}: {exc}") from exc
    return ManagerConfig(**values)


def _parse_modes(raw: dict, source: str) -> dict[str, ModeConfig]:
    valid = {m.value for m in TerminalMode}
    modes: dict[str, ModeConfig] = {}
    for name, mode_raw in raw.items():
        if name not in valid:
            raise ConfigError(
                source,
                f"unknown mode {name!r} (expected one of {', '.join(sorted(valid))})",
            )
        mode_raw = mode_raw or {}
        if not isinstance(mode_raw, dict):
            raise ConfigError(source, f"modes.{name} must be a mapping")
        modes[name] = ModeConfig(
            command=mode_raw.get("command") or None,
            flags=coerce_flags(mode_raw.get("flags")),
        )
    return modes


def load_yaml_config(
    path: str | Path,
    base: ManagerConfig | None = None,
) -> AgentPtyConfig:
    """Load and parse a YAML config file.

    Values in the ``manager:`` section override *base* (defaults to
    ``ManagerConfig.from_env()``), so precedence is YAML > env > defaults.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: loading config from %s (exists=%s)",
        path, path.exists(),
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path.absolute())
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise ConfigError(str(path), f"YAML parse error: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(str(path), "top level must be a mapping")

    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(sorted(raw)) if raw else "(empty)",
    )

    manager = _parse_manager(
        raw.get("manager") or {},
        base if base is not None else ManagerConfig.from_env(),
        str(path),
    )
    modes = _parse_modes(raw.get("modes") or {}, str(path))
    return AgentPtyConfig(manager=manager, modes=modes)
