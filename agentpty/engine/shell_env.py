"""User shell discovery and PATH enrichment.

A GUI-launched host process often inherits a minimal PATH. Agent
binaries installed through nvm, homebrew, or ~/.local/bin are only
visible on the PATH a login shell builds, so that PATH is resolved once
and cached.
"""
from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import subprocess
import sys

from .models import Availability

logger = logging.getLogger(__name__)

_cached_shell_path: str | None = None

_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+)")


def resolve_user_shell(override: str | None = None) -> str:
    """Return *override*, else the user's login shell, else a platform default."""
    if override:
        return override
    if sys.platform == "win32":
        return os.environ.get("COMSPEC", "cmd.exe")
    return os.environ.get("SHELL") or "/bin/bash"


def get_shell_startup_args(shell: str) -> list[str]:
    """Arguments that make *shell* read the user's profile on startup."""
    name = os.path.basename(shell)
    if name == "fish":
        return ["-i"]
    if name in {"bash", "zsh"}:
        return ["-l"]
    return []


def build_exec_command(binary: str, args: list[str]) -> str:
    """Command line typed into a shell to replace it with *binary*."""
    return shlex.join(["exec", binary, *args])


def get_user_shell_path(timeout: float = 3.0) -> str:
    """PATH as seen by the user's login shell, cached after the first call."""
    global _cached_shell_path
    if _cached_shell_path is not None:
        return _cached_shell_path

    shell = resolve_user_shell()
    name = os.path.basename(shell)
    if name == "fish":
        cmd = [shell, "-i", "-c", 'string join ":" $PATH']
    elif name in {"bash", "zsh"}:
        cmd = [shell, "-l", "-c", "echo $PATH"]
    else:
        logger.warning(
            "Unsupported shell %s; PATH enrichment may be incomplete", shell,
        )
        cmd = [shell, "-c", "echo $PATH"]

    try:
        out = subprocess.check_output(
            cmd, text=True, stderr=subprocess.DEVNULL, timeout=timeout,
        )
        # fish may print a greeting before the PATH line
        lines = out.strip().splitlines()
        _cached_shell_path = lines[-1] if lines else os.environ.get("PATH", "")
    except (OSError, subprocess.SubprocessError):
        logger.debug("Login shell PATH lookup failed", exc_info=True)
        _cached_shell_path = os.environ.get("PATH", "")
    return _cached_shell_path


def reset_shell_path_cache() -> None:
    global _cached_shell_path
    _cached_shell_path = None


def which_binary(name: str) -> str | None:
    """Find *name* on the enriched login-shell PATH."""
    return shutil.which(name, path=get_user_shell_path())


def check_binary(name: str, timeout: float = 5.0) -> Availability:
    """Probe ``<name> --version``; never raises."""
    path = which_binary(name)
    if path is None:
        return Availability(available=False)
    try:
        out = subprocess.check_output(
            [path, "--version"],
            text=True,
            stderr=subprocess.STDOUT,
            timeout=timeout,
        ).strip()
    except (OSError, subprocess.SubprocessError):
        logger.debug("%s --version failed", path, exc_info=True)
        return Availability(available=False, path=path)
    if not out:
        return Availability(available=False, path=path)
    match = _VERSION_RE.search(out)
    return Availability(
        available=True,
        path=path,
        version=match.group(1) if match else out,
    )
