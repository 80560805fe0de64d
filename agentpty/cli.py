"""CLI entry point for driving a session from a real terminal.

Usage:
    agentpty run --mode terminal
    agentpty run --mode claude-code --resume 0b4e...  --cwd ~/src/project
    agentpty doctor
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import shutil
import signal
import sys
import termios
import tty
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.table import Table

from agentpty.engine.adapters.registry import build_adapter_registry
from agentpty.engine.config import ManagerConfig
from agentpty.engine.errors import AgentPtyError
from agentpty.engine.idle_monitor import IdleMonitor
from agentpty.engine.models import CodeMode, TerminalMode
from agentpty.engine.session_manager import SessionManager
from agentpty.engine.yaml_config import load_yaml_config
from agentpty.events import EventCategory, EventHub

logger = logging.getLogger(__name__)

# Detach from the session: Ctrl-]
DETACH_KEY = b"\x1d"


def _resolve_level(verbose: bool, level_name: str) -> int:
    if verbose:
        return logging.DEBUG
    return getattr(logging, level_name.upper(), logging.INFO)


def _configure_logging(verbose: bool, log_file: str | None, level_name: str) -> None:
    level = _resolve_level(verbose, level_name)
    if log_file is None:
        # The child owns the terminal; only surface problems on stderr
        logging.basicConfig(
            level=max(level, logging.WARNING),
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
        )
        return

    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    handler = RotatingFileHandler(
        path, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    ))
    root.addHandler(handler)


def _apply_log_level(verbose: bool, log_file: str | None, level_name: str) -> None:
    """Re-level the root logger once the full config (YAML included) is known."""
    level = _resolve_level(verbose, level_name)
    if log_file is None:
        level = max(level, logging.WARNING)
    logging.getLogger().setLevel(level)


def _build_manager(config_path: str | None) -> SessionManager:
    if config_path:
        cfg = load_yaml_config(config_path)
        return SessionManager(
            config=cfg.manager,
            hub=EventHub(),
            adapters=build_adapter_registry(cfg.modes),
        )
    return SessionManager(config=ManagerConfig.from_env(), hub=EventHub())


async def _run_session(manager: SessionManager, args: argparse.Namespace) -> int:
    loop = asyncio.get_running_loop()
    task_id = args.task_id
    finished: asyncio.Future[int] = loop.create_future()
    stdout = sys.stdout.buffer

    def on_data(event) -> None:
        stdout.write(event.chunk)
        stdout.flush()

    def on_exit(event) -> None:
        if not finished.done():
            finished.set_result(event.exit_code)

    def on_notice(event) -> None:
        logger.warning("%s: %s", event.event_type, event)

    subscriptions = [
        manager.subscribe(EventCategory.DATA, task_id, on_data),
        manager.subscribe(EventCategory.EXIT, task_id, on_exit),
        manager.subscribe(EventCategory.SESSION_NOT_FOUND, task_id, on_notice),
        manager.subscribe(EventCategory.SESSION_DETECTED, task_id, on_notice),
    ]

    monitor = IdleMonitor(manager)
    monitor.start()
    fresh_id = args.session_id
    if fresh_id is None and args.resume is None and args.mode == TerminalMode.CLAUDE_CODE.value:
        fresh_id = str(uuid.uuid4())

    result = await manager.create(
        task_id,
        os.path.abspath(os.path.expanduser(args.cwd)),
        mode=args.mode,
        resume_id=args.resume,
        fresh_session_id=fresh_id,
        shell_override=args.shell,
        initial_prompt=args.prompt,
        code_mode=CodeMode(args.code_mode) if args.code_mode else None,
        skip_permissions=args.skip_permissions,
    )
    if not result.success:
        await monitor.stop()
        print(f"agentpty: {result.error}", file=sys.stderr)
        return 1

    stdin_fd = sys.stdin.fileno()
    saved_attrs = None
    if os.isatty(stdin_fd):
        saved_attrs = termios.tcgetattr(stdin_fd)
        tty.setraw(stdin_fd)

    def forward_input() -> None:
        data = os.read(stdin_fd, 4096)
        if not data or DETACH_KEY in data:
            if not finished.done():
                manager.kill(task_id)
                finished.set_result(0)
            return
        manager.write(task_id, data)

    def sync_size() -> None:
        size = shutil.get_terminal_size()
        manager.resize(task_id, size.columns, size.lines)

    loop.add_reader(stdin_fd, forward_input)
    loop.add_signal_handler(signal.SIGWINCH, sync_size)
    sync_size()
    try:
        return await finished
    finally:
        loop.remove_reader(stdin_fd)
        loop.remove_signal_handler(signal.SIGWINCH)
        if saved_attrs is not None:
            termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved_attrs)
        for sub in subscriptions:
            sub.unsubscribe()
        await monitor.stop()
        manager.kill_all()


async def _doctor(manager: SessionManager) -> int:
    table = Table(title="agentpty doctor")
    table.add_column("Mode")
    table.add_column("Binary")
    table.add_column("Available")
    table.add_column("Version")
    table.add_column("Path")

    missing = 0
    for mode in TerminalMode:
        adapter = manager.adapters.get(mode)
        status = await manager.check_availability(mode)
        if not status.available:
            missing += 1
        table.add_row(
            mode.value,
            adapter.binary,
            "[green]yes[/green]" if status.available else "[red]no[/red]",
            status.version or "-",
            status.path or "-",
        )
    Console().print(table)
    return 1 if missing else 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="agentpty",
        description="Run interactive AI-agent CLIs in managed pty sessions",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file (manager settings and per-mode commands)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Write logs to a rotating file instead of stderr",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Attach this terminal to a new session")
    run.add_argument(
        "--mode", "-m",
        choices=[m.value for m in TerminalMode],
        default=TerminalMode.TERMINAL.value,
    )
    run.add_argument("--cwd", default=".", help="Working directory (default: current dir)")
    run.add_argument("--task-id", default="cli", help="Task id for the session")
    run.add_argument("--resume", default=None, help="Conversation id to resume")
    run.add_argument("--session-id", default=None, help="Conversation id for a fresh session")
    run.add_argument("--shell", default=None, help="Shell override")
    run.add_argument("--prompt", default=None, help="Initial prompt for the agent")
    run.add_argument(
        "--code-mode",
        choices=[m.value for m in CodeMode],
        default=None,
    )
    run.add_argument(
        "--skip-permissions",
        action="store_true",
        help="Let the agent run tools without asking",
    )

    sub.add_parser("doctor", help="Check which agent CLIs are installed")

    args = parser.parse_args()
    _configure_logging(
        args.verbose, args.log_file,
        os.getenv("AGENTPTY_LOG_LEVEL", ManagerConfig.log_level),
    )

    try:
        manager = _build_manager(args.config)
    except (AgentPtyError, FileNotFoundError) as exc:
        print(f"agentpty: {exc}", file=sys.stderr)
        sys.exit(2)
    _apply_log_level(args.verbose, args.log_file, manager.config.log_level)

    try:
        if args.command == "doctor":
            code = asyncio.run(_doctor(manager))
        else:
            code = asyncio.run(_run_session(manager, args))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
