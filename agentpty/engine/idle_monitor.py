"""Periodic sweep that hibernates quiet sessions.

Hibernation only tells the consumer it may release presentation
resources; the process and its replay buffer keep running. Waking is
lazy and happens in the session manager, never here.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from .models import Presentation

if TYPE_CHECKING:
    from .config import ManagerConfig
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class IdleMonitor:
    """Runs ``sweep()`` every ``idle_check_interval_seconds``."""

    def __init__(
        self,
        manager: SessionManager,
        config: ManagerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._manager = manager
        self._config = config or manager.config
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.debug(
            "Idle monitor started (threshold=%.1fs, interval=%.1fs)",
            self._config.idle_threshold_seconds,
            self._config.idle_check_interval_seconds,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.idle_check_interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.warning("Idle sweep failed", exc_info=True)

    def sweep(self) -> int:
        """Hibernate every qualifying session. Returns how many were hibernated."""
        idle_before = self._clock() - self._config.idle_threshold_seconds
        hibernated = 0
        for info in self._manager.list():
            if info.presentation is Presentation.HIBERNATED:
                continue
            try:
                if self._manager.hibernate(
                    info.task_id, info.generation, idle_before=idle_before,
                ):
                    hibernated += 1
            except Exception:
                logger.warning(
                    "Failed to hibernate session %s", info.task_id, exc_info=True,
                )
        return hibernated
