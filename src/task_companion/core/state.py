# src/task_companion/core/state.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from .ports import DomainStore

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Process-wide state shared by connectors and commands."""

    settings: Any
    store: DomainStore

    # Panel button listener (at most one live at a time).
    panel_listener: asyncio.Task | None = None

    # Fire-and-forget tasks (panel viewers); references kept so they are not GC'd.
    background: set[asyncio.Task] = field(default_factory=set)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(getattr(self.settings, "timezone", "Asia/Tokyo"))

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self.background.add(task)

        def _done(t: asyncio.Task) -> None:
            self.background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("Background task %s failed", name, exc_info=exc)

        task.add_done_callback(_done)
        return task

    def replace_panel_listener(self, task: asyncio.Task | None) -> None:
        """Abort the previous listener before installing a new one."""
        old = self.panel_listener
        if old is not None and not old.done():
            old.cancel()
            logger.info("Previous panel listener cancelled.")
        self.panel_listener = task
