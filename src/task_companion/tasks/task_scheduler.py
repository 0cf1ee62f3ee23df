# src/task_companion/tasks/task_scheduler.py

from __future__ import annotations

"""
Daily reminder job.

Once a day at the configured hour:
- post tomorrow's tasks to the ping channel (mentioning the ping role),
- upload a backup of the data file to the log channel.

Routing (what a channel id or a mention means) belongs to the messenger.
To stop the job, cancel the coroutine/task.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, time, timedelta
from typing import Any

from ..core.ports import DomainStore, OutboundMessenger
from ..forms.surface import Color, Embed, Surface
from .formatting import format_datetime, task_field
from .task_models import Task

logger = logging.getLogger(__name__)

NOTIFY_TITLE = "タスク通知"
NOTIFY_DESCRIPTION = "明日のタスクをお知らせします！"


def next_run_at(now: datetime, hour: int) -> datetime:
    """Today at `hour`:00 if still ahead, else tomorrow at `hour`:00."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return target


def tomorrow_window(now: datetime) -> tuple[datetime, datetime]:
    """[tomorrow 00:00, day after tomorrow 00:00) in now's timezone."""
    start = datetime.combine(now.date() + timedelta(days=1), time(0, 0), tzinfo=now.tzinfo)
    return start, start + timedelta(days=1)


def tasks_due_tomorrow(tasks: Iterable[Task], now: datetime) -> list[Task]:
    start, end = tomorrow_window(now)
    return sorted((t for t in tasks if start <= t.at < end), key=lambda t: t.at)


def build_notification(tasks: list[Task], now: datetime, mention: str | None) -> Surface:
    return Surface(
        content=mention,
        embed=Embed(
            title=NOTIFY_TITLE,
            description=NOTIFY_DESCRIPTION,
            fields=tuple(task_field(t, now) for t in tasks),
            color=Color.RED,
        ),
    )


async def notify_tomorrow(store: DomainStore, messenger: OutboundMessenger, now: datetime) -> int:
    """Post tomorrow's tasks; returns how many were posted (0 = nothing sent)."""
    ping_channel = store.get_config("ping_channel")
    ping_role = store.get_config("ping_role")
    if not ping_channel:
        logger.warning("Ping channel not set; skipping notification")
        return 0
    if not ping_role:
        logger.warning("Ping role not set; skipping notification")
        return 0

    start, end = tomorrow_window(now)
    logger.info("Searching tasks: from %s to %s", start, end)

    due = tasks_due_tomorrow(store.list_tasks(), now)
    if not due:
        return 0

    await messenger.send_text(room_id=str(ping_channel), surface=build_notification(due, now, str(ping_role)))
    logger.info("Notified %d task(s) to %s", len(due), ping_channel)
    return len(due)


async def backup_data(store: DomainStore, messenger: OutboundMessenger, now: datetime) -> bool:
    log_channel = store.get_config("log_channel")
    if not log_channel:
        logger.warning("Log channel not set; skipping backup")
        return False

    # Make sure the file on disk matches memory before uploading it.
    store.commit()
    await messenger.send_file(
        room_id=str(log_channel),
        path=store.path,
        filename=f"{int(now.timestamp())}.json",
        surface=Surface(embed=Embed(title=f"データのバックアップ ({format_datetime(now)})")),
    )
    logger.info("Backup of %s sent to %s", store.path, log_channel)
    return True


async def run_daily_notifier(
    store: DomainStore,
    messenger: OutboundMessenger,
    *,
    now: Callable[[], datetime],
    notify_hour: int = 12,
    backup_enabled: bool = True,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> None:
    """
    Sleep until the next notify_hour, run the job, repeat.

    A failing run is logged; the loop keeps going.
    """
    while True:
        current = now()
        target = next_run_at(current, notify_hour)
        delay = max(0.0, (target - current).total_seconds())
        logger.info("Next notification run at %s (in %.0fs)", target, delay)

        await sleep(delay)

        run_at = now()
        try:
            await notify_tomorrow(store, messenger, run_at)
        except Exception:
            logger.exception("Daily notification failed")

        if backup_enabled:
            try:
                await backup_data(store, messenger, run_at)
            except Exception:
                logger.exception("Daily backup failed")
