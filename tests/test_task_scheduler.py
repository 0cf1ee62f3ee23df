# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from task_companion.tasks.task_models import Category, Subject, Task
from task_companion.tasks.task_scheduler import (
    backup_data,
    next_run_at,
    notify_tomorrow,
    run_daily_notifier,
    tasks_due_tomorrow,
    tomorrow_window,
)

from .conftest import NOW, TOKYO
from .fakes import FakeMessenger


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, day, hour, minute, tzinfo=TOKYO)


def _task(at: datetime, details: str = "") -> Task:
    return Task(Category.EVENT, Subject.unspecified(), details, at)


def test_next_run_at() -> None:
    assert next_run_at(NOW, 12) == _at(20, 12)
    assert next_run_at(_at(20, 12), 12) == _at(21, 12)
    assert next_run_at(_at(20, 13), 12) == _at(21, 12)


def test_tomorrow_window_is_half_open() -> None:
    start, end = tomorrow_window(NOW)
    assert (start, end) == (_at(21, 0), _at(22, 0))

    tasks = [_task(_at(21, 0), "a"), _task(_at(21, 23, 59), "b"), _task(_at(22, 0), "c"), _task(_at(20, 23), "d")]
    assert [t.details for t in tasks_due_tomorrow(tasks, NOW)] == ["a", "b"]


@pytest.mark.asyncio
async def test_notify_requires_channel_and_role(store, messenger) -> None:
    store.insert_task(_task(_at(21, 9)))
    assert await notify_tomorrow(store, messenger, NOW) == 0

    store.set_config("ping_channel", "!ping:example.org")
    assert await notify_tomorrow(store, messenger, NOW) == 0
    assert messenger.sent == []


@pytest.mark.asyncio
async def test_notify_posts_tomorrows_tasks_with_mention(store, messenger) -> None:
    store.set_config("ping_channel", "!ping:example.org")
    store.set_config("ping_role", "@room")
    store.insert_task(_task(_at(21, 15), "後"))
    store.insert_task(_task(_at(21, 9), "先"))
    store.insert_task(_task(_at(25, 9), "来週"))

    assert await notify_tomorrow(store, messenger, NOW) == 2

    [msg] = messenger.sent
    assert msg.room_id == "!ping:example.org"
    assert msg.surface.content == "@room"
    assert msg.surface.embed is not None
    assert [f.name for f in msg.surface.embed.fields] == ["【イベント】 先", "【イベント】 後"]


@pytest.mark.asyncio
async def test_backup_uploads_data_file(store, messenger) -> None:
    assert await backup_data(store, messenger, NOW) is False

    store.set_config("log_channel", "!log:example.org")
    assert await backup_data(store, messenger, NOW) is True

    [sent] = messenger.files
    assert sent.room_id == "!log:example.org"
    assert sent.path == store.path
    assert sent.filename == f"{int(NOW.timestamp())}.json"


class FlakyMessenger(FakeMessenger):
    """Fails the first send_text."""

    async def send_text(self, *, room_id, surface) -> None:
        self.attempts = getattr(self, "attempts", 0) + 1
        if self.attempts == 1:
            raise ConnectionError("homeserver down")
        await super().send_text(room_id=room_id, surface=surface)


@pytest.mark.asyncio
async def test_daily_loop_survives_failures(store) -> None:
    store.set_config("ping_channel", "!ping:example.org")
    store.set_config("ping_role", "@room")
    store.set_config("log_channel", "!log:example.org")
    store.insert_task(_task(_at(21, 9)))
    messenger = FlakyMessenger()

    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)
        if len(delays) == 3:
            raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await run_daily_notifier(store, messenger, now=lambda: NOW, notify_hour=12, sleep=fake_sleep)

    assert delays[0] == 3 * 3600
    assert messenger.attempts == 2
    assert len(messenger.sent) == 1
    assert len(messenger.files) == 2
