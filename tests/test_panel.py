# tests/test_panel.py

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from task_companion.cli.commands import CommandRegistry, load_builtin_commands
from task_companion.cli.panel import (
    SHOW_ARCHIVED_TASKS,
    SHOW_TASKS,
    TaskListView,
    archived_tasks,
    restore_panel,
    show_task_list,
    upcoming_tasks,
    viewer_form,
)
from task_companion.forms.surface import Button, ButtonAction, Invocation, ResponseHandle, ResponseKind
from task_companion.tasks.task_models import Category, Subject, Task

from .conftest import NOW
from .fakes import Press

INVOCATION = Invocation(room_id="!r1:example.org", user_id="u1")


def _task(offset_hours: int) -> Task:
    return Task(Category.EVENT, Subject.unspecified(), f"t{offset_hours:+d}", NOW + timedelta(hours=offset_hours))


async def _drain(state) -> None:
    while state.background:
        await asyncio.gather(*list(state.background), return_exceptions=True)


def test_upcoming_and_archived_split() -> None:
    tasks = [_task(5), _task(-1), _task(0), _task(-30), _task(2)]
    assert [t.details for t in upcoming_tasks(tasks, NOW)] == ["t+0", "t+2", "t+5"]
    assert [t.details for t in archived_tasks(tasks, NOW)] == ["t-1", "t-30"]


def _view(tasks, page_size: int = 5, title: str = "タスク一覧") -> TaskListView:
    return TaskListView(title=title, load=lambda: tasks, now=lambda: NOW, select=upcoming_tasks, page_size=page_size)


def test_viewer_pages() -> None:
    form = viewer_form(_view([_task(h) for h in range(7)]))

    first = form.render(0)
    assert len(first.embed.fields) == 5
    assert first.embed.description == "1/2 ページ"
    assert first.ephemeral
    nxt = first.component("next")
    assert isinstance(nxt, Button) and not nxt.disabled

    page = form.buttons["next"](0)
    second = form.render(page)
    assert len(second.embed.fields) == 2
    assert form.buttons["next"](page) == page


def test_viewer_rereads_tasks_on_render() -> None:
    tasks = [_task(h) for h in range(1, 7)]
    form = viewer_form(_view(tasks))
    assert form.render(1).embed.description == "2/2 ページ"

    tasks.append(_task(7))
    assert [f.name for f in form.render(1).embed.fields] == ["【イベント】 t+6", "【イベント】 t+7"]

    # shrinking below the current page shows the last page that still exists
    del tasks[5:]
    shrunk = form.render(1)
    assert shrunk.embed.description == "1/1 ページ"
    assert len(shrunk.embed.fields) == 5
    assert form.buttons["prev"](1) == 0


def test_empty_viewer() -> None:
    form = viewer_form(_view([], title="過去のタスク一覧"))
    assert form.render(0).embed.description == "タスクはありません"


@pytest.mark.asyncio
async def test_viewer_follows_store_changes_between_pages(state, transport, messenger) -> None:
    for h in range(1, 7):
        state.store.insert_task(_task(h))
    transport.script = [Press("next", user_id="u2")]
    real_pop = transport._pop

    def pop(timeout=None):
        step = real_pop(timeout)
        if step is not None:
            state.store.insert_task(_task(7))
        return step

    transport._pop = pop  # type: ignore[method-assign]
    panel = await transport.send_prompt(INVOCATION, viewer_form(_view([])).render(0))
    action = ButtonAction(SHOW_TASKS, ResponseHandle((panel.message_id, 0)), user_id="u2")

    await show_task_list(state, transport, messenger, action, archived=False)

    viewer = transport.surfaces[transport.prompts[-1].message_id]
    assert viewer.embed.description == "2/2 ページ"
    assert [f.name for f in viewer.embed.fields] == ["【イベント】 t+6", "【イベント】 t+7"]


@pytest.mark.asyncio
async def test_viewer_opens_new_message_and_logs(state, transport, messenger) -> None:
    state.store.set_config("log_channel", "!log:example.org")
    state.store.insert_task(_task(-3))
    panel = await transport.send_prompt(INVOCATION, viewer_form(_view([])).render(0))
    action = ButtonAction(SHOW_ARCHIVED_TASKS, ResponseHandle((panel.message_id, 0)), user_id="u2")

    await show_task_list(state, transport, messenger, action, archived=True)

    assert transport.kinds() == [ResponseKind.MESSAGE]
    viewer = transport.surfaces[transport.prompts[-1].message_id]
    assert viewer.embed.title == "過去のタスク一覧"
    assert [f.name for f in viewer.embed.fields] == ["【イベント】 t-3"]
    [log] = messenger.sent
    assert log.room_id == "!log:example.org"
    assert log.surface.embed.title == "u2さんが過去のタスク一覧を確認しました"


@pytest.mark.asyncio
async def test_deploy_panel_routes_clicks(state, transport, messenger) -> None:
    registry = load_builtin_commands(CommandRegistry())
    transport.script = [Press("show_tasks", user_id="u3")]

    reply = await registry.handle(
        state, "/deploy_panel", transport=transport, messenger=messenger, invocation=INVOCATION
    )
    await _drain(state)

    assert reply.ephemeral
    saved = state.store.get_config("panel_message")
    assert saved == {"message_id": "m1", "room_id": INVOCATION.room_id, "transport": "fake"}
    # panel + one viewer opened as a reply
    assert len(transport.prompts) == 2
    assert transport.surfaces["m2"].embed.title == "タスク一覧"
    assert state.panel_listener is not None and state.panel_listener.done()


@pytest.mark.asyncio
async def test_restore_panel_only_for_same_transport(state, transport, messenger) -> None:
    assert restore_panel(state, transport, messenger, transport_name="fake") is None

    state.store.set_config("panel_message", {"message_id": "$evt", "room_id": "!r", "transport": "matrix"})
    assert restore_panel(state, transport, messenger, transport_name="fake") is None

    task = restore_panel(state, transport, messenger, transport_name="matrix")
    assert task is not None
    await _drain(state)
    assert state.panel_listener is task
    assert transport.timeouts == [None]
