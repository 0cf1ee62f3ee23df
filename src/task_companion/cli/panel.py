# src/task_companion/cli/panel.py

from __future__ import annotations

"""
Persistent task panel.

/deploy_panel posts a message with two buttons. One listener per process
waits on it; every click opens an independent, paged task list for the user
who clicked (as a reply), and logs the view to the log channel.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..core.errors import FormError
from ..core.ports import OutboundMessenger, PromptTransport
from ..core.state import AppState
from ..forms.paged import NEXT, NEXT_LABEL, PREV, PREV_LABEL, page_window
from ..forms.session import FormSpec, Followup, InteractionSession, respond
from ..forms.surface import (
    Button,
    ButtonAction,
    ButtonStyle,
    Color,
    Embed,
    PromptRef,
    Response,
    Surface,
)
from ..tasks.formatting import task_field
from ..tasks.task_models import Task
from .commands import CommandContext, CommandRegistry, notice

logger = logging.getLogger(__name__)

SHOW_TASKS = "show_tasks"
SHOW_ARCHIVED_TASKS = "show_archived_tasks"

PANEL_TITLE = "タスク管理パネル"
SHOW_TASKS_LABEL = "タスク一覧"
SHOW_ARCHIVED_LABEL = "過去のタスク一覧"

VIEWER_TIMEOUT = 1800.0


def panel_surface() -> Surface:
    return Surface(
        embed=Embed(title=PANEL_TITLE, description="ボタンを押すとタスクを確認できます", color=Color.BLUE),
        components=(
            Button(SHOW_TASKS, SHOW_TASKS_LABEL, style=ButtonStyle.PRIMARY),
            Button(SHOW_ARCHIVED_TASKS, SHOW_ARCHIVED_LABEL, style=ButtonStyle.SECONDARY),
        ),
    )


def upcoming_tasks(tasks: Sequence[Task], now: datetime) -> list[Task]:
    return sorted((t for t in tasks if t.at >= now), key=lambda t: t.at)


def archived_tasks(tasks: Sequence[Task], now: datetime) -> list[Task]:
    return sorted((t for t in tasks if t.at < now), key=lambda t: t.at, reverse=True)


# ---- task list viewer ----


@dataclass(frozen=True, slots=True)
class TaskListView:
    """A paged task list; `load`/`now`/`select` are re-run on every render."""

    title: str
    load: Callable[[], Sequence[Task]]
    now: Callable[[], datetime]
    select: Callable[[Sequence[Task], datetime], list[Task]]
    page_size: int = 5

    def current(self) -> tuple[list[Task], datetime]:
        now = self.now()
        return self.select(self.load(), now), now


def viewer_form(view: TaskListView) -> FormSpec[int]:
    """Paged read-only list; the state is the page number."""
    size = max(1, view.page_size)

    def last_page(total: int) -> int:
        return max(0, -(-total // size) - 1)

    def render(page: int) -> Surface:
        tasks, now = view.current()
        total = len(tasks)
        # the list may have shrunk since the page was chosen
        page = min(page, last_page(total))
        win = page_window(total, page, size)
        if total:
            description = f"{page + 1}/{last_page(total) + 1} ページ"
        else:
            description = "タスクはありません"
        return Surface(
            embed=Embed(
                title=view.title,
                description=description,
                fields=tuple(task_field(t, now) for t in tasks[win.start:win.end]),
            ),
            components=(
                Button(PREV, PREV_LABEL, style=ButtonStyle.SECONDARY, disabled=not win.has_prev),
                Button(NEXT, NEXT_LABEL, style=ButtonStyle.SECONDARY, disabled=not win.has_next),
            ),
            ephemeral=True,
        )

    def on_prev(page: int) -> int:
        total = len(view.current()[0])
        return max(0, min(page, last_page(total)) - 1)

    def on_next(page: int) -> int:
        total = len(view.current()[0])
        page = min(page, last_page(total))
        return page + 1 if page_window(total, page, size).has_next else page

    return FormSpec(
        name="task_list",
        render=render,
        buttons={PREV: on_prev, NEXT: on_next},
        submit_id=None,
    )


async def _log_view(state: AppState, messenger: OutboundMessenger, user_id: str | None, title: str) -> None:
    log_channel = state.store.get_config("log_channel")
    if not log_channel:
        return
    try:
        await messenger.send_text(
            room_id=str(log_channel),
            surface=Surface(embed=Embed(title=f"{user_id}さんが{title}を確認しました")),
        )
    except Exception:
        logger.exception("Failed to log panel view to %s", log_channel)


async def show_task_list(
    state: AppState,
    transport: PromptTransport,
    messenger: OutboundMessenger,
    action: ButtonAction,
    *,
    archived: bool,
) -> None:
    if archived:
        title, select = SHOW_ARCHIVED_LABEL, archived_tasks
    else:
        title, select = SHOW_TASKS_LABEL, upcoming_tasks

    view = TaskListView(
        title=title,
        load=state.store.list_tasks,
        now=state.now,
        select=select,
        page_size=int(getattr(state.settings, "panel_page_size", 5)),
    )
    session = InteractionSession(
        transport,
        viewer_form(view),
        0,
        timeout=VIEWER_TIMEOUT,
        owner_id=action.user_id,
    )
    await _log_view(state, messenger, action.user_id, title)
    await session.run(Followup(action.handle))


async def listen_panel(
    state: AppState,
    transport: PromptTransport,
    messenger: OutboundMessenger,
    prompt: PromptRef,
) -> None:
    """Route panel clicks to viewers until cancelled."""
    logger.info("Panel listener started on %s", prompt)
    while True:
        action = await transport.next_action(prompt, None)
        if action is None:
            logger.info("Panel %s is gone; listener stops", prompt)
            return

        if isinstance(action, ButtonAction) and action.custom_id in (SHOW_TASKS, SHOW_ARCHIVED_TASKS):
            state.spawn(
                _run_viewer(state, transport, messenger, action, archived=action.custom_id == SHOW_ARCHIVED_TASKS),
                name=f"panel-view-{action.custom_id}",
            )
            continue

        try:
            await respond(transport, action.handle, Response.acknowledge())
        except FormError:
            logger.warning("Failed to acknowledge panel action %r", action.custom_id, exc_info=True)


async def _run_viewer(state, transport, messenger, action: ButtonAction, *, archived: bool) -> None:
    try:
        await show_task_list(state, transport, messenger, action, archived=archived)
    except FormError as e:
        logger.warning("Panel viewer failed: %s", e)


def start_panel_listener(
    state: AppState,
    transport: PromptTransport,
    messenger: OutboundMessenger,
    prompt: PromptRef,
) -> asyncio.Task:
    task = state.spawn(listen_panel(state, transport, messenger, prompt), name="panel-listener")
    state.replace_panel_listener(task)
    return task


def restore_panel(
    state: AppState,
    transport: PromptTransport,
    messenger: OutboundMessenger,
    *,
    transport_name: str,
) -> asyncio.Task | None:
    """Reattach the listener to the panel saved by a previous run (same transport only)."""
    raw: Any = state.store.get_config("panel_message")
    if not isinstance(raw, dict) or not raw.get("message_id"):
        return None
    if raw.get("transport") != transport_name:
        logger.info("Saved panel belongs to transport %r; not restoring", raw.get("transport"))
        return None

    prompt = PromptRef(message_id=str(raw["message_id"]), room_id=raw.get("room_id"))
    logger.info("Restoring panel listener on %s", prompt)
    return start_panel_listener(state, transport, messenger, prompt)


async def cmd_deploy_panel(ctx: CommandContext) -> Surface | None:
    prompt = await ctx.transport.send_prompt(ctx.invocation, panel_surface())

    store = ctx.state.store
    store.set_config(
        "panel_message",
        {
            "message_id": prompt.message_id,
            "room_id": prompt.room_id,
            "transport": getattr(ctx.transport, "name", None),
        },
    )
    store.commit()

    start_panel_listener(ctx.state, ctx.transport, ctx.messenger, prompt)
    logger.info("Panel deployed by %s at %s", ctx.user_id, prompt)

    reply = notice("パネルを設置しました", color=Color.DARK_GREEN)
    return Surface(embed=reply.embed, ephemeral=True)


def register(reg: CommandRegistry) -> None:
    reg.register("deploy_panel", cmd_deploy_panel, help_text="タスク一覧パネルを設置します。")
