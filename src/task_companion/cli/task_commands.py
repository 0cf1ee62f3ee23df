# src/task_companion/cli/task_commands.py

from __future__ import annotations

import logging

from ..core.errors import StaleReference
from ..forms.catalog import DomainSnapshot
from ..forms.paged import PagedSelector, select_one
from ..forms.session import respond
from ..forms.surface import Color, Embed, EmbedField, Response, Surface
from ..forms.task_form import FormTimeouts, collect_task
from ..tasks.formatting import format_datetime, task_field, task_title
from ..tasks.task_models import PartialTask, Task
from .commands import CommandContext, CommandRegistry, notice

logger = logging.getLogger(__name__)

DUPLICATE_NOTE = "同じ内容のタスクが既に登録されています（削除・編集はどちらか一方に適用されます）"


def form_timeouts(settings) -> FormTimeouts:
    return FormTimeouts(
        form=float(getattr(settings, "form_timeout_seconds", 1800.0)),
        picker=float(getattr(settings, "picker_timeout_seconds", 1800.0)),
        text=float(getattr(settings, "text_form_timeout_seconds", 1800.0)),
    )


def _snapshot(ctx: CommandContext) -> DomainSnapshot:
    return DomainSnapshot.capture(
        ctx.state.store,
        today=ctx.state.now().date(),
        lookahead_days=int(getattr(ctx.state.settings, "date_lookahead_days", 24)),
    )


def _task_selector(ctx: CommandContext, tasks: list[Task], title: str) -> PagedSelector[Task]:
    return PagedSelector(
        tasks,
        label=task_title,
        description=lambda t: format_datetime(t.at),
        sort_key=lambda t: t.at,
        reverse=True,
        page_size=int(getattr(ctx.state.settings, "page_size", 25)),
        placeholder="タスク",
        embed=Embed(title=title),
    )


async def cmd_add_task(ctx: CommandContext) -> Surface | None:
    store = ctx.state.store
    handle, task = await collect_task(
        ctx.transport,
        ctx.invocation,
        snapshot=_snapshot(ctx),
        defaults=PartialTask(),
        tz=ctx.state.tz,
        embed=Embed(title="タスクを追加します"),
        timeouts=form_timeouts(ctx.state.settings),
        owner_id=ctx.user_id,
    )

    duplicate = store.insert_task(task)
    store.commit()
    logger.info("Task added by %s: %r", ctx.user_id, task)

    await respond(
        ctx.transport,
        handle,
        Response.update(
            Surface(
                embed=Embed(
                    title="タスクを追加しました",
                    description=DUPLICATE_NOTE if duplicate else "",
                    fields=(task_field(task, ctx.state.now()),),
                    color=Color.DARK_GREEN,
                )
            )
        ),
    )
    return None


async def cmd_remove_task(ctx: CommandContext) -> Surface | None:
    store = ctx.state.store
    tasks = store.list_tasks()
    if not tasks:
        return notice("タスクがありません")

    handle, task = await select_one(
        ctx.transport,
        ctx.invocation,
        _task_selector(ctx, tasks, "削除するタスクを選択"),
        timeout=form_timeouts(ctx.state.settings).form,
        is_live=store.contains_task,
        owner_id=ctx.user_id,
        name="remove_task",
    )

    if not store.remove_task(task):
        raise StaleReference(task)
    store.commit()
    logger.info("Task removed by %s: %r", ctx.user_id, task)

    await respond(
        ctx.transport,
        handle,
        Response.update(
            Surface(
                embed=Embed(
                    title="削除しました",
                    fields=(task_field(task, ctx.state.now()),),
                    color=Color.DARK_RED,
                )
            )
        ),
    )
    return None


async def cmd_edit_task(ctx: CommandContext) -> Surface | None:
    store = ctx.state.store
    tasks = store.list_tasks()
    if not tasks:
        return notice("タスクがありません")

    timeouts = form_timeouts(ctx.state.settings)
    handle, old = await select_one(
        ctx.transport,
        ctx.invocation,
        _task_selector(ctx, tasks, "編集するタスクを選択"),
        timeout=timeouts.form,
        is_live=store.contains_task,
        owner_id=ctx.user_id,
        name="edit_task",
    )

    handle, new = await collect_task(
        ctx.transport,
        handle,
        snapshot=_snapshot(ctx),
        defaults=old.as_partial(),
        tz=ctx.state.tz,
        embed=Embed(title="タスクを編集します"),
        timeouts=timeouts,
        owner_id=ctx.user_id,
    )

    if not store.replace_task(old, new):
        raise StaleReference(old)
    store.commit()
    logger.info("Task edited by %s: %r -> %r", ctx.user_id, old, new)

    now = ctx.state.now()
    await respond(
        ctx.transport,
        handle,
        Response.update(
            Surface(
                embed=Embed(
                    title="タスクを編集しました",
                    fields=(task_field(old, now), EmbedField("↓", ""), task_field(new, now)),
                    color=Color.DARK_GREEN,
                )
            )
        ),
    )
    return None


def register(reg: CommandRegistry) -> None:
    reg.register("add_task", cmd_add_task, help_text="タスクを追加します。")
    reg.register("remove_task", cmd_remove_task, help_text="タスクを削除します。")
    reg.register("edit_task", cmd_edit_task, help_text="タスクを編集します。")
