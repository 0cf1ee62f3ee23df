# src/task_companion/cli/catalog_commands.py

from __future__ import annotations

"""Commands that edit the subject list and the suggested-time list."""

import logging
import re
from datetime import time

from ..core.errors import StaleReference
from ..forms.diff import render_diff
from ..forms.paged import PagedSelector, select_one
from ..forms.session import respond
from ..forms.subflows import pick_time
from ..forms.surface import Color, Embed, Response, Surface
from ..tasks.formatting import format_time
from .commands import CommandContext, CommandRegistry, notice
from .task_commands import form_timeouts

logger = logging.getLogger(__name__)

# "数学, 英語、国語" -> ["数学", "英語", "国語"]
_SUBJECT_SPLIT = re.compile(r"[,、，]")


def parse_subjects(raw: str) -> list[str]:
    return [s.strip() for s in _SUBJECT_SPLIT.split(raw or "") if s.strip()]


def _suggest_time_line(item: tuple[time, str]) -> str:
    at, label = item
    return f"{label}: {format_time(at)}"


async def cmd_add_subjects(ctx: CommandContext) -> Surface | None:
    subjects = parse_subjects(ctx.args)
    if not subjects:
        return notice("教科を指定してください", "例: /add_subjects 数学,英語")

    store = ctx.state.store
    before = store.list_subjects()
    added = store.add_subjects(subjects)
    store.commit()
    logger.info("Subjects added by %s: %s", ctx.user_id, added)

    return notice(
        "追加しました",
        render_diff(before, store.list_subjects(), sort_key=str),
        color=Color.DARK_GREEN,
    )


async def cmd_remove_subject(ctx: CommandContext) -> Surface | None:
    store = ctx.state.store
    subjects = store.list_subjects()
    if not subjects:
        return notice("教科が登録されていません")

    selector = PagedSelector(
        subjects,
        label=str,
        sort_key=str,
        page_size=int(getattr(ctx.state.settings, "page_size", 25)),
        placeholder="教科",
        embed=Embed(title="削除する教科を選択"),
    )
    handle, subject = await select_one(
        ctx.transport,
        ctx.invocation,
        selector,
        timeout=form_timeouts(ctx.state.settings).form,
        is_live=lambda s: s in store.list_subjects(),
        owner_id=ctx.user_id,
        name="remove_subject",
    )

    before = store.list_subjects()
    if not store.remove_subject(subject):
        raise StaleReference(subject)
    store.commit()
    logger.info("Subject removed by %s: %s", ctx.user_id, subject)

    await respond(
        ctx.transport,
        handle,
        Response.update(
            Surface(
                embed=Embed(
                    title="削除しました",
                    description=render_diff(before, store.list_subjects(), sort_key=str),
                    color=Color.DARK_RED,
                )
            )
        ),
    )
    return None


async def cmd_add_suggest_time(ctx: CommandContext) -> Surface | None:
    label = ctx.args.strip()
    if not label:
        return notice("ラベルを指定してください", "例: /add_suggest_time 朝")

    store = ctx.state.store
    handle, at = await pick_time(
        ctx.transport,
        ctx.invocation,
        timeout=form_timeouts(ctx.state.settings).picker,
        owner_id=ctx.user_id,
        embed=Embed(title=f"「{label}」の時刻を選択"),
    )

    before = store.list_suggest_times()
    store.put_suggest_time(at, label)
    store.commit()
    logger.info("Suggested time set by %s: %s=%s", ctx.user_id, label, format_time(at))

    await respond(
        ctx.transport,
        handle,
        Response.update(
            Surface(
                embed=Embed(
                    title=f"{label}({format_time(at)})を追加しました",
                    description=render_diff(
                        before,
                        store.list_suggest_times(),
                        sort_key=lambda item: item[0],
                        fmt=_suggest_time_line,
                    ),
                    color=Color.DARK_GREEN,
                )
            )
        ),
    )
    return None


async def cmd_remove_suggest_time(ctx: CommandContext) -> Surface | None:
    store = ctx.state.store
    items = store.list_suggest_times()
    if not items:
        return notice("候補時刻が登録されていません")

    selector = PagedSelector(
        items,
        label=lambda item: f"{item[1]} ({format_time(item[0])})",
        sort_key=lambda item: item[0],
        page_size=int(getattr(ctx.state.settings, "page_size", 25)),
        placeholder="時刻",
        embed=Embed(title="削除する候補時刻を選択"),
    )
    handle, item = await select_one(
        ctx.transport,
        ctx.invocation,
        selector,
        timeout=form_timeouts(ctx.state.settings).form,
        is_live=lambda i: i in store.list_suggest_times(),
        owner_id=ctx.user_id,
        name="remove_suggest_time",
    )

    before = store.list_suggest_times()
    if store.remove_suggest_time(item[0]) is None:
        raise StaleReference(item)
    store.commit()
    logger.info("Suggested time removed by %s: %s", ctx.user_id, _suggest_time_line(item))

    await respond(
        ctx.transport,
        handle,
        Response.update(
            Surface(
                embed=Embed(
                    title="削除しました",
                    description=render_diff(
                        before,
                        store.list_suggest_times(),
                        sort_key=lambda i: i[0],
                        fmt=_suggest_time_line,
                    ),
                    color=Color.DARK_RED,
                )
            )
        ),
    )
    return None


def register(reg: CommandRegistry) -> None:
    reg.register("add_subjects", cmd_add_subjects, help_text="教科を追加します（カンマ区切り）。")
    reg.register("remove_subject", cmd_remove_subject, help_text="教科を削除します。")
    reg.register("add_suggest_time", cmd_add_suggest_time, help_text="候補時刻を追加します: /add_suggest_time <ラベル>")
    reg.register("remove_suggest_time", cmd_remove_suggest_time, help_text="候補時刻を削除します。")
