# src/task_companion/cli/config_commands.py

from __future__ import annotations

import logging

from ..forms.paged import PagedSelector, select_one
from ..forms.session import respond
from ..forms.surface import Color, Embed, Response, Surface
from .commands import CommandContext, CommandRegistry, notice
from .task_commands import form_timeouts

logger = logging.getLogger(__name__)


def _set_room(ctx: CommandContext, key: str, title: str) -> Surface:
    if not ctx.room_id:
        return notice("エラー", "このコマンドはチャンネル内で実行してください", color=Color.DARK_RED)
    store = ctx.state.store
    store.set_config(key, ctx.room_id)
    store.commit()
    logger.info("%s set to %s by %s", key, ctx.room_id, ctx.user_id)
    return notice(title, f"チャンネル: {ctx.room_id}", color=Color.DARK_GREEN)


async def cmd_set_ping_channel(ctx: CommandContext) -> Surface | None:
    return _set_room(ctx, "ping_channel", "通知チャンネルを設定しました")


async def cmd_set_log_channel(ctx: CommandContext) -> Surface | None:
    return _set_room(ctx, "log_channel", "ログチャンネルを設定しました")


async def cmd_set_ping_role(ctx: CommandContext) -> Surface | None:
    targets = await ctx.transport.mention_targets(ctx.room_id)
    if not targets:
        return notice("メンションできる対象がありません")

    selector = PagedSelector(
        targets,
        label=lambda t: t[0],
        description=lambda t: t[1],
        page_size=int(getattr(ctx.state.settings, "page_size", 25)),
        placeholder="ロール",
        embed=Embed(title="通知でメンションするロールを選択"),
    )
    handle, (label, target_id) = await select_one(
        ctx.transport,
        ctx.invocation,
        selector,
        timeout=form_timeouts(ctx.state.settings).form,
        owner_id=ctx.user_id,
        name="set_ping_role",
    )

    store = ctx.state.store
    store.set_config("ping_role", target_id)
    store.commit()
    logger.info("ping_role set to %s by %s", target_id, ctx.user_id)

    await respond(
        ctx.transport,
        handle,
        Response.update(
            Surface(
                embed=Embed(
                    title="通知ロールを設定しました",
                    description=f"{label} ({target_id})",
                    color=Color.DARK_GREEN,
                )
            )
        ),
    )
    return None


def register(reg: CommandRegistry) -> None:
    reg.register("set_ping_channel", cmd_set_ping_channel, help_text="このチャンネルを通知先にします。")
    reg.register("set_ping_role", cmd_set_ping_role, help_text="通知でメンションするロールを設定します。")
    reg.register("set_log_channel", cmd_set_log_channel, help_text="このチャンネルをログ・バックアップ先にします。")
