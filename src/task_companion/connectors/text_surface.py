# src/task_companion/connectors/text_surface.py

from __future__ import annotations

"""
Plain-text rendering of Surfaces for transports without native components.

Selects are shown as numbered option lists and buttons as bracketed ids.
A user answers with:

    <select_id> <n>    pick option n (1-based) of a select menu
    <button_id>        press a button
"""

import logging

from ..forms.surface import (
    Action,
    Button,
    ButtonAction,
    Embed,
    ResponseHandle,
    Select,
    SelectAction,
    Surface,
    TextForm,
)

logger = logging.getLogger(__name__)


def render_embed_text(embed: Embed) -> list[str]:
    lines = [f"**{embed.title}**"]
    if embed.description:
        lines.append(embed.description)
    for f in embed.fields:
        lines.append(f"• {f.name}")
        if f.value:
            lines.append(f"  {f.value}")
    return lines


def render_surface_text(surface: Surface) -> str:
    lines: list[str] = []
    if surface.content:
        lines.append(surface.content)
    if surface.embed is not None:
        lines.extend(render_embed_text(surface.embed))

    for comp in surface.components:
        if isinstance(comp, Select):
            lines.append(f"[{comp.custom_id}] {comp.placeholder}".rstrip())
            for i, opt in enumerate(comp.options, start=1):
                mark = " *" if opt.default else ""
                desc = f" - {opt.description}" if opt.description else ""
                lines.append(f"  {i}. {opt.label}{desc}{mark}")
        elif isinstance(comp, Button):
            state = " (無効)" if comp.disabled else ""
            lines.append(f"[{comp.custom_id}] {comp.label}{state}")

    if surface.components:
        lines.append("→ 「<select> <番号>」またはボタン名で応答")
    return "\n".join(lines)


def render_text_form(form: TextForm) -> str:
    lines = [f"**{form.title}**", f"{form.label}: {form.placeholder}".rstrip(": ")]
    if form.default:
        lines.append(f"現在の値: {form.default}")
        lines.append("（「.」だけを送ると現在の値のまま）")
    return "\n".join(lines)


def parse_text_form_reply(text: str, form: TextForm) -> str:
    """'.' keeps the pre-filled value."""
    stripped = text.strip()
    if stripped == "." and form.default:
        return form.default
    return stripped


def parse_action(text: str, surface: Surface, handle: ResponseHandle, user_id: str | None) -> Action | None:
    """
    Map one reply line onto the surface's components.

    Returns None when the line does not address any component or names an
    option number that is not on the menu.
    """
    parts = text.strip().split(maxsplit=1)
    if not parts:
        return None

    comp = surface.component(parts[0])
    if isinstance(comp, Button):
        if len(parts) > 1:
            return None
        return ButtonAction(custom_id=comp.custom_id, handle=handle, user_id=user_id)

    if isinstance(comp, Select):
        if len(parts) != 2 or not parts[1].strip().isdigit():
            return None
        n = int(parts[1])
        if not 1 <= n <= len(comp.options):
            logger.debug("Option %d out of range for %s", n, comp.custom_id)
            return None
        value = comp.options[n - 1].value
        return SelectAction(custom_id=comp.custom_id, values=(value,), handle=handle, user_id=user_id)

    return None
