# src/task_companion/forms/diff.py

from __future__ import annotations

"""Line-oriented before/after listing used in confirmation messages."""

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")

ADDED = "+ "
REMOVED = "- "


def diff_lines(
    before: Iterable[T],
    after: Iterable[T],
    *,
    highlight: Callable[[T], bool] | None = None,
    sort_key: Callable[[T], Any] | None = None,
    fmt: Callable[[T], str] = str,
) -> list[str]:
    """
    One line per element of before ∪ after, in canonical order.

    Canonical order is `sort_key` when given (the order the collection is
    iterated everywhere else), otherwise before's order followed by new
    elements in after's order. Prefix is "+ " for added, "- " for removed,
    nothing for unchanged. With `highlight`, only elements it accepts get
    their prefix.
    """
    before_list = list(before)
    after_list = list(after)

    merged = list(before_list)
    for item in after_list:
        if item not in merged:
            merged.append(item)
    if sort_key is not None:
        merged.sort(key=sort_key)

    lines = []
    for item in merged:
        prefix = ""
        if highlight is None or highlight(item):
            if item not in before_list:
                prefix = ADDED
            elif item not in after_list:
                prefix = REMOVED
        lines.append(f"{prefix}{fmt(item)}")
    return lines


def render_diff(
    before: Iterable[T],
    after: Iterable[T],
    highlight: Callable[[T], bool] | None = None,
    *,
    sort_key: Callable[[T], Any] | None = None,
    fmt: Callable[[T], str] = str,
) -> str:
    """Fenced ```diff block (fixed width in every client that renders Markdown)."""
    lines = diff_lines(before, after, highlight=highlight, sort_key=sort_key, fmt=fmt)
    return "```diff\n" + "\n".join(lines) + "\n```"
