# src/task_companion/forms/paged.py

from __future__ import annotations

"""
Choose one item out of a collection that may not fit one select menu.

The snapshot is sorted once at session start; option tokens are indexes into
that snapshot. Selection is page-local: paging clears it. After submit the
chosen item is checked against the live collection (StaleReference if gone).
"""

import logging
import time as _time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from ..core.errors import InvalidSelection, StaleReference, UserAbandoned
from ..core.ports import PromptTransport
from .session import FormSpec, InteractionSession, Opener, single_value
from .surface import Button, ButtonStyle, Embed, ResponseHandle, Select, SelectOption, Surface

logger = logging.getLogger(__name__)

T = TypeVar("T")

ITEM = "item"
PREV = "prev"
NEXT = "next"
SUBMIT = "submit"

PREV_LABEL = "前のページ"
NEXT_LABEL = "次のページ"
SUBMIT_LABEL = "送信"

DEFAULT_PAGE_SIZE = 25


@dataclass(frozen=True, slots=True)
class PageWindow:
    start: int
    end: int
    has_prev: bool
    has_next: bool


def page_window(total: int, page: int, page_size: int) -> PageWindow:
    """Slice bounds for `page`; Next only when more than a page remains after skipping."""
    start = max(0, page) * page_size
    remaining = max(0, total - start)
    return PageWindow(
        start=start,
        end=start + min(remaining, page_size),
        has_prev=page > 0,
        has_next=remaining > page_size,
    )


@dataclass(frozen=True, slots=True)
class PageState:
    page: int = 0
    selected: int | None = None  # index into the snapshot


class PagedSelector(Generic[T]):
    """Render/reduce logic for one paged single-choice form."""

    def __init__(
        self,
        items: Iterable[T],
        *,
        label: Callable[[T], str],
        description: Callable[[T], str] | None = None,
        sort_key: Callable[[T], Any] | None = None,
        reverse: bool = False,
        page_size: int = DEFAULT_PAGE_SIZE,
        placeholder: str = "",
        embed: Embed | None = None,
    ) -> None:
        snapshot = list(items)
        if sort_key is not None:
            snapshot.sort(key=sort_key, reverse=reverse)
        self.items: tuple[T, ...] = tuple(snapshot)
        self._label = label
        self._description = description
        self._page_size = max(1, int(page_size))
        self._placeholder = placeholder
        self._embed = embed

    def window(self, state: PageState) -> PageWindow:
        return page_window(len(self.items), state.page, self._page_size)

    def render(self, state: PageState) -> Surface:
        win = self.window(state)
        options = tuple(
            SelectOption(
                label=self._label(self.items[i]),
                value=str(i),
                default=(state.selected == i),
                description=self._description(self.items[i]) if self._description else None,
            )
            for i in range(win.start, win.end)
        )
        return Surface(
            embed=self._embed,
            components=(
                Select(ITEM, options, placeholder=self._placeholder),
                Button(PREV, PREV_LABEL, style=ButtonStyle.SECONDARY, disabled=not win.has_prev),
                Button(NEXT, NEXT_LABEL, style=ButtonStyle.SECONDARY, disabled=not win.has_next),
                Button(SUBMIT, SUBMIT_LABEL, style=ButtonStyle.PRIMARY, disabled=state.selected is None),
            ),
        )

    def on_select(self, state: PageState, values: Sequence[str]) -> PageState:
        raw = single_value(ITEM, values)
        win = self.window(state)
        if not raw.isdigit() or not win.start <= int(raw) < win.end:
            raise InvalidSelection(ITEM, raw)
        return replace(state, selected=int(raw))

    def on_prev(self, state: PageState) -> PageState:
        return PageState(page=max(0, state.page - 1), selected=None)

    def on_next(self, state: PageState) -> PageState:
        if not self.window(state).has_next:
            return replace(state, selected=None)
        return PageState(page=state.page + 1, selected=None)

    def resolve(self, state: PageState) -> T:
        """Checked lookup of the selected snapshot item."""
        idx = state.selected
        if idx is None or not 0 <= idx < len(self.items):
            raise InvalidSelection(ITEM, idx)
        return self.items[idx]

    def form(self, name: str = "select_item") -> FormSpec[PageState]:
        return FormSpec(
            name=name,
            render=self.render,
            selects={ITEM: self.on_select},
            buttons={PREV: self.on_prev, NEXT: self.on_next},
            can_submit=lambda s: s.selected is not None,
            submit_id=SUBMIT,
        )


async def select_one(
    transport: PromptTransport,
    opener: Opener,
    selector: PagedSelector[T],
    *,
    timeout: float,
    is_live: Callable[[T], bool] | None = None,
    owner_id: str | None = None,
    name: str = "select_item",
    clock: Callable[[], float] = _time.monotonic,
) -> tuple[ResponseHandle, T]:
    """
    Run a paged single-choice session.

    is_live(item) is checked after submit; a False result raises StaleReference.
    """
    session = InteractionSession(
        transport,
        selector.form(name),
        PageState(),
        timeout=timeout,
        owner_id=owner_id,
        clock=clock,
    )
    result = await session.run(opener)
    if not result.submitted or result.handle is None:
        raise UserAbandoned(name)

    item = selector.resolve(result.state)
    if is_live is not None and not is_live(item):
        logger.info("Selection %r is no longer in the live collection", item)
        raise StaleReference(item)
    return result.handle, item
