# src/task_companion/forms/subflows.py

from __future__ import annotations

"""
Nested pickers that resolve one field on the same message.

Every sub-flow takes the unused handle of the previous terminal action,
replaces that message's surface, and returns the handle of its own terminal
action together with the resolved value.
"""

import json
import logging
import time as _time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import date, time, timedelta
from typing import Any, TypeVar

from ..core.errors import FormError, HandleConsumed, InvalidSelection, TransportFailure, UserAbandoned
from ..core.ports import PromptTransport
from ..tasks.task_models import DEFER
from .session import FormSpec, InteractionSession, single_value
from .surface import (
    Button,
    ButtonStyle,
    Embed,
    ResponseHandle,
    Select,
    SelectOption,
    Surface,
    TextForm,
    TextFormReply,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

YEAR = "year"
MONTH = "month"
DAY = "day"
HOUR = "hour"
MINUTE = "minute"
SUBMIT = "submit"
SUBMIT_LABEL = "送信"

MINUTE_CHOICES = (*range(0, 60, 5), 59)


# ---- calendar helpers ----


def days_in_month(year: int, month: int) -> int:
    """Last day of the month: the day before the 1st of the following month."""
    if month == 12:
        first_of_next = date(year + 1, 1, 1)
    else:
        first_of_next = date(year, month + 1, 1)
    return (first_of_next - timedelta(days=1)).day


def day_range(d: date) -> range:
    """Day options for the half-month `d` falls in."""
    if d.day <= 15:
        return range(1, 16)
    return range(16, days_in_month(d.year, d.month) + 1)


def half_month_label(month: int, first_half: bool) -> str:
    return f"{month}月{'前半(〜15)' if first_half else '後半(16〜)'}"


def _half_token(month: int, first_half: bool) -> str:
    return json.dumps([month, first_half])


# ---- date picker ----


@dataclass(frozen=True, slots=True)
class DatePickerState:
    value: date
    first_year: int


def _date_form(embed: Embed | None) -> FormSpec[DatePickerState]:
    def render(state: DatePickerState) -> Surface:
        d = state.value
        first_half = d.day <= 15
        years = range(state.first_year, state.first_year + 3)
        year_select = Select(
            YEAR,
            tuple(SelectOption(str(y), str(y), default=(y == d.year)) for y in years),
            placeholder="年",
        )
        month_select = Select(
            MONTH,
            tuple(
                SelectOption(
                    half_month_label(m, half),
                    _half_token(m, half),
                    default=(m == d.month and half == first_half),
                )
                for m in range(1, 13)
                for half in (True, False)
            ),
            placeholder="月",
        )
        day_select = Select(
            DAY,
            tuple(SelectOption(str(i), str(i), default=(i == d.day)) for i in day_range(d)),
            placeholder="日",
        )
        submit = Button(SUBMIT, SUBMIT_LABEL, style=ButtonStyle.PRIMARY)
        return Surface(embed=embed, components=(year_select, month_select, day_select, submit))

    def on_year(state: DatePickerState, values) -> DatePickerState:
        raw = single_value(YEAR, values)
        if not raw.isdigit() or not (state.first_year <= int(raw) < state.first_year + 3):
            raise InvalidSelection(YEAR, raw)
        year = int(raw)
        d = state.value
        # Feb 29 -> Feb 28 when moving to a non-leap year.
        day = min(d.day, days_in_month(year, d.month))
        return replace(state, value=d.replace(year=year, day=day))

    def on_month(state: DatePickerState, values) -> DatePickerState:
        raw = single_value(MONTH, values)
        try:
            month, first_half = json.loads(raw)
        except (ValueError, TypeError) as exc:
            raise InvalidSelection(MONTH, raw) from exc
        if type(month) is not int or not 1 <= month <= 12 or not isinstance(first_half, bool):
            raise InvalidSelection(MONTH, raw)
        return replace(state, value=state.value.replace(month=month, day=1 if first_half else 16))

    def on_day(state: DatePickerState, values) -> DatePickerState:
        raw = single_value(DAY, values)
        if not raw.isdigit() or int(raw) not in day_range(state.value):
            raise InvalidSelection(DAY, raw)
        return replace(state, value=state.value.replace(day=int(raw)))

    def quiet(custom_id: str, old: DatePickerState, new: DatePickerState) -> bool:
        # Year/day never change the option sets, unless a year change moves
        # the end of February.
        return custom_id in (YEAR, DAY) and day_range(old.value) == day_range(new.value)

    return FormSpec(
        name="select_date",
        render=render,
        selects={YEAR: on_year, MONTH: on_month, DAY: on_day},
        submit_id=SUBMIT,
        quiet=quiet,
    )


async def pick_date(
    transport: PromptTransport,
    handle: ResponseHandle,
    *,
    today: date,
    timeout: float,
    owner_id: str | None = None,
    embed: Embed | None = None,
    clock: Callable[[], float] = _time.monotonic,
) -> tuple[ResponseHandle, date]:
    """Cascading year -> half-month -> day picker. Starts at `today`."""
    session = InteractionSession(
        transport,
        _date_form(embed),
        DatePickerState(value=today, first_year=today.year),
        timeout=timeout,
        owner_id=owner_id,
        clock=clock,
    )
    result = await session.run(handle)
    if not result.submitted or result.handle is None:
        raise UserAbandoned("select_date")
    return result.handle, result.state.value


# ---- time picker ----


@dataclass(frozen=True, slots=True)
class TimePickerState:
    hour: int | None = None
    minute: int | None = None


def _time_form(embed: Embed | None) -> FormSpec[TimePickerState]:
    def render(state: TimePickerState) -> Surface:
        hour_select = Select(
            HOUR,
            tuple(SelectOption(str(h), str(h), default=(state.hour == h)) for h in range(24)),
            placeholder="時",
        )
        minute_select = Select(
            MINUTE,
            tuple(SelectOption(str(m), str(m), default=(state.minute == m)) for m in MINUTE_CHOICES),
            placeholder="分",
        )
        submit = Button(
            SUBMIT,
            SUBMIT_LABEL,
            style=ButtonStyle.PRIMARY,
            disabled=state.hour is None or state.minute is None,
        )
        return Surface(embed=embed, components=(hour_select, minute_select, submit))

    def on_hour(state: TimePickerState, values) -> TimePickerState:
        raw = single_value(HOUR, values)
        if not raw.isdigit() or int(raw) not in range(24):
            raise InvalidSelection(HOUR, raw)
        return replace(state, hour=int(raw))

    def on_minute(state: TimePickerState, values) -> TimePickerState:
        raw = single_value(MINUTE, values)
        if not raw.isdigit() or int(raw) not in MINUTE_CHOICES:
            raise InvalidSelection(MINUTE, raw)
        return replace(state, minute=int(raw))

    return FormSpec(
        name="select_time",
        render=render,
        selects={HOUR: on_hour, MINUTE: on_minute},
        can_submit=lambda s: s.hour is not None and s.minute is not None,
        submit_id=SUBMIT,
    )


async def pick_time(
    transport: PromptTransport,
    opener,
    *,
    timeout: float,
    owner_id: str | None = None,
    embed: Embed | None = None,
    clock: Callable[[], float] = _time.monotonic,
) -> tuple[ResponseHandle, time]:
    """Hour + minute picker. `opener` may also be an Invocation (standalone use)."""
    session = InteractionSession(
        transport,
        _time_form(embed),
        TimePickerState(),
        timeout=timeout,
        owner_id=owner_id,
        clock=clock,
    )
    result = await session.run(opener)
    state = result.state
    if not result.submitted or result.handle is None or state.hour is None or state.minute is None:
        raise UserAbandoned("select_time")
    return result.handle, time(state.hour, state.minute)


# ---- free text ----


async def capture_text(
    transport: PromptTransport,
    handle: ResponseHandle,
    form: TextForm,
    *,
    timeout: float,
) -> TextFormReply:
    """One bounded text-entry form answered off `handle`; its own timeout."""
    token = handle.consume()
    try:
        reply = await transport.open_text_form(token, form, timeout)
    except FormError:
        raise
    except Exception as exc:
        raise TransportFailure(f"open_text_form failed: {exc!r}") from exc
    if reply is None:
        raise UserAbandoned(form.title)
    return reply


# ---- composition ----


class SubflowComposer:
    """
    Threads the last unused interaction handle through chained sub-flows.

    The handle slot is cleared when taken and refilled with the sub-flow's
    terminal handle, so each handle is answered exactly once.
    """

    def __init__(self, handle: ResponseHandle) -> None:
        self._handle: ResponseHandle | None = handle

    @property
    def handle(self) -> ResponseHandle | None:
        return self._handle

    def take_handle(self) -> ResponseHandle:
        handle = self._handle
        if handle is None or handle.used:
            raise HandleConsumed("no live interaction handle to continue with")
        self._handle = None
        return handle

    async def maybe_defer(
        self,
        field: str,
        current: Any,
        composer_fn: Callable[[ResponseHandle], Awaitable[tuple[ResponseHandle, T]]],
    ) -> T:
        """Return `current` if it is a concrete value, else resolve it with a sub-flow."""
        if current is not None and current is not DEFER:
            return current
        logger.debug("Deferring %s to a sub-flow", field)
        handle, value = await composer_fn(self.take_handle())
        self._handle = handle
        return value
