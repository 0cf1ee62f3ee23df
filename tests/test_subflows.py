# tests/test_subflows.py

from __future__ import annotations

from datetime import date, time

import pytest

from task_companion.core.errors import HandleConsumed, UserAbandoned
from task_companion.forms.subflows import (
    SubflowComposer,
    day_range,
    days_in_month,
    pick_date,
    pick_time,
)
from task_companion.forms.surface import Invocation, ResponseHandle, ResponseKind, Select, Surface
from task_companion.tasks.task_models import DEFER

from .fakes import Pick, Press

TODAY = date(2025, 3, 20)


def _day_labels(transport) -> list[str]:
    day = transport.last_surface().component("day")
    assert isinstance(day, Select)
    return [o.label for o in day.options]


async def _open(transport) -> ResponseHandle:
    """A prompt plus the unused handle of an action on it, as left by the task form."""
    ref = await transport.send_prompt(Invocation("r1", "u1"), Surface())
    return ResponseHandle((ref.message_id, 0))


def test_calendar_helpers() -> None:
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2025, 2) == 28
    assert days_in_month(2025, 12) == 31
    assert list(day_range(date(2025, 3, 15))) == list(range(1, 16))
    assert list(day_range(date(2025, 3, 16))) == list(range(16, 32))
    assert list(day_range(date(2025, 4, 20))) == list(range(16, 31))


@pytest.mark.asyncio
async def test_date_picker_second_half_of_march(transport, clock) -> None:
    transport.script = [Pick("month", "3月後半(16〜)"), Pick("day", "31"), Press("submit")]
    handle = await _open(transport)

    new_handle, picked = await pick_date(transport, handle, today=TODAY, timeout=60, clock=clock)

    assert picked == date(2025, 3, 31)
    assert not new_handle.used
    assert _day_labels(transport) == [str(d) for d in range(16, 32)]
    # month re-renders, day only acknowledges
    assert transport.kinds() == [ResponseKind.UPDATE, ResponseKind.UPDATE, ResponseKind.ACKNOWLEDGE]


@pytest.mark.asyncio
async def test_date_picker_year_half_month_day(transport, clock) -> None:
    transport.script = [
        Pick("year", "2025"),
        Pick("month", "3月後半(16〜)"),
        Pick("day", "20"),
        Press("submit"),
    ]
    handle = await _open(transport)
    _, picked = await pick_date(transport, handle, today=date(2025, 1, 10), timeout=60, clock=clock)

    assert picked == date(2025, 3, 20)


@pytest.mark.asyncio
async def test_leap_february_second_half_offers_16_to_29(transport, clock) -> None:
    transport.script = [Pick("month", "2月後半(16〜)"), Pick("day", "29"), Press("submit")]
    handle = await _open(transport)
    _, picked = await pick_date(transport, handle, today=date(2024, 1, 5), timeout=60, clock=clock)

    assert _day_labels(transport) == [str(d) for d in range(16, 30)]
    assert picked == date(2024, 2, 29)


@pytest.mark.asyncio
async def test_date_picker_february_depends_on_year(transport, clock) -> None:
    transport.script = [
        Pick("year", "2026"),
        Pick("month", "2月後半(16〜)"),
        Press("submit"),
    ]
    handle = await _open(transport)
    _, picked = await pick_date(transport, handle, today=date(2024, 3, 1), timeout=60, clock=clock)

    assert picked == date(2026, 2, 16)
    assert _day_labels(transport) == [str(d) for d in range(16, 29)]


@pytest.mark.asyncio
async def test_leap_day_is_clamped_when_year_changes(transport, clock) -> None:
    transport.script = [Pick("day", "29"), Pick("year", "2025"), Press("submit")]
    handle = await _open(transport)
    _, picked = await pick_date(transport, handle, today=date(2024, 2, 20), timeout=60, clock=clock)

    assert picked == date(2025, 2, 28)
    assert _day_labels(transport) == [str(d) for d in range(16, 29)]
    # initial render, quiet day change, then a year change that moves the end of February
    assert transport.kinds()[1:] == [ResponseKind.ACKNOWLEDGE, ResponseKind.UPDATE]


@pytest.mark.asyncio
async def test_date_picker_timeout_abandons(transport, clock) -> None:
    handle = await _open(transport)
    with pytest.raises(UserAbandoned):
        await pick_date(transport, handle, today=TODAY, timeout=60, clock=clock)


@pytest.mark.asyncio
async def test_time_picker_needs_hour_and_minute(transport, clock) -> None:
    transport.script = [Pick("hour", "7"), Press("submit"), Pick("minute", "59"), Press("submit")]
    _, picked = await pick_time(transport, Invocation("r1", "u1"), timeout=60, clock=clock)

    assert picked == time(7, 59)
    assert transport.kinds() == [ResponseKind.UPDATE, ResponseKind.ACKNOWLEDGE, ResponseKind.UPDATE]


@pytest.mark.asyncio
async def test_composer_threads_handles() -> None:
    first = ResponseHandle("a")
    second = ResponseHandle("b")
    composer = SubflowComposer(first)

    assert await composer.maybe_defer("date", date(2025, 1, 1), _unreachable) == date(2025, 1, 1)

    async def subflow(handle: ResponseHandle):
        assert handle is first
        handle.consume()
        return second, "picked"

    assert await composer.maybe_defer("time", DEFER, subflow) == "picked"
    assert composer.take_handle() is second
    with pytest.raises(HandleConsumed):
        composer.take_handle()


async def _unreachable(handle):
    raise AssertionError("sub-flow should not run for a concrete value")
