# tests/test_session.py

from __future__ import annotations

from dataclasses import dataclass, replace

import pytest

from task_companion.core.errors import HandleConsumed, TransportFailure
from task_companion.forms.session import FormSpec, InteractionSession, Outcome, respond, single_value
from task_companion.forms.surface import (
    Button,
    Invocation,
    Response,
    ResponseHandle,
    ResponseKind,
    Select,
    SelectOption,
    Surface,
)

from .fakes import FakeTransport, Pick, Press, Sleep

INVOCATION = Invocation(room_id="r1", user_id="u1")


@dataclass(frozen=True)
class Counter:
    color: str | None = None
    clicks: int = 0


def _form() -> FormSpec[Counter]:
    def render(state: Counter) -> Surface:
        return Surface(
            components=(
                Select(
                    "color",
                    tuple(SelectOption(c, c, default=(state.color == c)) for c in ("red", "blue")),
                ),
                Button("plus", "+1"),
                Button("submit", "OK", disabled=state.color is None),
                Button("cancel", "Cancel"),
            )
        )

    def on_color(state: Counter, values) -> Counter:
        return replace(state, color=single_value("color", values))

    return FormSpec(
        name="counter",
        render=render,
        selects={"color": on_color},
        buttons={"plus": lambda s: replace(s, clicks=s.clicks + 1)},
        can_submit=lambda s: s.color is not None,
        cancel_id="cancel",
        quiet=lambda cid, old, new: cid == "color" and old.color == new.color,
    )


def _session(transport: FakeTransport, clock, owner_id: str | None = "u1") -> InteractionSession[Counter]:
    return InteractionSession(transport, _form(), Counter(), timeout=60, owner_id=owner_id, clock=clock)


@pytest.mark.asyncio
async def test_submit_returns_unused_handle(transport, clock) -> None:
    transport.script = [Pick("color", "red"), Press("plus"), Press("submit")]
    result = await _session(transport, clock).run(INVOCATION)

    assert result.outcome is Outcome.SUBMITTED
    assert result.state == Counter(color="red", clicks=1)
    assert result.handle is not None and not result.handle.used
    # one update per non-terminal action
    assert transport.kinds() == [ResponseKind.UPDATE, ResponseKind.UPDATE]


@pytest.mark.asyncio
async def test_expiry_leaves_last_render_and_state(transport, clock) -> None:
    transport.script = [Pick("color", "blue")]
    result = await _session(transport, clock).run(INVOCATION)

    assert result.outcome is Outcome.EXPIRED
    assert result.handle is None
    assert result.state.color == "blue"
    assert len(transport.responses) == 1


@pytest.mark.asyncio
async def test_budget_is_wall_clock_from_start(transport, clock) -> None:
    transport.script = [Sleep(30), Press("plus"), Sleep(31), Press("plus")]
    result = await _session(transport, clock).run(INVOCATION)

    assert result.outcome is Outcome.EXPIRED
    assert result.state.clicks == 1
    # the second wait only gets what is left of the budget
    assert transport.timeouts[0] == 60
    assert transport.timeouts[1] == pytest.approx(30)


@pytest.mark.asyncio
async def test_disabled_submit_and_unknown_ids_are_acknowledged(transport, clock) -> None:
    transport.script = [Press("submit"), Press("nope"), Pick("ghost", value="x"), Pick("color", "red"), Press("submit")]
    result = await _session(transport, clock).run(INVOCATION)

    assert result.outcome is Outcome.SUBMITTED
    assert transport.kinds() == [
        ResponseKind.ACKNOWLEDGE,
        ResponseKind.ACKNOWLEDGE,
        ResponseKind.ACKNOWLEDGE,
        ResponseKind.UPDATE,
    ]


@pytest.mark.asyncio
async def test_repeated_selection_is_quiet(transport, clock) -> None:
    transport.script = [Pick("color", "red"), Pick("color", "red"), Press("cancel")]
    result = await _session(transport, clock).run(INVOCATION)

    assert result.outcome is Outcome.CANCELLED
    assert transport.kinds() == [ResponseKind.UPDATE, ResponseKind.ACKNOWLEDGE]


@pytest.mark.asyncio
async def test_bad_token_is_acknowledged_and_ignored(transport, clock) -> None:
    transport.script = [Pick("color", value="purple"), Press("cancel")]

    def strict_color(state: Counter, values) -> Counter:
        from task_companion.core.errors import InvalidSelection

        raw = single_value("color", values)
        if raw not in ("red", "blue"):
            raise InvalidSelection("color", raw)
        return replace(state, color=raw)

    form = replace(_form(), selects={"color": strict_color})
    result = await InteractionSession(transport, form, Counter(), timeout=60, clock=clock).run(INVOCATION)

    assert result.state.color is None
    assert transport.kinds() == [ResponseKind.ACKNOWLEDGE]


@pytest.mark.asyncio
async def test_spectator_actions_are_ignored(transport, clock) -> None:
    transport.script = [Press("plus", user_id="u2"), Press("cancel", user_id="u2"), Press("cancel")]
    result = await _session(transport, clock, owner_id="u1").run(INVOCATION)

    assert result.outcome is Outcome.CANCELLED
    assert result.state.clicks == 0
    assert transport.kinds() == [ResponseKind.ACKNOWLEDGE, ResponseKind.ACKNOWLEDGE]


@pytest.mark.asyncio
async def test_transport_errors_become_transport_failure(transport, clock) -> None:
    transport.script = [Press("plus")]
    transport.fail_respond = True
    with pytest.raises(TransportFailure):
        await _session(transport, clock).run(INVOCATION)


@pytest.mark.asyncio
async def test_handle_answers_only_once(transport) -> None:
    handle = ResponseHandle(("m1", 1))
    await respond(transport, handle, Response.acknowledge())
    with pytest.raises(HandleConsumed):
        await respond(transport, handle, Response.acknowledge())
    assert len(transport.responses) == 1
