# src/task_companion/forms/session.py

from __future__ import annotations

"""
Interaction session: one live prompt, many user actions, one terminal outcome.

A form is declared as data (FormSpec): a pure render(state) -> Surface plus a
reducer per select menu / button. InteractionSession.run() is the only await
loop; it never holds a lock while waiting for the user.

    AWAITING_ACTION --select/button--> (reduce, re-render) --> AWAITING_ACTION
    AWAITING_ACTION --submit--> SUBMITTED
    AWAITING_ACTION --cancel--> CANCELLED
    AWAITING_ACTION --deadline--> EXPIRED   (last render is left as-is)
"""

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

from ..core.errors import FormError, InvalidSelection, TransportFailure
from ..core.ports import PromptTransport
from .surface import (
    Action,
    Button,
    ButtonAction,
    Invocation,
    PromptRef,
    ResponseHandle,
    Response,
    Select,
    SelectAction,
    Surface,
)

logger = logging.getLogger(__name__)

S = TypeVar("S")

SelectReducer = Callable[[S, Sequence[str]], S]
ButtonReducer = Callable[[S], S]


@dataclass(frozen=True, slots=True)
class Followup:
    """Open the prompt as a new message answering `handle` (the clicked message stays as it is)."""

    handle: ResponseHandle


Opener = Invocation | ResponseHandle | Followup


class Outcome(StrEnum):
    SUBMITTED = "submitted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class SessionResult(Generic[S]):
    outcome: Outcome
    state: S
    # Handle of the terminal action, still unused: the caller answers it.
    handle: ResponseHandle | None = None
    prompt: PromptRef | None = None

    @property
    def submitted(self) -> bool:
        return self.outcome is Outcome.SUBMITTED


def _always(_state: Any) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class FormSpec(Generic[S]):
    """
    Declarative form: render + reducers keyed by custom id.

    quiet(custom_id, old, new) -> True means the action only needs an
    acknowledgment (nothing visible changed).
    """

    name: str
    render: Callable[[S], Surface]
    selects: Mapping[str, SelectReducer] = field(default_factory=dict)
    buttons: Mapping[str, ButtonReducer] = field(default_factory=dict)
    can_submit: Callable[[S], bool] = _always
    submit_id: str | None = "submit"
    cancel_id: str | None = None
    quiet: Callable[[str, S, S], bool] | None = None


def single_value(field_name: str, values: Sequence[str]) -> str:
    """The one value of a single-select action (checked)."""
    if len(values) != 1:
        raise InvalidSelection(field_name, tuple(values))
    return values[0]


async def respond(transport: PromptTransport, handle: ResponseHandle, response: Response) -> PromptRef | None:
    """Use a one-shot handle; transport errors become TransportFailure."""
    token = handle.consume()
    try:
        return await transport.respond(token, response)
    except FormError:
        raise
    except Exception as exc:
        raise TransportFailure(f"respond({response.kind.value}) failed: {exc!r}") from exc


async def open_prompt(transport: PromptTransport, opener: Opener, surface: Surface) -> PromptRef:
    """Send a new prompt, or take over the message a previous action came from."""
    if isinstance(opener, Followup):
        ref = await respond(transport, opener.handle, Response.message(surface))
        if ref is None:
            raise TransportFailure("transport did not return the follow-up prompt")
        return ref
    if isinstance(opener, ResponseHandle):
        ref = await respond(transport, opener, Response.update(surface))
        if ref is None:
            raise TransportFailure("transport did not return the updated prompt")
        return ref
    try:
        return await transport.send_prompt(opener, surface)
    except FormError:
        raise
    except Exception as exc:
        raise TransportFailure(f"send_prompt failed: {exc!r}") from exc


class InteractionSession(Generic[S]):
    """
    Runs one FormSpec against one prompt message.

    The wall-clock budget starts when the session is created. Actions are
    handled strictly in arrival order; every action gets exactly one response
    (update or acknowledge) except the terminal one, whose handle is returned.
    """

    def __init__(
        self,
        transport: PromptTransport,
        form: FormSpec[S],
        initial: S,
        *,
        timeout: float,
        owner_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._form = form
        self._state = initial
        self._timeout = float(timeout)
        self._owner_id = owner_id
        self._clock = clock
        self._started = clock()
        self._surface: Surface | None = None
        self._prompt: PromptRef | None = None

    @property
    def state(self) -> S:
        return self._state

    @property
    def surface(self) -> Surface | None:
        return self._surface

    def _remaining(self) -> float:
        return self._started + self._timeout - self._clock()

    async def run(self, opener: Opener) -> SessionResult[S]:
        form = self._form
        self._surface = form.render(self._state)
        self._prompt = await open_prompt(self._transport, opener, self._surface)
        logger.debug("Session %s opened prompt=%s", form.name, self._prompt)

        while True:
            remaining = self._remaining()
            if remaining <= 0:
                return self._expired()

            try:
                action = await self._transport.next_action(self._prompt, remaining)
            except FormError:
                raise
            except Exception as exc:
                raise TransportFailure(f"next_action failed: {exc!r}") from exc

            if action is None:
                return self._expired()

            result = await self._dispatch(action)
            if result is not None:
                logger.debug("Session %s finished: %s", form.name, result.outcome.value)
                return result

    def _expired(self) -> SessionResult[S]:
        logger.info("Session %s expired after %.0fs", self._form.name, self._timeout)
        return SessionResult(Outcome.EXPIRED, self._state, None, self._prompt)

    async def _ack(self, action: Action) -> None:
        await respond(self._transport, action.handle, Response.acknowledge())

    async def _rerender(self, action: Action) -> None:
        self._surface = self._form.render(self._state)
        await respond(self._transport, action.handle, Response.update(self._surface))

    async def _dispatch(self, action: Action) -> SessionResult[S] | None:
        form = self._form
        assert self._surface is not None

        if self._owner_id is not None and action.user_id not in (None, self._owner_id):
            logger.debug("Session %s: ignoring action from spectator %s", form.name, action.user_id)
            await self._ack(action)
            return None

        live = self._surface.component(action.custom_id)

        if isinstance(action, SelectAction):
            reducer = form.selects.get(action.custom_id)
            if reducer is None or not isinstance(live, Select):
                logger.debug("Session %s: no live select %r", form.name, action.custom_id)
                await self._ack(action)
                return None
            try:
                new_state = reducer(self._state, action.values)
            except InvalidSelection as exc:
                logger.warning("Session %s: %s", form.name, exc)
                await self._ack(action)
                return None

            old_state, self._state = self._state, new_state
            if form.quiet is not None and form.quiet(action.custom_id, old_state, new_state):
                await self._ack(action)
            else:
                await self._rerender(action)
            return None

        assert isinstance(action, ButtonAction)
        if not isinstance(live, Button) or live.disabled:
            logger.debug("Session %s: button %r is not live", form.name, action.custom_id)
            await self._ack(action)
            return None

        if action.custom_id == form.submit_id:
            if not form.can_submit(self._state):
                await self._ack(action)
                return None
            return SessionResult(Outcome.SUBMITTED, self._state, action.handle, self._prompt)

        if action.custom_id == form.cancel_id:
            return SessionResult(Outcome.CANCELLED, self._state, action.handle, self._prompt)

        reducer = form.buttons.get(action.custom_id)
        if reducer is None:
            await self._ack(action)
            return None
        self._state = reducer(self._state)
        await self._rerender(action)
        return None
