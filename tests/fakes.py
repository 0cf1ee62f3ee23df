# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from task_companion.forms.surface import (
    Action,
    ButtonAction,
    Invocation,
    PromptRef,
    Response,
    ResponseHandle,
    ResponseKind,
    Select,
    SelectAction,
    Surface,
    TextForm,
    TextFormReply,
)


class FakeClock:
    """Manual monotonic clock for session budgets."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---- scripted user input ----


@dataclass(frozen=True)
class Pick:
    """Choose an option of a select menu by its label (or raw value)."""

    custom_id: str
    label: str | None = None
    value: str | None = None
    user_id: str = "u1"


@dataclass(frozen=True)
class Press:
    custom_id: str
    user_id: str = "u1"


@dataclass(frozen=True)
class Type:
    """Answer the pending text form."""

    text: str


@dataclass(frozen=True)
class Sleep:
    """Advance the fake clock before the next scripted step."""

    seconds: float


class FakeTransport:
    """
    PromptTransport driven by a script of Pick/Press/Type steps.

    - Records every prompt, response and text form for assertions
    - An exhausted script behaves like the user walking away (timeout)
    """

    name = "fake"

    def __init__(self, script: list[Any] | None = None, *, clock: FakeClock | None = None) -> None:
        self.script: list[Any] = list(script or [])
        self.clock = clock
        self.surfaces: dict[str, Surface] = {}
        self.prompts: list[PromptRef] = []
        self.responses: list[tuple[Any, Response]] = []
        self.text_forms: list[TextForm] = []
        self.timeouts: list[float | None] = []
        self.targets: list[tuple[str, str]] = [("@room", "@room"), ("Alice", "@alice:example.org")]
        self._seq = 0
        self.fail_respond = False

    # helpers

    def _new_prompt(self, room_id: str | None, surface: Surface) -> PromptRef:
        ref = PromptRef(message_id=f"m{len(self.prompts) + 1}", room_id=room_id)
        self.prompts.append(ref)
        self.surfaces[ref.message_id] = surface
        return ref

    def _token(self, prompt: PromptRef) -> tuple[str, int]:
        self._seq += 1
        return (prompt.message_id, self._seq)

    def _pop(self, timeout: float | None = None) -> Any:
        """Next non-Sleep step; None when the script is exhausted or the wait timed out."""
        waited = 0.0
        while self.script and isinstance(self.script[0], Sleep):
            step = self.script.pop(0)
            assert self.clock is not None, "Sleep needs a FakeClock"
            self.clock.advance(step.seconds)
            waited += step.seconds
        if timeout is not None and waited > timeout:
            return None
        return self.script.pop(0) if self.script else None

    def last_surface(self) -> Surface:
        return self.surfaces[self.prompts[-1].message_id]

    def kinds(self) -> list[ResponseKind]:
        return [r.kind for _, r in self.responses]

    # PromptTransport

    async def send_prompt(self, invocation: Invocation, surface: Surface) -> PromptRef:
        return self._new_prompt(invocation.room_id, surface)

    async def respond(self, token: Any, response: Response) -> PromptRef | None:
        if self.fail_respond:
            raise ConnectionError("platform rejected the response")
        self.responses.append((token, response))
        message_id = token[0]
        if response.kind is ResponseKind.UPDATE:
            assert response.surface is not None
            self.surfaces[message_id] = response.surface
            return PromptRef(message_id=message_id)
        if response.kind is ResponseKind.MESSAGE:
            assert response.surface is not None
            return self._new_prompt(None, response.surface)
        return None

    async def next_action(self, prompt: PromptRef, timeout: float | None) -> Action | None:
        self.timeouts.append(timeout)
        step = self._pop(timeout)
        if step is None:
            return None
        handle = ResponseHandle(self._token(prompt))
        surface = self.surfaces[prompt.message_id]

        if isinstance(step, Press):
            return ButtonAction(custom_id=step.custom_id, handle=handle, user_id=step.user_id)

        if isinstance(step, Pick):
            value = step.value
            if value is None:
                comp = surface.component(step.custom_id)
                assert isinstance(comp, Select), f"no select {step.custom_id!r} on the surface"
                matches = [o.value for o in comp.options if o.label == step.label]
                assert matches, f"no option {step.label!r} in {step.custom_id!r}"
                value = matches[0]
            return SelectAction(custom_id=step.custom_id, values=(value,), handle=handle, user_id=step.user_id)

        raise AssertionError(f"unexpected step while waiting for an action: {step!r}")

    async def open_text_form(self, token: Any, form: TextForm, timeout: float) -> TextFormReply | None:
        self.text_forms.append(form)
        step = self._pop(timeout)
        if step is None:
            return None
        assert isinstance(step, Type), f"unexpected step while a text form is open: {step!r}"
        return TextFormReply(text=step.text, handle=ResponseHandle((token[0], -1)))

    async def mention_targets(self, room_id: str | None) -> list[tuple[str, str]]:
        return list(self.targets)


@dataclass(slots=True)
class SentMessage:
    room_id: str
    surface: Surface


@dataclass(slots=True)
class SentFile:
    room_id: str
    path: Path
    filename: str
    surface: Surface


@dataclass(slots=True)
class FakeMessenger:
    """
    Fake OutboundMessenger used by notifier and panel tests.
    """

    sent: list[SentMessage] = field(default_factory=list)
    files: list[SentFile] = field(default_factory=list)

    async def send_text(self, *, room_id: str, surface: Surface) -> None:
        self.sent.append(SentMessage(room_id=room_id, surface=surface))

    async def send_file(self, *, room_id: str, path: Path, filename: str, surface: Surface) -> None:
        self.files.append(SentFile(room_id=room_id, path=path, filename=filename, surface=surface))
