# src/task_companion/forms/surface.py

from __future__ import annotations

"""
Transport-neutral description of an interactive message.

Flows render a Surface (embed + select menus + buttons); a transport turns it
into whatever its platform shows and turns user input back into Actions.
"""

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from ..core.errors import HandleConsumed


class ButtonStyle(StrEnum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SUCCESS = "success"
    DANGER = "danger"


class Color(StrEnum):
    BLUE = "blue"
    DARK_BLUE = "dark_blue"
    DARK_GREEN = "dark_green"
    DARK_RED = "dark_red"
    RED = "red"


@dataclass(frozen=True, slots=True)
class SelectOption:
    label: str
    value: str
    default: bool = False
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Select:
    custom_id: str
    options: tuple[SelectOption, ...]
    placeholder: str = ""

    def option_for(self, value: str) -> SelectOption | None:
        for opt in self.options:
            if opt.value == value:
                return opt
        return None


@dataclass(frozen=True, slots=True)
class Button:
    custom_id: str
    label: str
    style: ButtonStyle = ButtonStyle.PRIMARY
    disabled: bool = False


Component = Select | Button


@dataclass(frozen=True, slots=True)
class EmbedField:
    name: str
    value: str


@dataclass(frozen=True, slots=True)
class Embed:
    title: str
    description: str = ""
    fields: tuple[EmbedField, ...] = ()
    color: Color = Color.DARK_BLUE


@dataclass(frozen=True, slots=True)
class Surface:
    embed: Embed | None = None
    components: tuple[Component, ...] = ()
    content: str | None = None
    ephemeral: bool = False

    def component(self, custom_id: str) -> Component | None:
        for comp in self.components:
            if comp.custom_id == custom_id:
                return comp
        return None

    def with_components(self, components: tuple[Component, ...]) -> Surface:
        return replace(self, components=components)

    def with_embed(self, embed: Embed | None) -> Surface:
        return replace(self, embed=embed)


class ResponseHandle:
    """
    Reply capability attached to exactly one inbound action.

    Platforms accept one response per interaction, so the handle is cleared on
    first use; a second consume() raises HandleConsumed.
    """

    __slots__ = ("_token", "_used")

    def __init__(self, token: Any) -> None:
        self._token = token
        self._used = False

    @property
    def used(self) -> bool:
        return self._used

    def consume(self) -> Any:
        if self._used:
            raise HandleConsumed("response handle already used")
        self._used = True
        return self._token

    def __repr__(self) -> str:
        return f"ResponseHandle(token={self._token!r}, used={self._used})"


@dataclass(frozen=True, slots=True)
class SelectAction:
    custom_id: str
    values: tuple[str, ...]
    handle: ResponseHandle
    user_id: str | None = None


@dataclass(frozen=True, slots=True)
class ButtonAction:
    custom_id: str
    handle: ResponseHandle
    user_id: str | None = None


Action = SelectAction | ButtonAction


class ResponseKind(StrEnum):
    UPDATE = "update"  # edit the message the action came from
    ACKNOWLEDGE = "acknowledge"  # protocol-level ack, no visible change
    MESSAGE = "message"  # reply with a new message


@dataclass(frozen=True, slots=True)
class Response:
    kind: ResponseKind
    surface: Surface | None = None

    @classmethod
    def update(cls, surface: Surface) -> Response:
        return cls(ResponseKind.UPDATE, surface)

    @classmethod
    def acknowledge(cls) -> Response:
        return cls(ResponseKind.ACKNOWLEDGE)

    @classmethod
    def message(cls, surface: Surface) -> Response:
        return cls(ResponseKind.MESSAGE, surface)


@dataclass(frozen=True, slots=True)
class PromptRef:
    """Opaque pointer to a live prompt message."""

    message_id: str
    room_id: str | None = None


@dataclass(frozen=True, slots=True)
class Invocation:
    """Where and by whom a command was invoked."""

    room_id: str | None
    user_id: str | None


@dataclass(frozen=True, slots=True)
class TextForm:
    title: str
    label: str
    default: str = ""
    placeholder: str = ""


@dataclass(frozen=True, slots=True)
class TextFormReply:
    text: str
    handle: ResponseHandle
