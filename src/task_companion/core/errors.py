# src/task_companion/core/errors.py

from __future__ import annotations

"""
Failures raised by interactive flows.

Every flow failure is a FormError, so the command boundary can catch one type
and still tell the user which kind of failure happened.
"""

from typing import Any


class FormError(Exception):
    """Base class for failures surfaced at the command boundary."""

    user_message = "The operation could not be completed."


class UserAbandoned(FormError):
    """The user stopped answering before a terminal action (timeout)."""

    user_message = "Timed out waiting for input."

    def __init__(self, stage: str = "") -> None:
        self.stage = stage
        super().__init__(f"no terminal action received ({stage})" if stage else "no terminal action received")


class InvalidSelection(FormError):
    """A token does not resolve to any currently valid option."""

    user_message = "That selection is not valid."

    def __init__(self, field: str, token: Any = None) -> None:
        self.field = field
        self.token = token
        super().__init__(f"invalid selection for {field!r}: {token!r}")


class IncompleteEntity(FormError):
    """Finalization attempted while a required field is still unset."""

    user_message = "Some required fields are missing."

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"required field {field!r} is not set")


class StaleReference(FormError):
    """The chosen item no longer exists in the live collection."""

    user_message = "The selection became invalid (it was changed or removed meanwhile)."

    def __init__(self, item: Any = None) -> None:
        self.item = item
        super().__init__(f"selection became invalid: {item!r}")


class TransportFailure(FormError):
    """The presentation layer rejected a send/update/acknowledge."""

    user_message = "Failed to update the message."


class HandleConsumed(FormError, RuntimeError):
    """A one-shot response handle was used twice."""

    user_message = "Internal error: a reply handle was reused."
