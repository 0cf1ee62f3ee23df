# src/task_companion/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

Flows depend on these Protocols instead of concrete implementations, so the
chat transport and the storage backend stay swappable and tests can use fakes.
"""

from collections.abc import Iterable
from datetime import time as dtime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Protocol

if TYPE_CHECKING:
    from ..forms.surface import (
        Action,
        Invocation,
        PromptRef,
        Response,
        Surface,
        TextForm,
        TextFormReply,
    )
    from ..tasks.task_models import Task


class PromptTransport(Protocol):
    """
    Presentation layer for interactive prompts.

    The core only needs this capability set; how a Surface is drawn and how a
    user's input becomes an Action is the transport's business.
    """

    async def send_prompt(self, invocation: Invocation, surface: Surface) -> PromptRef:
        """Send a new prompt message; returns a handle to it."""
        ...

    async def respond(self, token: Any, response: Response) -> PromptRef | None:
        """
        Answer one inbound action (token comes from ResponseHandle.consume()).

        UPDATE edits the message the action came from, ACKNOWLEDGE only confirms
        receipt, MESSAGE posts a new message and returns its handle.
        """
        ...

    async def next_action(self, prompt: PromptRef, timeout: float | None) -> Action | None:
        """Wait for the next component action on `prompt`; None when the timeout elapses."""
        ...

    async def open_text_form(self, token: Any, form: TextForm, timeout: float) -> TextFormReply | None:
        """Ask for one line of text in reply to an action; None when the timeout elapses."""
        ...

    async def mention_targets(self, room_id: str | None) -> list[tuple[str, str]]:
        """(label, id) pairs that can be pinged in a room (roles, members, @room...)."""
        ...


class OutboundMessenger(Protocol):
    """How background jobs (notifier, panel log) post messages outward."""

    def send_text(
            self,
            *,
            room_id: str,
            surface: Surface,
    ) -> Awaitable[None]: ...

    def send_file(
            self,
            *,
            room_id: str,
            path: Path,
            filename: str,
            surface: Surface,
    ) -> Awaitable[None]: ...


class DomainStore(Protocol):
    """
    Shared task/subject/suggested-time collections.

    Every call is linearizable; commit() persists the current state and must be
    called after each mutation.
    """

    # Tasks
    def list_tasks(self) -> list[Task]: ...
    def contains_task(self, task: Task) -> bool: ...
    def insert_task(self, task: Task) -> bool: ...
    def remove_task(self, task: Task) -> bool: ...
    def replace_task(self, old: Task, new: Task) -> bool: ...

    # Subjects
    def list_subjects(self) -> list[str]: ...
    def add_subjects(self, subjects: Iterable[str]) -> list[str]: ...
    def remove_subject(self, subject: str) -> bool: ...

    # Suggested times
    def list_suggest_times(self) -> list[tuple[dtime, str]]: ...
    def put_suggest_time(self, at: dtime, label: str) -> None: ...
    def remove_suggest_time(self, at: dtime) -> str | None: ...

    # Config scalars (ping_channel, ping_role, log_channel, panel_message)
    def get_config(self, key: str) -> Any | None: ...
    def set_config(self, key: str, value: Any | None) -> None: ...

    def commit(self) -> None: ...

    @property
    def path(self) -> Path: ...
