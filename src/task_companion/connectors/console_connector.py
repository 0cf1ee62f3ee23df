# src/task_companion/connectors/console_connector.py

from __future__ import annotations

import asyncio
import itertools
import logging
import re
import threading
import time
from collections import deque
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from ..cli.commands import CommandRegistry
from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..forms.surface import (
    Action,
    Invocation,
    PromptRef,
    Response,
    ResponseHandle,
    ResponseKind,
    Surface,
    TextForm,
    TextFormReply,
)
from .text_surface import parse_action, parse_text_form_reply, render_surface_text, render_text_form

logger = logging.getLogger(__name__)

CONSOLE_ROOM = "console"
CONSOLE_USER = "console"

# "#3 item 2" addresses prompt 3 explicitly.
_TARGET_RE = re.compile(r"^#(\d+)\s+(.*)$")

# Prompts nobody waits on are forgotten after this long without activity.
PROMPT_IDLE_TTL = 3600.0


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleTransport:
    """
    PromptTransport for the terminal.

    Every prompt gets a number; input lines go to the pending text form first,
    then to the prompt named with "#<n>", else to the most recently awaited one.
    """

    name = "console"

    def __init__(
        self,
        *,
        out: Callable[[str], Any] = _print_ts,
        user_id: str = CONSOLE_USER,
        idle_ttl: float = PROMPT_IDLE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._out = out
        self.user_id = user_id
        self._idle_ttl = idle_ttl
        self._clock = clock
        self._ids = itertools.count(1)
        self._surfaces: dict[str, Surface] = {}
        self._inbox: dict[str, asyncio.Queue[str]] = {}
        self._last_active: dict[str, float] = {}
        self._waiting: list[str] = []
        self._text_waiters: deque[asyncio.Future[str]] = deque()

    def _show(self, message_id: str, surface: Surface) -> None:
        self._out(f"#{message_id}\n{render_surface_text(surface)}")

    def _track(self, message_id: str, surface: Surface) -> None:
        self._surfaces[message_id] = surface
        self._inbox.setdefault(message_id, asyncio.Queue())
        self._last_active[message_id] = self._clock()

    def _evict_idle(self) -> None:
        now = self._clock()
        stale = [
            mid
            for mid, seen in self._last_active.items()
            if mid not in self._waiting and now - seen > self._idle_ttl
        ]
        for mid in stale:
            del self._surfaces[mid], self._inbox[mid], self._last_active[mid]
        if stale:
            logger.debug("Forgot %d idle console prompt(s)", len(stale))

    def live_prompts(self) -> list[str]:
        return list(self._surfaces)

    def _new_prompt(self, room_id: str | None, surface: Surface) -> PromptRef:
        self._evict_idle()
        message_id = str(next(self._ids))
        self._track(message_id, surface)
        self._show(message_id, surface)
        return PromptRef(message_id=message_id, room_id=room_id)

    async def send_prompt(self, invocation: Invocation, surface: Surface) -> PromptRef:
        return self._new_prompt(invocation.room_id, surface)

    async def respond(self, token: Any, response: Response) -> PromptRef | None:
        ref: PromptRef = token
        if response.kind is ResponseKind.ACKNOWLEDGE:
            return None
        assert response.surface is not None
        if response.kind is ResponseKind.MESSAGE:
            return self._new_prompt(ref.room_id, response.surface)

        # An idle prompt may have been forgotten while a text form was open.
        self._track(ref.message_id, response.surface)
        self._show(ref.message_id, response.surface)
        return ref

    async def next_action(self, prompt: PromptRef, timeout: float | None) -> Action | None:
        mid = prompt.message_id
        queue = self._inbox[mid]
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        self._waiting.append(mid)
        try:
            while True:
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    return None
                try:
                    line = await asyncio.wait_for(queue.get(), remaining)
                except asyncio.TimeoutError:
                    return None

                action = parse_action(line, self._surfaces[mid], ResponseHandle(prompt), self.user_id)
                if action is None:
                    self._out(f"#{mid}: 入力を解釈できませんでした: {line!r}")
                    continue
                return action
        finally:
            self._waiting.remove(mid)
            self._last_active[mid] = self._clock()

    async def open_text_form(self, token: Any, form: TextForm, timeout: float) -> TextFormReply | None:
        fut: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._text_waiters.append(fut)
        self._out(render_text_form(form))
        try:
            text = await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            if fut in self._text_waiters:
                self._text_waiters.remove(fut)
        return TextFormReply(text=parse_text_form_reply(text, form), handle=ResponseHandle(token))

    async def mention_targets(self, room_id: str | None) -> list[tuple[str, str]]:
        return [("everyone", "@everyone"), ("here", "@here")]

    def feed_line(self, line: str) -> bool:
        """Route one non-command input line. False when nothing is waiting for input."""
        while self._text_waiters:
            fut = self._text_waiters.popleft()
            if not fut.done():
                fut.set_result(line)
                return True

        target: str | None = None
        m = _TARGET_RE.match(line)
        if m:
            target, line = m.group(1), m.group(2)
        elif self._waiting:
            target = self._waiting[-1]

        if target is None or target not in self._inbox:
            return False
        self._inbox[target].put_nowait(line)
        return True


class ConsoleMessenger:
    """OutboundMessenger that prints to the terminal."""

    def __init__(self, out: Callable[[str], Any] = _print_ts) -> None:
        self._out = out

    async def send_text(self, *, room_id: str, surface: Surface) -> None:
        self._out(f"[{room_id}]\n{render_surface_text(surface)}")

    async def send_file(self, *, room_id: str, path: Path, filename: str, surface: Surface) -> None:
        self._out(f"[{room_id}]\n{render_surface_text(surface)}\n(file) {filename} <- {path}")


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str | None]) -> threading.Thread:
    """
    Blocking input() in a daemon thread; lines are handed to the loop.

    A daemon thread (not the default executor) so shutdown never waits for Enter.
    """

    def reader() -> None:
        while True:
            try:
                line: str | None = input(">>> ")
            except EOFError:
                line = None
            try:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:
                return  # loop closed
            if line is None:
                return

    t = threading.Thread(target=reader, name="console-stdin", daemon=True)
    t.start()
    return t


async def _run_command(
    state: AppState,
    line: str,
    transport: ConsoleTransport,
    messenger: ConsoleMessenger,
    registry: CommandRegistry,
) -> None:
    reply = await registry.handle(
        state,
        line,
        transport=transport,
        messenger=messenger,
        invocation=Invocation(room_id=CONSOLE_ROOM, user_id=transport.user_id),
    )
    if reply is not None:
        _print_ts(render_surface_text(reply))


async def run_console_loop(
    state: AppState,
    transport: ConsoleTransport,
    messenger: ConsoleMessenger,
    *,
    registry: CommandRegistry = command_registry,
) -> None:
    """
    Read lines from stdin without blocking the event loop.

    Commands run as background tasks so several forms can be open at once;
    other lines answer the open prompts.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    lines: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), lines)

    while True:
        raw = await lines.get()
        if raw is None:
            logger.info("Console EOF received, exiting.")
            break
        user_input = raw.strip()

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if registry.is_command(user_input):
            state.spawn(
                _run_command(state, user_input, transport, messenger, registry),
                name=f"console-command:{user_input.split()[0]}",
            )
            continue

        if not transport.feed_line(user_input):
            _print_ts("No prompt is waiting for input. Use /help for commands.")

    logger.info("Console connector finished.")
