# src/task_companion/connectors/matrix_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Set

from nio import AsyncClient, MatrixRoom, RoomMessageText, RoomSendResponse, UploadResponse

from ..cli.commands import registry as command_registry
from ..cli.panel import panel_surface, restore_panel
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
from ..tasks.task_scheduler import run_daily_notifier
from .matrix_client import create_matrix_client
from .text_surface import parse_action, parse_text_form_reply, render_surface_text, render_text_form

logger = logging.getLogger(__name__)

# Prompts nobody waits on are forgotten after this long without activity.
PROMPT_IDLE_TTL = 3600.0


def _ms_now() -> int:
    return int(time.time() * 1000)


def _room_allowlist(settings_rooms: list[str]) -> Optional[Set[str]]:
    rooms = [r.strip() for r in (settings_rooms or []) if str(r).strip()]
    return set(rooms) if rooms else None


def _reply_target(event: RoomMessageText) -> str | None:
    """Event id the message replies to (m.in_reply_to), if any."""
    content = (getattr(event, "source", None) or {}).get("content", {})
    relates = content.get("m.relates_to") or {}
    in_reply_to = relates.get("m.in_reply_to") or {}
    target = in_reply_to.get("event_id")
    return str(target) if target else None


def _strip_reply_fallback(body: str) -> str:
    """Drop the quoted '> ...' lines clients prepend to replies."""
    lines = body.splitlines()
    while lines and lines[0].startswith(">"):
        lines.pop(0)
    return "\n".join(lines).strip()


def _text_content(text: str) -> dict[str, Any]:
    return {"msgtype": "m.text", "body": text}


async def _room_send(client: AsyncClient, room_id: str, content: dict[str, Any]) -> str:
    resp = await client.room_send(
        room_id=room_id,
        message_type="m.room.message",
        content=content,
        ignore_unverified_devices=True,
    )
    if not isinstance(resp, RoomSendResponse):
        raise RuntimeError(f"room_send to {room_id} failed: {resp!r}")
    return resp.event_id


@dataclass(frozen=True, slots=True)
class MatrixToken:
    """What a ResponseHandle carries on Matrix: the prompt and the reply that acted on it."""

    prompt: PromptRef
    event_id: str | None = None
    user_id: str | None = None


@dataclass(slots=True)
class _LivePrompt:
    room_id: str
    surface: Surface
    last_active: float = 0.0
    inbox: asyncio.Queue = field(default_factory=asyncio.Queue)


class MatrixPromptTransport:
    """
    PromptTransport over plain Matrix messages.

    Prompts are rendered as text; UPDATE edits the prompt (m.replace). A user
    acts on a prompt by replying to it, or by writing in the room while it is
    the most recently awaited prompt there.
    """

    name = "matrix"

    def __init__(
        self,
        client: AsyncClient,
        *,
        idle_ttl: float = PROMPT_IDLE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._idle_ttl = idle_ttl
        self._clock = clock
        self._prompts: dict[str, _LivePrompt] = {}
        self._waiting: dict[str, list[str]] = {}
        # room_id -> pending text forms (owner user id, future)
        self._text_waiters: dict[str, deque[tuple[str | None, asyncio.Future[tuple[str, str]]]]] = {}

    def _track(self, event_id: str, room_id: str, surface: Surface) -> _LivePrompt:
        live = self._prompts.get(event_id)
        if live is None:
            live = self._prompts[event_id] = _LivePrompt(room_id=room_id, surface=surface)
        live.surface = surface
        live.last_active = self._clock()
        return live

    def _evict_idle(self) -> None:
        now = self._clock()
        waiting = {mid for mids in self._waiting.values() for mid in mids}
        stale = [
            mid
            for mid, live in self._prompts.items()
            if mid not in waiting and now - live.last_active > self._idle_ttl
        ]
        for mid in stale:
            del self._prompts[mid]
        if stale:
            logger.debug("Forgot %d idle prompt(s)", len(stale))

    def live_prompts(self) -> list[str]:
        return list(self._prompts)

    async def _post(self, room_id: str, surface: Surface, reply_to: str | None = None) -> PromptRef:
        self._evict_idle()
        content = _text_content(render_surface_text(surface))
        if reply_to:
            content["m.relates_to"] = {"m.in_reply_to": {"event_id": reply_to}}
        event_id = await _room_send(self._client, room_id, content)
        self._track(event_id, room_id, surface)
        return PromptRef(message_id=event_id, room_id=room_id)

    async def send_prompt(self, invocation: Invocation, surface: Surface) -> PromptRef:
        if not invocation.room_id:
            raise ValueError("Matrix prompts need a room")
        return await self._post(invocation.room_id, surface)

    def attach(self, prompt: PromptRef, surface: Surface) -> None:
        """Track a prompt posted by an earlier run (panel restore)."""
        if prompt.message_id not in self._prompts and prompt.room_id:
            self._track(prompt.message_id, prompt.room_id, surface)

    async def respond(self, token: Any, response: Response) -> PromptRef | None:
        tok: MatrixToken = token
        prompt = tok.prompt
        room_id = prompt.room_id or self._prompts[prompt.message_id].room_id

        if response.kind is ResponseKind.ACKNOWLEDGE:
            if tok.event_id:
                await self._client.room_read_markers(room_id, tok.event_id, tok.event_id)
            return None

        assert response.surface is not None
        if response.kind is ResponseKind.MESSAGE:
            return await self._post(room_id, response.surface, reply_to=tok.event_id)

        text = render_surface_text(response.surface)
        content = _text_content(f"* {text}")
        content["m.new_content"] = _text_content(text)
        content["m.relates_to"] = {"rel_type": "m.replace", "event_id": prompt.message_id}
        await _room_send(self._client, room_id, content)

        # An idle prompt may have been forgotten while a text form was open.
        self._track(prompt.message_id, room_id, response.surface)
        return prompt

    async def next_action(self, prompt: PromptRef, timeout: float | None) -> Action | None:
        live = self._prompts[prompt.message_id]
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        waiting = self._waiting.setdefault(live.room_id, [])
        waiting.append(prompt.message_id)
        try:
            while True:
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    return None
                try:
                    body, event_id, sender = await asyncio.wait_for(live.inbox.get(), remaining)
                except asyncio.TimeoutError:
                    return None

                handle = ResponseHandle(MatrixToken(prompt, event_id, sender))
                action = parse_action(body, live.surface, handle, sender)
                if action is not None:
                    return action
                logger.debug("Unparseable reply to %s from %s: %r", prompt.message_id, sender, body)
        finally:
            waiting.remove(prompt.message_id)
            live.last_active = self._clock()

    async def open_text_form(self, token: Any, form: TextForm, timeout: float) -> TextFormReply | None:
        tok: MatrixToken = token
        room_id = tok.prompt.room_id or self._prompts[tok.prompt.message_id].room_id

        fut: asyncio.Future[tuple[str, str]] = asyncio.get_running_loop().create_future()
        waiters = self._text_waiters.setdefault(room_id, deque())
        entry = (tok.user_id, fut)
        waiters.append(entry)

        form_content = _text_content(render_text_form(form))
        if tok.event_id:
            form_content["m.relates_to"] = {"m.in_reply_to": {"event_id": tok.event_id}}
        try:
            await _room_send(self._client, room_id, form_content)
            text, event_id = await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            if entry in waiters:
                waiters.remove(entry)

        return TextFormReply(
            text=parse_text_form_reply(text, form),
            handle=ResponseHandle(MatrixToken(tok.prompt, event_id, tok.user_id)),
        )

    async def mention_targets(self, room_id: str | None) -> list[tuple[str, str]]:
        targets = [("@room", "@room")]
        room = self._client.rooms.get(room_id or "")
        if room is None:
            return targets
        for user_id, user in sorted(room.users.items()):
            if user_id == self._client.user_id:
                continue
            targets.append((user.display_name or user_id, user_id))
        return targets

    def feed_message(self, room_id: str, sender: str, body: str, event_id: str, reply_to: str | None) -> bool:
        """Route a non-command room message. False when no prompt takes it."""
        for owner, fut in list(self._text_waiters.get(room_id, ())):
            if fut.done() or owner not in (None, sender):
                continue
            fut.set_result((body, event_id))
            return True

        target: str | None = None
        if reply_to and reply_to in self._prompts:
            target = reply_to
        elif self._waiting.get(room_id):
            target = self._waiting[room_id][-1]
        if target is None:
            return False

        self._prompts[target].inbox.put_nowait((body, event_id, sender))
        return True


class MatrixMessenger:
    """OutboundMessenger for the notifier, backups and panel logs."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def send_text(self, *, room_id: str, surface: Surface) -> None:
        await _room_send(self._client, room_id, _text_content(render_surface_text(surface)))

    async def send_file(self, *, room_id: str, path: Path, filename: str, surface: Surface) -> None:
        path = Path(path)
        size = path.stat().st_size
        with path.open("rb") as f:
            resp, _keys = await self._client.upload(
                f,
                content_type="application/json",
                filename=filename,
                filesize=size,
            )
        if not isinstance(resp, UploadResponse):
            raise RuntimeError(f"upload of {path} failed: {resp!r}")

        await self.send_text(room_id=room_id, surface=surface)
        await _room_send(
            self._client,
            room_id,
            {
                "msgtype": "m.file",
                "body": filename,
                "url": resp.content_uri,
                "info": {"size": size, "mimetype": "application/json"},
            },
        )


async def run_matrix_connector(state: AppState, stop_event: asyncio.Event, *, start_notifier: bool) -> None:
    """
    Matrix connector:

    login -> initial sync -> panel restore (+ notifier) -> sync loop

    Runs on the main event loop; set stop_event (or cancel) to stop it.
    """
    settings = state.settings
    if not settings.matrix_homeserver or not settings.matrix_user_id:
        logger.error("Matrix is enabled but not configured (homeserver/user_id).")
        return

    startup_ts = _ms_now()
    allowed_rooms = _room_allowlist(getattr(settings, "matrix_rooms", []) or [])
    logger.info("Matrix allowed_rooms=%s", allowed_rooms if allowed_rooms is not None else "ALL")

    client = await create_matrix_client(settings)
    if client is None:
        logger.error("Matrix client creation failed; connector will stop.")
        return

    transport = MatrixPromptTransport(client)
    messenger = MatrixMessenger(client)

    async def run_command(room: MatrixRoom, sender: str, body: str) -> None:
        reply = await command_registry.handle(
            state,
            body,
            transport=transport,
            messenger=messenger,
            invocation=Invocation(room_id=room.room_id, user_id=sender),
        )
        if reply is not None:
            await messenger.send_text(room_id=room.room_id, surface=reply)

    async def message_callback(room: MatrixRoom, event: RoomMessageText) -> None:
        ts = getattr(event, "server_timestamp", None)
        if ts is not None and ts <= startup_ts:
            return
        if event.sender == client.user_id:
            return
        if allowed_rooms is not None and room.room_id not in allowed_rooms:
            return

        body = _strip_reply_fallback(event.body or "")
        if not body:
            return

        logger.info("Matrix <%s> %s: %r", room.display_name, event.sender, body)

        if command_registry.is_command(body):
            state.spawn(run_command(room, event.sender, body), name=f"matrix-command:{body.split()[0]}")
            return

        if not transport.feed_message(room.room_id, event.sender, body, event.event_id, _reply_target(event)):
            logger.debug("No prompt waiting in %s; message ignored", room.room_id)

    client.add_event_callback(message_callback, RoomMessageText)

    notifier_task: asyncio.Task | None = None
    try:
        logger.info("Matrix initial sync...")
        await client.sync(timeout=30000, full_state=True)
        logger.info("Matrix initial sync done. Joined rooms: %d", len(client.rooms))

        saved = state.store.get_config("panel_message")
        if isinstance(saved, dict) and saved.get("message_id") and saved.get("room_id"):
            transport.attach(PromptRef(str(saved["message_id"]), str(saved["room_id"])), panel_surface())
        restore_panel(state, transport, messenger, transport_name=transport.name)

        if start_notifier:
            notifier_task = asyncio.create_task(
                run_daily_notifier(
                    state.store,
                    messenger,
                    now=state.now,
                    notify_hour=int(getattr(settings, "notify_hour", 12)),
                    backup_enabled=bool(getattr(settings, "backup_enabled", True)),
                ),
                name="daily-notifier",
            )

        logger.info("Matrix sync loop started.")
        while not stop_event.is_set():
            await client.sync(timeout=30000, full_state=False)

    except asyncio.CancelledError:
        logger.info("Matrix connector cancelled.")
        raise
    except Exception:
        logger.exception("Matrix connector crashed.")
    finally:
        if notifier_task is not None:
            notifier_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await notifier_task

        with contextlib.suppress(Exception):
            await client.close()

        logger.info("Matrix connector stopped.")
