# src/task_companion/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..core.errors import FormError, UserAbandoned
from ..core.ports import OutboundMessenger, PromptTransport
from ..core.state import AppState
from ..forms.surface import Color, Embed, Invocation, Surface

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandContext:
    """Everything a command handler needs for one invocation."""

    state: AppState
    transport: PromptTransport
    messenger: OutboundMessenger
    invocation: Invocation
    args: str = ""

    @property
    def user_id(self) -> str | None:
        return self.invocation.user_id

    @property
    def room_id(self) -> str | None:
        return self.invocation.room_id


# A handler either answers through its own prompt (returns None) or returns a
# Surface that the connector posts as a plain reply.
CommandHandler = Callable[[CommandContext], Awaitable[Surface | None]]


def notice(title: str, description: str = "", color: Color = Color.DARK_BLUE) -> Surface:
    return Surface(embed=Embed(title=title, description=description, color=color))


class CommandRegistry:
    """Slash-command registry used by connectors (/add_task, /help, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def is_command(self, line: str) -> bool:
        return line.startswith("/")

    async def handle(
        self,
        state: AppState,
        line: str,
        *,
        transport: PromptTransport,
        messenger: OutboundMessenger,
        invocation: Invocation,
    ) -> Surface | None:
        """
        Handle a string like "/command args".
        Returns a reply Surface, or None when nothing should be posted.
        """
        if not self.is_command(line):
            return None

        name, _, args = line[1:].strip().partition(" ")
        name = name.lower()
        if not name:
            return notice("Empty command", "Use /help to list available commands.")

        handler = self._handlers.get(name)
        if handler is None:
            return notice(f"Unknown command: /{name}", "Use /help to list available commands.")

        ctx = CommandContext(
            state=state,
            transport=transport,
            messenger=messenger,
            invocation=invocation,
            args=args.strip(),
        )

        try:
            return await handler(ctx)
        except UserAbandoned as e:
            # The prompt is left as it was; nothing to report to the user.
            logger.info("/%s abandoned by user=%s: %s", name, invocation.user_id, e)
            return None
        except FormError as e:
            logger.warning("/%s failed for user=%s: %s", name, invocation.user_id, e)
            return notice("エラー", f"{e.user_message}\n({e})", color=Color.DARK_RED)
        except Exception:
            logger.exception("Command handler /%s crashed.", name)
            return notice("エラー", "Internal error while handling a command.", color=Color.DARK_RED)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


async def cmd_help(ctx: CommandContext) -> Surface | None:
    return notice("Help", registry.build_help())


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])


def load_builtin_commands(reg: CommandRegistry = registry) -> CommandRegistry:
    """Register the task/catalog/config/panel commands (idempotent)."""
    from . import catalog_commands, config_commands, panel, task_commands

    for module in (task_commands, catalog_commands, config_commands, panel):
        module.register(reg)
    return reg
