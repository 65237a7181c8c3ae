"""Name-keyed table of bang-command handlers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from rakka.log import get_logger

if TYPE_CHECKING:
    import httpx

    from rakka.core.context import ContextStore
    from rakka.core.credits import CreditStore
    from rakka.messenger.base import Responder
    from rakka.messenger.models import IncomingMessage
    from rakka.services.scheduler import SchedulerService

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandContext:
    """Everything a handler may touch while serving one command."""

    message: IncomingMessage
    responder: Responder
    args: list[str]
    bot_name: str
    credits: CreditStore
    context: ContextStore
    http: Optional[httpx.AsyncClient] = None
    scheduler: Optional[SchedulerService] = None
    registry: Optional[CommandRegistry] = field(default=None, repr=False)

    @property
    def prefix(self) -> str:
        return f"!{self.bot_name}"

    def with_args(self, args: list[str]) -> CommandContext:
        return replace(self, args=args)

    async def reply(self, text: str) -> Optional[str]:
        return await self.responder.send_text(self.message.chat_id, text)


CommandHandler = Callable[[CommandContext], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Command:
    name: str
    handler: CommandHandler
    usage: str = ""


class CommandRegistry:
    """Registry of all available commands; lookups are case-insensitive."""

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}

    def register(self, name: str, handler: CommandHandler, usage: str = "") -> None:
        key = name.lower()
        self._commands[key] = Command(name=key, handler=handler, usage=usage)
        logger.debug("command_registered", command=key)

    def get(self, name: str) -> Command | None:
        return self._commands.get(name.lower())

    def names(self) -> list[str]:
        return list(self._commands.keys())

    def all_commands(self) -> list[Command]:
        return list(self._commands.values())

    async def execute(self, name: str, ctx: CommandContext) -> bool:
        """Run the handler for *name*. Returns False when no such command exists.

        Handler exceptions are logged and relayed to the chat as a warning;
        they never reach the caller.
        """
        command = self.get(name)
        if command is None:
            return False
        if ctx.registry is None:
            ctx = replace(ctx, registry=self)
        try:
            await command.handler(ctx)
        except Exception as e:
            logger.error(
                "command_error",
                command=command.name,
                user_id=ctx.message.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await ctx.reply(f"⚠️ Error executing command: {e}")
        return True

    def discover_and_register(self) -> None:
        """Import and register all built-in commands."""
        from rakka.commands import llm, lookup

        llm.register(self)
        lookup.register(self)
